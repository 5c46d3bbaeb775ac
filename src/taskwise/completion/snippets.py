# src/taskwise/completion/snippets.py

"""Pull "this is done" statements out of transcripts, chats and summaries."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..tasks.text_keys import normalize_title_key

COMPLETION_CUE_RE = re.compile(
    r"\b(done|complete|completed|finished|resolved|fixed|shipped|delivered|launched|closed|closed out"
    r"|wrapped up|wrapped|already|handled|taken care of|sorted|sorted out|checked off|signed off"
    r"|approved|submitted|sent|filed|paid|merged|deployed|published|released|live|ready|in place"
    r"|all set|good to go|bought|purchased|acquired|ordered|booked|scheduled|set up|setup"
    r"|implemented|configured|installed)\b",
    re.IGNORECASE,
)

COMPLETION_NEGATION_RE = re.compile(
    r"\b(?:not|never|no|hasn't|haven't|didn't|isn't|wasn't|can't|cannot|won't|yet to|still need to)\b"
    r"[^.]{0,32}\b(?:done|complete|completed|finished|resolved|fixed|handled|taken care of|bought"
    r"|purchased|ready|live|shipped|delivered|launched|approved|sent|paid|booked|scheduled|submitted)\b",
    re.IGNORECASE,
)

GENERIC_COMPLETION_RE = re.compile(
    r"\b(?:that|it|this|task)\b.*\b(?:done|complete|completed|finished|resolved|fixed)\b",
    re.IGNORECASE,
)

_LINE_RE = re.compile(r"^(?:(\d{2}:\d{2}:\d{2})\s*-\s*)?(?:([^:]{1,60}?):\s+)?(.+)$")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

GENERIC_MAX_WORDS = 6


@dataclass(frozen=True, slots=True)
class CompletionSnippet:
    text: str
    speaker: str | None = None
    timestamp: str | None = None
    weight: float = 1.0


def parse_transcript_line(line: str) -> tuple[str, str | None, str | None]:
    """Split "hh:mm:ss - Speaker: text" into (text, speaker, timestamp)."""
    m = _LINE_RE.match(line.strip())
    if not m:
        return line.strip(), None, None
    timestamp, speaker, text = m.group(1), m.group(2), m.group(3)
    return (text or "").strip(), (speaker.strip() if speaker else None), timestamp


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def _is_cued(sentence: str) -> bool:
    return bool(COMPLETION_CUE_RE.search(sentence)) and not COMPLETION_NEGATION_RE.search(sentence)


def has_completion_cue(text: str) -> bool:
    return any(_is_cued(s) for s in split_sentences(text))


def is_generic_completion(text: str) -> bool:
    """Short lines like "that's done" which only make sense with the line before."""
    key = normalize_title_key(text)
    if not key:
        return True
    return len(key.split()) <= GENERIC_MAX_WORDS and bool(GENERIC_COMPLETION_RE.search(text))


def extract_completion_snippets(text: str | None, *, weight: float = 1.0) -> list[CompletionSnippet]:
    """
    One snippet per cued sentence.

    - speaker/timestamp come from the transcript line the sentence sits on
    - a generic sentence ("that's done") is joined with the sentence before it,
      which may end the previous line
    - repeated sentences collapse into the first one
    """
    if not text or not text.strip():
        return []

    snippets: list[CompletionSnippet] = []
    seen: set[str] = set()
    previous = ""

    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        body, speaker, timestamp = parse_transcript_line(raw_line)
        if not body:
            previous = ""
            continue

        for sentence in split_sentences(body):
            if not _is_cued(sentence):
                previous = sentence
                continue

            snippet_text = sentence
            if previous and is_generic_completion(sentence):
                snippet_text = f"{previous} {sentence}".strip()
            previous = sentence

            key = normalize_title_key(snippet_text)
            if not key or key in seen:
                continue
            seen.add(key)
            snippets.append(CompletionSnippet(text=snippet_text, speaker=speaker, timestamp=timestamp, weight=weight))

    return snippets
