# src/taskwise/completion/matcher.py

"""
Fuzzy completion matcher.

Given session text and the open tasks of a workspace, propose which tasks
the conversation says are already done.

Pipeline:
1) cut the text into completion snippets, one per cued sentence
2) build the candidate pool (one candidate per real-world task)
3) score every (snippet, candidate) pair; a snippet that fits several
   candidates equally well at its top score only credits the first one
4) a candidate's confidence is its best score over all snippets
5) drop candidates under the (clamped) threshold, best first

Scores do not depend on the threshold, so raising it can only remove
matches, never add or re-route them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from difflib import SequenceMatcher

from ..config import DEFAULT_MATCH_THRESHOLD, clamp_match_threshold
from ..tasks.task_models import Assignee, CompletionTarget, TaskEvidence, TaskNode
from ..tasks.text_keys import normalize_person_key, tokenize
from .candidates import Attendee, CompletionCandidate, build_candidates
from .snippets import CompletionSnippet, extract_completion_snippets

logger = logging.getLogger(__name__)

TOKEN_WEIGHT = 0.8
SEQUENCE_WEIGHT = 0.2
COVERAGE_WEIGHT = 0.75
JACCARD_WEIGHT = 0.25
DESCRIPTION_WEIGHT = 0.1
SPEAKER_BOOST = 0.1
SUMMARY_WEIGHT = 0.9


@dataclass(frozen=True, slots=True)
class MatchOptions:
    min_match_ratio: float = DEFAULT_MATCH_THRESHOLD
    require_attendee_match: bool = False
    include_description: bool = True

    @property
    def threshold(self) -> float:
        return clamp_match_threshold(self.min_match_ratio)

    @classmethod
    def from_settings(cls, settings) -> MatchOptions:
        return cls(
            min_match_ratio=getattr(settings, "completion_match_threshold", DEFAULT_MATCH_THRESHOLD),
            require_attendee_match=bool(getattr(settings, "require_attendee_match", False)),
            include_description=bool(getattr(settings, "match_include_description", True)),
        )


@dataclass(slots=True)
class CompletionMatch:
    task_id: str
    title: str
    confidence: float
    targets: list[CompletionTarget] = field(default_factory=list)
    evidence: list[TaskEvidence] = field(default_factory=list)
    description: str = ""
    assignee: Assignee | None = None


def score_pair(
    candidate: CompletionCandidate,
    snippet_tokens: frozenset[str],
    *,
    include_description: bool = True,
) -> float:
    """Similarity in [0, 1] between a candidate task and one snippet."""
    title_tokens = candidate.title_tokens
    if not title_tokens or not snippet_tokens:
        return 0.0
    shared = len(title_tokens & snippet_tokens)
    if shared == 0:
        return 0.0

    coverage = shared / len(title_tokens)
    jaccard = shared / len(title_tokens | snippet_tokens)
    token_score = COVERAGE_WEIGHT * coverage + JACCARD_WEIGHT * jaccard

    seq = SequenceMatcher(None, " ".join(sorted(title_tokens)), " ".join(sorted(snippet_tokens))).ratio()
    score = TOKEN_WEIGHT * token_score + SEQUENCE_WEIGHT * seq

    if include_description:
        extra = candidate.description_tokens - title_tokens
        if extra:
            score += DESCRIPTION_WEIGHT * (len(extra & snippet_tokens) / len(extra))

    return min(1.0, score)


def _speaker_is_assignee(snippet: CompletionSnippet, candidate: CompletionCandidate) -> bool:
    if not snippet.speaker or candidate.assignee is None or not candidate.assignee.name:
        return False
    return normalize_person_key(snippet.speaker) == normalize_person_key(candidate.assignee.name)


def match_snippets(
    snippets: Sequence[CompletionSnippet],
    candidates: Sequence[CompletionCandidate],
    options: MatchOptions,
) -> list[CompletionMatch]:
    best: dict[int, float] = {}
    credited: dict[int, list[tuple[float, TaskEvidence]]] = {}

    for snippet in snippets:
        tokens = frozenset(tokenize(snippet.text))
        if not tokens:
            continue

        scores: list[tuple[int, float]] = []
        for idx, cand in enumerate(candidates):
            score = score_pair(cand, tokens, include_description=options.include_description) * snippet.weight
            if score <= 0.0:
                continue
            if options.require_attendee_match and _speaker_is_assignee(snippet, cand):
                score = min(1.0, score + SPEAKER_BOOST)
            scores.append((idx, score))
        if not scores:
            continue

        # one phrase fitting several tasks equally well completes only the first
        top_score = max(score for _, score in scores)
        top = [idx for idx, score in scores if score == top_score]
        if len(top) > 1:
            logger.debug(
                "Snippet %r tied between %d candidates; crediting %s",
                snippet.text[:80],
                len(top),
                candidates[top[0]].task_id,
            )
            skipped = set(top[1:])
            scores = [(idx, score) for idx, score in scores if idx not in skipped]

        evidence = TaskEvidence(snippet=snippet.text, speaker=snippet.speaker, timestamp=snippet.timestamp)
        for idx, score in scores:
            best[idx] = max(best.get(idx, 0.0), score)
            credited.setdefault(idx, []).append((round(score, 4), evidence))

    threshold = options.threshold
    out: list[CompletionMatch] = []
    for idx in sorted(best, key=lambda i: (-best[i], i)):
        confidence = round(best[idx], 4)
        if confidence < threshold:
            continue
        cand = candidates[idx]
        out.append(
            CompletionMatch(
                task_id=cand.task_id,
                title=cand.title,
                confidence=confidence,
                targets=list(cand.targets),
                evidence=[ev for score, ev in credited[idx] if score >= threshold],
                description=cand.description,
                assignee=cand.assignee,
            )
        )
    return out


def match_completions(
    text: str | None,
    open_tasks: Iterable[TaskNode],
    options: MatchOptions | None = None,
    *,
    attendees: Iterable[Attendee] = (),
    summary: str | None = None,
) -> list[CompletionMatch]:
    """
    Propose tasks the text says are done.

    At most one match per task; confidence >= clamped min_match_ratio.
    """
    options = options or MatchOptions()

    snippets = extract_completion_snippets(text)
    snippets += extract_completion_snippets(summary, weight=SUMMARY_WEIGHT)
    if not snippets:
        return []

    candidates = build_candidates(
        open_tasks,
        attendees=attendees,
        require_attendee_match=options.require_attendee_match,
    )
    if not candidates:
        return []

    matches = match_snippets(snippets, candidates, options)
    logger.info(
        "Completion matching: snippets=%d candidates=%d matches=%d threshold=%.2f",
        len(snippets),
        len(candidates),
        len(matches),
        options.threshold,
    )
    return matches
