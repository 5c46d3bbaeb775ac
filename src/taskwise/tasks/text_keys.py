# src/taskwise/tasks/text_keys.py

"""
Text keys shared by the matcher, the synchronizer and the maintenance tools.

- title keys: case/punctuation-insensitive identity of a task title
- person keys: the same treatment applied to assignee names
- tokens: stopword-free, lightly stemmed words used for fuzzy scoring
"""

from __future__ import annotations

import re

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WORD_RE = re.compile(r"[a-z0-9]+")

_PLACEHOLDER_TITLE_RE = re.compile(
    r"^(?:action item|task|todo|to do|next step|follow up|followup|item|new task|untitled task|untitled)s?"
    r"(?:\s*\d+)?$"
)
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]+|\(?[0-9a-z]{1,3}[.)])\s*$", re.IGNORECASE)
_HAS_LETTER_RE = re.compile(r"[^\W\d_]", re.UNICODE)

STOPWORDS = frozenset(
    {
        "a", "an", "the", "to", "for", "of", "on", "in", "at", "by", "with", "from",
        "and", "or", "but", "so", "as", "into", "about",
        "i", "we", "you", "he", "she", "they", "it", "its", "me", "my", "our", "your",
        "their", "them", "us", "him", "her", "this", "that", "these", "those",
        "is", "are", "was", "were", "be", "been", "being", "am",
        "has", "have", "had", "will", "would", "should", "can", "could", "do", "did",
        "just", "already", "also", "all", "now", "today", "yesterday", "tonight",
        "finally", "ok", "okay", "yes", "yeah", "well", "then", "there", "here",
        "s", "t", "d", "m", "re", "ve", "ll",
        # completion cues carry no information about *which* task is done
        "done", "finished", "completed", "complete", "handled", "sorted",
    }
)

_IRREGULAR = {
    "sent": "send",
    "spent": "spend",
    "lent": "lend",
    "built": "build",
    "bought": "buy",
    "brought": "bring",
    "paid": "pay",
    "wrote": "write",
    "written": "write",
    "made": "make",
    "sold": "sell",
    "told": "tell",
    "gave": "give",
    "given": "give",
    "took": "take",
    "taken": "take",
    "met": "meet",
    "found": "find",
    "got": "get",
    "gotten": "get",
    "spoke": "speak",
    "spoken": "speak",
    "ran": "run",
    "left": "leave",
    "kept": "keep",
    "held": "hold",
    "led": "lead",
    "drew": "draw",
    "drawn": "draw",
    "chose": "choose",
    "chosen": "choose",
    "began": "begin",
    "begun": "begin",
    "thought": "think",
    "taught": "teach",
    "caught": "catch",
    "fed": "feed",
    "hung": "hang",
    "shown": "show",
    "went": "go",
    "gone": "go",
}

_NO_DEDOUBLE = frozenset("lsz")


def normalize_title_key(value: str | None) -> str:
    """Lowercase, non-alphanumerics to spaces, whitespace collapsed."""
    if not value:
        return ""
    return " ".join(_NON_ALNUM_RE.sub(" ", value.lower()).split())


def normalize_person_key(value: str | None) -> str:
    return normalize_title_key(value)


# compared against normalize_person_key output ("N/A" -> "n a")
UNASSIGNED_LABELS = frozenset({"unassigned", "unknown", "none", "na", "n a", "tbd", "un assigned", "nobody"})


def is_unassigned_label(value: str | None) -> bool:
    """Empty or a placeholder such as "Unassigned", "TBD", "n/a"."""
    key = normalize_person_key(value)
    return not key or key in UNASSIGNED_LABELS


def stem(token: str) -> str:
    """
    Light suffix stripping. Not linguistically correct, only consistent:
    "update"/"updated"/"updates" and "ship"/"shipped"/"shipping" collapse together.
    """
    if token in _IRREGULAR:
        return _IRREGULAR[token]
    if len(token) <= 3 or token.isdigit():
        return token

    word = token
    if len(word) > 4 and word.endswith("ies"):
        word = word[:-3] + "y"
    elif len(word) > 5 and word.endswith("ing"):
        word = _dedouble(word[:-3])
    elif len(word) > 4 and word.endswith("ed") and not word.endswith("eed"):
        word = _dedouble(word[:-2])
    elif word.endswith(("shes", "ches", "xes", "sses")):
        word = word[:-2]
    elif word.endswith("s") and not word.endswith(("ss", "us", "is")):
        word = word[:-1]

    if len(word) > 4 and word.endswith("e"):
        word = word[:-1]
    return word


def _dedouble(word: str) -> str:
    if len(word) >= 3 and word[-1] == word[-2] and word[-1] not in _NO_DEDOUBLE and word[-1] not in "aeiou":
        return word[:-1]
    return word


def tokenize(text: str | None) -> list[str]:
    """Content tokens of `text`, in order, duplicates kept."""
    if not text:
        return []
    out: list[str] = []
    for raw in _WORD_RE.findall(text.lower()):
        if raw in STOPWORDS:
            continue
        tok = stem(raw)
        if tok and tok not in STOPWORDS:
            out.append(tok)
    return out


def token_key(text: str | None) -> str:
    """Order-insensitive token identity ("Email the client" == "email client")."""
    return " ".join(sorted(set(tokenize(text))))


def is_placeholder_title(title: str | None) -> bool:
    key = normalize_title_key(title)
    if not key:
        return True
    return bool(_PLACEHOLDER_TITLE_RE.match(key))


def is_valid_title(title: str | None) -> bool:
    if not title:
        return False
    s = title.strip()
    if not s or _LIST_MARKER_RE.match(s):
        return False
    if not _HAS_LETTER_RE.search(s):
        return False
    return not is_placeholder_title(s)
