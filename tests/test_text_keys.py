# tests/test_text_keys.py

from __future__ import annotations

import pytest

from taskwise.tasks.text_keys import (
    is_valid_title,
    normalize_title_key,
    stem,
    token_key,
    tokenize,
)


def test_normalize_title_key() -> None:
    assert normalize_title_key("  Email   the CLIENT!! ") == "email the client"
    assert normalize_title_key(None) == ""


def test_token_key_ignores_stopwords_and_order() -> None:
    assert token_key("Email the client") == token_key("client email")
    assert token_key("Email client") == "client email"


@pytest.mark.parametrize(
    ("word", "expected"),
    [
        ("shipped", "ship"),
        ("shipping", "ship"),
        ("ships", "ship"),
        ("updated", "updat"),
        ("updates", "updat"),
        ("update", "updat"),
        ("sent", "send"),
        ("bought", "buy"),
        ("boxes", "box"),
        ("status", "status"),
    ],
)
def test_stem(word: str, expected: str) -> None:
    assert stem(word) == expected


def test_tokenize_drops_cues_and_stopwords() -> None:
    assert tokenize("I already sent the contract to Sam") == ["send", "contract", "sam"]
    assert tokenize("Done!") == []


@pytest.mark.parametrize(
    ("title", "valid"),
    [
        ("Book venue", True),
        ("Task 1", False),
        ("Action items", False),
        ("-", False),
        ("2.", False),
        ("123", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_title(title, valid: bool) -> None:
    assert is_valid_title(title) is valid
