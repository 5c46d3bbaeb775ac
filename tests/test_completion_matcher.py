# tests/test_completion_matcher.py

from __future__ import annotations

import pytest

from taskwise.completion.candidates import Attendee, build_candidates
from taskwise.completion.matcher import MatchOptions, match_completions
from taskwise.completion.snippets import extract_completion_snippets, has_completion_cue, parse_transcript_line
from taskwise.tasks.task_models import Assignee, CompletionSourceType, SessionType, TaskStatus

from .fakes import task


def _open(task_id: str, title: str, session_id: str = "m0", **fields):
    return task(
        task_id,
        title,
        source_session_id=session_id,
        source_session_type=SessionType.MEETING,
        **fields,
    )


def test_parse_transcript_line() -> None:
    assert parse_transcript_line("00:01:02 - Ann: I sent it") == ("I sent it", "Ann", "00:01:02")
    assert parse_transcript_line("plain text") == ("plain text", None, None)


def test_negated_cue_is_ignored() -> None:
    assert has_completion_cue("I sent the contract.")
    assert not has_completion_cue("I haven't sent the contract yet.")
    assert has_completion_cue("Not sure about lunch. The deck is done.")


def test_generic_completion_joins_previous_line() -> None:
    text = "Ann: the venue booking for Friday\nBob: that's done"
    snippets = extract_completion_snippets(text)
    assert [s.text for s in snippets] == ["the venue booking for Friday that's done"]
    assert snippets[0].speaker == "Bob"


def test_repeated_lines_yield_one_snippet() -> None:
    snippets = extract_completion_snippets("Ann: I paid the rent.\nAnn: I paid the rent!")
    assert len(snippets) == 1


def test_sent_contract_scenario() -> None:
    tasks = [_open("t1", "Send contract to Sam"), _open("t2", "Book venue")]
    matches = match_completions("I already sent the contract to Sam", tasks)

    assert [m.task_id for m in matches] == ["t1"]
    assert matches[0].confidence >= 0.6
    assert matches[0].evidence[0].snippet == "I already sent the contract to Sam"


def test_done_and_suggested_tasks_are_not_candidates() -> None:
    tasks = [
        _open("t1", "Send contract to Sam", status=TaskStatus.DONE),
        _open("t2", "Send contract to Sam", session_id="m2", completion_suggested=True, completion_confidence=0.7),
    ]
    assert match_completions("I sent the contract to Sam", tasks) == []


def test_same_task_in_several_places_is_one_match_with_all_targets() -> None:
    tasks = [
        _open("t1", "Send contract to Sam", canonical_id="c1"),
        _open("x9", "send contract to sam", session_id="m2"),
    ]
    matches = match_completions("Sent the contract to Sam.", tasks)

    assert len(matches) == 1
    keys = {t.key for t in matches[0].targets}
    assert keys == {"task:c1:c1", "meeting:m0:t1", "meeting:m2:x9"}
    assert matches[0].task_id == "c1"


def test_two_completions_on_one_line() -> None:
    tasks = [_open("t1", "Send contract to Sam"), _open("t2", "Book venue for offsite")]
    text = "Ann: I sent the contract to Sam. I also booked the venue for the offsite."

    one_line = match_completions(text, tasks)
    two_lines = match_completions(text.replace(". I also", ".\nAnn: I also"), tasks)

    assert {m.task_id for m in one_line} == {"t1", "t2"}
    assert [(m.task_id, m.confidence) for m in one_line] == [(m.task_id, m.confidence) for m in two_lines]
    assert one_line[0].evidence[0].speaker == "Ann"


def test_sentences_become_separate_snippets() -> None:
    snippets = extract_completion_snippets("Ann: Lunch was fine. I paid the caterer. Venue is booked.")
    assert [s.text for s in snippets] == ["I paid the caterer.", "Venue is booked."]
    assert all(s.speaker == "Ann" for s in snippets)


def test_tie_goes_to_first_candidate() -> None:
    tasks = [
        _open("t1", "Update roadmap", assignee=Assignee(name="Ann")),
        _open("t2", "Update roadmap", assignee=Assignee(name="Bob")),
    ]
    matches = match_completions("The roadmap update is done.", tasks)
    assert [m.task_id for m in matches] == ["t1"]


def test_threshold_is_clamped() -> None:
    tasks = [_open("t1", "Send contract to Sam and legal")]
    text = "I sent the contract."
    loose = match_completions(text, tasks, MatchOptions(min_match_ratio=0.0))
    clamped = match_completions(text, tasks, MatchOptions(min_match_ratio=0.4))
    assert [(m.task_id, m.confidence) for m in loose] == [(m.task_id, m.confidence) for m in clamped]
    assert MatchOptions(min_match_ratio=2.0).threshold == 0.95


@pytest.mark.parametrize("text", ["I sent the contract and booked the venue. Paid the caterer too."])
def test_raising_threshold_only_removes_matches(text: str) -> None:
    tasks = [
        _open("t1", "Send contract to Sam"),
        _open("t2", "Book venue for offsite"),
        _open("t3", "Pay caterer"),
        _open("t4", "Write agenda"),
    ]
    previous: dict[str, float] | None = None
    for ratio in (0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 0.95):
        current = {m.task_id: m.confidence for m in match_completions(text, tasks, MatchOptions(min_match_ratio=ratio))}
        if previous is not None:
            assert set(current) <= set(previous)
            assert all(previous[k] == v for k, v in current.items())
        previous = current


def test_attendee_restriction_with_fallback() -> None:
    tasks = [
        _open("t1", "Send contract", assignee=Assignee(name="Ann")),
        _open("t2", "Book venue", assignee=Assignee(name="Bob")),
    ]
    only_ann = build_candidates(tasks, attendees=[Attendee(name="ann")], require_attendee_match=True)
    assert [c.task_id for c in only_ann] == ["t1"]

    nobody = build_candidates(tasks, attendees=[Attendee(name="Zed")], require_attendee_match=True)
    assert [c.task_id for c in nobody] == ["t1", "t2"]


def test_speaker_boost_applies_with_attendee_matching() -> None:
    tasks = [_open("t1", "Send contract to legal team", assignee=Assignee(name="Ann"))]
    text = "Ann: I sent the contract."
    plain = match_completions(text, tasks, MatchOptions(min_match_ratio=0.4))
    boosted = match_completions(
        text,
        tasks,
        MatchOptions(min_match_ratio=0.4, require_attendee_match=True),
        attendees=[Attendee(name="Ann")],
    )
    assert boosted[0].confidence == pytest.approx(min(1.0, plain[0].confidence + 0.1), abs=1e-3)


def test_summary_snippets_are_discounted() -> None:
    tasks = [_open("t1", "Send contract to Sam")]
    from_text = match_completions("I sent the contract to Sam.", tasks)
    from_summary = match_completions("", tasks, summary="Sent the contract to Sam.")
    assert from_summary[0].confidence == pytest.approx(from_text[0].confidence * 0.9, abs=1e-3)
    assert from_text[0].targets[0].source_type == CompletionSourceType.MEETING


def test_no_text_or_no_tasks() -> None:
    assert match_completions(None, [_open("t1", "Pay rent")]) == []
    assert match_completions("Paid the rent.", []) == []
