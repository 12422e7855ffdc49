"""
Suggestion lifecycle: pending -> accepted | rejected, decided exactly once.
"""

from __future__ import annotations

from datetime import date

import pytest
from conftest import NOW, USER, at, counting_ids

from study_copilot.db.models import Event, SuggestionStatus, SuggestionType, Task
from study_copilot.db.repository import (
    SuggestionAlreadyDecided,
    SuggestionDraft,
    SuggestionNotFound,
)
from study_copilot.planner import to_rfc3339


def _block_draft(start, end, title="Study: Essay"):
    return SuggestionDraft(
        type=SuggestionType.CREATE_CALENDAR_BLOCK,
        label="Study block 1: 60 min - Essay",
        payload={"title": title, "start": to_rfc3339(start), "end": to_rfc3339(end)},
    )


def test_accept_block_creates_tagged_event(repo):
    [row] = repo.add_suggestions(USER, [_block_draft(at(1, 9), at(1, 10))], counting_ids())

    decision = repo.decide_suggestion(row.id, USER, accept=True, now=NOW)

    assert decision.suggestion.status == SuggestionStatus.ACCEPTED.value
    assert decision.suggestion.decided_at is not None
    assert isinstance(decision.created, Event)
    assert decision.created.type == "study"
    assert decision.created.source_id == row.id
    assert repo.event_interval(decision.created).start == at(1, 9)

    [event] = repo.list_events(USER)
    assert event.title == "Study: Essay"


def test_accept_task_creates_task(repo):
    draft = SuggestionDraft(
        type=SuggestionType.CREATE_TASK,
        label="Task: Read chapter 3",
        payload={"title": "Read chapter 3", "due_date": "2026-02-15"},
    )
    [row] = repo.add_suggestions(USER, [draft], counting_ids())

    decision = repo.decide_suggestion(row.id, USER, accept=True, now=NOW)

    assert isinstance(decision.created, Task)
    [task] = repo.list_tasks(USER)
    assert task.due_date == date(2026, 2, 15)
    assert task.source_id == row.id


def test_reject_creates_nothing(repo):
    [row] = repo.add_suggestions(USER, [_block_draft(at(1, 9), at(1, 10))], counting_ids())

    decision = repo.decide_suggestion(row.id, USER, accept=False, now=NOW)

    assert decision.suggestion.status == SuggestionStatus.REJECTED.value
    assert decision.created is None
    assert repo.list_events(USER) == []


def test_second_decision_is_refused(repo):
    [row] = repo.add_suggestions(USER, [_block_draft(at(1, 9), at(1, 10))], counting_ids())
    repo.decide_suggestion(row.id, USER, accept=True, now=NOW)

    with pytest.raises(SuggestionAlreadyDecided) as exc:
        repo.decide_suggestion(row.id, USER, accept=True, now=NOW)
    assert exc.value.status == "accepted"

    with pytest.raises(SuggestionAlreadyDecided):
        repo.decide_suggestion(row.id, USER, accept=False, now=NOW)

    # still exactly one event
    assert len(repo.list_events(USER)) == 1


def test_unknown_or_foreign_suggestion(repo):
    [row] = repo.add_suggestions(USER, [_block_draft(at(1, 9), at(1, 10))], counting_ids())

    with pytest.raises(SuggestionNotFound):
        repo.decide_suggestion("s-missing", USER, accept=True, now=NOW)
    with pytest.raises(SuggestionNotFound):
        repo.decide_suggestion(row.id, "someone-else", accept=True, now=NOW)

    assert repo.list_suggestions(USER, SuggestionStatus.PENDING)[0].id == row.id


def test_accepted_block_is_busy_and_reschedulable(repo):
    [row] = repo.add_suggestions(
        USER, [_block_draft(at(1, 9), at(1, 10), title="Study: Problem set")], counting_ids()
    )
    repo.decide_suggestion(row.id, USER, accept=True, now=NOW)

    busy = repo.busy_intervals(USER, at(0, 0), at(7, 0))
    assert [(b.start, b.end) for b in busy] == [(at(1, 9), at(1, 10))]

    target = repo.next_study_block(USER, at(0, 0))
    assert target.title == "Study: Problem set"
    assert target.interval.start == at(1, 9)


def test_list_events_filters_by_range(repo):
    repo.add_event(USER, "Early", at(0, 8), at(0, 9))
    repo.add_event(USER, "Late", at(3, 8), at(3, 9))
    repo.add_event(USER, "Earlier", at(0, 6), at(0, 7))

    assert [e.title for e in repo.list_events(USER)] == ["Earlier", "Early", "Late"]
    assert [e.title for e in repo.list_events(USER, at(0, 7), at(1, 0))] == ["Early"]
    assert [e.title for e in repo.list_events(USER, start=at(1, 0))] == ["Late"]
