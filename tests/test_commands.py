"""
Command router: dispatch, refusals, and the suggestions each command stores.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from conftest import NOW, USER, at, counting_ids
from sqlalchemy.exc import IntegrityError

from study_copilot.commands import REFUSAL_REPLY, CommandContext, execute
from study_copilot.db.models import SuggestionStatus
from study_copilot.planner import Interval


def say(ctx, text):
    return execute([{"role": "user", "content": text}], ctx)


def test_latest_user_message_is_used():
    messages = [
        {"role": "user", "content": "/plan"},
        {"role": "assistant", "content": "..."},
        {"role": "user", "content": "/help"},
    ]
    # /help works without a user id
    ctx_without_user = CommandContext(user_id=None, now=NOW, repo=None)
    result = execute(messages, ctx_without_user)
    assert "/reschedule" in result.reply
    assert result.structured["examples"]


def test_routing_errors(ctx):
    assert say(ctx, "hello there").reply == "Use a command like /help"
    assert say(ctx, "/").reply == 'Type a command after "/". Try /help'
    assert say(ctx, "/dance").reply == "Unknown command. Try /help"


def test_user_id_required(repo):
    ctx = CommandContext(user_id="", now=NOW, repo=repo)
    assert say(ctx, "/plan").reply == "userId required"


def test_cheating_requests_are_refused(ctx, repo):
    assert say(ctx, "/solve question 3").reply == REFUSAL_REPLY
    assert say(ctx, "/plan please write my essay").reply == REFUSAL_REPLY
    assert repo.list_suggestions(USER) == []


def test_plan_stores_pending_suggestions(ctx, repo):
    repo.add_assignment(USER, "Problem set", date(2026, 1, 15))
    repo.add_event(USER, "Lecture", at(0, 8), at(0, 12))

    result = say(ctx, "/plan")

    assert [s["id"] for s in result.suggestions] == ["s-1", "s-2", "s-3", "s-4"]
    assert all(s["status"] == "pending" for s in result.suggestions)
    assert all(s["type"] == "create_calendar_block" for s in result.suggestions)
    first = result.suggestions[0]["payload"]
    assert first == {
        "title": "Study: Problem set",
        "start": "2026-01-12T12:00:00-05:00",
        "end": "2026-01-12T13:00:00-05:00",
    }
    assert "/accept" in result.reply
    assert result.structured["horizon_days"] == 7
    assert len(repo.list_suggestions(USER, SuggestionStatus.PENDING)) == 4


def test_plan_spread_and_topic(ctx):
    result = say(ctx, "/plan light Organic chemistry")

    assert len(result.suggestions) == 2
    assert result.suggestions[0]["payload"]["title"] == "Study: Organic chemistry"


def test_plan_ignores_other_users_and_completed_work(ctx, repo):
    repo.add_event("someone-else", "Their lecture", at(0, 8), at(0, 22))
    done = repo.add_assignment(USER, "Old essay", date(2026, 3, 1))
    repo.complete_assignment(done.id, USER)

    result = say(ctx, "/plan")

    assert result.structured["horizon_days"] == 7
    assert result.suggestions[0]["payload"]["start"] == "2026-01-12T08:00:00-05:00"


def test_plan_with_busy_source(repo):
    def everything_busy(start, end):
        return [Interval(start, end)]

    ctx = CommandContext(user_id=USER, now=NOW, repo=repo, busy_source=everything_busy)
    result = say(ctx, "/plan")

    assert result.suggestions == []
    assert result.reply.startswith("Not enough free time")
    assert repo.list_suggestions(USER) == []


def test_reschedule_malformed_window_stores_nothing(ctx, repo):
    repo.add_event(USER, "Study: Essay", at(1, 10), at(1, 11), type="study")

    result = say(ctx, "/reschedule next tuesday")

    assert "Could not read the window" in result.reply
    assert result.suggestions == []
    assert repo.list_suggestions(USER) == []


def test_reschedule_window(ctx):
    result = say(ctx, "/reschedule 2026-01-14 14:00-16:00")

    assert len(result.suggestions) == 5
    assert result.suggestions[0]["payload"]["start"] == "2026-01-14T14:00:00-05:00"


def test_reschedule_next_study_block(ctx, repo):
    repo.add_event(USER, "Lecture", at(0, 8), at(0, 10))
    repo.add_event(USER, "Study: Essay", at(0, 10), at(0, 11), type="study")

    result = say(ctx, "/reschedule")

    starts = [s["payload"]["start"] for s in result.suggestions]
    assert starts[0] == "2026-01-12T11:00:00-05:00"
    assert result.suggestions[0]["payload"]["title"] == "Study: Essay"
    assert result.suggestions[1]["payload"]["title"] == "Study: Essay (option 2)"


def test_reschedule_without_study_block(ctx):
    result = say(ctx, "/reschedule")
    assert result.reply.startswith("No upcoming study block found.")
    assert result.suggestions == []


def test_deadline_with_date(ctx):
    result = say(ctx, "/deadline 2026-01-22")

    assert len(result.suggestions) == 4
    assert all(s["type"] == "create_task" for s in result.suggestions)
    assert [s["payload"]["due_date"] for s in result.suggestions] == [
        "2026-01-13", "2026-01-15", "2026-01-17", "2026-01-19",
    ]
    assert result.reply.startswith("Created 4 milestone task(s) leading to 2026-01-22.")


def test_deadline_uses_nearest_assignment(ctx, repo):
    repo.add_assignment(USER, "Lab report", date(2026, 1, 22))
    repo.add_assignment(USER, "Final project", date(2026, 3, 1))

    result = say(ctx, "/deadline")

    assert result.suggestions[0]["label"].endswith("(Lab report)")


def test_deadline_errors(ctx):
    assert "No upcoming assignment" in say(ctx, "/deadline").reply
    assert "is in the past" in say(ctx, "/deadline 2026-01-01").reply
    assert "not a valid date" in say(ctx, "/deadline 2026-02-31").reply


def test_tasks_add(ctx):
    result = say(ctx, '/tasks add "Read chapter 3" due 2026-02-15')

    assert [s["payload"]["title"] for s in result.suggestions] == [
        "Read chapter 3",
        "Review notes for Read chapter 3",
        "Practice problems for Read chapter 3",
    ]
    assert {s["payload"]["due_date"] for s in result.suggestions} == {"2026-02-15"}


def test_tasks_from_assignments_and_generic(ctx, repo):
    generic = say(ctx, "/tasks")
    assert len(generic.suggestions) == 3
    assert "generic tasks" in generic.reply

    repo.add_assignment(USER, "Essay", date(2026, 1, 20))
    repo.add_assignment(USER, "Lab", date(2026, 1, 25))
    result = say(ctx, "/tasks")
    assert len(result.suggestions) == 5
    assert result.suggestions[0]["payload"]["title"] == "Work on Essay"


def test_check_gives_feedback_not_answers(ctx, repo):
    assert say(ctx, "/check").reply.startswith("Usage: /check")
    assert "I don't give final answers" in say(ctx, "/check just tell me the answer").reply

    result = say(ctx, "/check Photosynthesis turns light into chemical energy because plants need food.")
    assert result.reply.startswith("Feedback on your attempt:")
    assert result.structured["issues"]
    assert repo.list_suggestions(USER) == []


def test_storage_failure_propagates(repo, session):
    """
    A failed insert is a hard error: nothing is retried and nothing is stored.
    """
    ctx = CommandContext(user_id=USER, now=NOW, repo=repo, id_factory=lambda: "dup")

    with pytest.raises(IntegrityError):
        say(ctx, "/plan")

    session.rollback()
    assert repo.list_suggestions(USER) == []


def test_reschedule_skips_study_block_already_over(repo):
    repo.add_event(USER, "Study: Earlier today", at(0, 8), at(0, 9), type="study")
    repo.add_event(USER, "Study: Tomorrow", at(1, 10), at(1, 11), type="study")
    ctx = CommandContext(user_id=USER, now=at(0, 12), repo=repo, id_factory=counting_ids())

    result = say(ctx, "/reschedule")

    assert result.suggestions[0]["payload"]["title"] == "Study: Tomorrow"
    # a block in progress still counts
    assert repo.next_study_block(USER, at(0, 8, 30)).title == "Study: Earlier today"


def _seed_notes(repo):
    base = NOW - timedelta(days=3)
    repo.add_note(USER, "Cell biology", "Mitochondria produce ATP.", created_at=base)
    repo.add_note(USER, "Photosynthesis", "Light becomes chemical energy. " * 5, created_at=base + timedelta(days=1))
    repo.add_note(USER, None, "100% of the grade_book", created_at=base + timedelta(days=2))
    repo.add_note("someone-else", "Private", "Not yours", created_at=base + timedelta(days=2))


def test_notes_list_and_show(ctx, repo):
    assert say(ctx, "/notes").reply.startswith("No notes found.")
    _seed_notes(repo)

    listing = say(ctx, "/notes").reply
    assert listing.startswith("Your latest notes")
    assert listing.index("(no title)") < listing.index("Photosynthesis") < listing.index("Cell biology")
    assert "Private" not in listing
    assert "..." in listing  # long content is cut to a snippet

    shown = say(ctx, "/notes show 3").reply
    assert shown.startswith("Note 3: Cell biology")
    assert "Mitochondria produce ATP." in shown

    assert say(ctx, "/notes show 9").reply.startswith("You have fewer than 9 note(s).")
    assert say(ctx, "/notes show 0").reply.startswith("Usage: /notes show")
    assert repo.list_suggestions(USER) == []


def test_notes_search(ctx, repo):
    _seed_notes(repo)

    assert "Cell biology" in say(ctx, "/notes search mitochondria").reply
    assert "(no title)" in say(ctx, "/notes search 100%").reply
    assert say(ctx, "/notes search 5%").reply.startswith("No notes found matching")
    assert say(ctx, "/notes search _").reply.count("\n   ") == 1
    assert say(ctx, "/notes search").reply == "Usage: /notes search <keyword>"
    assert say(ctx, "/notes search private").reply.startswith("No notes found matching")
