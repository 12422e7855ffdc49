"""
Milestone spacing for /deadline.
"""

from datetime import date, timedelta

from study_copilot.planning.milestones import MILESTONE_TITLES, plan_milestones

TODAY = date(2026, 1, 12)


def _offsets(milestones):
    return [(m.due_date - TODAY).days for m in milestones]


def test_ten_days_out_gives_four_spaced_milestones():
    milestones = plan_milestones(TODAY, TODAY + timedelta(days=10))

    assert _offsets(milestones) == [1, 3, 5, 7]
    assert [m.title for m in milestones] == [f"Milestone: {t}" for t in MILESTONE_TITLES]


def test_three_days_out():
    assert _offsets(plan_milestones(TODAY, TODAY + timedelta(days=3))) == [0, 1, 2]


def test_short_runways_fall_back_to_deadline():
    assert _offsets(plan_milestones(TODAY, TODAY)) == [0, 0, 0]
    assert _offsets(plan_milestones(TODAY, TODAY + timedelta(days=1))) == [0, 1, 1]
    assert _offsets(plan_milestones(TODAY, TODAY + timedelta(days=2))) == [1, 2, 2]


def test_milestones_never_pass_the_deadline():
    for days in range(0, 40):
        deadline = TODAY + timedelta(days=days)
        milestones = plan_milestones(TODAY, deadline)
        assert 3 <= len(milestones) <= 4
        dates = [m.due_date for m in milestones]
        assert dates == sorted(dates)
        assert all(TODAY <= d <= deadline for d in dates)
