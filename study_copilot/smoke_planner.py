"""Smoke test: run /plan and /reschedule against a seeded in-memory database.

Reads:
- STUDY_COPILOT_* settings (timezone, working hours, ...)
- SMOKE_SPREAD (light | balanced | intensive), default balanced
- SMOKE_GOOGLE_BUSY=1 to also pull busy time from Google Calendar (needs a stored token)

Nothing is written outside the in-memory database.

Run:
    python -u -m study_copilot.smoke_planner
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta

from sqlalchemy.orm import sessionmaker

from study_copilot import commands
from study_copilot.config import get_settings
from study_copilot.db.connection import init_db, make_engine
from study_copilot.db.repository import StudyRepository
from study_copilot.gcal_tools import google_busy_source
from study_copilot.google_auth import get_calendar_service

USER = "smoke-user"


def seed(repo: StudyRepository, now: datetime) -> None:
    today = now.date()
    repo.add_assignment(USER, "Linear algebra problem set", today + timedelta(days=5))
    repo.add_assignment(USER, "History essay", today + timedelta(days=19))
    repo.add_assignment(USER, "Read chapter 4")

    tomorrow = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    repo.add_event(USER, "Lectures", tomorrow.replace(hour=9), tomorrow.replace(hour=13))
    repo.add_event(USER, "Part-time job", tomorrow.replace(hour=15), tomorrow.replace(hour=21))
    repo.add_event(USER, "Study: Linear algebra", tomorrow.replace(hour=13), tomorrow.replace(hour=14), type="study")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    tz = settings.tz
    now = datetime.now(tz)

    engine = make_engine("sqlite://")
    init_db(engine)
    session = sessionmaker(bind=engine)()
    repo = StudyRepository(session, tz)
    seed(repo, now)

    busy_source = None
    if os.getenv("SMOKE_GOOGLE_BUSY") == "1":
        busy_source = google_busy_source(get_calendar_service, tz, settings.calendar_ids())

    ctx = commands.CommandContext(
        user_id=USER,
        now=now,
        repo=repo,
        settings=settings.planner_settings(),
        busy_source=busy_source,
    )

    spread = os.getenv("SMOKE_SPREAD", "balanced")
    for text in (f"/plan {spread}", "/reschedule"):
        result = commands.execute([{"role": "user", "content": text}], ctx)
        print(f"\n=== {text} ===")
        print(result.reply)
        for s in result.suggestions:
            p = s["payload"]
            print(f"- {s['label']}: {p['start']} -> {p['end']}")

    session.close()


if __name__ == "__main__":
    main()
