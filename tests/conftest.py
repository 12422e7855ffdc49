"""
Shared fixtures: a fixed clock, an in-memory database, a counting id factory.
"""

from __future__ import annotations

import itertools
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from study_copilot.commands import CommandContext
from study_copilot.db.connection import init_db, make_engine
from study_copilot.db.repository import StudyRepository

TZ = ZoneInfo("America/Toronto")

# Monday, before working hours start: the whole first day is still plannable.
NOW = datetime(2026, 1, 12, 7, 0, tzinfo=TZ)

USER = "u-test"


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    """Local time `day_offset` days after NOW's date."""
    return datetime(2026, 1, 12 + day_offset, hour, minute, tzinfo=TZ)


def counting_ids(prefix: str = "s"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    s = sessionmaker(bind=engine)()
    yield s
    s.close()


@pytest.fixture
def repo(session):
    return StudyRepository(session, TZ)


@pytest.fixture
def ctx(repo):
    return CommandContext(user_id=USER, now=NOW, repo=repo, id_factory=counting_ids())
