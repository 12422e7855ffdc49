"""Database models for the study copilot."""
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, Date, DateTime, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SuggestionStatus(str, Enum):
    """Lifecycle of a copilot suggestion. Decided exactly once."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SuggestionType(str, Enum):
    CREATE_CALENDAR_BLOCK = "create_calendar_block"
    CREATE_TASK = "create_task"


class Assignment(Base):
    """Course assignment; incomplete ones feed the planner as obligations."""
    __tablename__ = "assignments"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    due_date = Column(Date, nullable=True)
    completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Event(Base):
    """Calendar event.

    start_at/end_at hold RFC3339 strings with offsets so the same instant
    survives SQLite, which has no timezone-aware datetime type.
    source_id is set when the event came from an accepted suggestion.
    """
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    start_at = Column(String, nullable=False)
    end_at = Column(String, nullable=False)
    type = Column(String, default="personal", nullable=False)
    source_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    due_date = Column(Date, nullable=True)
    done = Column(Boolean, default=False, nullable=False)
    source_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Suggestion(Base):
    """A generated proposal awaiting accept/reject."""
    __tablename__ = "copilot_suggestions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    label = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String, default=SuggestionStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "label": self.label,
            "payload": self.payload,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }


class Note(Base):
    """Plain study note; read back by /notes."""
    __tablename__ = "notes"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
