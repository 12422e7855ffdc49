"""Data access for the copilot: obligations, busy time, suggestions."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from study_copilot.allocator import Obligation, TargetBlock
from study_copilot.planner import Interval, parse_rfc3339, to_rfc3339

from .models import Assignment, Event, Note, Suggestion, SuggestionStatus, SuggestionType, Task

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]

# Upper bound on obligations read per planning call.
MAX_OBLIGATIONS = 20


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def suggestion_id() -> str:
    return new_id("s")


class SuggestionError(Exception):
    """Base class for suggestion decision failures."""


class SuggestionNotFound(SuggestionError):
    def __init__(self, suggestion_id: str):
        super().__init__(f"Suggestion {suggestion_id} not found")
        self.suggestion_id = suggestion_id


class SuggestionAlreadyDecided(SuggestionError):
    def __init__(self, suggestion_id: str, status: str):
        super().__init__(f"Suggestion {suggestion_id} was already {status}")
        self.suggestion_id = suggestion_id
        self.status = status


@dataclass(frozen=True)
class SuggestionDraft:
    """A suggestion before it has an id (what the proposal sink accepts)."""
    type: SuggestionType
    label: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Decision:
    suggestion: Suggestion
    created: Optional[Union[Event, Task]] = None


def _as_aware(dt: datetime, tz) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=tz)


class StudyRepository:
    """Thin query layer over a SQLAlchemy session.

    tz is applied to stored timestamps that carry no offset.
    """

    def __init__(self, session: Session, tz):
        self.session = session
        self.tz = tz

    # --- obligations ---

    def add_assignment(self, user_id: str, title: str, due_date: Optional[date] = None) -> Assignment:
        row = Assignment(id=new_id("a"), user_id=user_id, title=title, due_date=due_date)
        self.session.add(row)
        self.session.flush()
        return row

    def list_assignments(self, user_id: str) -> List[Assignment]:
        return (
            self.session.query(Assignment)
            .filter(Assignment.user_id == user_id)
            .order_by(Assignment.due_date.is_(None), Assignment.due_date, Assignment.title)
            .all()
        )

    def complete_assignment(self, assignment_id: str, user_id: str) -> Optional[Assignment]:
        row = self.session.get(Assignment, assignment_id)
        if row is None or row.user_id != user_id:
            return None
        row.completed = True
        self.session.flush()
        return row

    def update_assignment(self, assignment_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[Assignment]:
        """Apply title/due_date changes; a due_date of None clears it."""
        row = self.session.get(Assignment, assignment_id)
        if row is None or row.user_id != user_id:
            return None
        if changes.get("title") is not None:
            row.title = changes["title"]
        if "due_date" in changes:
            row.due_date = changes["due_date"]
        self.session.flush()
        return row

    def delete_assignment(self, assignment_id: str, user_id: str) -> bool:
        return self._delete_owned(Assignment, assignment_id, user_id)

    def _delete_owned(self, model, row_id: str, user_id: str) -> bool:
        deleted = (
            self.session.query(model)
            .filter(model.id == row_id, model.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.session.flush()
        return deleted > 0

    def list_obligations(self, user_id: str, today: date, limit: int = MAX_OBLIGATIONS) -> List[Obligation]:
        """Incomplete assignments not yet overdue, due-soonest first, undated last."""
        rows = (
            self.session.query(Assignment)
            .filter(
                Assignment.user_id == user_id,
                Assignment.completed.is_(False),
                or_(Assignment.due_date.is_(None), Assignment.due_date >= today),
            )
            .order_by(Assignment.due_date.is_(None), Assignment.due_date, Assignment.title)
            .limit(limit)
            .all()
        )
        return [Obligation(id=r.id, title=r.title, due_date=r.due_date) for r in rows]

    def nearest_deadline(self, user_id: str, today: date) -> Optional[Assignment]:
        return (
            self.session.query(Assignment)
            .filter(
                Assignment.user_id == user_id,
                Assignment.completed.is_(False),
                Assignment.due_date.isnot(None),
                Assignment.due_date >= today,
            )
            .order_by(Assignment.due_date, Assignment.title)
            .first()
        )

    # --- events / busy time ---

    def add_event(
        self,
        user_id: str,
        title: str,
        start: datetime,
        end: datetime,
        type: str = "personal",
        source_id: Optional[str] = None,
    ) -> Event:
        row = Event(
            id=new_id("e"),
            user_id=user_id,
            title=title,
            start_at=to_rfc3339(_as_aware(start, self.tz)),
            end_at=to_rfc3339(_as_aware(end, self.tz)),
            type=type,
            source_id=source_id,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def event_interval(self, event: Event) -> Interval:
        return Interval(
            start=_as_aware(parse_rfc3339(event.start_at), self.tz),
            end=_as_aware(parse_rfc3339(event.end_at), self.tz),
        )

    def list_events(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Event]:
        """Events of a user overlapping [start, end), ordered by start."""
        rows = self.session.query(Event).filter(Event.user_id == user_id).all()
        keyed = []
        for r in rows:
            ival = self.event_interval(r)
            if start is not None and ival.end <= start:
                continue
            if end is not None and ival.start >= end:
                continue
            keyed.append((ival, r))
        keyed.sort(key=lambda x: x[0].start)
        return [r for _, r in keyed]

    def delete_event(self, event_id: str, user_id: str) -> bool:
        return self._delete_owned(Event, event_id, user_id)

    def busy_intervals(self, user_id: str, start: datetime, end: datetime) -> List[Interval]:
        return [self.event_interval(e) for e in self.list_events(user_id, start, end)]

    def next_study_block(self, user_id: str, now: datetime) -> Optional[TargetBlock]:
        """Earliest study event not yet over at `now`: produced by a suggestion or titled "Study: ..."."""
        rows = (
            self.session.query(Event)
            .filter(
                Event.user_id == user_id,
                or_(Event.title.like("Study:%"), Event.source_id.isnot(None)),
            )
            .all()
        )
        upcoming = [(self.event_interval(r), r) for r in rows]
        upcoming = [(ival, r) for ival, r in upcoming if ival.end > now]
        if not upcoming:
            return None
        ival, row = min(upcoming, key=lambda x: x[0].start)
        return TargetBlock(title=row.title, interval=ival)

    # --- tasks ---

    def add_task(
        self,
        user_id: str,
        title: str,
        due_date: Optional[date] = None,
        source_id: Optional[str] = None,
    ) -> Task:
        row = Task(id=new_id("t"), user_id=user_id, title=title, due_date=due_date, source_id=source_id)
        self.session.add(row)
        self.session.flush()
        return row

    def list_tasks(self, user_id: str) -> List[Task]:
        return (
            self.session.query(Task)
            .filter(Task.user_id == user_id)
            .order_by(Task.due_date.is_(None), Task.due_date, Task.title)
            .all()
        )

    def complete_task(self, task_id: str, user_id: str) -> Optional[Task]:
        row = self.session.get(Task, task_id)
        if row is None or row.user_id != user_id:
            return None
        row.done = True
        self.session.flush()
        return row

    def delete_task(self, task_id: str, user_id: str) -> bool:
        return self._delete_owned(Task, task_id, user_id)

    # --- notes ---

    def add_note(
        self,
        user_id: str,
        title: Optional[str],
        content: str,
        created_at: Optional[datetime] = None,
    ) -> Note:
        row = Note(id=new_id("n"), user_id=user_id, title=title, content=content)
        if created_at is not None:
            row.created_at = created_at
        self.session.add(row)
        self.session.flush()
        return row

    def _notes(self, user_id: str):
        return (
            self.session.query(Note)
            .filter(Note.user_id == user_id)
            .order_by(Note.created_at.desc(), Note.id.desc())
        )

    def latest_notes(self, user_id: str, limit: int = 5) -> List[Note]:
        return self._notes(user_id).limit(limit).all()

    def note_at(self, user_id: str, position: int) -> Optional[Note]:
        """The `position`-th latest note, 1-based."""
        return self._notes(user_id).offset(position - 1).first()

    def search_notes(self, user_id: str, keyword: str, limit: int = 5) -> List[Note]:
        return (
            self._notes(user_id)
            .filter(
                or_(
                    Note.title.contains(keyword, autoescape=True),
                    Note.content.contains(keyword, autoescape=True),
                )
            )
            .limit(limit)
            .all()
        )

    # --- suggestions ---

    def add_suggestions(
        self,
        user_id: str,
        drafts: List[SuggestionDraft],
        id_factory: IdFactory = suggestion_id,
    ) -> List[Suggestion]:
        """Persist a batch of pending suggestions. Insert errors propagate."""
        rows = [
            Suggestion(
                id=id_factory(),
                user_id=user_id,
                type=d.type.value,
                label=d.label,
                payload=d.payload,
                status=SuggestionStatus.PENDING.value,
            )
            for d in drafts
        ]
        self.session.add_all(rows)
        self.session.flush()
        return rows

    def list_suggestions(self, user_id: str, status: Optional[SuggestionStatus] = None) -> List[Suggestion]:
        q = self.session.query(Suggestion).filter(Suggestion.user_id == user_id)
        if status is not None:
            q = q.filter(Suggestion.status == status.value)
        return q.order_by(Suggestion.created_at, Suggestion.id).all()

    def decide_suggestion(self, suggestion_id: str, user_id: str, accept: bool, now: datetime) -> Decision:
        """Accept or reject a pending suggestion.

        The status flip is a conditional UPDATE on status='pending', so of two
        racing decisions only one changes a row; the other raises
        SuggestionAlreadyDecided. Accepting applies the payload.
        """
        row = self.session.get(Suggestion, suggestion_id)
        if row is None or row.user_id != user_id:
            raise SuggestionNotFound(suggestion_id)

        new_status = SuggestionStatus.ACCEPTED if accept else SuggestionStatus.REJECTED
        changed = (
            self.session.query(Suggestion)
            .filter(Suggestion.id == suggestion_id, Suggestion.status == SuggestionStatus.PENDING.value)
            .update({"status": new_status.value, "decided_at": now}, synchronize_session=False)
        )
        self.session.expire(row)
        if changed == 0:
            raise SuggestionAlreadyDecided(suggestion_id, row.status)

        created = None
        if accept:
            created = self._apply(row)
        self.session.flush()
        logger.info("suggestion %s %s by %s", suggestion_id, new_status.value, user_id)
        return Decision(suggestion=row, created=created)

    def _apply(self, row: Suggestion) -> Union[Event, Task]:
        payload = row.payload or {}
        if row.type == SuggestionType.CREATE_CALENDAR_BLOCK.value:
            return self.add_event(
                user_id=row.user_id,
                title=payload["title"],
                start=parse_rfc3339(payload["start"]),
                end=parse_rfc3339(payload["end"]),
                type="study",
                source_id=row.id,
            )
        due = payload.get("due_date")
        return self.add_task(
            user_id=row.user_id,
            title=payload["title"],
            due_date=date.fromisoformat(due) if due else None,
            source_id=row.id,
        )
