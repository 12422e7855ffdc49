"""
FastAPI wrapper around the study copilot.

This exposes a small HTTP API so a frontend can:
- send copilot commands (/plan, /reschedule, /deadline, ...) and get suggestions back
- list suggestions and accept or reject each one exactly once
- manage assignments, events, tasks and notes (the planner reads the first two)
- connect Google Calendar (optional busy time + mirroring accepted blocks)

Commands only ever create pending suggestions; accepting one is the write.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field

from study_copilot import commands
from study_copilot.config import Settings, get_settings
from study_copilot.db.connection import get_db_session, init_db
from study_copilot.db.models import Event, SuggestionStatus
from study_copilot.db.repository import StudyRepository, SuggestionAlreadyDecided, SuggestionNotFound
from study_copilot.gcal_tools import BusySource, build_event_payload, create_event_primary, google_busy_source
from study_copilot.google_auth import build_google_flow, get_calendar_service, save_credentials

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    init_db()
    yield


app = FastAPI(title="Study Copilot API", version="0.3.0", lifespan=lifespan)
# Dev-only CORS. In production, restrict to the UI domain.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when allow_origins is "*"
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------
# Dependencies
# ----------------------------

def get_session():
    with get_db_session() as session:
        yield session


def get_repository(session=Depends(get_session), settings: Settings = Depends(get_settings)) -> StudyRepository:
    return StudyRepository(session, settings.tz)


def get_now(settings: Settings = Depends(get_settings)) -> datetime:
    return datetime.now(settings.tz)


def _get_service():
    """
    Authenticated Google Calendar client, or 401 if the server is not connected yet.
    """
    try:
        return get_calendar_service()
    except RuntimeError as e:
        raise HTTPException(status_code=401, detail=str(e))


def get_busy_source(settings: Settings = Depends(get_settings)) -> Optional[BusySource]:
    if not settings.google_busy_enabled:
        return None
    return google_busy_source(_get_service, settings.tz, settings.calendar_ids())


# ----------------------------
# Request models (API contracts)
# ----------------------------

class ChatMessage(BaseModel):
    role: str = Field(..., description="user | assistant")
    content: str = ""


class ChatRequest(BaseModel):
    user_id: Optional[str] = Field(None, description="Owner of the assignments, events and suggestions")
    messages: list[ChatMessage] = Field(..., description="Conversation; the latest user message is the command")


class DecisionRequest(BaseModel):
    user_id: str


class AssignmentCreate(BaseModel):
    user_id: str
    title: str = Field(..., min_length=1)
    due_date: Optional[date] = None


class EventCreate(BaseModel):
    user_id: str
    title: str = Field(..., min_length=1)
    start: datetime = Field(..., description="ISO-8601; no offset means the configured timezone")
    end: datetime
    type: str = "personal"


class AssignmentUpdate(BaseModel):
    user_id: str
    title: Optional[str] = Field(None, min_length=1)
    due_date: Optional[date] = Field(None, description="Send null to clear the due date")


class TaskCreate(BaseModel):
    user_id: str
    title: str = Field(..., min_length=1)
    due_date: Optional[date] = None


class NoteCreate(BaseModel):
    user_id: str
    title: Optional[str] = None
    content: str = ""


# ----------------------------
# OAuth endpoints (Web Flow)
# ----------------------------

@app.get("/auth/start")
def auth_start():
    """
    Redirect to Google's consent screen. Google comes back to OAUTH_REDIRECT_URI.
    """
    flow = build_google_flow()
    auth_url, _state = flow.authorization_url(
        access_type="offline",      # Requests refresh token
        prompt="consent",           # Helps ensure refresh token is issued
        include_granted_scopes="true",
    )
    return RedirectResponse(url=auth_url)


@app.get("/auth/callback")
def auth_callback(request: Request):
    code = request.query_params.get("code")
    if not code:
        raise HTTPException(status_code=400, detail="Missing ?code= in callback URL")

    flow = build_google_flow()
    flow.fetch_token(code=code)
    save_credentials(flow.credentials)

    return PlainTextResponse("OAuth complete. You can close this tab and return to the app.")


# ----------------------------
# Endpoints
# ----------------------------

@app.get("/health")
def health():
    return {"ok": True}


@app.post("/api/copilot/chat")
def copilot_chat(
    req: ChatRequest,
    repo: StudyRepository = Depends(get_repository),
    now: datetime = Depends(get_now),
    settings: Settings = Depends(get_settings),
    busy_source: Optional[BusySource] = Depends(get_busy_source),
):
    """
    Run one copilot command. Suggestions come back pending; nothing else is written.
    """
    if not req.messages:
        raise HTTPException(status_code=400, detail="messages array required")

    ctx = commands.CommandContext(
        user_id=req.user_id,
        now=now,
        repo=repo,
        settings=settings.planner_settings(),
        busy_source=busy_source,
    )
    result = commands.execute([m.model_dump() for m in req.messages], ctx)
    return {"reply": result.reply, "suggestions": result.suggestions, "structured": result.structured}


@app.get("/api/copilot/suggestions")
def list_suggestions(
    user_id: str,
    status: Optional[SuggestionStatus] = None,
    repo: StudyRepository = Depends(get_repository),
):
    return [s.to_dict() for s in repo.list_suggestions(user_id, status)]


def _decide(suggestion_id: str, req: DecisionRequest, accept: bool, repo, now, settings) -> dict[str, Any]:
    try:
        decision = repo.decide_suggestion(suggestion_id, req.user_id, accept=accept, now=now)
    except SuggestionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SuggestionAlreadyDecided as e:
        raise HTTPException(status_code=409, detail=str(e))

    out: dict[str, Any] = {"suggestion": decision.suggestion.to_dict()}
    created = decision.created
    if created is not None:
        out["created"] = {"id": created.id, "title": created.title}

    if isinstance(created, Event) and settings.google_sync_enabled:
        payload = build_event_payload(created.title, created.start_at, created.end_at, settings.timezone)
        result = create_event_primary(service=_get_service(), event_payload=payload, confirm=True)
        out["google_event_id"] = result.get("event", {}).get("id")
        logger.info("Mirrored suggestion %s to Google Calendar", suggestion_id)

    return out


@app.post("/api/copilot/suggestions/{suggestion_id}/accept")
def accept_suggestion(
    suggestion_id: str,
    req: DecisionRequest,
    repo: StudyRepository = Depends(get_repository),
    now: datetime = Depends(get_now),
    settings: Settings = Depends(get_settings),
):
    return _decide(suggestion_id, req, True, repo, now, settings)


@app.post("/api/copilot/suggestions/{suggestion_id}/reject")
def reject_suggestion(
    suggestion_id: str,
    req: DecisionRequest,
    repo: StudyRepository = Depends(get_repository),
    now: datetime = Depends(get_now),
    settings: Settings = Depends(get_settings),
):
    return _decide(suggestion_id, req, False, repo, now, settings)


@app.post("/api/assignments", status_code=201)
def create_assignment(req: AssignmentCreate, repo: StudyRepository = Depends(get_repository)):
    row = repo.add_assignment(req.user_id, req.title, req.due_date)
    return _assignment_dict(row)


@app.post("/api/assignments/{assignment_id}/complete")
def complete_assignment(assignment_id: str, req: DecisionRequest, repo: StudyRepository = Depends(get_repository)):
    row = repo.complete_assignment(assignment_id, req.user_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Assignment {assignment_id} not found")
    return _assignment_dict(row)


@app.put("/api/assignments/{assignment_id}")
def update_assignment(assignment_id: str, req: AssignmentUpdate, repo: StudyRepository = Depends(get_repository)):
    changes = req.model_dump(include=req.model_fields_set - {"user_id"})
    row = repo.update_assignment(assignment_id, req.user_id, changes)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Assignment {assignment_id} not found")
    return _assignment_dict(row)


@app.delete("/api/assignments/{assignment_id}", status_code=204)
def delete_assignment(assignment_id: str, user_id: str, repo: StudyRepository = Depends(get_repository)):
    if not repo.delete_assignment(assignment_id, user_id):
        raise HTTPException(status_code=404, detail=f"Assignment {assignment_id} not found")
    return Response(status_code=204)


@app.get("/api/assignments")
def list_assignments(user_id: str, repo: StudyRepository = Depends(get_repository)):
    return [_assignment_dict(a) for a in repo.list_assignments(user_id)]


@app.post("/api/events", status_code=201)
def create_event(
    req: EventCreate,
    settings: Settings = Depends(get_settings),
    repo: StudyRepository = Depends(get_repository),
):
    start, end = _aware(req.start, settings.tz), _aware(req.end, settings.tz)
    if end <= start:
        raise HTTPException(status_code=400, detail="end must be after start")
    row = repo.add_event(req.user_id, req.title, start, end, type=req.type)
    return _event_dict(row)


@app.get("/api/events")
def list_events(
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    settings: Settings = Depends(get_settings),
    repo: StudyRepository = Depends(get_repository),
):
    start = _aware(start, settings.tz) if start else None
    end = _aware(end, settings.tz) if end else None
    return [_event_dict(e) for e in repo.list_events(user_id, start, end)]


@app.delete("/api/events/{event_id}", status_code=204)
def delete_event(event_id: str, user_id: str, repo: StudyRepository = Depends(get_repository)):
    """
    Remove an event; a deleted study block stops counting as busy time.
    """
    if not repo.delete_event(event_id, user_id):
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    return Response(status_code=204)


@app.get("/api/tasks")
def list_tasks(user_id: str, repo: StudyRepository = Depends(get_repository)):
    return [_task_dict(t) for t in repo.list_tasks(user_id)]


@app.post("/api/tasks", status_code=201)
def create_task(req: TaskCreate, repo: StudyRepository = Depends(get_repository)):
    return _task_dict(repo.add_task(req.user_id, req.title, req.due_date))


@app.patch("/api/tasks/{task_id}/complete")
def complete_task(task_id: str, req: DecisionRequest, repo: StudyRepository = Depends(get_repository)):
    row = repo.complete_task(task_id, req.user_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return _task_dict(row)


@app.delete("/api/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, user_id: str, repo: StudyRepository = Depends(get_repository)):
    if not repo.delete_task(task_id, user_id):
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return Response(status_code=204)


@app.post("/api/notes", status_code=201)
def create_note(req: NoteCreate, repo: StudyRepository = Depends(get_repository)):
    row = repo.add_note(req.user_id, req.title, req.content)
    return {"id": row.id, "title": row.title, "content": row.content}


@app.get("/api/notes")
def list_notes(user_id: str, limit: int = 20, repo: StudyRepository = Depends(get_repository)):
    return [{"id": n.id, "title": n.title, "content": n.content} for n in repo.latest_notes(user_id, limit)]


def _task_dict(t) -> dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "done": t.done,
        "source_id": t.source_id,
    }


def _aware(dt: datetime, tz) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=tz)


def _assignment_dict(a) -> dict[str, Any]:
    return {
        "id": a.id,
        "title": a.title,
        "due_date": a.due_date.isoformat() if a.due_date else None,
        "completed": a.completed,
    }


def _event_dict(e) -> dict[str, Any]:
    return {
        "id": e.id,
        "title": e.title,
        "start": e.start_at,
        "end": e.end_at,
        "type": e.type,
        "source_id": e.source_id,
    }
