# study_copilot/commands.py
"""
Copilot command router: "/plan", "/reschedule", "/deadline", ...

Commands never write calendar events or tasks directly. Anything they want to
create becomes a pending suggestion that the user accepts or rejects.

Every handler reads one snapshot (obligations, busy time) up front, computes in
memory, then writes its suggestions in one batch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from study_copilot.allocator import AllocationResult, plan_study_blocks, reschedule_alternatives
from study_copilot.db.models import SuggestionType
from study_copilot.db.repository import IdFactory, StudyRepository, SuggestionDraft, suggestion_id
from study_copilot.gcal_tools import BusySource
from study_copilot.planner import DEFAULT_SETTINGS, Interval, PlannerSettings, planning_window
from study_copilot.planning.milestones import plan_milestones
from study_copilot.planning.preferences import PlanningPreferences, Spread
from study_copilot.planning.window import parse_window

logger = logging.getLogger(__name__)

ACCEPT_HINT = (
    "To accept: POST /api/copilot/suggestions/<id>/accept with body {\"user_id\": \"<your user id>\"}\n"
    "To reject: POST /api/copilot/suggestions/<id>/reject with body {\"user_id\": \"<your user id>\"}"
)

REFUSAL_REPLY = "\n".join([
    "I can't do the assignment for you. I'm here to support your learning, not to do the work for you.",
    "",
    "Try instead:",
    "- /check: get feedback on your attempt",
    "- /plan: study plan suggestions",
    "- /tasks: task breakdown",
])

# Commands that only make sense as "do it for me".
CHEATING_COMMANDS = {"solve", "write", "answer", "submit", "complete"}

CHEATING_PHRASES = [
    "write my assignment",
    "write my essay",
    "do my homework",
    "solve it for me",
    "solve my assignment",
    "solve my homework",
    "give me the exact answer",
    "complete the assignment for me",
    "do my assignment",
    "write this for me",
    "answer it for me",
    "submit it for me",
    "complete it for me",
    "write my paper",
    "do my essay",
]

ANSWER_PHRASES = [
    "give me the answer",
    "give me the solution",
    "what is the answer",
    "just tell me the answer",
    "do it for me",
    "write it for me",
    "solve it for me",
]


@dataclass
class CommandContext:
    """
    Everything a command needs besides its arguments.

    now is injected so a whole call sees one clock reading; id_factory so tests
    get predictable suggestion ids.
    """
    user_id: Optional[str]
    now: datetime
    repo: StudyRepository
    settings: PlannerSettings = DEFAULT_SETTINGS
    id_factory: IdFactory = suggestion_id
    busy_source: Optional[BusySource] = None

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def midnight(self) -> datetime:
        return datetime.combine(self.today, time(0, 0), tzinfo=self.now.tzinfo)


@dataclass
class CommandResult:
    reply: str
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    structured: Optional[Dict[str, Any]] = None


Handler = Callable[[CommandContext, str], CommandResult]


def looks_like_cheating(text: str) -> bool:
    lower = (text or "").lower().strip()
    return any(phrase in lower for phrase in CHEATING_PHRASES)


def _busy(ctx: CommandContext, start: datetime, end: datetime) -> List[Interval]:
    busy = ctx.repo.busy_intervals(ctx.user_id, start, end)
    if ctx.busy_source is not None:
        busy.extend(ctx.busy_source(start, end))
    return busy


def _store(ctx: CommandContext, drafts: List[SuggestionDraft]) -> List[Dict[str, Any]]:
    rows = ctx.repo.add_suggestions(ctx.user_id, drafts, ctx.id_factory)
    return [r.to_dict() for r in rows]


def _store_blocks(ctx: CommandContext, result: AllocationResult) -> CommandResult:
    if not result.ok:
        return CommandResult(reply=result.reply)

    drafts = [
        SuggestionDraft(type=SuggestionType.CREATE_CALENDAR_BLOCK, label=p.label, payload=p.to_payload())
        for p in result.proposals
    ]
    return CommandResult(
        reply=f"{result.reply}\n\n{ACCEPT_HINT}",
        suggestions=_store(ctx, drafts),
        structured={
            "blocks": [p.to_payload() for p in result.proposals],
            "horizon_days": result.horizon_days,
        },
    )


# ----------------------------
# Handlers
# ----------------------------

HELP_COMMANDS = [
    ("/help", "List commands and examples"),
    ("/plan", "Propose study blocks from assignments and calendar (light | balanced | intensive)"),
    ("/reschedule", "Suggest alternative study block times"),
    ("/deadline", "Milestone tasks leading up to a due date"),
    ("/tasks", "Task breakdown and suggestions"),
    ("/check", "Get feedback on your attempt (no full answers)"),
    ("/notes", "List, open or search your notes (read-only)"),
]

HELP_EXAMPLES = [
    "/help",
    "/plan",
    "/plan intensive Linear algebra",
    "/reschedule 2026-02-01 14:00-16:00",
    "/deadline 2026-02-15",
    '/tasks add "Read chapter 3" due 2026-02-15',
    "/check Here is my attempt: ...",
    "/notes search photosynthesis",
]


def run_help(ctx: CommandContext, args: str) -> CommandResult:
    lines = ["Supported commands (messages must start with /):", ""]
    lines += [f"- {cmd}: {desc}" for cmd, desc in HELP_COMMANDS]
    lines += ["", "Examples:"]
    lines += [f"- {e}" for e in HELP_EXAMPLES]
    return CommandResult(
        reply="\n".join(lines),
        structured={
            "commands": [{"cmd": c, "description": d} for c, d in HELP_COMMANDS],
            "examples": HELP_EXAMPLES,
        },
    )


def _plan_preferences(args: str) -> PlanningPreferences:
    """
    "/plan [light|balanced|intensive] [topic words...]"
    """
    tokens = args.split()
    spread = Spread.parse(tokens[0]) if tokens else None
    if spread is not None:
        tokens = tokens[1:]
    topic = " ".join(tokens).strip() or None
    return PlanningPreferences(spread=spread or Spread.BALANCED, topic=topic)


def run_plan(ctx: CommandContext, args: str) -> CommandResult:
    prefs = _plan_preferences(args)
    obligations = ctx.repo.list_obligations(ctx.user_id, ctx.today)
    window = planning_window(ctx.today, [o.due_date for o in obligations], ctx.settings)
    tz = ctx.now.tzinfo
    busy = _busy(ctx, window.start(tz), window.end(tz))

    result = plan_study_blocks(ctx.now, obligations, busy, prefs, ctx.settings)
    return _store_blocks(ctx, result)


def run_reschedule(ctx: CommandContext, args: str) -> CommandResult:
    parsed = parse_window(args)
    if parsed.error:
        return CommandResult(reply=parsed.error)

    start = ctx.midnight
    end = start + timedelta(days=ctx.settings.reschedule_days)
    target = None
    if parsed.ok:
        # busy time around the window matters even past the lookahead
        original = parsed.window.interval(ctx.now.tzinfo)
        start, end = min(start, original.start), max(end, original.end)
    else:
        target = ctx.repo.next_study_block(ctx.user_id, ctx.now)

    busy = _busy(ctx, start, end)
    result = reschedule_alternatives(ctx.now, busy, window=parsed.window, target=target, settings=ctx.settings)
    return _store_blocks(ctx, result)


_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")


def run_deadline(ctx: CommandContext, args: str) -> CommandResult:
    assignment_title = None
    match = _DATE_RE.search(args)
    if match:
        try:
            deadline = date.fromisoformat(match.group(1))
        except ValueError:
            return CommandResult(reply=f"{match.group(1)} is not a valid date. Use e.g. /deadline 2026-02-15")
    else:
        nearest = ctx.repo.nearest_deadline(ctx.user_id, ctx.today)
        if nearest is None:
            return CommandResult(
                reply=(
                    "No upcoming assignment with a due date found. Specify a date, "
                    "e.g. /deadline 2026-02-15, or add an assignment with a due date."
                )
            )
        deadline = nearest.due_date
        assignment_title = nearest.title

    if deadline < ctx.today:
        return CommandResult(
            reply=f"The date {deadline.isoformat()} is in the past. Use a future date or add an assignment with a due date."
        )

    drafts = []
    for m in plan_milestones(ctx.today, deadline):
        label = f"Deadline milestone: {m.title}"
        if assignment_title:
            label += f" ({assignment_title})"
        drafts.append(
            SuggestionDraft(
                type=SuggestionType.CREATE_TASK,
                label=label,
                payload={"title": m.title, "due_date": m.due_date.isoformat()},
            )
        )

    suggestions = _store(ctx, drafts)
    return CommandResult(
        reply=f"Created {len(suggestions)} milestone task(s) leading to {deadline.isoformat()}.\n\n{ACCEPT_HINT}",
        suggestions=suggestions,
    )


_ADD_TASK_RE = re.compile(r'\badd\s+"([^"]+)"(?:\s+due\s+(\d{4}-\d{2}-\d{2}))?', re.IGNORECASE)

MAX_TASK_SUGGESTIONS = 5


def run_tasks(ctx: CommandContext, args: str) -> CommandResult:
    match = _ADD_TASK_RE.search(args)
    if match:
        title, due_raw = match.group(1).strip(), match.group(2)
        try:
            due = date.fromisoformat(due_raw) if due_raw else None
        except ValueError:
            return CommandResult(reply=f"{due_raw} is not a valid date.")
        titles = [title]
        if due:
            titles += [f"Review notes for {title}", f"Practice problems for {title}"]
        items = [(t, due) for t in titles]
        summary = "Created {n} task suggestion(s)."
    else:
        obligations = ctx.repo.list_obligations(ctx.user_id, ctx.today, limit=MAX_TASK_SUGGESTIONS)
        if obligations:
            items = [
                (template.format(o.title), o.due_date)
                for o in obligations
                for template in ("Work on {}", "Review notes for {}", "Practice problems for {}")
            ][:MAX_TASK_SUGGESTIONS]
            summary = "Suggested {n} tasks from your upcoming assignments."
        else:
            items = [("Review lecture notes", None), ("Practice 10 questions", None), ("Organize notes", None)]
            summary = "Suggested {n} generic tasks (no upcoming assignments)."

    drafts = [
        SuggestionDraft(
            type=SuggestionType.CREATE_TASK,
            label=f"Task: {t}",
            payload={"title": t, "due_date": d.isoformat() if d else None},
        )
        for t, d in items
    ]
    suggestions = _store(ctx, drafts)
    return CommandResult(reply=f"{summary.format(n=len(suggestions))}\n\n{ACCEPT_HINT}", suggestions=suggestions)


def _feedback(attempt: str) -> Dict[str, Any]:
    words = attempt.split()
    has_structure = bool(re.search(r"^\s*(\d+[.)]\s|[-*]\s)", attempt, re.MULTILINE)) or (
        len([line for line in attempt.splitlines() if line.strip()]) >= 2
    )

    strengths = [
        "You provided substantial content, good start." if len(words) >= 20
        else "You started putting ideas down, keep going.",
        "Your answer has some structure (lists or paragraphs)." if has_structure
        else "Adding bullet points or short paragraphs can clarify your reasoning.",
    ]
    issues = []
    if len(words) < 30:
        issues.append("Consider expanding: add one or two more supporting points or examples.")
    if not re.search(r"[.?!]$", attempt):
        issues.append("Consider ending with a clear concluding sentence.")
    if not re.search(r"\b(because|therefore|so|thus|example)\b", attempt, re.IGNORECASE):
        issues.append("Using linking words (because, for example, therefore) can strengthen your argument.")
    issues.append("Re-read the question and check that each part is addressed.")

    return {
        "strengths": strengths,
        "issues": issues[:4],
        "suggestions": [
            "Restate the main question in your own words at the start.",
            "Give one concrete example from the material if applicable.",
            "Leave a line between paragraphs for readability.",
            "Proofread for clarity before submitting.",
        ],
        "hint": (
            "Focus on what the question is asking (definition? comparison? steps?). "
            "Make sure each part of the question gets at least one sentence."
        ),
    }


def run_check(ctx: CommandContext, args: str) -> CommandResult:
    attempt = args.strip()
    if not attempt:
        return CommandResult(
            reply=(
                "Usage: /check <your attempt>. Paste your draft or answer and I'll give feedback "
                "(structure, gaps, hints). I won't give the final answer."
            )
        )
    lower = attempt.lower()
    if any(p in lower for p in ANSWER_PHRASES):
        return CommandResult(
            reply=(
                "I don't give final answers. Paste your own attempt and I'll give feedback: "
                "strengths, issues, and suggestions to improve. Use /check <your attempt>."
            )
        )

    fb = _feedback(attempt)
    lines = ["Feedback on your attempt:", "", "Strengths:"]
    lines += [f"- {s}" for s in fb["strengths"]]
    lines += ["", "Issues / gaps:"]
    lines += [f"- {s}" for s in fb["issues"]]
    lines += ["", "Suggestions to improve:"]
    lines += [f"- {s}" for s in fb["suggestions"]]
    lines += ["", "Hint:", fb["hint"]]
    return CommandResult(reply="\n".join(lines), structured=fb)


NOTES_LIST_LIMIT = 5
NOTE_SNIPPET_LEN = 80
NOTE_SHOW_LEN = 3000
_NOTES_SHOW_RE = re.compile(r"^show\s+(\d+)$", re.IGNORECASE)
_NOTES_SEARCH_RE = re.compile(r"^search(?:\s+(.*))?$", re.IGNORECASE)


def _note_lines(notes) -> List[str]:
    lines = []
    for i, n in enumerate(notes):
        body = n.content or n.title or ""
        snippet = body[:NOTE_SNIPPET_LEN].replace("\n", " ")
        more = "..." if n.content and len(n.content) > NOTE_SNIPPET_LEN else ""
        created = n.created_at.isoformat() if n.created_at else ""
        lines.append(f"{i + 1}. {n.title or '(no title)'} - {created}\n   {snippet}{more}")
    return lines


def run_notes(ctx: CommandContext, args: str) -> CommandResult:
    """
    "/notes", "/notes show <n>", "/notes search <keyword>". Read-only.
    """
    arg = args.strip()

    show = _NOTES_SHOW_RE.match(arg)
    if show:
        n = min(int(show.group(1)), 50)
        if n < 1:
            return CommandResult(reply="Usage: /notes show <number> (1-based, from latest list).")
        note = ctx.repo.note_at(ctx.user_id, n)
        if note is None:
            return CommandResult(reply=f"You have fewer than {n} note(s). Use /notes to list your latest notes.")
        content = note.content or ""
        lines = [
            f"Note {n}: {note.title or '(no title)'}",
            f"Created: {note.created_at.isoformat() if note.created_at else ''}",
            f"Id: {note.id}",
        ]
        if content:
            suffix = f" (showing first {NOTE_SHOW_LEN})" if len(content) > NOTE_SHOW_LEN else ""
            lines.append(f"Length: {len(content)} chars{suffix}")
        lines += ["", content[:NOTE_SHOW_LEN] or "(empty)"]
        return CommandResult(reply="\n".join(lines))

    search = _NOTES_SEARCH_RE.match(arg)
    if search:
        keyword = (search.group(1) or "").strip()
        if not keyword:
            return CommandResult(reply="Usage: /notes search <keyword>")
        found = ctx.repo.search_notes(ctx.user_id, keyword, NOTES_LIST_LIMIT)
        if not found:
            return CommandResult(reply=f'No notes found matching "{keyword}". Try /notes to list your latest notes.')
        return CommandResult(reply="\n".join(["Matching notes:", ""] + _note_lines(found)))

    latest = ctx.repo.latest_notes(ctx.user_id, NOTES_LIST_LIMIT)
    if not latest:
        return CommandResult(reply="No notes found. Add notes first, then use /notes here to list them.")
    return CommandResult(
        reply="\n".join(["Your latest notes (use /notes show <n> to open one):", ""] + _note_lines(latest))
    )


COMMANDS: Dict[str, Handler] = {
    "help": run_help,
    "plan": run_plan,
    "reschedule": run_reschedule,
    "deadline": run_deadline,
    "tasks": run_tasks,
    "check": run_check,
    "notes": run_notes,
}


# ----------------------------
# Router
# ----------------------------

def _latest_user_text(messages: Sequence[Dict[str, Any]]) -> str:
    for m in reversed(list(messages or [])):
        if m and m.get("role") == "user":
            return str(m.get("content") or "").strip()
    return ""


def execute(messages: Sequence[Dict[str, Any]], ctx: CommandContext) -> CommandResult:
    """
    Dispatch the latest user message to a command handler.
    """
    raw = _latest_user_text(messages)

    if not raw.startswith("/"):
        return CommandResult(reply="Use a command like /help")

    if looks_like_cheating(raw):
        return CommandResult(reply=REFUSAL_REPLY)

    parts = raw[1:].strip().split(None, 1)
    cmd = parts[0].lower() if parts else ""
    args = parts[1].strip() if len(parts) > 1 else ""

    if not cmd:
        return CommandResult(reply='Type a command after "/". Try /help')
    if cmd in CHEATING_COMMANDS:
        return CommandResult(reply=REFUSAL_REPLY)

    handler = COMMANDS.get(cmd)
    if handler is None:
        return CommandResult(reply="Unknown command. Try /help")

    if cmd != "help" and not ctx.user_id:
        return CommandResult(reply="userId required")

    logger.info("copilot /%s for user %s", cmd, ctx.user_id)
    return handler(ctx, args)
