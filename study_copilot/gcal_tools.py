# study_copilot/gcal_tools.py
"""
Google Calendar tools.

- Read busy time from any calendars the user can access
- Write ONLY to the primary calendar, and only with confirm=True
- Never delete events
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from study_copilot.planner import Interval, merge_busy_from_freebusy, normalize_intervals_tz

logger = logging.getLogger(__name__)

BusySource = Callable[[datetime, datetime], List[Interval]]


def list_calendars(service) -> List[Dict[str, Any]]:
    """
    Calendars on the user's calendar list (primary + subscribed + shared).

    Returns:
        Simplified list: [{id, summary, accessRole, primary}, ...]
    """
    resp = service.calendarList().list().execute()
    return [
        {
            "id": cal.get("id"),
            "summary": cal.get("summary"),
            "accessRole": cal.get("accessRole"),
            "primary": cal.get("primary", False),
        }
        for cal in resp.get("items", [])
    ]


def freebusy_query(
    service,
    time_min: str,
    time_max: str,
    calendar_ids: List[str],
) -> Dict[str, Any]:
    """
    Query busy blocks across multiple calendars.

    Returns:
        { "calendarId": { "busy": [{"start": "...", "end": "..."}, ...] }, ... }
    """
    body = {
        "timeMin": time_min,
        "timeMax": time_max,
        "items": [{"id": cid} for cid in calendar_ids],
    }
    resp = service.freebusy().query(body=body).execute()
    return resp.get("calendars", {})


def build_event_payload(title: str, start_rfc3339: str, end_rfc3339: str, tz_name: str) -> Dict[str, Any]:
    """
    Convert an accepted study block into a Google Calendar event payload.
    """
    return {
        "summary": title,
        "start": {"dateTime": start_rfc3339, "timeZone": tz_name},
        "end": {"dateTime": end_rfc3339, "timeZone": tz_name},
        "description": "Created by Study Copilot from an accepted suggestion.",
    }


def create_event_primary(service, event_payload: Dict[str, Any], confirm: bool) -> Dict[str, Any]:
    """
    Create an event on the PRIMARY calendar only.

    If confirm is False, returns the draft and does not write.
    """
    if not confirm:
        return {"status": "needs_confirmation", "calendarId": "primary", "draft": event_payload}

    created = service.events().insert(calendarId="primary", body=event_payload).execute()
    return {"status": "created", "event": created}


def google_busy_source(service_factory: Callable[[], Any], tz, calendar_ids: Optional[set] = None) -> BusySource:
    """
    Build a busy-interval source backed by FreeBusy.

    calendar_ids narrows the calendars queried; empty or None means all of them.
    """

    def _busy(start: datetime, end: datetime) -> List[Interval]:
        service = service_factory()
        all_ids = [c["id"] for c in list_calendars(service) if c.get("id")]
        ids = [cid for cid in all_ids if cid in calendar_ids] if calendar_ids else all_ids
        calendars_busy = freebusy_query(
            service=service,
            time_min=start.isoformat(),
            time_max=end.isoformat(),
            calendar_ids=ids,
        )
        merged = normalize_intervals_tz(merge_busy_from_freebusy(calendars_busy), tz)
        logger.info("google busy: %d interval(s) from %d calendar(s)", len(merged), len(ids))
        return merged

    return _busy
