"""
Google Calendar busy source against a stubbed API client.
"""

from conftest import TZ, at

from study_copilot.gcal_tools import build_event_payload, create_event_primary, google_busy_source


class _Call:
    def __init__(self, result):
        self._result = result

    def execute(self):
        return self._result


class FakeService:
    def __init__(self, calendars, busy):
        self.calendars = calendars
        self.busy = busy
        self.queries = []
        self.inserted = []

    def calendarList(self):
        return self

    def freebusy(self):
        return self

    def events(self):
        return self

    def list(self):
        return _Call({"items": self.calendars})

    def query(self, body):
        self.queries.append(body)
        return _Call({"calendars": {cid["id"]: self.busy.get(cid["id"], {"busy": []}) for cid in body["items"]}})

    def insert(self, calendarId, body):
        self.inserted.append((calendarId, body))
        return _Call({"id": "g-1", **body})


def _service():
    return FakeService(
        calendars=[{"id": "primary", "primary": True}, {"id": "school"}, {"id": "holidays"}],
        busy={
            "primary": {"busy": [{"start": "2026-01-13T14:00:00Z", "end": "2026-01-13T15:00:00Z"}]},
            "holidays": {"busy": [{"start": "2026-01-14T05:00:00Z", "end": "2026-01-15T05:00:00Z"}]},
        },
    )


def test_busy_source_queries_all_calendars_by_default():
    service = _service()
    source = google_busy_source(lambda: service, TZ)

    busy = source(at(0, 0), at(7, 0))

    assert [c["id"] for c in service.queries[0]["items"]] == ["primary", "school", "holidays"]
    assert busy[0].start == at(1, 9)
    assert busy[0].start.tzinfo == TZ
    assert busy[1].start == at(2, 0) and busy[1].end == at(3, 0)


def test_busy_source_respects_calendar_filter():
    service = _service()
    source = google_busy_source(lambda: service, TZ, {"primary", "school"})

    busy = source(at(0, 0), at(7, 0))

    assert [c["id"] for c in service.queries[0]["items"]] == ["primary", "school"]
    assert len(busy) == 1


def test_create_event_needs_confirmation():
    service = _service()
    payload = build_event_payload("Study: Essay", "2026-01-13T09:00:00-05:00", "2026-01-13T10:00:00-05:00", "America/Toronto")

    draft = create_event_primary(service, payload, confirm=False)
    assert draft["status"] == "needs_confirmation"
    assert service.inserted == []

    created = create_event_primary(service, payload, confirm=True)
    assert created["event"]["id"] == "g-1"
    assert service.inserted == [("primary", payload)]
