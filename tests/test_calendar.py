"""
Tests for the per-user iCalendar files.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from icalendar import Calendar

from formplay.core.calendar import CalendarEvent, CalendarService
from formplay.core.config import CalendarSettings
from formplay.core.exceptions import Unavailable


def _event(title="Review TPS Reports", **kwargs) -> CalendarEvent:
    start = datetime(2024, 3, 1, 21, 0, tzinfo=timezone.utc)
    return CalendarEvent(title=title, start=start, end=start + timedelta(minutes=30), **kwargs)


def _events(service: CalendarService, user_id: int):
    return Calendar.from_ical(service.path_for(user_id).read_bytes()).walk("VEVENT")


@pytest.fixture
def service(tmp_path) -> CalendarService:
    return CalendarService(directory=tmp_path / "calendars", config=CalendarSettings(enabled=True))


def test_add_event_creates_calendar(service):
    assert service.add_event(1, _event(location="Initech, floor 3")) is True

    events = _events(service, 1)
    assert len(events) == 1
    assert str(events[0]["summary"]) == "Review TPS Reports"
    assert str(events[0]["location"]) == "Initech, floor 3"
    assert events[0].decoded("dtstart") == datetime(2024, 3, 1, 21, 0, tzinfo=timezone.utc)


def test_events_accumulate_per_user(service):
    service.add_event(1, _event("first"))
    service.add_event(1, _event("second"))
    service.add_event(2, _event("other user"))

    assert [str(e["summary"]) for e in _events(service, 1)] == ["first", "second"]
    assert [str(e["summary"]) for e in _events(service, 2)] == ["other user"]


def test_long_lines_are_folded(service):
    service.add_event(1, _event(description=" ".join(["TPS"] * 60)))

    raw = service.path_for(1).read_bytes()
    assert all(len(line) <= 75 for line in raw.split(b"\r\n"))
    assert str(_events(service, 1)[0]["description"]) == " ".join(["TPS"] * 60)


def test_disabled_calendar_writes_nothing(tmp_path):
    service = CalendarService(directory=tmp_path / "calendars", config=CalendarSettings(enabled=False))

    assert service.add_event(1, _event()) is False
    assert not service.path_for(1).exists()


def test_unreadable_calendar_is_left_alone(service):
    service.directory.mkdir(parents=True)
    service.path_for(1).write_bytes(b"not a calendar")

    with pytest.raises(Unavailable):
        service.add_event(1, _event())

    assert service.path_for(1).read_bytes() == b"not a calendar"


def test_concurrent_writers_keep_every_event(service):
    titles = [f"review {n}" for n in range(12)]

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(lambda title: service.add_event(7, _event(title)), titles))

    assert sorted(str(e["summary"]) for e in _events(service, 7)) == sorted(titles)
    assert not list(service.directory.glob("*.tmp"))


def test_review_event_follows_settings(tmp_path):
    config = CalendarSettings(enabled=True, followup_days=2, followup_hour=9, duration_minutes=45)
    service = CalendarService(directory=tmp_path, config=config)

    event = service.review_event(42, "Initech")

    assert event.title == "Review TPS Reports"
    assert event.start.hour == 9
    assert event.end - event.start == timedelta(minutes=45)
    assert event.start.date() == (datetime.now(timezone.utc) + timedelta(days=2)).date()
    assert "#42" in event.description
