"""
Calendar integration.

Follow-up events are written as iCalendar files, one per user, under the
storage directory. Calendar clients subscribe to that file.
"""
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

from icalendar import Calendar, Event

from formplay.core.config import settings, CalendarSettings
from formplay.core.exceptions import Unavailable
from formplay.core.logging import logger

PRODID = "-//FormPlay//TPS Reports//EN"

_file_locks: Dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _file_locks_guard:
        return _file_locks.setdefault(path.resolve(), threading.Lock())


@dataclass
class CalendarEvent:
    title: str
    start: datetime
    end: datetime
    description: str = ""
    location: str = ""
    uid: str = field(default_factory=lambda: f"{uuid.uuid4()}@formplay")

    def to_component(self) -> Event:
        event = Event()
        event.add("uid", self.uid)
        event.add("dtstamp", datetime.now(timezone.utc))
        event.add("dtstart", self.start.astimezone(timezone.utc))
        event.add("dtend", self.end.astimezone(timezone.utc))
        event.add("summary", self.title)
        if self.description:
            event.add("description", self.description)
        if self.location:
            event.add("location", self.location)
        return event


def _new_calendar() -> Calendar:
    calendar = Calendar()
    calendar.add("prodid", PRODID)
    calendar.add("version", "2.0")
    return calendar


class CalendarService:
    """Appends events to per-user .ics calendars."""

    def __init__(self, directory: Optional[Path] = None, config: Optional[CalendarSettings] = None):
        self.directory = Path(directory or settings.storage.calendar_dir)
        self.config = config or settings.calendar

    def review_event(self, report_id: int, location: Optional[str] = None) -> CalendarEvent:
        """The follow-up "Review TPS Reports" event scheduled when a report completes."""
        day = datetime.now(timezone.utc) + timedelta(days=self.config.followup_days)
        start = day.replace(hour=self.config.followup_hour, minute=0, second=0, microsecond=0)
        return CalendarEvent(
            title="Review TPS Reports",
            start=start,
            end=start + timedelta(minutes=self.config.duration_minutes),
            description=f"TPS Report #{report_id} review session",
            location=location or "",
        )

    def path_for(self, user_id: int) -> Path:
        return self.directory / f"user_{user_id}.ics"

    def load(self, user_id: int) -> Calendar:
        """
        Read a user's calendar, or an empty one if none has been written.

        Raises:
            Unavailable: If the file cannot be read or is not iCalendar data
        """
        path = self.path_for(user_id)
        if not path.exists():
            return _new_calendar()
        try:
            return Calendar.from_ical(path.read_bytes())
        except (OSError, ValueError) as e:
            logger.error(f"Unreadable calendar for user {user_id}: {e}")
            raise Unavailable(f"Calendar for user {user_id} could not be read") from e

    def add_event(self, user_id: int, event: CalendarEvent) -> bool:
        """
        Add an event to a user's calendar.

        The file is rewritten through a temporary file and ``os.replace`` while
        holding a per-file lock, so concurrent writers never drop each other's
        events and readers never see a partial file.

        Returns:
            True if written, False if calendar events are disabled

        Raises:
            Unavailable: If the calendar file cannot be read or written
        """
        if not self.config.enabled:
            logger.debug(f"Calendar events disabled, skipping '{event.title}' for user {user_id}")
            return False

        path = self.path_for(user_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create calendar directory {self.directory}: {e}")
            raise Unavailable(f"Calendar for user {user_id} could not be updated") from e

        with _lock_for(path):
            calendar = self.load(user_id)
            calendar.add_component(event.to_component())
            tmp_name = None
            try:
                with tempfile.NamedTemporaryFile("wb", dir=self.directory, suffix=".ics.tmp", delete=False) as tmp:
                    tmp_name = tmp.name
                    tmp.write(calendar.to_ical())
                os.replace(tmp_name, path)
            except OSError as e:
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                logger.error(f"Failed to add calendar event for user {user_id}: {e}")
                raise Unavailable(f"Calendar for user {user_id} could not be updated") from e

        logger.info(f"Calendar event '{event.title}' added for user {user_id}")
        return True
