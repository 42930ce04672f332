from __future__ import annotations

from typing import Iterable, Optional, Tuple


class AlarmError(Exception):
    """Base class for errors raised by the alarm subsystem."""


class ValidationError(AlarmError):
    """Bad user input: a required field is missing or a value is malformed."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class NotFound(AlarmError):
    def __init__(self, alarm_id):
        self.alarm_id = alarm_id
        super().__init__(f"Alarm with ID {alarm_id} not found")


class NotificationSchedulingError(AlarmError):
    """Permission was denied or the gateway failed; the alarm may not fire.

    `failures` holds (notification_id, reason) pairs for every registration
    that could not be made.
    """

    def __init__(self, alarm_id, failures: Iterable[Tuple[str, str]] = (), message: Optional[str] = None):
        self.alarm_id = alarm_id
        self.failures = list(failures)
        if message is None:
            ids = ", ".join(nid for nid, _ in self.failures) or "all"
            message = f"Failed to schedule notifications for alarm {alarm_id} ({ids})"
        super().__init__(message)


class StorageError(AlarmError):
    """Underlying storage read or write failed."""
