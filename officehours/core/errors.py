"""Scheduling error taxonomy.

Services raise these; the API layer maps them onto HTTP status codes.
``CalendarFetchFailed`` is recovered inside the busy block cache everywhere
except the manual sync endpoint, and ``StorageConflict`` is always
translated to ``SlotUnavailable`` by the reservation guard.
"""
from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling errors."""

    code = "scheduling_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ConfigurationMissing(SchedulingError):
    """Event, host or constraints not found."""

    code = "configuration_missing"


class SlotUnavailable(SchedulingError):
    """Candidate fails a constraint check or lost the race at commit."""

    code = "slot_unavailable"

    def __init__(self, reason: str = "This time slot is no longer available"):
        super().__init__(reason)
        self.reason = reason


class CalendarFetchFailed(SchedulingError):
    """The calendar provider could not be reached or returned garbage."""

    code = "calendar_fetch_failed"


class NoHostAvailable(SchedulingError):
    """Round-robin found no co-host free for the candidate."""

    code = "no_host_available"

    def __init__(self, message: str = "No host is available for this time"):
        super().__init__(message)


class StorageConflict(SchedulingError):
    """Uniqueness or serialization violation when committing a booking."""

    code = "storage_conflict"

    def __init__(self, message: str = "", original: Optional[Exception] = None):
        super().__init__(message)
        self.original = original
