"""API schemas."""
from officehours.schemas.host import (
    HostCreate,
    HostUpdate,
    HostInDB,
    PatternIn,
    PatternInDB,
    PatternsReplace,
    BusySyncResult,
)
from officehours.schemas.event import (
    EventHostIn,
    EventHostInDB,
    EventCreate,
    EventUpdate,
    EventInDB,
)
from officehours.schemas.booking import (
    Slot,
    SlotsResponse,
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    ReserveRequest,
    BookingInDB,
    HostShare,
    RoundRobinStats,
)
from officehours.schemas.holiday import (
    HolidayCreate,
    HolidayInDB,
)

__all__ = [
    "HostCreate",
    "HostUpdate",
    "HostInDB",
    "PatternIn",
    "PatternInDB",
    "PatternsReplace",
    "BusySyncResult",
    "EventHostIn",
    "EventHostInDB",
    "EventCreate",
    "EventUpdate",
    "EventInDB",
    "Slot",
    "SlotsResponse",
    "AvailabilityCheckRequest",
    "AvailabilityCheckResponse",
    "ReserveRequest",
    "BookingInDB",
    "HostShare",
    "RoundRobinStats",
    "HolidayCreate",
    "HolidayInDB",
]
