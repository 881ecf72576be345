"""Database models."""
from officehours.models.host import Host
from officehours.models.availability_pattern import AvailabilityPattern
from officehours.models.busy_block import BusyBlock, BusySyncWindow
from officehours.models.event import Event, EventHost
from officehours.models.booking import Booking
from officehours.models.company_holiday import CompanyHoliday
from officehours.models.round_robin_state import RoundRobinState

__all__ = [
    "Host",
    "AvailabilityPattern",
    "BusyBlock",
    "BusySyncWindow",
    "Event",
    "EventHost",
    "Booking",
    "CompanyHoliday",
    "RoundRobinState",
]
