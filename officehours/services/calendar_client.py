"""Calendar provider free/busy client.

Wraps the provider's free/busy endpoint (Google Calendar ``freeBusy``
shape). This is the only network-bound step of slot scheduling; every
failure surfaces as ``CalendarFetchFailed`` so the busy block cache can
fall back to its snapshot.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from officehours.core.config import settings
from officehours.core.errors import CalendarFetchFailed
from officehours.core.intervals import TimeInterval, merge
from officehours.core.timeutils import ensure_utc

logger = logging.getLogger(__name__)


class CalendarClient:
    """Client for the calendar provider's free/busy API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        request_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the calendar client."""
        self.base_url = (base_url or settings.CALENDAR_API_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.CALENDAR_API_TOKEN
        self.request_delay = (
            request_delay if request_delay is not None else settings.CALENDAR_REQUEST_DELAY_SECONDS
        )
        self.max_retries = max(1, max_retries if max_retries is not None else settings.MAX_RETRIES)
        self.timeout = timeout if timeout is not None else settings.CALENDAR_REQUEST_TIMEOUT_SECONDS
        self.transport = transport
        self._last_request_time = 0.0

        self.endpoints = {
            "free_busy": f"{self.base_url}/freeBusy",
        }

    async def _rate_limit(self):
        """Keep a politeness delay between consecutive requests."""
        current_time = asyncio.get_running_loop().time()
        time_since_last_request = current_time - self._last_request_time

        if time_since_last_request < self.request_delay:
            await asyncio.sleep(self.request_delay - time_since_last_request)

        self._last_request_time = asyncio.get_running_loop().time()

    async def _make_request(
        self,
        method: str,
        url: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request with retry logic and rate limiting.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            json_data: JSON body data

        Returns:
            Response JSON data

        Raises:
            CalendarFetchFailed: If the request fails after retries
        """
        await self._rate_limit()

        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    logger.debug(f"Making {method} request to {url} (attempt {attempt + 1}/{self.max_retries})")

                    response = await client.request(
                        method=method,
                        url=url,
                        json=json_data,
                        headers=headers,
                    )
                    response.raise_for_status()

                    return response.json()

                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Calendar request failed (attempt {attempt + 1}/{self.max_retries}): {e}")

                    if attempt == self.max_retries - 1:
                        raise CalendarFetchFailed(f"Calendar request to {url} failed: {e}") from e

                    # Exponential backoff
                    await asyncio.sleep(2 ** attempt)

        raise CalendarFetchFailed("Max retries exceeded")

    async def get_free_busy(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> List[TimeInterval]:
        """
        Get busy intervals for a calendar.

        Args:
            calendar_id: Provider calendar ID
            start: Window start (aware)
            end: Window end (aware)

        Returns:
            Sorted disjoint busy intervals

        Example provider response:
            {
                "calendars": {
                    "host@example.com": {
                        "busy": [
                            {"start": "2024-01-15T12:00:00Z", "end": "2024-01-15T13:00:00Z"}
                        ]
                    }
                }
            }
        """
        logger.info(f"Fetching free/busy for calendar {calendar_id}: {start.isoformat()} - {end.isoformat()}")

        data = await self._make_request(
            "POST",
            self.endpoints["free_busy"],
            json_data={
                "timeMin": ensure_utc(start).isoformat(),
                "timeMax": ensure_utc(end).isoformat(),
                "items": [{"id": calendar_id}],
            },
        )

        return self._parse_free_busy(data, calendar_id)

    def _parse_free_busy(self, data: Any, calendar_id: str) -> List[TimeInterval]:
        """
        Busy intervals of one calendar from a free/busy payload.

        Raises:
            CalendarFetchFailed: If the payload does not have the expected shape
        """
        if not isinstance(data, dict):
            raise CalendarFetchFailed(f"Unexpected free/busy payload: {type(data).__name__}")

        calendars = data.get("calendars") or {}
        if not isinstance(calendars, dict):
            raise CalendarFetchFailed(f"Unexpected calendars field: {type(calendars).__name__}")

        calendar = calendars.get(calendar_id)
        if calendar is None:
            raise CalendarFetchFailed(f"Calendar {calendar_id} missing from free/busy response")
        if not isinstance(calendar, dict):
            raise CalendarFetchFailed(f"Unexpected entry for calendar {calendar_id}: {calendar!r}")
        if calendar.get("errors"):
            raise CalendarFetchFailed(f"Calendar {calendar_id} returned errors: {calendar['errors']}")

        busy = calendar.get("busy") or []
        if not isinstance(busy, list):
            raise CalendarFetchFailed(f"Unexpected busy list for calendar {calendar_id}: {busy!r}")

        intervals = []
        for block in busy:
            try:
                block_start = self._parse_instant(block["start"])
                block_end = self._parse_instant(block["end"])
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise CalendarFetchFailed(f"Malformed busy block {block!r}: {e}") from e
            if block_end > block_start:
                intervals.append(TimeInterval(block_start, block_end))

        return merge(intervals)

    def _parse_instant(self, value: str) -> datetime:
        """Parse an RFC 3339 timestamp into aware UTC."""
        if not isinstance(value, str):
            raise TypeError(f"expected a timestamp string, got {type(value).__name__}")
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(value))


# Singleton instance
calendar_client = CalendarClient()
