"""
Calendar provider integration.

`CalendarProvider` is the interface the booking engine consumes. The Google
implementation talks to the Calendar v3 REST API with httpx and refreshes
expired access tokens with the stored refresh token. Any transport or API
failure is raised as `ProviderUnavailable`; deciding what that means for a
booking is the availability layer's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional
from urllib.parse import quote

import httpx

from realtyflow.config import config
from realtyflow.errors import ProviderUnavailable
from realtyflow.logging_config import get_logger
from realtyflow.slots import Slot, WorkingCalendar, generate_candidates
from realtyflow.timeutils import aware_now, from_utc_naive, to_utc_naive, utcnow

logger = get_logger(__name__)


@dataclass
class EventRef:
    """Reference to an event created on an external calendar."""
    event_id: Optional[str] = None
    html_link: Optional[str] = None


@dataclass
class EventDetails:
    title: str
    description: str
    start: datetime
    end: datetime
    timezone: str
    attendees: list


class CalendarProvider(ABC):
    """Interface to an agent's external calendar."""

    @abstractmethod
    def is_slot_free(self, agent, start: datetime, end: datetime) -> bool:
        """Return True if the agent has no busy time in [start, end)."""

    @abstractmethod
    def reserve_event(self, agent, details: EventDetails) -> EventRef:
        """Create an event on the agent's calendar."""

    @abstractmethod
    def list_upcoming(self, agent, max_results: int = 10) -> list[dict]:
        """Return the agent's next events, soonest first."""

    def list_free_slots(self, agent, day: date, duration: int) -> list[Slot]:
        """Free windows for one day: generated candidates filtered by is_slot_free."""
        cal = WorkingCalendar.from_agent(agent, config.DEFAULT_TIMEZONE)
        return [
            slot for slot in generate_candidates(cal, day, duration)
            if self.is_slot_free(agent, slot.start, slot.end)
        ]


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar v3 over REST."""

    def __init__(self, client: Optional[httpx.Client] = None, api_base: Optional[str] = None,
                 token_url: Optional[str] = None):
        self.client = client or httpx.Client(timeout=config.CALENDAR_HTTP_TIMEOUT)
        self.api_base = (api_base or config.GOOGLE_API_BASE).rstrip("/")
        self.token_url = token_url or config.GOOGLE_TOKEN_URL

    def close(self):
        self.client.close()

    # -- credentials -------------------------------------------------------

    def _access_token(self, agent) -> str:
        """
        Return a usable access token for the agent, refreshing it when it is
        expired or about to expire (within 5 minutes).

        Refreshed tokens are written onto the agent row; they are persisted
        with whatever session owns the agent.
        """
        if not agent.calendar_id or not agent.google_access_token:
            raise ProviderUnavailable("Agent not connected to Google Calendar")

        expiry = agent.google_token_expiry
        if expiry is None or expiry > utcnow() + timedelta(minutes=5):
            return agent.google_access_token

        if not agent.google_refresh_token:
            raise ProviderUnavailable("No refresh token available")

        logger.info("calendar_token_refresh", agent_id=agent.id)
        try:
            response = self.client.post(
                self.token_url,
                data={
                    "client_id": config.GOOGLE_CLIENT_ID,
                    "client_secret": config.GOOGLE_CLIENT_SECRET,
                    "refresh_token": agent.google_refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailable("Failed to refresh Google Calendar access token", detail=str(e)) from e

        if response.status_code != 200:
            raise ProviderUnavailable("Failed to refresh Google Calendar access token", detail=response.text)

        tokens = response.json()
        new_token = tokens.get("access_token")
        if not new_token:
            raise ProviderUnavailable("No access token in refresh response")

        agent.google_access_token = new_token
        agent.google_token_expiry = utcnow() + timedelta(seconds=int(tokens.get("expires_in", 3600)))
        return new_token

    def _request(self, agent, method: str, path: str, **kwargs) -> dict[str, Any]:
        token = self._access_token(agent)
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = self.client.request(method, f"{self.api_base}{path}", headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(detail=f"{method} {path}: {e}") from e
        return response.json()

    # -- provider operations ----------------------------------------------

    def is_slot_free(self, agent, start: datetime, end: datetime) -> bool:
        calendar_id = agent.calendar_id
        data = self._request(
            agent,
            "POST",
            "/freeBusy",
            json={
                "timeMin": _iso(start),
                "timeMax": _iso(end),
                "items": [{"id": calendar_id}],
            },
        )
        calendar = (data.get("calendars") or {}).get(calendar_id)
        if calendar is None:
            raise ProviderUnavailable(detail=f"freeBusy response missing calendar {calendar_id}")
        if calendar.get("errors"):
            raise ProviderUnavailable(detail=str(calendar["errors"]))
        return len(calendar.get("busy") or []) == 0

    def reserve_event(self, agent, details: EventDetails) -> EventRef:
        event = {
            "summary": details.title,
            "description": details.description,
            "start": {"dateTime": _iso(details.start), "timeZone": details.timezone},
            "end": {"dateTime": _iso(details.end), "timeZone": details.timezone},
            "attendees": details.attendees,
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 30},
                    {"method": "popup", "minutes": 15},
                ],
            },
        }
        data = self._request(
            agent,
            "POST",
            f"/calendars/{quote(agent.calendar_id, safe='')}/events",
            params={"sendUpdates": "all"},
            json=event,
        )
        return EventRef(event_id=data.get("id"), html_link=data.get("htmlLink"))

    def list_upcoming(self, agent, max_results: int = 10) -> list[dict]:
        data = self._request(
            agent,
            "GET",
            f"/calendars/{quote(agent.calendar_id, safe='')}/events",
            params={
                "timeMin": _iso(aware_now()),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return data.get("items") or []


def _iso(value: datetime) -> str:
    """RFC 3339 timestamp in UTC, as the Calendar API expects."""
    return from_utc_naive(to_utc_naive(value)).isoformat().replace("+00:00", "Z")
