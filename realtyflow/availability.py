"""
Availability oracle.

Answers "is this window free for this agent" by combining two sources:
the agent's Scheduled meetings in our own database, and the external
calendar provider's busy data. When the provider can't answer (not
connected, network error, API error) the configured fail policy decides;
the default is fail-open, so a provider outage degrades to manual
coordination instead of blocking every booking.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from realtyflow.calendar_provider import CalendarProvider
from realtyflow.config import config
from realtyflow.db_models import DBAgent, DBMeeting, MeetingStatus
from realtyflow.logging_config import get_logger
from realtyflow.metrics import calendar_provider_errors_total
from realtyflow.slots import Slot, WorkingCalendar, generate_candidates, scan_forward
from realtyflow.timeutils import aware_now, to_utc_naive

logger = get_logger(__name__)

# Longest meeting an agent can be configured for; bounds the overlap query.
MAX_MEETING_MINUTES = 240


class AvailabilityOracle:
    """Free/busy answers for bookable agents."""

    def __init__(
        self,
        db: Session,
        provider: CalendarProvider,
        fail_open: Optional[bool] = None,
        clock: Callable[[], datetime] = aware_now,
    ):
        self.db = db
        self.provider = provider
        self.fail_open = config.CALENDAR_FAIL_OPEN if fail_open is None else fail_open
        self.clock = clock

    def has_meeting_conflict(self, agent: DBAgent, start: datetime, end: datetime) -> bool:
        """True if the agent already has a Scheduled meeting overlapping [start, end)."""
        start_naive, end_naive = to_utc_naive(start), to_utc_naive(end)
        candidates = (
            self.db.query(DBMeeting)
            .filter(
                DBMeeting.assigned_to == agent.name,
                DBMeeting.status == MeetingStatus.SCHEDULED,
                DBMeeting.date_time < end_naive,
                DBMeeting.date_time >= start_naive - timedelta(minutes=MAX_MEETING_MINUTES),
            )
            .all()
        )
        return any(m.end_time > start_naive for m in candidates)

    def is_free(self, agent: DBAgent, start: datetime, end: datetime) -> bool:
        if self.has_meeting_conflict(agent, start, end):
            return False

        if not agent.calendar_id:
            logger.warning("calendar_not_connected", agent_id=agent.id, fail_open=self.fail_open)
            return self.fail_open

        try:
            return self.provider.is_slot_free(agent, start, end)
        except Exception as e:
            calendar_provider_errors_total.labels(operation="is_slot_free").inc()
            logger.warning(
                "calendar_availability_check_failed",
                agent_id=agent.id,
                start=start.isoformat(),
                error=str(e),
                fail_open=self.fail_open,
            )
            return self.fail_open

    def list_free(
        self,
        agent: DBAgent,
        day: date,
        duration: Optional[int] = None,
        limit: Optional[int] = None,
        not_before: Optional[datetime] = None,
    ) -> list[Slot]:
        """
        Free windows for one day, in generated order.

        Each candidate costs one `is_free` call; evaluation stops once
        `limit` free windows are found.
        """
        cal = WorkingCalendar.from_agent(agent, config.DEFAULT_TIMEZONE)
        free: list[Slot] = []
        for slot in generate_candidates(cal, day, duration):
            if not_before is not None and slot.start < not_before:
                continue
            if self.is_free(agent, slot.start, slot.end):
                free.append(slot)
                if limit is not None and len(free) >= limit:
                    break
        return free

    def next_free(
        self,
        agent: DBAgent,
        search_from: datetime,
        duration: Optional[int] = None,
        lookahead_days: Optional[int] = None,
    ) -> Optional[Slot]:
        """Soonest free window at or after `search_from` (and after now)."""
        cal = WorkingCalendar.from_agent(agent, config.DEFAULT_TIMEZONE)
        days = config.BOOKING_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
        for slot in scan_forward(cal, search_from, self.clock(), lookahead_days=days, duration=duration):
            if self.is_free(agent, slot.start, slot.end):
                return slot
        return None
