"""
Automated booking: turn a visit request into a lead and, when an agent has
a free window, a scheduled meeting.

One request is one database transaction. The lead, the meeting and the
agent's counter are flushed into the request's session and committed
together; any unexpected failure rolls the whole unit back. The external
calendar reservation happens inside the unit but its failure is not fatal.
Notifications are dispatched only after a successful commit.
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from realtyflow.agent_selection import select_agent_and_slot
from realtyflow.availability import AvailabilityOracle
from realtyflow.calendar_provider import CalendarProvider, EventDetails
from realtyflow.config import config
from realtyflow.db_models import (
    AUTO_ASSIGNED,
    DBAgent,
    DBLead,
    DBMeeting,
    DBProperty,
    LeadSource,
    LeadStatus,
    MeetingStatus,
)
from realtyflow.errors import BookingError, Conflict, InvalidInput, NotFound, ServerError
from realtyflow.logging_config import get_logger
from realtyflow.metrics import bookings_total, calendar_provider_errors_total
from realtyflow.notifications import BookingConfirmation, NotificationService
from realtyflow.services import AgentService, LeadService, MeetingService, PropertyService, lead_summary, normalize_email
from realtyflow.timeutils import aware_now, get_zone, parse_datetime, to_utc_naive

logger = get_logger(__name__)


class BookingOutcome(str, enum.Enum):
    LEAD_ONLY = "lead_only"
    FULLY_BOOKED = "fully_booked"


NO_AGENTS_MESSAGE = "Lead created successfully. No agents currently available for booking."
NO_SLOTS_MESSAGE = "Lead created successfully. No available time slots found."
BOOKED_MESSAGE = "Visit booked successfully! You will receive a confirmation email shortly."


@dataclass
class BookingResult:
    outcome: BookingOutcome
    lead: DBLead
    message: str
    meeting: Optional[DBMeeting] = None
    agent: Optional[DBAgent] = None
    listing: Optional[DBProperty] = None

    @property
    def booked(self) -> bool:
        return self.outcome == BookingOutcome.FULLY_BOOKED

    @property
    def calendar_link(self) -> Optional[str]:
        return self.meeting.calendar_link if self.meeting else None


class BookingOrchestrator:
    """Runs the request-a-visit flow against one database session."""

    def __init__(
        self,
        db: Session,
        oracle: AvailabilityOracle,
        calendar: CalendarProvider,
        notifier: NotificationService,
        clock: Callable[[], datetime] = aware_now,
        recheck: Optional[bool] = None,
        lookahead_days: Optional[int] = None,
    ):
        self.db = db
        self.oracle = oracle
        self.calendar = calendar
        self.notifier = notifier
        self.clock = clock
        self.recheck = config.BOOKING_RECHECK_SLOT if recheck is None else recheck
        self.lookahead_days = config.BOOKING_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days

    # -- public flows ------------------------------------------------------

    def book(self, request, defer: Optional[Callable[..., Any]] = None) -> BookingResult:
        """
        Create a lead for `request` and try to book it a viewing.

        Raises InvalidInput, NotFound or Conflict before anything is written.
        Returns a lead_only result when no agent or no window is available.
        """
        name = (request.name or "").strip()
        email = normalize_email(request.email)
        if not name or not email or request.property_id is None:
            raise InvalidInput("Name, email, and property ID are required")

        preferred = self._preferred_time(request.preferred_date_time, request.timezone)

        prop = PropertyService.get_property(self.db, request.property_id)
        if not prop:
            raise NotFound("Property not found")

        existing = LeadService.get_lead_by_email(self.db, email)
        if existing:
            raise Conflict("Lead with this email already exists", existingLead=lead_summary(existing))

        def unit():
            lead = LeadService.create_lead(
                self.db,
                {
                    "name": name,
                    "email": email,
                    "phone": request.phone,
                    "source": request.source or LeadSource.WEBSITE,
                    "status": LeadStatus.NEW,
                    "assigned_agent": AUTO_ASSIGNED,
                    "budget": request.budget,
                    "property_type_preference": request.property_type_preference,
                    "timeline": request.timeline,
                    "notes": request.notes,
                    "score": request.score,
                    "engagement_score": request.engagement_score,
                    "priority": request.priority,
                },
                commit=False,
            )
            return self._schedule(lead, prop, preferred, request.notes)

        return self._run(unit, defer, email=email)

    def book_existing_lead(self, lead: DBLead, property_id: int, preferred_date_time=None,
                           timezone: Optional[str] = None, notes: Optional[str] = None,
                           defer: Optional[Callable[..., Any]] = None) -> BookingResult:
        """Book a viewing for a lead that is already stored (webhook ingestion)."""
        preferred = self._preferred_time(preferred_date_time, timezone)
        prop = PropertyService.get_property(self.db, property_id)
        if not prop:
            raise NotFound("Property not found")
        return self._run(lambda: self._schedule(lead, prop, preferred, notes), defer)

    def available_slots(self, property_id: Optional[int], day: Optional[str],
                        timezone: Optional[str] = None) -> list[dict]:
        """Free windows on `day` across all bookable agents, soonest first."""
        if not property_id or not day:
            raise InvalidInput("Property ID and date are required")
        try:
            requested = date.fromisoformat(str(day)[:10])
        except ValueError:
            raise InvalidInput("Date must be in YYYY-MM-DD format")
        if not PropertyService.get_property(self.db, property_id):
            raise NotFound("Property not found")

        display_zone = get_zone(timezone, config.DEFAULT_TIMEZONE)
        now = self.clock()
        slots = []
        for agent in AgentService.list_bookable(self.db):
            for slot in self.oracle.list_free(agent, requested, not_before=now):
                slots.append({
                    "start": slot.start.astimezone(display_zone),
                    "end": slot.end.astimezone(display_zone),
                    "agent": {"id": agent.id, "name": agent.name, "email": agent.email},
                })
        slots.sort(key=lambda s: s["start"])
        return slots

    def stats(self) -> dict:
        """Totals for the current calendar month (UTC), as seen by the orchestrator's clock."""
        now = to_utc_naive(self.clock())
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        next_month = (month_start + timedelta(days=32)).replace(day=1)

        total_leads = self.db.query(func.count(DBLead.id)).scalar()
        new_leads = (
            self.db.query(func.count(DBLead.id))
            .filter(DBLead.created_at >= month_start, DBLead.created_at < next_month)
            .scalar()
        )
        in_month = (DBMeeting.date_time >= month_start, DBMeeting.date_time < next_month)
        meetings = self.db.query(func.count(DBMeeting.id)).filter(*in_month).scalar()
        completed = (
            self.db.query(func.count(DBMeeting.id))
            .filter(*in_month, DBMeeting.status == MeetingStatus.COMPLETED)
            .scalar()
        )
        return {
            "totalLeads": total_leads,
            "newLeadsThisMonth": new_leads,
            "meetingsThisMonth": meetings,
            "completedMeetingsThisMonth": completed,
            "availableAgents": AgentService.count_bookable(self.db),
            "conversionRate": round(completed / meetings * 100, 1) if meetings else 0,
        }

    # -- internals ---------------------------------------------------------

    def _preferred_time(self, value, timezone: Optional[str]) -> Optional[datetime]:
        if value in (None, ""):
            return None
        try:
            return parse_datetime(value, timezone or config.DEFAULT_TIMEZONE)
        except ValueError:
            raise InvalidInput("Invalid preferred date/time", detail=str(value))

    def _run(self, unit: Callable[[], BookingResult], defer, email: Optional[str] = None) -> BookingResult:
        """
        Execute `unit` as one transaction, then dispatch notifications.

        `email` is the address of a lead the unit inserts. An integrity error
        only becomes a Conflict when a lead with that address now exists;
        any other constraint failure is a server error.
        """
        try:
            result = unit()
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = LeadService.get_lead_by_email(self.db, email) if email else None
            if existing is None:
                logger.exception("booking_failed")
                bookings_total.labels(outcome="error").inc()
                raise ServerError(detail=str(e.orig)) from e
            logger.warning("booking_conflict", error=str(e.orig))
            raise Conflict(
                "Lead with this email already exists", detail=str(e.orig), existingLead=lead_summary(existing)
            ) from e
        except BookingError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception("booking_failed")
            bookings_total.labels(outcome="error").inc()
            raise ServerError(detail=str(e)) from e

        self.db.refresh(result.lead)
        bookings_total.labels(outcome=result.outcome.value).inc()
        logger.info(
            "booking_completed",
            lead_id=result.lead.id,
            outcome=result.outcome.value,
            meeting_id=result.meeting.id if result.meeting else None,
        )

        if result.booked:
            self.db.refresh(result.meeting)
            confirmation = BookingConfirmation.build(result.lead, result.meeting, result.agent, result.listing)
            self._dispatch(defer, self.notifier.booking_confirmed, confirmation)
        return result

    def _schedule(self, lead: DBLead, prop: DBProperty, preferred: Optional[datetime],
                  notes: Optional[str]) -> BookingResult:
        agents = AgentService.list_bookable(self.db)
        if not agents:
            logger.info("booking_no_agents", lead_id=lead.id)
            return BookingResult(BookingOutcome.LEAD_ONLY, lead, NO_AGENTS_MESSAGE, listing=prop)

        now = self.clock()
        if preferred is not None and preferred <= now:
            logger.info("preferred_time_in_past", lead_id=lead.id, preferred=preferred.isoformat())
            preferred = None

        selection = select_agent_and_slot(
            agents,
            self.oracle,
            search_from=preferred or now,
            preferred_time=preferred,
            lookahead_days=self.lookahead_days,
        )
        if selection is None:
            return BookingResult(BookingOutcome.LEAD_ONLY, lead, NO_SLOTS_MESSAGE, listing=prop)

        agent, slot = selection.agent, selection.slot
        if self.recheck and not self.oracle.is_free(agent, slot.start, slot.end):
            logger.warning("booking_slot_taken", agent_id=agent.id, start=slot.start.isoformat())
            return BookingResult(BookingOutcome.LEAD_ONLY, lead, NO_SLOTS_MESSAGE, listing=prop)

        lead.assigned_agent = agent.name

        meeting = MeetingService.create_meeting(
            self.db,
            {
                "lead_name": lead.name,
                "property_address": prop.address,
                "date_time": slot.start,
                "duration_minutes": int((slot.end - slot.start) / timedelta(minutes=1)),
                "status": MeetingStatus.SCHEDULED,
                "assigned_to": agent.name,
                "notes": f"Auto-booked via website form. {notes or ''}".strip(),
            },
            commit=False,
            check_conflicts=False,
        )

        self._reserve(agent, lead, prop, meeting, slot)
        agent.total_meetings = (agent.total_meetings or 0) + 1
        self.db.flush()

        return BookingResult(
            BookingOutcome.FULLY_BOOKED, lead, BOOKED_MESSAGE, meeting=meeting, agent=agent, listing=prop
        )

    def _reserve(self, agent: DBAgent, lead: DBLead, prop: DBProperty, meeting: DBMeeting, slot):
        """Put the meeting on the agent's calendar. Failure leaves the meeting without a link."""
        details = EventDetails(
            title=f"Property Viewing - {prop.address}",
            description=(
                f"Property viewing with {lead.name}\n"
                f"Email: {lead.email}\n"
                f"Phone: {lead.phone or 'N/A'}\n"
                f"Property: {prop.address}\n"
                f"Price: ${prop.price:,.0f}"
            ),
            start=slot.start,
            end=slot.end,
            timezone=agent.timezone or config.DEFAULT_TIMEZONE,
            attendees=[
                {"email": lead.email, "displayName": lead.name},
                {"email": agent.email, "displayName": agent.name},
            ],
        )
        try:
            ref = self.calendar.reserve_event(agent, details)
        except Exception as e:
            calendar_provider_errors_total.labels(operation="reserve_event").inc()
            logger.warning("calendar_reservation_failed", agent_id=agent.id, meeting_id=meeting.id, error=str(e))
            return
        meeting.calendar_event_id = ref.event_id
        meeting.calendar_link = ref.html_link

    def _dispatch(self, defer, fn, *args):
        if defer is not None:
            defer(_swallow, fn, *args)
        else:
            _swallow(fn, *args)


def _swallow(fn, *args):
    """Run a fire-and-forget callable; log instead of raising."""
    try:
        return fn(*args)
    except Exception as e:
        logger.error("notification_dispatch_failed", error=str(e))
        return None
