"""
Service layer for database operations (the record store).

Services take an explicit Session. Methods that are used inside the booking
transaction accept `commit=False` and only flush, leaving commit/rollback to
the caller that owns the atomic unit.
"""

from typing import Any, List, Optional, Tuple
from datetime import datetime, timedelta

from sqlalchemy import asc, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

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
from realtyflow.errors import Conflict, InvalidInput, NotFound
from realtyflow.logging_config import get_logger
from realtyflow.models import LeadSummary, MeetingConflict, dump
from realtyflow.timeutils import to_utc_naive, utcnow

logger = get_logger(__name__)

# Manual scheduling treats every meeting as one hour long for conflict checks.
MANUAL_CONFLICT_WINDOW = timedelta(hours=1)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    return str(email).strip().lower()


def _paginate(query, sort_column, sort_order: str, page: int, limit: int):
    order = desc if sort_order == "desc" else asc
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.count()
    items = query.order_by(order(sort_column)).offset((page - 1) * limit).limit(limit).all()
    return items, total


def _apply(obj, data: dict[str, Any]):
    for key, value in data.items():
        setattr(obj, key, value)


class LeadService:
    """Service for managing leads."""

    SORTABLE = {
        "createdAt": DBLead.created_at,
        "updatedAt": DBLead.updated_at,
        "name": DBLead.name,
        "status": DBLead.status,
        "lastContactedAt": DBLead.last_contacted_at,
        "budget": DBLead.budget,
    }

    @staticmethod
    def create_lead(db: Session, data: dict[str, Any], commit: bool = True) -> DBLead:
        """Create a new lead. A duplicate email (any case) raises Conflict."""
        data = dict(data)
        data["email"] = normalize_email(data.get("email"))
        if not data.get("name") or not data.get("email"):
            raise InvalidInput("Name and email are required")

        existing = LeadService.get_lead_by_email(db, data["email"])
        if existing:
            raise Conflict("Lead with this email already exists", existingLead=lead_summary(existing))

        lead = DBLead(**data)
        lead.last_contacted_at = lead.last_contacted_at or utcnow()
        db.add(lead)
        try:
            db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same email.
            db.rollback()
            raise Conflict("Lead with this email already exists", detail=str(e.orig)) from e

        if commit:
            db.commit()
            db.refresh(lead)

        logger.info("lead_created", lead_id=lead.id, source=_value(lead.source))
        return lead

    @staticmethod
    def get_lead(db: Session, lead_id: int) -> Optional[DBLead]:
        """Get lead by ID."""
        return db.query(DBLead).filter(DBLead.id == lead_id).first()

    @staticmethod
    def require_lead(db: Session, lead_id: int) -> DBLead:
        lead = LeadService.get_lead(db, lead_id)
        if not lead:
            raise NotFound("Lead not found")
        return lead

    @staticmethod
    def get_lead_by_email(db: Session, email: str) -> Optional[DBLead]:
        """Get lead by email (case-insensitive)."""
        return db.query(DBLead).filter(DBLead.email == normalize_email(email)).first()

    @staticmethod
    def list_leads(
        db: Session,
        status: Optional[LeadStatus] = None,
        assigned_to: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[DBLead], int]:
        """List leads with optional filtering, sorting and pagination."""
        query = db.query(DBLead)
        if status:
            query = query.filter(DBLead.status == status)
        if assigned_to:
            query = query.filter(DBLead.assigned_agent == assigned_to)
        column = LeadService.SORTABLE.get(sort_by, DBLead.created_at)
        return _paginate(query, column, sort_order, page, limit)

    @staticmethod
    def list_by_status(db: Session, status: LeadStatus) -> List[DBLead]:
        return db.query(DBLead).filter(DBLead.status == status).order_by(DBLead.created_at.desc()).all()

    @staticmethod
    def update_lead(db: Session, lead_id: int, data: dict[str, Any]) -> DBLead:
        lead = LeadService.require_lead(db, lead_id)
        data = dict(data)
        if "email" in data:
            data["email"] = normalize_email(data["email"])
            other = LeadService.get_lead_by_email(db, data["email"])
            if other and other.id != lead.id:
                raise Conflict("Lead with this email already exists", existingLead=lead_summary(other))
        if "status" in data and data["status"] != lead.status:
            lead.touch_contacted()
        _apply(lead, data)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise Conflict("Lead with this email already exists", detail=str(e.orig)) from e
        db.refresh(lead)
        logger.info("lead_updated", lead_id=lead.id, fields=sorted(data))
        return lead

    @staticmethod
    def update_lead_status(db: Session, lead_id: int, status: LeadStatus) -> DBLead:
        """Update lead status; changing status counts as contact."""
        lead = LeadService.require_lead(db, lead_id)
        lead.status = status
        lead.touch_contacted()
        db.commit()
        db.refresh(lead)

        logger.info("lead_status_updated", lead_id=lead_id, status=_value(status))
        return lead

    @staticmethod
    def delete_lead(db: Session, lead_id: int) -> None:
        lead = LeadService.require_lead(db, lead_id)
        db.delete(lead)
        db.commit()
        logger.info("lead_deleted", lead_id=lead_id)

    @staticmethod
    def upsert_from_webhook(db: Session, data: dict[str, Any]) -> Tuple[DBLead, str]:
        """
        Ingest a lead from an external source.

        An existing lead (same email) is updated in place with the fields the
        webhook provided: never duplicated. Returns (lead, "updated"|"created").
        """
        email = normalize_email(data.get("email"))
        lead = LeadService.get_lead_by_email(db, email)
        if lead:
            lead.source = data.get("source") or LeadSource.WEBHOOK
            lead.touch_contacted()
            for field in (
                "notes", "budget", "property_type_preference", "timeline", "external_id",
                "source_system", "phone",
            ):
                value = data.get(field)
                if value not in (None, ""):
                    setattr(lead, field, value)
            db.commit()
            db.refresh(lead)
            logger.info("webhook_lead_merged", lead_id=lead.id)
            return lead, "updated"

        lead = LeadService.create_lead(
            db,
            {
                "name": data.get("name"),
                "email": email,
                "phone": data.get("phone"),
                "source": data.get("source") or LeadSource.WEBHOOK,
                "assigned_agent": AUTO_ASSIGNED,
                "budget": data.get("budget"),
                "property_type_preference": data.get("property_type_preference"),
                "timeline": data.get("timeline"),
                "notes": data.get("notes"),
                "status": LeadStatus.NEW,
                "external_id": data.get("external_id"),
                "source_system": data.get("source_system"),
            },
        )
        return lead, "created"


class PropertyService:
    """Service for managing property listings."""

    SORTABLE = {
        "createdAt": DBProperty.created_at,
        "price": DBProperty.price,
        "address": DBProperty.address,
        "sqft": DBProperty.sqft,
    }

    @staticmethod
    def create_property(db: Session, data: dict[str, Any]) -> DBProperty:
        prop = DBProperty(**data)
        db.add(prop)
        db.commit()
        db.refresh(prop)
        logger.info("property_created", property_id=prop.id)
        return prop

    @staticmethod
    def get_property(db: Session, property_id: int) -> Optional[DBProperty]:
        return db.query(DBProperty).filter(DBProperty.id == property_id).first()

    @staticmethod
    def require_property(db: Session, property_id: int) -> DBProperty:
        prop = PropertyService.get_property(db, property_id)
        if not prop:
            raise NotFound("Property not found")
        return prop

    @staticmethod
    def list_properties(
        db: Session,
        status=None,
        property_type=None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[DBProperty], int]:
        query = db.query(DBProperty)
        if status:
            query = query.filter(DBProperty.status == status)
        if property_type:
            query = query.filter(DBProperty.property_type == property_type)
        if min_price is not None:
            query = query.filter(DBProperty.price >= min_price)
        if max_price is not None:
            query = query.filter(DBProperty.price <= max_price)
        column = PropertyService.SORTABLE.get(sort_by, DBProperty.created_at)
        return _paginate(query, column, sort_order, page, limit)

    @staticmethod
    def update_property(db: Session, property_id: int, data: dict[str, Any]) -> DBProperty:
        prop = PropertyService.require_property(db, property_id)
        _apply(prop, data)
        db.commit()
        db.refresh(prop)
        logger.info("property_updated", property_id=prop.id)
        return prop

    @staticmethod
    def delete_property(db: Session, property_id: int) -> None:
        prop = PropertyService.require_property(db, property_id)
        db.delete(prop)
        db.commit()
        logger.info("property_deleted", property_id=property_id)


class AgentService:
    """Service for managing agents."""

    SORTABLE = {
        "createdAt": DBAgent.created_at,
        "name": DBAgent.name,
        "totalMeetings": DBAgent.total_meetings,
    }

    @staticmethod
    def _columns(data: dict[str, Any]) -> dict[str, Any]:
        data = dict(data)
        hours = data.pop("working_hours", None)
        if hours:
            data["working_hours_start"] = hours["start"]
            data["working_hours_end"] = hours["end"]
        if "email" in data:
            data["email"] = normalize_email(data["email"])
        if "google_token_expiry" in data and data["google_token_expiry"] is not None:
            data["google_token_expiry"] = to_utc_naive(data["google_token_expiry"])
        return data

    @staticmethod
    def create_agent(db: Session, data: dict[str, Any]) -> DBAgent:
        data = AgentService._columns(data)
        if db.query(DBAgent).filter(DBAgent.email == data["email"]).first():
            raise Conflict("Agent with this email already exists")
        agent = DBAgent(**data)
        db.add(agent)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise Conflict("Agent with this email already exists", detail=str(e.orig)) from e
        db.refresh(agent)
        logger.info("agent_created", agent_id=agent.id)
        return agent

    @staticmethod
    def get_agent(db: Session, agent_id: int) -> Optional[DBAgent]:
        return db.query(DBAgent).filter(DBAgent.id == agent_id).first()

    @staticmethod
    def require_agent(db: Session, agent_id: int) -> DBAgent:
        agent = AgentService.get_agent(db, agent_id)
        if not agent:
            raise NotFound("Agent not found")
        return agent

    @staticmethod
    def list_agents(
        db: Session,
        is_active: Optional[bool] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[DBAgent], int]:
        query = db.query(DBAgent)
        if is_active is not None:
            query = query.filter(DBAgent.is_active == is_active)
        column = AgentService.SORTABLE.get(sort_by, DBAgent.created_at)
        return _paginate(query, column, sort_order, page, limit)

    @staticmethod
    def list_bookable(db: Session) -> List[DBAgent]:
        """Active agents with a connected calendar, in id order."""
        return (
            db.query(DBAgent)
            .filter(DBAgent.is_active.is_(True), DBAgent.calendar_id.isnot(None), DBAgent.calendar_id != "")
            .order_by(DBAgent.id)
            .all()
        )

    @staticmethod
    def count_bookable(db: Session) -> int:
        return (
            db.query(DBAgent)
            .filter(DBAgent.is_active.is_(True), DBAgent.calendar_id.isnot(None), DBAgent.calendar_id != "")
            .count()
        )

    @staticmethod
    def update_agent(db: Session, agent_id: int, data: dict[str, Any]) -> DBAgent:
        agent = AgentService.require_agent(db, agent_id)
        data = AgentService._columns(data)
        if "email" in data:
            other = db.query(DBAgent).filter(DBAgent.email == data["email"]).first()
            if other and other.id != agent.id:
                raise Conflict("Agent with this email already exists")
        _apply(agent, data)
        db.commit()
        db.refresh(agent)
        logger.info("agent_updated", agent_id=agent.id)
        return agent

    @staticmethod
    def disconnect_calendar(db: Session, agent_id: int) -> DBAgent:
        agent = AgentService.require_agent(db, agent_id)
        agent.calendar_id = None
        agent.google_access_token = None
        agent.google_refresh_token = None
        agent.google_token_expiry = None
        db.commit()
        db.refresh(agent)
        logger.info("agent_calendar_disconnected", agent_id=agent.id)
        return agent

    @staticmethod
    def delete_agent(db: Session, agent_id: int) -> None:
        agent = AgentService.require_agent(db, agent_id)
        db.delete(agent)
        db.commit()
        logger.info("agent_deleted", agent_id=agent_id)


class MeetingService:
    """Service for managing meetings."""

    SORTABLE = {
        "dateTime": DBMeeting.date_time,
        "createdAt": DBMeeting.created_at,
        "leadName": DBMeeting.lead_name,
        "status": DBMeeting.status,
    }

    @staticmethod
    def find_conflicts(db: Session, assigned_to: str, start: datetime,
                       exclude_id: Optional[int] = None) -> List[DBMeeting]:
        """Scheduled meetings for the same agent starting within an hour either side of `start`."""
        start = to_utc_naive(start)
        query = db.query(DBMeeting).filter(
            DBMeeting.assigned_to == assigned_to,
            DBMeeting.status == MeetingStatus.SCHEDULED,
            DBMeeting.date_time < start + MANUAL_CONFLICT_WINDOW,
            DBMeeting.date_time >= start - MANUAL_CONFLICT_WINDOW,
        )
        if exclude_id is not None:
            query = query.filter(DBMeeting.id != exclude_id)
        return query.order_by(DBMeeting.date_time).all()

    @staticmethod
    def create_meeting(db: Session, data: dict[str, Any], commit: bool = True,
                       check_conflicts: bool = True) -> DBMeeting:
        """
        Create a meeting. The start must be in the future.

        Manual scheduling (check_conflicts=True) rejects a meeting that starts
        within an hour of another Scheduled meeting for the same agent.
        """
        data = dict(data)
        data["date_time"] = to_utc_naive(data["date_time"])
        if data["date_time"] <= utcnow():
            raise InvalidInput("Meeting date and time must be in the future")

        if check_conflicts:
            conflicts = MeetingService.find_conflicts(db, data["assigned_to"], data["date_time"])
            if conflicts:
                raise Conflict(
                    "Scheduling conflict detected",
                    conflicts=[dump(MeetingConflict, m) for m in conflicts],
                )

        meeting = DBMeeting(**data)
        db.add(meeting)
        db.flush()
        if commit:
            db.commit()
            db.refresh(meeting)

        logger.info(
            "meeting_created",
            meeting_id=meeting.id,
            assigned_to=meeting.assigned_to,
            start_time=meeting.date_time.isoformat(),
        )
        return meeting

    @staticmethod
    def get_meeting(db: Session, meeting_id: int) -> Optional[DBMeeting]:
        """Get meeting by ID."""
        return db.query(DBMeeting).filter(DBMeeting.id == meeting_id).first()

    @staticmethod
    def require_meeting(db: Session, meeting_id: int) -> DBMeeting:
        meeting = MeetingService.get_meeting(db, meeting_id)
        if not meeting:
            raise NotFound("Meeting not found")
        return meeting

    @staticmethod
    def list_meetings(
        db: Session,
        status: Optional[MeetingStatus] = None,
        assigned_to: Optional[str] = None,
        lead_name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "dateTime",
        sort_order: str = "asc",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[DBMeeting], int]:
        """List meetings; name filters are case-insensitive substring matches."""
        query = db.query(DBMeeting)
        if status:
            query = query.filter(DBMeeting.status == status)
        if assigned_to:
            query = query.filter(DBMeeting.assigned_to.ilike(f"%{assigned_to}%"))
        if lead_name:
            query = query.filter(DBMeeting.lead_name.ilike(f"%{lead_name}%"))
        if start_date:
            query = query.filter(DBMeeting.date_time >= to_utc_naive(start_date))
        if end_date:
            query = query.filter(DBMeeting.date_time <= to_utc_naive(end_date))
        column = MeetingService.SORTABLE.get(sort_by, DBMeeting.date_time)
        return _paginate(query, column, sort_order, page, limit)

    @staticmethod
    def list_upcoming(db: Session, hours_ahead: int = 24) -> List[DBMeeting]:
        now = utcnow()
        return (
            db.query(DBMeeting)
            .filter(
                DBMeeting.status == MeetingStatus.SCHEDULED,
                DBMeeting.date_time >= now,
                DBMeeting.date_time <= now + timedelta(hours=hours_ahead),
            )
            .order_by(DBMeeting.date_time)
            .all()
        )

    @staticmethod
    def update_meeting(db: Session, meeting_id: int, data: dict[str, Any]) -> DBMeeting:
        meeting = MeetingService.require_meeting(db, meeting_id)
        data = dict(data)
        if data.get("date_time") is not None:
            data["date_time"] = to_utc_naive(data["date_time"])
            if data["date_time"] <= utcnow():
                raise InvalidInput("Meeting date and time must be in the future")
        new_status = data.pop("status", None)
        _apply(meeting, data)
        if new_status is not None:
            MeetingService._transition(db, meeting, new_status)
        db.commit()
        db.refresh(meeting)
        logger.info("meeting_updated", meeting_id=meeting.id)
        return meeting

    @staticmethod
    def update_meeting_status(db: Session, meeting_id: int, status: MeetingStatus) -> DBMeeting:
        meeting = MeetingService.require_meeting(db, meeting_id)
        MeetingService._transition(db, meeting, status)
        db.commit()
        db.refresh(meeting)
        logger.info("meeting_status_updated", meeting_id=meeting_id, status=_value(status))
        return meeting

    @staticmethod
    def _transition(db: Session, meeting: DBMeeting, status: MeetingStatus):
        """Apply a status change; completing a meeting credits the assigned agent."""
        previous = meeting.status
        meeting.status = status
        if status == MeetingStatus.COMPLETED and previous != MeetingStatus.COMPLETED:
            agent = db.query(DBAgent).filter(DBAgent.name == meeting.assigned_to).first()
            if agent:
                agent.completed_meetings = (agent.completed_meetings or 0) + 1

    @staticmethod
    def delete_meeting(db: Session, meeting_id: int) -> None:
        meeting = MeetingService.require_meeting(db, meeting_id)
        db.delete(meeting)
        db.commit()
        logger.info("meeting_deleted", meeting_id=meeting_id)


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


def lead_summary(lead: DBLead) -> dict:
    return dump(LeadSummary, lead)
