"""Pydantic request/response models.

The public API speaks camelCase (`propertyId`, `bookingStatus`); Python code
uses snake_case. Both spellings are accepted on input.
"""

from datetime import datetime
from typing import Annotated, Any, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from realtyflow.db_models import (
    AUTO_ASSIGNED,
    DEFAULT_WORKING_DAYS,
    LeadPriority,
    LeadSource,
    LeadStatus,
    MeetingStatus,
    PropertyStatus,
    PropertyType,
)
from realtyflow.slots import WEEKDAYS
from realtyflow.timeutils import from_utc_naive, parse_hhmm, utcnow

UtcDatetime = Annotated[datetime, AfterValidator(from_utc_naive)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def dump(model_cls: type[BaseModel], obj: Any) -> dict:
    """Serialize an ORM object through a response model, camelCase keys."""
    return model_cls.model_validate(obj).model_dump(by_alias=True, mode="json")


def page(data: list, total: int, page_number: int, limit: int) -> dict:
    """List envelope shared by the collection endpoints."""
    limit = max(limit, 1)
    return {
        "success": True,
        "count": len(data),
        "total": total,
        "totalPages": -(-total // limit),
        "currentPage": max(page_number, 1),
        "data": data,
    }


# -- Leads -----------------------------------------------------------------

class LeadBase(CamelModel):
    phone: Optional[str] = Field(None, max_length=20)
    budget: Optional[int] = Field(None, ge=0)
    property_type_preference: Optional[str] = Field(None, max_length=100)
    timeline: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)
    score: Optional[int] = Field(None, ge=0, le=100)
    engagement_score: Optional[int] = Field(None, ge=0, le=100)
    priority: Optional[LeadPriority] = None


class LeadCreate(LeadBase):
    """Create a lead via the CRUD API."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    status: LeadStatus = LeadStatus.NEW
    source: LeadSource = LeadSource.WEBSITE
    assigned_agent: str = Field(AUTO_ASSIGNED, min_length=1)


class LeadUpdate(LeadBase):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    status: Optional[LeadStatus] = None
    source: Optional[LeadSource] = None
    assigned_agent: Optional[str] = Field(None, min_length=1)


class LeadStatusUpdate(CamelModel):
    status: LeadStatus


class LeadOut(LeadBase):
    id: int
    name: str
    email: str
    status: LeadStatus
    source: LeadSource
    assigned_agent: str
    external_id: Optional[str] = None
    source_system: Optional[str] = None
    last_contacted_at: Optional[UtcDatetime] = None
    days_since_last_contact: int = 0
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


class LeadSummary(CamelModel):
    id: int
    name: str
    email: str
    status: LeadStatus


class WebhookLeadIn(LeadBase):
    """
    Inbound lead from an external source (portal, CRM, website form).

    Name and email are checked by the handler so a missing field produces
    the same "required" message as the booking endpoint.
    """
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    source: LeadSource = LeadSource.WEBHOOK
    property_id: Optional[int] = None
    preferred_date_time: Optional[str] = None
    timezone: Optional[str] = None
    source_system: Optional[str] = Field(None, max_length=100)
    external_id: Optional[str] = Field(None, max_length=255)
    signature: Optional[str] = None
    timestamp: Optional[str] = None


# -- Properties --------------------------------------------------------------

class MediaItem(CamelModel):
    url: str = Field(..., min_length=1)
    type: str = Field("image", pattern="^(image|video)$")
    filename: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[datetime] = None


class PropertyBase(CamelModel):
    bedrooms: Optional[int] = Field(None, ge=0, le=20)
    bathrooms: Optional[float] = Field(None, ge=0, le=20)
    sqft: Optional[int] = Field(None, ge=0)
    media: list[MediaItem] = Field(default_factory=list)
    image_url: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    year_built: Optional[int] = None
    features: list[Annotated[str, Field(max_length=100)]] = Field(default_factory=list)

    @field_validator("year_built")
    @classmethod
    def _year_built_in_range(cls, value):
        if value is None:
            return value
        latest = utcnow().year + 1
        if value < 1800 or value > latest:
            raise ValueError(f"Year built must be between 1800 and {latest}")
        return value


class PropertyCreate(PropertyBase):
    address: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    property_type: PropertyType = PropertyType.HOUSE
    status: PropertyStatus = PropertyStatus.AVAILABLE


class PropertyUpdate(PropertyBase):
    address: Optional[str] = Field(None, min_length=1, max_length=200)
    price: Optional[float] = Field(None, ge=0)
    property_type: Optional[PropertyType] = None
    status: Optional[PropertyStatus] = None
    media: Optional[list[MediaItem]] = None
    features: Optional[list[Annotated[str, Field(max_length=100)]]] = None


class PropertyOut(PropertyBase):
    id: int
    address: str
    price: float
    property_type: PropertyType
    status: PropertyStatus
    price_per_sqft: Optional[float] = None
    media: Optional[list[MediaItem]] = None
    features: Optional[list[str]] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


# -- Meetings ----------------------------------------------------------------

class MeetingCreate(CamelModel):
    lead_name: str = Field(..., min_length=1)
    property_address: str = Field(..., min_length=1)
    date_time: datetime
    assigned_to: str = Field(..., min_length=1)
    status: MeetingStatus = MeetingStatus.SCHEDULED
    notes: Optional[str] = None
    duration_minutes: int = Field(60, ge=15, le=240)


class MeetingUpdate(CamelModel):
    lead_name: Optional[str] = Field(None, min_length=1)
    property_address: Optional[str] = Field(None, min_length=1)
    date_time: Optional[datetime] = None
    assigned_to: Optional[str] = Field(None, min_length=1)
    status: Optional[MeetingStatus] = None
    notes: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=15, le=240)


class MeetingStatusUpdate(CamelModel):
    status: MeetingStatus


class MeetingOut(CamelModel):
    id: int
    lead_name: str
    property_address: str
    date_time: UtcDatetime
    duration_minutes: int
    status: MeetingStatus
    assigned_to: str
    notes: Optional[str] = None
    calendar_event_id: Optional[str] = None
    calendar_link: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


class MeetingConflict(CamelModel):
    id: int
    lead_name: str
    date_time: UtcDatetime
    property_address: str


# -- Agents ------------------------------------------------------------------

def _check_hhmm(value: str) -> str:
    if parse_hhmm(value) is None:
        raise ValueError("Time must be in HH:MM format")
    return value


class WorkingHours(CamelModel):
    start: Annotated[str, AfterValidator(_check_hhmm)] = "09:00"
    end: Annotated[str, AfterValidator(_check_hhmm)] = "17:00"


class AgentBase(CamelModel):
    phone: Optional[str] = None
    calendar_id: Optional[str] = None
    timezone: Optional[str] = None
    is_active: Optional[bool] = None

    # Write-only credentials; never echoed back.
    google_access_token: Optional[str] = None
    google_refresh_token: Optional[str] = None
    google_token_expiry: Optional[datetime] = None

    @field_validator("working_days", check_fields=False)
    @classmethod
    def _known_weekdays(cls, value):
        if value is None:
            return value
        days = [str(d).strip().lower() for d in value]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown working days: {', '.join(unknown)}")
        return days


class AgentCreate(AgentBase):
    name: str = Field(..., min_length=1)
    email: EmailStr
    working_days: list[str] = Field(default_factory=lambda: list(DEFAULT_WORKING_DAYS))
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    timezone: str = "America/New_York"
    meeting_duration: int = Field(60, ge=15, le=240)
    buffer_time: int = Field(15, ge=0, le=60)
    is_active: bool = True


class AgentUpdate(AgentBase):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    working_days: Optional[list[str]] = None
    working_hours: Optional[WorkingHours] = None
    meeting_duration: Optional[int] = Field(None, ge=15, le=240)
    buffer_time: Optional[int] = Field(None, ge=0, le=60)


class AgentOut(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    calendar_id: Optional[str] = None
    working_days: list[str]
    working_hours: WorkingHours
    timezone: str
    meeting_duration: int
    buffer_time: int
    total_meetings: int
    completed_meetings: int
    success_rate: int
    is_active: bool
    is_bookable: bool
    last_active: Optional[UtcDatetime] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @classmethod
    def from_agent(cls, agent) -> dict:
        data = {
            column: getattr(agent, column)
            for column in (
                "id", "name", "email", "phone", "calendar_id", "timezone", "meeting_duration",
                "buffer_time", "total_meetings", "completed_meetings", "success_rate", "is_active",
                "is_bookable", "last_active", "created_at", "updated_at",
            )
        }
        data["working_days"] = list(agent.working_days or [])
        data["working_hours"] = WorkingHours(start=agent.working_hours_start, end=agent.working_hours_end)
        return cls.model_validate(data).model_dump(by_alias=True, mode="json")


class AgentContact(CamelModel):
    id: int
    name: str
    email: str


# -- Booking -----------------------------------------------------------------

class BookingRequest(LeadBase):
    """
    Public "request a visit" form.

    Required fields are checked by the booking flow rather than by pydantic
    so the caller gets one human-readable message.
    """
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    source: LeadSource = LeadSource.WEBSITE
    property_id: Optional[int] = None
    preferred_date_time: Optional[Union[datetime, str]] = None
    timezone: Optional[str] = None


class SlotOut(CamelModel):
    start: datetime
    end: datetime
    agent: AgentContact
