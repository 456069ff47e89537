"""
SQLAlchemy database models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, JSON, Enum as SQLEnum
from datetime import datetime, timedelta
import enum

from realtyflow.database import Base
from realtyflow.timeutils import utcnow


def _enum_column(enum_cls, **kwargs):
    """Store enum *values* ("Off Market") rather than member names."""
    return Column(
        SQLEnum(enum_cls, values_callable=lambda members: [m.value for m in members], native_enum=False),
        **kwargs,
    )


class LeadStatus(str, enum.Enum):
    """Lead status enum."""
    NEW = "New"
    CONTACTED = "Contacted"
    NURTURING = "Nurturing"
    CLOSED = "Closed"


class LeadSource(str, enum.Enum):
    """Where a lead came from."""
    ZILLOW = "Zillow"
    REALTOR_COM = "Realtor.com"
    WEBSITE = "Website"
    REFERRAL = "Referral"
    ORGANIC = "Organic"
    WEBHOOK = "Webhook"
    OTHER = "Other"


class LeadPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    HOT = "hot"


class MeetingStatus(str, enum.Enum):
    """Meeting status enum."""
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    MISSED = "Missed"


class PropertyStatus(str, enum.Enum):
    AVAILABLE = "Available"
    PENDING = "Pending"
    SOLD = "Sold"
    OFF_MARKET = "Off Market"


class PropertyType(str, enum.Enum):
    HOUSE = "House"
    CONDO = "Condo"
    TOWNHOUSE = "Townhouse"
    APARTMENT = "Apartment"
    LAND = "Land"
    COMMERCIAL = "Commercial"
    OTHER = "Other"


AUTO_ASSIGNED = "Auto-assigned"

DEFAULT_WORKING_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]


class DBLead(Base):
    """Lead database model. Email is stored lower-cased, so the unique index is case-insensitive."""
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20))
    status = _enum_column(LeadStatus, default=LeadStatus.NEW, nullable=False, index=True)
    source = _enum_column(LeadSource, default=LeadSource.WEBSITE, nullable=False)
    assigned_agent = Column(String(255), nullable=False, default=AUTO_ASSIGNED, index=True)

    budget = Column(Integer)
    property_type_preference = Column(String(100))
    timeline = Column(String(100))
    notes = Column(Text)
    score = Column(Integer)
    engagement_score = Column(Integer)
    priority = _enum_column(LeadPriority, nullable=True)

    # Webhook metadata
    external_id = Column(String(255))
    source_system = Column(String(100))

    last_contacted_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def days_since_last_contact(self) -> int:
        if not self.last_contacted_at:
            return 0
        return (utcnow() - self.last_contacted_at).days

    def touch_contacted(self):
        self.last_contacted_at = utcnow()


class DBAgent(Base):
    """Agent database model."""
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50))

    # Google Calendar integration; calendar_id is NULL when not connected.
    calendar_id = Column(String(255), nullable=True, index=True)
    google_access_token = Column(Text)
    google_refresh_token = Column(Text)
    google_token_expiry = Column(DateTime)

    # Availability preferences
    working_days = Column(JSON, default=lambda: list(DEFAULT_WORKING_DAYS))
    working_hours_start = Column(String(5), default="09:00")
    working_hours_end = Column(String(5), default="17:00")
    timezone = Column(String(64), default="America/New_York")
    meeting_duration = Column(Integer, default=60)  # minutes, 15..240
    buffer_time = Column(Integer, default=15)  # minutes between meetings, 0..60

    # Performance metrics
    total_meetings = Column(Integer, default=0, nullable=False)
    completed_meetings = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, index=True)
    last_active = Column(DateTime, default=utcnow)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def success_rate(self) -> int:
        if not self.total_meetings:
            return 0
        return round((self.completed_meetings or 0) / self.total_meetings * 100)

    @property
    def is_bookable(self) -> bool:
        return bool(self.is_active and self.calendar_id)


class DBMeeting(Base):
    """Meeting database model.

    lead_name, property_address and assigned_to are snapshots copied at
    booking time, not references.
    """
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    lead_name = Column(String(255), nullable=False, index=True)
    property_address = Column(String(255), nullable=False)
    date_time = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, default=60)
    status = _enum_column(MeetingStatus, default=MeetingStatus.SCHEDULED, nullable=False, index=True)
    assigned_to = Column(String(255), nullable=False, index=True)
    notes = Column(Text)

    calendar_event_id = Column(String(255), nullable=True)
    calendar_link = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def end_time(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration_minutes or 60)


class DBProperty(Base):
    """Property listing."""
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String(200), nullable=False, index=True)
    price = Column(Float, nullable=False, index=True)
    bedrooms = Column(Integer)
    bathrooms = Column(Float)
    sqft = Column(Integer)
    media = Column(JSON, default=list)
    image_url = Column(String(500))
    description = Column(Text)
    property_type = _enum_column(PropertyType, default=PropertyType.HOUSE, nullable=False, index=True)
    status = _enum_column(PropertyStatus, default=PropertyStatus.AVAILABLE, nullable=False, index=True)
    year_built = Column(Integer)
    features = Column(JSON, default=list)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def price_per_sqft(self):
        if self.sqft and self.sqft > 0:
            return round(self.price / self.sqft, 2)
        return None
