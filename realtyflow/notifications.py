"""
Notification fan-out: email (SMTP), SMS (Twilio) and real-time push.

Everything here is best-effort. Each channel is attempted independently,
failures are logged and counted, and the caller gets a per-channel result
dict. Nothing raises back into the booking flow.

Notifications work from plain snapshots (`BookingConfirmation`) rather than
ORM objects because they run after the request's session is closed.
"""

import smtplib
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from realtyflow.config import config
from realtyflow.db_models import DBAgent, DBLead, DBMeeting, MeetingStatus
from realtyflow.logging_config import get_logger
from realtyflow.metrics import notifications_failed_total
from realtyflow.realtime import ConnectionRegistry, registry as default_registry
from realtyflow.timeutils import from_utc_naive, get_zone, utcnow

logger = get_logger(__name__)

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class BookingConfirmation:
    """Everything a confirmation needs, detached from the database session."""
    meeting_id: int
    start: datetime
    duration_minutes: int
    lead_name: str
    lead_email: str
    lead_phone: Optional[str]
    agent_id: int
    agent_name: str
    agent_email: str
    agent_phone: Optional[str]
    agent_timezone: str
    property_address: str
    property_price: Optional[float] = None
    calendar_link: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def build(cls, lead: DBLead, meeting: DBMeeting, agent: DBAgent, prop=None) -> "BookingConfirmation":
        return cls(
            meeting_id=meeting.id,
            start=from_utc_naive(meeting.date_time),
            duration_minutes=meeting.duration_minutes or 60,
            lead_name=lead.name,
            lead_email=lead.email,
            lead_phone=lead.phone,
            agent_id=agent.id,
            agent_name=agent.name,
            agent_email=agent.email,
            agent_phone=agent.phone,
            agent_timezone=agent.timezone or config.DEFAULT_TIMEZONE,
            property_address=meeting.property_address,
            property_price=getattr(prop, "price", None),
            calendar_link=meeting.calendar_link,
            notes=meeting.notes,
        )

    @property
    def local_start(self) -> datetime:
        return self.start.astimezone(get_zone(self.agent_timezone, config.DEFAULT_TIMEZONE))

    @property
    def display_time(self) -> str:
        return self.local_start.strftime("%A, %B %d, %Y at %I:%M %p %Z")

    def push_payload(self) -> dict:
        data = asdict(self)
        data["start"] = self.start.isoformat()
        return data


class NotificationService:
    """Email, SMS and real-time push with per-channel error isolation."""

    def __init__(
        self,
        realtime: Optional[ConnectionRegistry] = None,
        twilio_client=None,
        smtp_factory: Callable[..., Any] = smtplib.SMTP,
    ):
        self.realtime = realtime or default_registry
        self._twilio_client = twilio_client
        self.smtp_factory = smtp_factory

    # -- channels ----------------------------------------------------------

    @property
    def twilio_client(self):
        if self._twilio_client is None and config.has_twilio_config():
            from twilio.rest import Client

            self._twilio_client = Client(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)
        return self._twilio_client

    def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> str:
        if not config.has_smtp_config():
            logger.info("email_skipped", reason="smtp_not_configured", subject=subject)
            return SKIPPED

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = config.EMAIL_FROM_ADDRESS
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            with self.smtp_factory(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as server:
                server.starttls()
                server.login(config.SMTP_USER, config.SMTP_PASSWORD)
                server.send_message(msg)
        except Exception as e:
            notifications_failed_total.labels(channel="email").inc()
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            return FAILED

        logger.info("email_sent", to=to, subject=subject)
        return SENT

    def send_sms(self, to: Optional[str], body: str) -> str:
        if not to:
            return SKIPPED
        client = self.twilio_client
        if client is None:
            logger.info("sms_skipped", reason="twilio_not_configured")
            return SKIPPED

        try:
            message = client.messages.create(body=body, from_=config.TWILIO_PHONE_NUMBER, to=to)
        except Exception as e:
            notifications_failed_total.labels(channel="sms").inc()
            logger.error("sms_send_failed", to=to, error=str(e))
            return FAILED

        logger.info("sms_sent", to=to, message_sid=getattr(message, "sid", None))
        return SENT

    def push(self, target: str, event: str, data: Any, user_id=None) -> str:
        try:
            if target == "user":
                self.realtime.notify_user(user_id, event, data)
            else:
                self.realtime.notify_user_type(target, event, data)
        except Exception as e:
            notifications_failed_total.labels(channel="realtime").inc()
            logger.error("realtime_push_failed", event_name=event, error=str(e))
            return FAILED
        return SENT

    # -- messages ----------------------------------------------------------

    def send_meeting_confirmation(self, booking: BookingConfirmation) -> str:
        subject = f"Meeting Confirmed: Property Viewing - {booking.property_address}"
        link = (
            f'<p><a href="{booking.calendar_link}">View in Google Calendar</a></p>'
            if booking.calendar_link else ""
        )
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #2563eb;">Your Property Viewing is Confirmed!</h2>
            <p>Hi {booking.lead_name},</p>
            <p>Your viewing has been scheduled. Here are the details:</p>
            <ul>
                <li><strong>Property:</strong> {booking.property_address}</li>
                <li><strong>Date &amp; Time:</strong> {booking.display_time}</li>
                <li><strong>Duration:</strong> {booking.duration_minutes} minutes</li>
                <li><strong>Your Agent:</strong> {booking.agent_name}</li>
                <li><strong>Agent Email:</strong> {booking.agent_email}</li>
                <li><strong>Agent Phone:</strong> {booking.agent_phone or 'N/A'}</li>
            </ul>
            {link}
            <p>Best regards,<br>The RealtyFlow Team</p>
        </div>
        """
        return self.send_email(booking.lead_email, subject, html)

    def notify_agent_of_new_meeting(self, booking: BookingConfirmation) -> str:
        subject = f"New Meeting Scheduled: {booking.lead_name} - {booking.property_address}"
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #059669;">New Meeting Scheduled</h2>
            <p>Hi {booking.agent_name},</p>
            <p>A new property viewing has been booked for you:</p>
            <ul>
                <li><strong>Client:</strong> {booking.lead_name}</li>
                <li><strong>Email:</strong> {booking.lead_email}</li>
                <li><strong>Phone:</strong> {booking.lead_phone or 'N/A'}</li>
                <li><strong>Property:</strong> {booking.property_address}</li>
                <li><strong>Date &amp; Time:</strong> {booking.display_time}</li>
            </ul>
            <p>{booking.notes or ''}</p>
        </div>
        """
        return self.send_email(booking.agent_email, subject, html)

    def booking_confirmed(self, booking: BookingConfirmation) -> dict[str, str]:
        """Fan out a confirmed booking to every channel; never raises."""
        results = {
            "lead_email": self._guard("lead_email", self.send_meeting_confirmation, booking),
            "agent_email": self._guard("agent_email", self.notify_agent_of_new_meeting, booking),
            "sms": self._guard(
                "sms",
                self.send_sms,
                booking.lead_phone,
                f"Hi {booking.lead_name}! Your property viewing at {booking.property_address} "
                f"is confirmed for {booking.display_time}. RealtyFlow",
            ),
        }
        payload = booking.push_payload()
        results["agent_push"] = self.push("user", "newMeeting", payload, user_id=booking.agent_id)
        results["admin_push"] = self.push("admin", "newBooking", payload)

        logger.info("booking_notifications_dispatched", meeting_id=booking.meeting_id, **results)
        return results

    def new_lead(self, lead: dict) -> str:
        """Tell admin dashboards a lead arrived from an external source."""
        return self.push("admin", "newLead", lead)

    def send_meeting_reminder(self, booking: BookingConfirmation, minutes_until: int) -> dict[str, str]:
        subject = f"Reminder: Property Viewing in {minutes_until} minutes"
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #dc2626;">Meeting Reminder</h2>
            <p>Hi {booking.lead_name},</p>
            <p>Your property viewing at <strong>{booking.property_address}</strong> starts in
               {minutes_until} minutes ({booking.display_time}).</p>
            <p>Your agent {booking.agent_name} can be reached at {booking.agent_phone or booking.agent_email}.</p>
        </div>
        """
        return {
            "email": self._guard("email", self.send_email, booking.lead_email, subject, html),
            "sms": self._guard(
                "sms",
                self.send_sms,
                booking.lead_phone,
                f"Reminder: Your property viewing at {booking.property_address} starts in "
                f"{minutes_until} minutes ({booking.display_time}). RealtyFlow",
            ),
        }

    def send_reminders_for_upcoming(self, db: Session, minutes_ahead: Optional[int] = None,
                                    window_minutes: int = 5) -> list[dict]:
        """
        Remind leads of Scheduled meetings starting in
        [now + minutes_ahead, now + minutes_ahead + window_minutes).

        Meant to run every `window_minutes` (Celery beat), so each meeting
        falls into exactly one run.
        """
        minutes_ahead = config.REMINDER_MINUTES if minutes_ahead is None else minutes_ahead
        window_start = utcnow() + timedelta(minutes=minutes_ahead)
        window_end = window_start + timedelta(minutes=window_minutes)
        meetings = (
            db.query(DBMeeting)
            .filter(
                DBMeeting.status == MeetingStatus.SCHEDULED,
                DBMeeting.date_time >= window_start,
                DBMeeting.date_time < window_end,
            )
            .order_by(DBMeeting.date_time)
            .all()
        )

        results = []
        for meeting in meetings:
            # Meetings hold name snapshots, not foreign keys.
            lead = db.query(DBLead).filter(DBLead.name == meeting.lead_name).order_by(DBLead.id.desc()).first()
            agent = db.query(DBAgent).filter(DBAgent.name == meeting.assigned_to).first()
            if lead is None or agent is None:
                logger.warning("reminder_skipped", meeting_id=meeting.id, reason="lead_or_agent_missing")
                continue
            booking = BookingConfirmation.build(lead, meeting, agent)
            outcome = self.send_meeting_reminder(booking, minutes_ahead)
            results.append({"meeting_id": meeting.id, "lead_email": lead.email, **outcome})

        logger.info("meeting_reminders_sent", count=len(results))
        return results

    def _guard(self, channel: str, fn, *args) -> str:
        try:
            return fn(*args)
        except Exception as e:
            notifications_failed_total.labels(channel=channel).inc()
            logger.error("notification_failed", channel=channel, error=str(e))
            return FAILED
