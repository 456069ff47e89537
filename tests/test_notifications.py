"""Tests for notification fan-out."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from realtyflow.config import Config, config
from realtyflow.db_models import DBLead, DBMeeting, MeetingStatus
from realtyflow.notifications import FAILED, SENT, SKIPPED, BookingConfirmation, NotificationService
from realtyflow.timeutils import utcnow


@pytest.fixture
def booking():
    return BookingConfirmation(
        meeting_id=1,
        start=datetime(2030, 1, 7, 14, 0, tzinfo=timezone.utc),
        duration_minutes=60,
        lead_name="Alice",
        lead_email="alice@x.com",
        lead_phone="+15551230000",
        agent_id=3,
        agent_name="Jane",
        agent_email="jane@realtyflow.test",
        agent_phone="+15550001111",
        agent_timezone="America/New_York",
        property_address="12 Elm St",
        calendar_link="https://calendar.example.com/event/evt-1",
    )


@pytest.fixture
def smtp_configured(monkeypatch):
    for key, value in {"SMTP_HOST": "smtp.test", "SMTP_USER": "mailer", "SMTP_PASSWORD": "pw"}.items():
        monkeypatch.setattr(Config, key, value)
        monkeypatch.setattr(config, key, value)


@pytest.fixture
def twilio_configured(monkeypatch):
    for key, value in {
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "token",
        "TWILIO_PHONE_NUMBER": "+15550009999",
    }.items():
        monkeypatch.setattr(Config, key, value)
        monkeypatch.setattr(config, key, value)


def test_display_time_uses_agent_timezone(booking):
    assert booking.display_time.startswith("Monday, January 07, 2030 at 09:00 AM")


def test_channels_are_skipped_when_not_configured(booking):
    realtime = MagicMock()
    service = NotificationService(realtime=realtime)

    results = service.booking_confirmed(booking)

    assert results["lead_email"] == SKIPPED
    assert results["agent_email"] == SKIPPED
    assert results["sms"] == SKIPPED
    assert results["agent_push"] == SENT
    realtime.notify_user.assert_called_once()
    assert realtime.notify_user.call_args.args[:2] == (3, "newMeeting")
    realtime.notify_user_type.assert_called_once()
    assert realtime.notify_user_type.call_args.args[:2] == ("admin", "newBooking")


def test_email_goes_through_smtp(booking, smtp_configured):
    smtp_factory = MagicMock()
    service = NotificationService(realtime=MagicMock(), smtp_factory=smtp_factory)

    assert service.send_meeting_confirmation(booking) == SENT

    smtp_factory.assert_called_once_with("smtp.test", config.SMTP_PORT, timeout=30)
    server = smtp_factory.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "pw")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "alice@x.com"
    assert message["Subject"] == "Meeting Confirmed: Property Viewing - 12 Elm St"


def test_sms_goes_through_twilio(booking, twilio_configured):
    twilio = MagicMock()
    twilio.messages.create.return_value.sid = "SM1"
    service = NotificationService(realtime=MagicMock(), twilio_client=twilio)

    assert service.send_sms(booking.lead_phone, "hello") == SENT
    twilio.messages.create.assert_called_once_with(body="hello", from_="+15550009999", to="+15551230000")


def test_sms_without_phone_is_skipped(twilio_configured):
    twilio = MagicMock()
    service = NotificationService(realtime=MagicMock(), twilio_client=twilio)

    assert service.send_sms(None, "hello") == SKIPPED
    twilio.messages.create.assert_not_called()


def test_one_failing_channel_does_not_stop_the_others(booking, smtp_configured, twilio_configured):
    smtp_factory = MagicMock(side_effect=OSError("connection refused"))
    twilio = MagicMock()
    realtime = MagicMock()
    realtime.notify_user_type.side_effect = RuntimeError("loop closed")
    service = NotificationService(realtime=realtime, twilio_client=twilio, smtp_factory=smtp_factory)

    results = service.booking_confirmed(booking)

    assert results["lead_email"] == FAILED
    assert results["agent_email"] == FAILED
    assert results["sms"] == SENT
    assert results["agent_push"] == SENT
    assert results["admin_push"] == FAILED


def test_new_lead_pushes_to_admins():
    realtime = MagicMock()
    service = NotificationService(realtime=realtime)

    assert service.new_lead({"id": 9}) == SENT
    realtime.notify_user_type.assert_called_once_with("admin", "newLead", {"id": 9})


def test_reminders_cover_meetings_in_the_window(db, make_agent, smtp_configured):
    make_agent(name="Jane")
    db.add(DBLead(name="Alice", email="alice@x.com", phone="+15551230000"))
    soon = DBMeeting(
        lead_name="Alice", property_address="12 Elm St", assigned_to="Jane",
        date_time=utcnow() + timedelta(minutes=32),
    )
    later = DBMeeting(
        lead_name="Alice", property_address="12 Elm St", assigned_to="Jane",
        date_time=utcnow() + timedelta(hours=3),
    )
    missed = DBMeeting(
        lead_name="Alice", property_address="12 Elm St", assigned_to="Jane",
        date_time=utcnow() + timedelta(minutes=33), status=MeetingStatus.MISSED,
    )
    db.add_all([soon, later, missed])
    db.commit()

    smtp_factory = MagicMock()
    service = NotificationService(realtime=MagicMock(), smtp_factory=smtp_factory)

    results = service.send_reminders_for_upcoming(db, minutes_ahead=30)

    assert [r["meeting_id"] for r in results] == [soon.id]
    assert results[0]["email"] == SENT
    assert results[0]["sms"] == SKIPPED
    server = smtp_factory.return_value.__enter__.return_value
    assert server.send_message.call_args.args[0]["Subject"] == "Reminder: Property Viewing in 30 minutes"


def test_reminder_skips_meeting_without_matching_lead(db, make_agent):
    make_agent(name="Jane")
    db.add(DBMeeting(
        lead_name="Ghost", property_address="12 Elm St", assigned_to="Jane",
        date_time=utcnow() + timedelta(minutes=31),
    ))
    db.commit()

    assert NotificationService(realtime=MagicMock()).send_reminders_for_upcoming(db, minutes_ahead=30) == []
