"""Tests for the booking orchestrator."""

from datetime import datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import IntegrityError

from realtyflow.booking import BookingOrchestrator, BookingOutcome
from realtyflow.db_models import AUTO_ASSIGNED, DBAgent, DBLead, DBMeeting, LeadStatus, MeetingStatus
from realtyflow.errors import Conflict, InvalidInput, NotFound, ServerError
from realtyflow.models import BookingRequest
from realtyflow.timeutils import from_utc_naive

NY = ZoneInfo("America/New_York")


def visit(**overrides):
    data = {"name": "Alice", "email": "alice@x.com", "phone": "+15551230000", "property_id": 1}
    data.update(overrides)
    return BookingRequest(**data)


def test_books_first_window_of_the_day(db, orchestrator, calendar, notifier, make_agent, make_property):
    agent = make_agent(name="Jane")
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.FULLY_BOOKED
    assert result.agent.id == agent.id
    assert from_utc_naive(result.meeting.date_time) == datetime(2030, 1, 7, 9, 0, tzinfo=NY)
    assert result.meeting.status == MeetingStatus.SCHEDULED
    assert result.meeting.assigned_to == "Jane"
    assert result.meeting.lead_name == "Alice"
    assert result.meeting.property_address == prop.address
    assert result.meeting.notes == "Auto-booked via website form."
    assert result.lead.assigned_agent == "Jane"
    assert result.lead.status == LeadStatus.NEW
    assert result.calendar_link == "https://calendar.example.com/event/evt-1"

    db.refresh(agent)
    assert agent.total_meetings == 1

    agent_id, details = calendar.reserved[0]
    assert agent_id == agent.id
    assert details.title == f"Property Viewing - {prop.address}"
    assert {a["email"] for a in details.attendees} == {"alice@x.com", agent.email}

    assert len(notifier.confirmations) == 1
    assert notifier.confirmations[0].lead_email == "alice@x.com"


def test_preferred_time_honoured(orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()

    result = orchestrator.book(
        visit(property_id=prop.id, preferred_date_time="2030-01-08T14:00:00", timezone="America/New_York")
    )

    assert from_utc_naive(result.meeting.date_time) == datetime(2030, 1, 8, 14, 0, tzinfo=NY)


def test_preferred_time_in_the_past_falls_back_to_next_slot(orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id, preferred_date_time="2029-12-01T10:00:00Z"))

    assert result.booked
    assert from_utc_naive(result.meeting.date_time) == datetime(2030, 1, 7, 9, 0, tzinfo=NY)


def test_notes_are_appended_to_meeting_notes(orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id, notes="Prefers mornings"))

    assert result.meeting.notes == "Auto-booked via website form. Prefers mornings"


@pytest.mark.parametrize("missing", ["name", "email", "property_id"])
def test_missing_required_field_is_invalid_and_writes_nothing(db, orchestrator, make_property, missing):
    make_property()

    with pytest.raises(InvalidInput) as exc:
        orchestrator.book(visit(**{missing: None}))

    assert exc.value.message == "Name, email, and property ID are required"
    assert db.query(DBLead).count() == 0


def test_unparseable_preferred_time_is_invalid(db, orchestrator, make_property):
    prop = make_property()

    with pytest.raises(InvalidInput):
        orchestrator.book(visit(property_id=prop.id, preferred_date_time="next tuesday-ish"))

    assert db.query(DBLead).count() == 0


def test_missing_property_creates_no_lead(db, orchestrator, make_agent):
    make_agent()

    with pytest.raises(NotFound):
        orchestrator.book(visit(property_id=999))

    assert db.query(DBLead).count() == 0
    assert db.query(DBMeeting).count() == 0


def test_duplicate_email_differing_in_case_conflicts(db, orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()
    orchestrator.book(visit(property_id=prop.id, email="Bob@X.com", name="Bob"))

    with pytest.raises(Conflict) as exc:
        orchestrator.book(visit(property_id=prop.id, email="bob@x.COM", name="Bobby"))

    assert exc.value.extra["existingLead"]["name"] == "Bob"
    assert db.query(DBLead).count() == 1
    assert db.query(DBMeeting).count() == 1


def test_no_bookable_agents_keeps_lead_only(db, orchestrator, notifier, make_agent, make_property):
    make_agent(is_active=False)
    make_agent(calendar_id=None)
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.LEAD_ONLY
    assert result.message == "Lead created successfully. No agents currently available for booking."
    lead = db.query(DBLead).one()
    assert lead.assigned_agent == AUTO_ASSIGNED
    assert db.query(DBMeeting).count() == 0
    assert notifier.confirmations == []


def test_no_free_window_keeps_lead_only(db, orchestrator, calendar, clock, make_agent, make_property):
    agent = make_agent()
    calendar.mark_busy(agent, clock(), clock() + timedelta(days=30))
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.LEAD_ONLY
    assert result.message == "Lead created successfully. No available time slots found."
    assert db.query(DBLead).count() == 1
    assert db.query(DBMeeting).count() == 0


def test_reservation_failure_still_books(db, orchestrator, calendar, make_agent, make_property):
    make_agent()
    prop = make_property()
    calendar.fail_reserve = True

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.FULLY_BOOKED
    meeting = db.query(DBMeeting).one()
    assert meeting.calendar_event_id is None
    assert meeting.calendar_link is None


def test_notification_failure_does_not_change_result(db, orchestrator, notifier, make_agent, make_property):
    make_agent()
    prop = make_property()
    notifier.fail = True

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.FULLY_BOOKED
    assert db.query(DBMeeting).count() == 1


def test_notifications_are_deferred_when_scheduler_given(orchestrator, notifier, make_agent, make_property):
    make_agent()
    prop = make_property()
    deferred = []

    orchestrator.book(visit(property_id=prop.id), defer=lambda fn, *args: deferred.append((fn, args)))

    assert notifier.confirmations == []
    fn, args = deferred[0]
    fn(*args)
    assert len(notifier.confirmations) == 1


def test_unexpected_failure_rolls_back_everything(db, orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()

    with patch("realtyflow.booking.MeetingService.create_meeting", side_effect=RuntimeError("disk full")):
        with pytest.raises(ServerError):
            orchestrator.book(visit(property_id=prop.id))

    assert db.query(DBLead).count() == 0
    assert db.query(DBMeeting).count() == 0
    assert db.query(DBAgent).one().total_meetings == 0


def test_recheck_detects_window_taken_after_selection(db, oracle, calendar, notifier, clock, make_agent, make_property):
    make_agent()
    prop = make_property()
    orchestrator = BookingOrchestrator(db, oracle, calendar, notifier, clock=clock, recheck=True)

    calls = {"n": 0}
    real_is_free = oracle.is_free

    def is_free_then_busy(agent, start, end):
        calls["n"] += 1
        # Free while selecting, gone by the time the meeting is written.
        return real_is_free(agent, start, end) if calls["n"] == 1 else False

    with patch.object(oracle, "is_free", side_effect=is_free_then_busy):
        result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.LEAD_ONLY
    assert db.query(DBMeeting).count() == 0
    assert db.query(DBLead).one().assigned_agent == AUTO_ASSIGNED
    assert db.query(DBAgent).one().total_meetings == 0


def test_second_booking_avoids_first_meeting(orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()

    first = orchestrator.book(visit(property_id=prop.id))
    second = orchestrator.book(visit(property_id=prop.id, email="carol@x.com", name="Carol"))

    assert from_utc_naive(first.meeting.date_time) == datetime(2030, 1, 7, 9, 0, tzinfo=NY)
    assert from_utc_naive(second.meeting.date_time) == datetime(2030, 1, 7, 10, 15, tzinfo=NY)


def test_available_slots_across_agents_sorted(orchestrator, calendar, make_agent, make_property):
    jane = make_agent(name="Jane")
    make_agent(name="Sam", working_hours_start="10:00", working_hours_end="12:00")
    calendar.mark_busy(jane, datetime(2030, 1, 7, 9, 0, tzinfo=NY), datetime(2030, 1, 7, 12, 0, tzinfo=NY))
    prop = make_property()

    slots = orchestrator.available_slots(prop.id, "2030-01-07")

    starts = [(s["start"].strftime("%H:%M"), s["agent"]["name"]) for s in slots]
    assert starts[:2] == [("10:00", "Sam"), ("12:45", "Jane")]
    assert starts == sorted(starts, key=lambda pair: pair[0])


def test_available_slots_requires_property_and_date(orchestrator, make_property):
    with pytest.raises(InvalidInput):
        orchestrator.available_slots(None, "2030-01-07")
    with pytest.raises(InvalidInput):
        orchestrator.available_slots(1, None)
    with pytest.raises(NotFound):
        orchestrator.available_slots(42, "2030-01-07")


def test_stats_count_the_clock_month_only(db, orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()
    current = orchestrator.book(visit(property_id=prop.id)).lead
    current.created_at = datetime(2030, 1, 3, 12, 0)
    old = orchestrator.book(visit(property_id=prop.id, email="old@x.com", name="Old")).lead
    old.created_at = datetime(2029, 12, 20, 12, 0)
    db.add(DBMeeting(
        lead_name="Alice", property_address=prop.address, assigned_to="Jane Doe",
        date_time=datetime(2030, 2, 3, 15, 0),
    ))
    db.commit()

    stats = orchestrator.stats()

    assert stats["totalLeads"] == 2
    assert stats["newLeadsThisMonth"] == 1
    assert stats["meetingsThisMonth"] == 2
    assert stats["availableAgents"] == 1
    assert stats["completedMeetingsThisMonth"] == 0


def test_lead_only_result_exposes_listing(orchestrator, make_property):
    prop = make_property()

    result = orchestrator.book(visit(property_id=prop.id))

    assert result.outcome == BookingOutcome.LEAD_ONLY
    assert result.booked is False
    assert result.calendar_link is None
    assert result.listing.id == prop.id


def test_constraint_failure_other_than_email_is_server_error(db, orchestrator, make_agent, make_property):
    make_agent()
    prop = make_property()
    error = IntegrityError("INSERT INTO meetings", {}, Exception("NOT NULL constraint failed: meetings.lead_name"))

    with patch("realtyflow.booking.MeetingService.create_meeting", side_effect=error):
        with pytest.raises(ServerError):
            orchestrator.book(visit(property_id=prop.id))

    assert db.query(DBLead).count() == 0
    assert db.query(DBMeeting).count() == 0
