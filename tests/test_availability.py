"""Tests for the availability oracle."""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from realtyflow.availability import AvailabilityOracle
from realtyflow.db_models import DBMeeting, MeetingStatus
from realtyflow.timeutils import to_utc_naive

NY = ZoneInfo("America/New_York")
TEN_AM = datetime(2030, 1, 7, 10, 0, tzinfo=NY)


def add_meeting(db, agent, start, minutes=60, status=MeetingStatus.SCHEDULED):
    meeting = DBMeeting(
        lead_name="Existing Client",
        property_address="1 Main St",
        date_time=to_utc_naive(start),
        duration_minutes=minutes,
        status=status,
        assigned_to=agent.name,
    )
    db.add(meeting)
    db.commit()
    return meeting


def test_free_when_provider_reports_no_busy_time(oracle, make_agent):
    agent = make_agent()
    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is True


def test_busy_when_provider_reports_busy_time(oracle, calendar, make_agent):
    agent = make_agent()
    calendar.mark_busy(agent, TEN_AM + timedelta(minutes=30), TEN_AM + timedelta(minutes=90))

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is False


def test_provider_failure_is_fail_open_by_default(oracle, calendar, make_agent):
    agent = make_agent()
    calendar.fail_checks = True

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is True


def test_provider_failure_reads_as_busy_when_fail_closed(db, calendar, clock, make_agent):
    agent = make_agent()
    calendar.fail_checks = True
    oracle = AvailabilityOracle(db, calendar, fail_open=False, clock=clock)

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is False


def test_agent_without_calendar_follows_fail_policy(db, calendar, clock, make_agent):
    agent = make_agent(calendar_id=None)

    assert AvailabilityOracle(db, calendar, fail_open=True, clock=clock).is_free(
        agent, TEN_AM, TEN_AM + timedelta(hours=1)
    ) is True
    assert AvailabilityOracle(db, calendar, fail_open=False, clock=clock).is_free(
        agent, TEN_AM, TEN_AM + timedelta(hours=1)
    ) is False
    assert calendar.checks == []


def test_scheduled_meeting_in_database_blocks_window(db, oracle, calendar, make_agent):
    agent = make_agent()
    add_meeting(db, agent, TEN_AM - timedelta(minutes=30))

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is False
    # The database answer is enough; the provider is not consulted.
    assert calendar.checks == []


def test_meeting_ending_at_window_start_does_not_block(db, oracle, make_agent):
    agent = make_agent()
    add_meeting(db, agent, TEN_AM - timedelta(hours=1))

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is True


def test_completed_or_other_agents_meetings_do_not_block(db, oracle, make_agent):
    agent = make_agent()
    other = make_agent()
    add_meeting(db, agent, TEN_AM, status=MeetingStatus.COMPLETED)
    add_meeting(db, other, TEN_AM)

    assert oracle.is_free(agent, TEN_AM, TEN_AM + timedelta(hours=1)) is True


def test_list_free_skips_busy_candidates_and_honours_limit(oracle, calendar, make_agent):
    agent = make_agent()
    calendar.mark_busy(agent, datetime(2030, 1, 7, 9, 0, tzinfo=NY), datetime(2030, 1, 7, 11, 0, tzinfo=NY))

    free = oracle.list_free(agent, date(2030, 1, 7))
    assert [s.start.strftime("%H:%M") for s in free] == ["11:30", "12:45", "14:00", "15:15"]

    assert len(oracle.list_free(agent, date(2030, 1, 7), limit=2)) == 2


def test_list_free_not_before(oracle, make_agent):
    agent = make_agent()
    cutoff = datetime(2030, 1, 7, 12, 0, tzinfo=NY)

    free = oracle.list_free(agent, date(2030, 1, 7), not_before=cutoff)

    assert all(s.start >= cutoff for s in free)
    assert free[0].start.strftime("%H:%M") == "12:45"


def test_next_free_starts_after_now(oracle, clock, make_agent):
    agent = make_agent()

    slot = oracle.next_free(agent, clock())

    # The clock reads 08:00 in New York; the first window opens the day.
    assert slot.start == datetime(2030, 1, 7, 9, 0, tzinfo=NY)


def test_next_free_none_when_fully_busy(oracle, calendar, clock, make_agent):
    agent = make_agent()
    calendar.mark_busy(agent, clock(), clock() + timedelta(days=30))

    assert oracle.next_free(agent, clock(), lookahead_days=7) is None
