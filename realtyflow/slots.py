"""
Slot generation from an agent's working calendar.

Candidates are produced in the agent's own timezone: working hours are a
local time-of-day, so "09:00" means 09:00 wherever the agent works.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from realtyflow.timeutils import get_zone, parse_hhmm

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class Slot:
    """A candidate meeting window. Never persisted."""
    start: datetime
    end: datetime
    agent_id: Optional[int] = None


@dataclass(frozen=True)
class WorkingCalendar:
    """The subset of an agent's settings the generator needs."""
    working_days: frozenset = field(default_factory=lambda: frozenset(WEEKDAYS[:5]))
    start: Optional[time] = time(9, 0)
    end: Optional[time] = time(17, 0)
    meeting_duration: int = 60
    buffer_time: int = 15
    zone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    agent_id: Optional[int] = None

    @classmethod
    def from_agent(cls, agent, default_timezone: str = "UTC") -> "WorkingCalendar":
        days = agent.working_days or []
        return cls(
            working_days=frozenset(str(d).strip().lower() for d in days),
            start=parse_hhmm(agent.working_hours_start),
            end=parse_hhmm(agent.working_hours_end),
            meeting_duration=agent.meeting_duration or 60,
            buffer_time=agent.buffer_time or 0,
            zone=get_zone(agent.timezone, default_timezone),
            agent_id=agent.id,
        )

    def works_on(self, day: date) -> bool:
        return WEEKDAYS[day.weekday()] in self.working_days


def generate_candidates(cal: WorkingCalendar, day: date, duration: Optional[int] = None) -> Iterator[Slot]:
    """
    Yield the candidate windows for one day, in order.

    Windows are `duration` minutes long (the agent's meeting duration by
    default) and start every duration + buffer minutes from the start of the
    working day. A window is only emitted if it ends by the end of the
    working day. Non-working days and broken working hours yield nothing.
    """
    length = duration if duration is not None else cal.meeting_duration
    if not cal.works_on(day) or cal.start is None or cal.end is None:
        return
    if length <= 0 or cal.end <= cal.start:
        return

    step = timedelta(minutes=length + max(cal.buffer_time, 0))
    window = timedelta(minutes=length)

    cursor = datetime.combine(day, cal.start, tzinfo=cal.zone)
    day_end = datetime.combine(day, cal.end, tzinfo=cal.zone)

    while cursor + window <= day_end:
        yield Slot(start=cursor, end=cursor + window, agent_id=cal.agent_id)
        cursor += step


def scan_forward(
    cal: WorkingCalendar,
    start: datetime,
    now: datetime,
    lookahead_days: int = 7,
    limit: Optional[int] = None,
    duration: Optional[int] = None,
) -> Iterator[Slot]:
    """
    Yield the next candidate windows starting from `start`'s date.

    Only windows starting strictly after `now` and not before `start` are
    emitted. Stops after `lookahead_days` calendar days or `limit` windows.
    """
    local_day = start.astimezone(cal.zone).date() if start.tzinfo else start.date()
    emitted = 0

    for offset in range(max(lookahead_days, 0)):
        day = local_day + timedelta(days=offset)
        for slot in generate_candidates(cal, day, duration):
            if slot.start <= now or slot.start < start:
                continue
            yield slot
            emitted += 1
            if limit is not None and emitted >= limit:
                return
