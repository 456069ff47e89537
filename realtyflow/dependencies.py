"""
FastAPI dependency providers.

The booking engine's collaborators are built per request from these
providers; tests swap them out with `app.dependency_overrides`.
"""

from datetime import datetime
from typing import Callable, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from realtyflow.availability import AvailabilityOracle
from realtyflow.booking import BookingOrchestrator
from realtyflow.calendar_provider import CalendarProvider, GoogleCalendarProvider
from realtyflow.database import get_db
from realtyflow.notifications import NotificationService
from realtyflow.realtime import get_registry
from realtyflow.timeutils import aware_now


def get_calendar_provider() -> Generator[CalendarProvider, None, None]:
    provider = GoogleCalendarProvider()
    try:
        yield provider
    finally:
        provider.close()


def get_notifier(registry=Depends(get_registry)) -> NotificationService:
    return NotificationService(realtime=registry)


def get_clock() -> Callable[[], datetime]:
    return aware_now


def get_oracle(
    db: Session = Depends(get_db),
    provider: CalendarProvider = Depends(get_calendar_provider),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AvailabilityOracle:
    return AvailabilityOracle(db, provider, clock=clock)


def get_orchestrator(
    db: Session = Depends(get_db),
    oracle: AvailabilityOracle = Depends(get_oracle),
    provider: CalendarProvider = Depends(get_calendar_provider),
    notifier: NotificationService = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingOrchestrator:
    return BookingOrchestrator(db, oracle, provider, notifier, clock=clock)
