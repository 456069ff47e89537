"""
Async job processing with Celery.
For periodic work like meeting reminders.
"""

from celery import Celery
from realtyflow.config import config

# Initialize Celery with Redis broker
celery_app = Celery(
    'realtyflow',
    broker=config.REDIS_URL,
    backend=config.REDIS_URL
)

REMINDER_INTERVAL_MINUTES = 5

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    beat_schedule={
        'meeting-reminders': {
            'task': 'send_meeting_reminders',
            'schedule': REMINDER_INTERVAL_MINUTES * 60.0,
        },
    },
)


@celery_app.task(name='send_meeting_reminders')
def send_meeting_reminders_task(minutes_ahead: int = None):
    """
    Send email/SMS reminders for Scheduled meetings starting soon.

    Args:
        minutes_ahead: How far ahead to look (default: REMINDER_MINUTES)

    Returns:
        dict: Number of reminders sent and per-meeting channel results
    """
    from realtyflow.database import SessionLocal
    from realtyflow.logging_config import logger
    from realtyflow.notifications import NotificationService

    db = SessionLocal()
    try:
        results = NotificationService().send_reminders_for_upcoming(
            db,
            minutes_ahead=minutes_ahead,
            window_minutes=REMINDER_INTERVAL_MINUTES,
        )
        return {"status": "success", "sent": len(results), "results": results}

    except Exception as e:
        logger.error("meeting_reminders_failed", error=str(e))
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
