"""
Health check and monitoring endpoints for production.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from realtyflow.config import config
from realtyflow.database import get_db
from realtyflow.logging_config import logger
from realtyflow.realtime import get_registry

router = APIRouter(tags=["Health & Monitoring"])

VERSION = "1.0.0"


# GET /health
# Gets: nothing
# Returns: {status, service, version}
# Example:
#   curl http://localhost:8000/health
@router.get("/health")
async def health_check():
    """
    Basic health check - returns 200 if service is running.
    Use this for basic liveness probes.
    """
    return {
        "status": "healthy",
        "service": "realtyflow",
        "version": VERSION
    }


# GET /health/ready
# Gets: nothing
# Returns: dependency readiness checks; 503 when the database is unreachable
# Example:
#   curl http://localhost:8000/health/ready
@router.get("/health/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - verifies the database answers.
    Use this for Kubernetes readiness probes.

    Calendar, SMTP and Twilio are optional: bookings degrade without them.
    """
    checks = {
        "database": False,
        "google_calendar": "configured" if config.has_google_oauth() else "not_configured",
        "smtp": "configured" if config.has_smtp_config() else "not_configured",
        "twilio": "configured" if config.has_twilio_config() else "not_configured",
        "ready": False
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
        logger.debug("readiness_check_database", status="ok")
    except Exception as e:
        logger.warning("readiness_check_database", status="error", error=str(e))

    checks["ready"] = checks["database"] is True

    return JSONResponse(status_code=200 if checks["ready"] else 503, content=checks)


# GET /health/info
# Gets: nothing
# Returns: service configuration summary
# Example:
#   curl http://localhost:8000/health/info
@router.get("/health/info")
async def system_info():
    """
    System information and configuration status.
    """
    return {
        "service": "realtyflow",
        "version": VERSION,
        "environment": config.ENVIRONMENT,
        "configuration": {
            "database": config.DATABASE_URL.split(":", 1)[0],
            "default_timezone": config.DEFAULT_TIMEZONE,
            "booking_lookahead_days": config.BOOKING_LOOKAHEAD_DAYS,
            "calendar_fail_open": config.CALENDAR_FAIL_OPEN,
            "debug_mode": config.DEBUG
        },
        "features": {
            "google_calendar": config.has_google_oauth(),
            "email_notifications": config.has_smtp_config(),
            "sms_notifications": config.has_twilio_config(),
            "realtime_connections": get_registry().connected_count(),
        }
    }
