from fastapi import APIRouter

router = APIRouter(tags=["Core"])


# GET /
# Gets: nothing
# Returns: basic API metadata and a map of key endpoints
# Example:
#   curl http://localhost:8000/
@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "RealtyFlow API - lead management and automated property viewings",
        "version": "1.0.0",
        "endpoints": {
            "request_visit": "/api/booking/request-visit",
            "available_slots": "/api/booking/available-slots",
            "booking_stats": "/api/booking/stats",
            "leads": "/api/leads",
            "lead_webhook": "/api/leads/webhook",
            "properties": "/api/properties",
            "meetings": "/api/meetings",
            "agents": "/api/agents",
            "realtime": "/ws",
        },
        "features": [
            "Automated agent matching",
            "Google Calendar availability",
            "Email and SMS confirmations",
            "Real-time dashboard events",
        ],
    }
