from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse

from realtyflow.booking import BookingOrchestrator, BookingResult
from realtyflow.dependencies import get_orchestrator
from realtyflow.models import BookingRequest, LeadOut, SlotOut, dump
from realtyflow.timeutils import from_utc_naive

router = APIRouter(prefix="/api/booking", tags=["Booking"])


def booking_payload(result: BookingResult) -> dict:
    """Response body for a booking outcome."""
    data = {"lead": dump(LeadOut, result.lead), "bookingStatus": result.outcome.value}
    if result.booked:
        meeting, agent, prop = result.meeting, result.agent, result.listing
        data["meeting"] = {
            "id": meeting.id,
            "dateTime": from_utc_naive(meeting.date_time).isoformat(),
            "status": meeting.status.value,
            "calendarLink": meeting.calendar_link,
        }
        data["agent"] = {"name": agent.name, "email": agent.email, "phone": agent.phone}
        data["property"] = {"address": prop.address, "price": prop.price}
    return {"success": True, "message": result.message, "data": data}


# POST /api/booking/request-visit
# Gets: JSON body {name, email, phone?, propertyId, preferredDateTime?, timezone?, notes?, ...}
# Returns: 201 {success, message, data: {lead, meeting, agent, property, bookingStatus: "fully_booked"}}
#          200 {success, message, data: {lead, bookingStatus: "lead_only"}} when nothing could be booked
# Example:
#   curl -X POST http://localhost:8000/api/booking/request-visit \
#     -H 'Content-Type: application/json' \
#     -d '{"name": "Dana Levi", "email": "dana@example.com", "propertyId": 1, "preferredDateTime": "2030-01-07T10:00:00"}'
@router.post("/request-visit")
def request_visit(
    payload: BookingRequest,
    background_tasks: BackgroundTasks,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Create a lead and book the first available agent."""
    result = orchestrator.book(payload, defer=background_tasks.add_task)
    return JSONResponse(status_code=201 if result.booked else 200, content=booking_payload(result))


# GET /api/booking/available-slots
# Gets: query params propertyId, date (YYYY-MM-DD), timezone?
# Returns: {success, count, data: [{start, end, agent: {id, name, email}}]}
# Example:
#   curl 'http://localhost:8000/api/booking/available-slots?propertyId=1&date=2030-01-07'
@router.get("/available-slots")
def available_slots(
    property_id: Optional[int] = Query(None, alias="propertyId"),
    date: Optional[str] = Query(None),
    timezone: Optional[str] = Query(None),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Free windows across all bookable agents for a property and day."""
    slots = orchestrator.available_slots(property_id, date, timezone)
    data = [SlotOut.model_validate(s).model_dump(by_alias=True, mode="json") for s in slots]
    body = {"success": True, "count": len(data), "data": data}
    if not data:
        body["message"] = "No available time slots found"
    return body


# GET /api/booking/stats
# Gets: nothing
# Returns: {success, data: {totalLeads, newLeadsThisMonth, meetingsThisMonth,
#                           completedMeetingsThisMonth, availableAgents, conversionRate}}
# Example:
#   curl http://localhost:8000/api/booking/stats
@router.get("/stats")
def booking_stats(orchestrator: BookingOrchestrator = Depends(get_orchestrator)):
    """Lead and meeting totals for the current month."""
    return {"success": True, "data": orchestrator.stats()}
