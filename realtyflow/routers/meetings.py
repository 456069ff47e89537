from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from realtyflow.database import get_db
from realtyflow.db_models import MeetingStatus
from realtyflow.models import MeetingCreate, MeetingOut, MeetingStatusUpdate, MeetingUpdate, dump, page
from realtyflow.services import MeetingService

router = APIRouter(prefix="/api/meetings", tags=["Meetings"])


# GET /api/meetings
# Gets: query params status?, assignedTo?, leadName?, startDate?, endDate?, sortBy?, sortOrder?, page?, limit?
# Returns: {success, count, total, totalPages, currentPage, data: [Meeting]}
# Example:
#   curl 'http://localhost:8000/api/meetings?assignedTo=jane&status=Scheduled'
@router.get("")
async def list_meetings(
    status: Optional[MeetingStatus] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    lead_name: Optional[str] = Query(None, alias="leadName"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    sort_by: str = Query("dateTime", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    page_number: int = Query(1, alias="page", ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List meetings with filters and pagination."""
    meetings, total = MeetingService.list_meetings(
        db, status=status, assigned_to=assigned_to, lead_name=lead_name, start_date=start_date,
        end_date=end_date, sort_by=sort_by, sort_order=sort_order, page=page_number, limit=limit,
    )
    return page([dump(MeetingOut, m) for m in meetings], total, page_number, limit)


# GET /api/meetings/upcoming
# Gets: query param hours (default 24)
# Returns: {success, count, data: [Meeting]} Scheduled meetings starting within the window
# Example:
#   curl 'http://localhost:8000/api/meetings/upcoming?hours=48'
@router.get("/upcoming")
async def upcoming_meetings(hours: int = Query(24, ge=1, le=24 * 30), db: Session = Depends(get_db)):
    """Scheduled meetings starting within the next `hours`."""
    meetings = MeetingService.list_upcoming(db, hours)
    return {"success": True, "count": len(meetings), "data": [dump(MeetingOut, m) for m in meetings]}


# POST /api/meetings
# Gets: JSON body {leadName, propertyAddress, dateTime, assignedTo, status?, notes?, durationMinutes?}
# Returns: 201 {success, message, data: Meeting}; 409 {conflicts: [...]} when the agent is already
#          booked within an hour of dateTime
# Example:
#   curl -X POST http://localhost:8000/api/meetings -H 'Content-Type: application/json' \
#     -d '{"leadName": "Dana Levi", "propertyAddress": "12 Elm St", "dateTime": "2030-01-07T15:00:00Z", "assignedTo": "Jane Doe"}'
@router.post("", status_code=201)
async def create_meeting(payload: MeetingCreate, db: Session = Depends(get_db)):
    """Schedule a meeting manually, rejecting clashes for the same agent."""
    meeting = MeetingService.create_meeting(db, payload.model_dump())
    return {"success": True, "message": "Meeting scheduled successfully", "data": dump(MeetingOut, meeting)}


# GET /api/meetings/{meeting_id}
# Gets: path param meeting_id
# Returns: {success, data: Meeting}; 404 if unknown
# Example:
#   curl http://localhost:8000/api/meetings/1
@router.get("/{meeting_id}")
async def get_meeting(meeting_id: int, db: Session = Depends(get_db)):
    """Fetch one meeting."""
    return {"success": True, "data": dump(MeetingOut, MeetingService.require_meeting(db, meeting_id))}


# PUT /api/meetings/{meeting_id}
# Gets: path param meeting_id, JSON body with any Meeting fields
# Returns: {success, message, data: Meeting}
# Example:
#   curl -X PUT http://localhost:8000/api/meetings/1 -H 'Content-Type: application/json' -d '{"notes": "Bring keys"}'
@router.put("/{meeting_id}")
async def update_meeting(meeting_id: int, payload: MeetingUpdate, db: Session = Depends(get_db)):
    """Update a meeting's details."""
    meeting = MeetingService.update_meeting(db, meeting_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Meeting updated successfully", "data": dump(MeetingOut, meeting)}


# PATCH /api/meetings/{meeting_id}/status
# Gets: path param meeting_id, JSON body {status: Scheduled|Completed|Missed}
# Returns: {success, message, data: Meeting}
# Example:
#   curl -X PATCH http://localhost:8000/api/meetings/1/status -H 'Content-Type: application/json' \
#     -d '{"status": "Completed"}'
@router.patch("/{meeting_id}/status")
async def update_meeting_status(meeting_id: int, payload: MeetingStatusUpdate, db: Session = Depends(get_db)):
    """Change a meeting's status."""
    meeting = MeetingService.update_meeting_status(db, meeting_id, payload.status)
    return {"success": True, "message": "Meeting status updated successfully", "data": dump(MeetingOut, meeting)}


# DELETE /api/meetings/{meeting_id}
# Gets: path param meeting_id
# Returns: {success, message}
# Example:
#   curl -X DELETE http://localhost:8000/api/meetings/1
@router.delete("/{meeting_id}")
async def delete_meeting(meeting_id: int, db: Session = Depends(get_db)):
    """Delete a meeting."""
    MeetingService.delete_meeting(db, meeting_id)
    return {"success": True, "message": "Meeting deleted successfully"}
