from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from realtyflow.booking import BookingOrchestrator
from realtyflow.database import get_db
from realtyflow.db_models import LeadStatus
from realtyflow.dependencies import get_notifier, get_orchestrator
from realtyflow.errors import BookingError, InvalidInput
from realtyflow.logging_config import get_logger
from realtyflow.models import (
    LeadCreate,
    LeadOut,
    LeadStatusUpdate,
    LeadUpdate,
    WebhookLeadIn,
    dump,
    page,
)
from realtyflow.notifications import NotificationService
from realtyflow.services import LeadService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/leads", tags=["Leads"])


# GET /api/leads
# Gets: query params status?, assignedTo?, sortBy?, sortOrder?, page?, limit?
# Returns: {success, count, total, totalPages, currentPage, data: [Lead]}
# Example:
#   curl 'http://localhost:8000/api/leads?status=New&page=1&limit=10'
@router.get("")
async def list_leads(
    status: Optional[LeadStatus] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page_number: int = Query(1, alias="page", ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List leads with filters and pagination."""
    leads, total = LeadService.list_leads(
        db, status=status, assigned_to=assigned_to, sort_by=sort_by, sort_order=sort_order,
        page=page_number, limit=limit,
    )
    return page([dump(LeadOut, lead) for lead in leads], total, page_number, limit)


# POST /api/leads
# Gets: JSON body Lead {name, email, phone?, status?, source?, assignedAgent?, budget?, ...}
# Returns: 201 {success, message, data: Lead}; 409 if the email already exists
# Example:
#   curl -X POST http://localhost:8000/api/leads -H 'Content-Type: application/json' \
#     -d '{"name": "Dana Levi", "email": "dana@example.com", "source": "Zillow"}'
@router.post("", status_code=201)
async def create_lead(payload: LeadCreate, db: Session = Depends(get_db)):
    """Create a lead; the email must be new."""
    lead = LeadService.create_lead(db, payload.model_dump())
    return {"success": True, "message": "Lead created successfully", "data": dump(LeadOut, lead)}


# POST /api/leads/webhook
# Gets: JSON body {name, email, phone?, source?, notes?, budget?, externalId?, sourceSystem?,
#                  propertyId?, preferredDateTime?, timezone?}
# Returns: 201 {action: "created"} for a new lead, 200 {action: "updated"} when the email is known;
#          a new lead with propertyId + preferredDateTime also gets a booking attempt, reported under "booking"
# Example:
#   curl -X POST http://localhost:8000/api/leads/webhook -H 'Content-Type: application/json' \
#     -d '{"name": "Dana Levi", "email": "dana@example.com", "sourceSystem": "zillow", "externalId": "z-123"}'
@router.post("/webhook")
def lead_webhook(
    payload: WebhookLeadIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    notifier: NotificationService = Depends(get_notifier),
):
    """Ingest a lead from an external system. Re-submissions merge into the existing lead."""
    if not payload.name or not payload.email:
        raise InvalidInput("Name and email are required")

    data = payload.model_dump(exclude={"property_id", "preferred_date_time", "timezone", "signature", "timestamp"})
    lead, action = LeadService.upsert_from_webhook(db, data)

    booking = None
    # Re-submissions only merge fields; a booking is attempted once, for a new lead.
    if action == "created" and payload.property_id and payload.preferred_date_time:
        try:
            result = orchestrator.book_existing_lead(
                lead,
                payload.property_id,
                payload.preferred_date_time,
                timezone=payload.timezone,
                notes=payload.notes,
                defer=background_tasks.add_task,
            )
            booking = {
                "bookingStatus": result.outcome.value,
                "meetingId": result.meeting.id if result.meeting else None,
                "calendarLink": result.calendar_link,
            }
        except BookingError as e:
            # The lead is already stored; a failed booking attempt is reported, not raised.
            logger.warning("webhook_booking_failed", lead_id=lead.id, error=e.message)
            booking = {"bookingStatus": "failed", "message": e.message}

    lead_data = dump(LeadOut, lead)
    if action == "created":
        background_tasks.add_task(notifier.new_lead, lead_data)

    logger.info("webhook_lead_processed", lead_id=lead.id, action=action, source_system=payload.source_system)
    return JSONResponse(
        status_code=201 if action == "created" else 200,
        content={
            "success": True,
            "message": f"Lead {action} successfully",
            "action": action,
            "data": lead_data,
            "booking": booking,
        },
    )


# GET /api/leads/status/{status}
# Gets: path param status (New|Contacted|Nurturing|Closed)
# Returns: {success, count, data: [Lead]}
# Example:
#   curl http://localhost:8000/api/leads/status/New
@router.get("/status/{status}")
async def leads_by_status(status: LeadStatus, db: Session = Depends(get_db)):
    """All leads in one status."""
    leads = LeadService.list_by_status(db, status)
    return {"success": True, "count": len(leads), "data": [dump(LeadOut, lead) for lead in leads]}


# GET /api/leads/{lead_id}
# Gets: path param lead_id
# Returns: {success, data: Lead}; 404 if unknown
# Example:
#   curl http://localhost:8000/api/leads/1
@router.get("/{lead_id}")
async def get_lead(lead_id: int, db: Session = Depends(get_db)):
    """Fetch one lead."""
    return {"success": True, "data": dump(LeadOut, LeadService.require_lead(db, lead_id))}


# PUT /api/leads/{lead_id}
# Gets: path param lead_id, JSON body with any Lead fields
# Returns: {success, message, data: Lead}
# Example:
#   curl -X PUT http://localhost:8000/api/leads/1 -H 'Content-Type: application/json' -d '{"budget": 450000}'
@router.put("/{lead_id}")
async def update_lead(lead_id: int, payload: LeadUpdate, db: Session = Depends(get_db)):
    """Update a lead's fields."""
    lead = LeadService.update_lead(db, lead_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Lead updated successfully", "data": dump(LeadOut, lead)}


# PATCH /api/leads/{lead_id}/status
# Gets: path param lead_id, JSON body {status}
# Returns: {success, message, data: Lead}
# Example:
#   curl -X PATCH http://localhost:8000/api/leads/1/status -H 'Content-Type: application/json' \
#     -d '{"status": "Contacted"}'
@router.patch("/{lead_id}/status")
async def update_lead_status(lead_id: int, payload: LeadStatusUpdate, db: Session = Depends(get_db)):
    """Move a lead to a new status."""
    lead = LeadService.update_lead_status(db, lead_id, payload.status)
    return {"success": True, "message": "Lead status updated successfully", "data": dump(LeadOut, lead)}


# DELETE /api/leads/{lead_id}
# Gets: path param lead_id
# Returns: {success, message}
# Example:
#   curl -X DELETE http://localhost:8000/api/leads/1
@router.delete("/{lead_id}")
async def delete_lead(lead_id: int, db: Session = Depends(get_db)):
    """Delete a lead."""
    LeadService.delete_lead(db, lead_id)
    return {"success": True, "message": "Lead deleted successfully"}
