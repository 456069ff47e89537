from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from realtyflow.availability import AvailabilityOracle
from realtyflow.calendar_provider import CalendarProvider
from realtyflow.database import get_db
from realtyflow.dependencies import get_calendar_provider, get_clock, get_oracle
from realtyflow.errors import InvalidInput
from realtyflow.models import AgentCreate, AgentOut, AgentUpdate, page
from realtyflow.services import AgentService
from realtyflow.timeutils import from_utc_naive

router = APIRouter(prefix="/api/agents", tags=["Agents"])


def _connected_agent(db: Session, agent_id: int):
    agent = AgentService.require_agent(db, agent_id)
    if not agent.calendar_id:
        raise InvalidInput("Agent not connected to Google Calendar")
    return agent


# GET /api/agents
# Gets: query params isActive?, sortBy?, sortOrder?, page?, limit?
# Returns: {success, count, total, totalPages, currentPage, data: [Agent]}
# Example:
#   curl 'http://localhost:8000/api/agents?isActive=true'
@router.get("")
async def list_agents(
    is_active: Optional[bool] = Query(None, alias="isActive"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page_number: int = Query(1, alias="page", ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List agents, optionally only active ones."""
    agents, total = AgentService.list_agents(
        db, is_active=is_active, sort_by=sort_by, sort_order=sort_order, page=page_number, limit=limit,
    )
    return page([AgentOut.from_agent(a) for a in agents], total, page_number, limit)


# POST /api/agents
# Gets: JSON body Agent {name, email, phone?, calendarId?, workingDays?, workingHours?, timezone?,
#                        meetingDuration?, bufferTime?, googleAccessToken?, googleRefreshToken?, googleTokenExpiry?}
# Returns: 201 {success, message, data: Agent} (tokens are never echoed)
# Example:
#   curl -X POST http://localhost:8000/api/agents -H 'Content-Type: application/json' \
#     -d '{"name": "Jane Doe", "email": "jane@realtyflow.com", "workingHours": {"start": "09:00", "end": "17:00"}}'
@router.post("", status_code=201)
async def create_agent(payload: AgentCreate, db: Session = Depends(get_db)):
    """Register an agent; tokens are stored but never returned."""
    agent = AgentService.create_agent(db, payload.model_dump())
    return {"success": True, "message": "Agent created successfully", "data": AgentOut.from_agent(agent)}


# GET /api/agents/{agent_id}
# Gets: path param agent_id
# Returns: {success, data: Agent}; 404 if unknown
# Example:
#   curl http://localhost:8000/api/agents/1
@router.get("/{agent_id}")
async def get_agent(agent_id: int, db: Session = Depends(get_db)):
    """Fetch one agent."""
    return {"success": True, "data": AgentOut.from_agent(AgentService.require_agent(db, agent_id))}


# PUT /api/agents/{agent_id}
# Gets: path param agent_id, JSON body with any Agent fields
# Returns: {success, message, data: Agent}
# Example:
#   curl -X PUT http://localhost:8000/api/agents/1 -H 'Content-Type: application/json' -d '{"bufferTime": 30}'
@router.put("/{agent_id}")
async def update_agent(agent_id: int, payload: AgentUpdate, db: Session = Depends(get_db)):
    """Update an agent's profile, hours or tokens."""
    agent = AgentService.update_agent(db, agent_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Agent updated successfully", "data": AgentOut.from_agent(agent)}


# DELETE /api/agents/{agent_id}
# Gets: path param agent_id
# Returns: {success, message}
# Example:
#   curl -X DELETE http://localhost:8000/api/agents/1
@router.delete("/{agent_id}")
async def delete_agent(agent_id: int, db: Session = Depends(get_db)):
    """Delete an agent."""
    AgentService.delete_agent(db, agent_id)
    return {"success": True, "message": "Agent deleted successfully"}


# GET /api/agents/{agent_id}/calendar-status
# Gets: path param agent_id
# Returns: {success, data: {connected, calendarId, isBookable, tokenExpiry}}
# Example:
#   curl http://localhost:8000/api/agents/1/calendar-status
@router.get("/{agent_id}/calendar-status")
async def calendar_status(agent_id: int, db: Session = Depends(get_db)):
    """Report whether the agent's calendar is connected."""
    agent = AgentService.require_agent(db, agent_id)
    return {
        "success": True,
        "data": {
            "connected": bool(agent.calendar_id),
            "calendarId": agent.calendar_id,
            "isBookable": agent.is_bookable,
            "tokenExpiry": from_utc_naive(agent.google_token_expiry).isoformat() if agent.google_token_expiry else None,
        },
    }


# GET /api/agents/{agent_id}/available-slots
# Gets: path param agent_id, query param date (YYYY-MM-DD)
# Returns: {success, count, data: [{start, end}]} free windows in the agent's timezone
# Example:
#   curl 'http://localhost:8000/api/agents/1/available-slots?date=2030-01-07'
@router.get("/{agent_id}/available-slots")
def agent_available_slots(
    agent_id: int,
    date: date_type = Query(...),
    db: Session = Depends(get_db),
    oracle: AvailabilityOracle = Depends(get_oracle),
    clock=Depends(get_clock),
):
    """Free windows for one agent on a given day."""
    agent = _connected_agent(db, agent_id)
    slots = oracle.list_free(agent, date, not_before=clock())
    db.commit()
    data = [{"start": s.start.isoformat(), "end": s.end.isoformat()} for s in slots]
    return {"success": True, "count": len(data), "data": data}


# GET /api/agents/{agent_id}/upcoming-events
# Gets: path param agent_id, query param maxResults (default 10)
# Returns: {success, count, data: [calendar event]}; 503 if the calendar can't be reached
# Example:
#   curl 'http://localhost:8000/api/agents/1/upcoming-events?maxResults=5'
@router.get("/{agent_id}/upcoming-events")
def agent_upcoming_events(
    agent_id: int,
    max_results: int = Query(10, alias="maxResults", ge=1, le=250),
    db: Session = Depends(get_db),
    provider: CalendarProvider = Depends(get_calendar_provider),
):
    """Upcoming events on the agent's Google Calendar."""
    agent = _connected_agent(db, agent_id)
    events = provider.list_upcoming(agent, max_results)
    # Persist a refreshed access token, if the provider rotated one.
    db.commit()
    return {"success": True, "count": len(events), "data": events}


# DELETE /api/agents/{agent_id}/calendar
# Gets: path param agent_id
# Returns: {success, message, data: Agent}
# Example:
#   curl -X DELETE http://localhost:8000/api/agents/1/calendar
@router.delete("/{agent_id}/calendar")
async def disconnect_calendar(agent_id: int, db: Session = Depends(get_db)):
    """Forget the agent's Google tokens."""
    agent = AgentService.disconnect_calendar(db, agent_id)
    return {"success": True, "message": "Google Calendar disconnected", "data": AgentOut.from_agent(agent)}
