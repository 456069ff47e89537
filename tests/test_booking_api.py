"""End-to-end tests for the booking endpoints."""

from datetime import datetime
from zoneinfo import ZoneInfo

from realtyflow.db_models import DBLead, DBMeeting

NY = ZoneInfo("America/New_York")


def test_scenario_a_books_monday_nine_am(client, db, notifier, make_agent, make_property):
    make_agent(name="Jane", email="jane@realtyflow.test", phone="+15550001111")
    prop = make_property(address="P123 Ocean Ave", price=650000)

    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Alice", "email": "alice@x.com", "propertyId": prop.id},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["bookingStatus"] == "fully_booked"
    assert datetime.fromisoformat(data["meeting"]["dateTime"]) == datetime(2030, 1, 7, 9, 0, tzinfo=NY)
    assert data["meeting"]["status"] == "Scheduled"
    assert data["meeting"]["calendarLink"].startswith("https://calendar.example.com/")
    assert data["agent"] == {"name": "Jane", "email": "jane@realtyflow.test", "phone": "+15550001111"}
    assert data["property"] == {"address": "P123 Ocean Ave", "price": 650000}
    assert data["lead"]["email"] == "alice@x.com"
    assert data["lead"]["assignedAgent"] == "Jane"

    # Background tasks run before TestClient returns.
    assert len(notifier.confirmations) == 1


def test_scenario_b_no_active_agents_is_lead_only(client, db, make_agent, make_property):
    make_agent(is_active=False)
    prop = make_property()

    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Alice", "email": "alice@x.com", "propertyId": prop.id},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["bookingStatus"] == "lead_only"
    assert body["message"] == "Lead created successfully. No agents currently available for booking."
    lead = db.query(DBLead).one()
    assert lead.assigned_agent == "Auto-assigned"
    assert db.query(DBMeeting).count() == 0


def test_scenario_c_existing_lead_conflicts(client, db, make_agent, make_property):
    make_agent()
    prop = make_property()
    first = client.post(
        "/api/booking/request-visit",
        json={"name": "Bob", "email": "bob@x.com", "propertyId": prop.id},
    )
    assert first.status_code == 201

    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Bob", "email": "BOB@x.com", "propertyId": prop.id},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["existingLead"]["id"] == first.json()["data"]["lead"]["id"]
    db.expire_all()
    assert db.query(DBLead).count() == 1
    assert db.query(DBMeeting).count() == 1


def test_scenario_d_reservation_failure_still_fully_booked(client, db, calendar, make_agent, make_property):
    make_agent()
    prop = make_property()
    calendar.fail_reserve = True

    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Alice", "email": "alice@x.com", "propertyId": prop.id},
    )

    assert response.status_code == 201
    assert response.json()["data"]["meeting"]["calendarLink"] is None
    meeting = db.query(DBMeeting).one()
    assert meeting.calendar_event_id is None


def test_missing_fields_are_rejected(client, db):
    response = client.post("/api/booking/request-visit", json={"name": "Alice"})

    assert response.status_code == 400
    assert response.json()["message"] == "Name, email, and property ID are required"
    assert db.query(DBLead).count() == 0


def test_malformed_email_is_a_validation_error(client):
    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Alice", "email": "not-an-email", "propertyId": 1},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation Error"
    assert body["errors"]


def test_unknown_property_is_404_and_writes_nothing(client, db, make_agent):
    make_agent()

    response = client.post(
        "/api/booking/request-visit",
        json={"name": "Alice", "email": "alice@x.com", "propertyId": 404},
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Property not found"
    assert db.query(DBLead).count() == 0


def test_available_slots_endpoint(client, make_agent, make_property):
    agent = make_agent(name="Jane")
    prop = make_property()

    response = client.get(f"/api/booking/available-slots?propertyId={prop.id}&date=2030-01-07")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 6
    first = body["data"][0]
    assert datetime.fromisoformat(first["start"]) == datetime(2030, 1, 7, 9, 0, tzinfo=NY)
    assert first["agent"] == {"id": agent.id, "name": "Jane", "email": agent.email}


def test_available_slots_requires_date(client, make_property):
    prop = make_property()
    response = client.get(f"/api/booking/available-slots?propertyId={prop.id}")
    assert response.status_code == 400
    assert response.json()["message"] == "Property ID and date are required"


def test_booking_stats(client, make_agent, make_property):
    make_agent()
    prop = make_property()
    client.post("/api/booking/request-visit", json={"name": "Alice", "email": "alice@x.com", "propertyId": prop.id})

    response = client.get("/api/booking/stats")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalLeads"] == 1
    assert data["availableAgents"] == 1
