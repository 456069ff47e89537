#!/usr/bin/env python3
"""
Quick smoke test against a running RealtyFlow API.
Run the server first: uvicorn realtyflow.main:app --reload

Creates an agent and a property, then requests a visit and prints the
booking outcome. Agent tokens are fake, so with CALENDAR_FAIL_OPEN=true the
booking succeeds without a calendar event.
"""

import time

import requests

BASE_URL = "http://127.0.0.1:8000"


def test_api():
    print("Testing RealtyFlow API...\n")
    stamp = int(time.time())

    # Test 1: Root endpoint
    print("1. Testing root endpoint...")
    response = requests.get(f"{BASE_URL}/")
    print(f"   Status: {response.status_code}")
    print(f"   Message: {response.json()['message']}\n")

    # Test 2: Create an agent
    print("2. Creating agent...")
    response = requests.post(
        f"{BASE_URL}/api/agents",
        json={
            "name": "Smoke Test Agent",
            "email": f"agent-{stamp}@realtyflow.local",
            "calendarId": f"agent-{stamp}@group.calendar.google.com",
            "googleAccessToken": "not-a-real-token",
            "workingHours": {"start": "09:00", "end": "17:00"},
        },
    )
    print(f"   Status: {response.status_code}")
    print(f"   Bookable: {response.json()['data']['isBookable']}\n")

    # Test 3: Create a property
    print("3. Creating property...")
    response = requests.post(
        f"{BASE_URL}/api/properties",
        json={"address": f"{stamp % 1000} Smoke Test Ln", "price": 425000, "bedrooms": 3},
    )
    property_id = response.json()["data"]["id"]
    print(f"   Status: {response.status_code}")
    print(f"   Property id: {property_id}\n")

    # Test 4: Request a visit
    print("4. Requesting a visit...")
    response = requests.post(
        f"{BASE_URL}/api/booking/request-visit",
        json={"name": "Smoke Lead", "email": f"lead-{stamp}@example.com", "propertyId": property_id},
    )
    data = response.json()
    print(f"   Status: {response.status_code}")
    print(f"   Message: {data['message']}")
    if data["data"]["bookingStatus"] == "fully_booked":
        print(f"   Meeting at: {data['data']['meeting']['dateTime']} with {data['data']['agent']['name']}\n")
    else:
        print("   Lead captured without a meeting\n")

    # Test 5: Booking stats
    print("5. Testing stats endpoint...")
    response = requests.get(f"{BASE_URL}/api/booking/stats")
    print(f"   Status: {response.status_code}")
    print(f"   Stats: {response.json()['data']}\n")

    print("All API checks completed!")


if __name__ == "__main__":
    try:
        test_api()
    except requests.exceptions.ConnectionError:
        print("Error: Could not connect to server.")
        print("Please start the server first:")
        print("  uvicorn realtyflow.main:app --reload")
