#!/usr/bin/env python3
"""
Smoke test against a running server.

Usage:
  uvicorn app.main:app --port 8001
  python3 scripts/smoke_api.py [provider_id] [client_id]

Declares a slot for tomorrow, reserves its first segment, pays for it and
cancels it again, printing each response.
"""

import sys
from datetime import date, timedelta
from typing import Any

import httpx

BASE_URL = "http://127.0.0.1:8001/api/v1"
SERVICE_ID = "companion_care_hourly"


def _call(method: str, path: str, actor_id: str | None = None, **kwargs: Any) -> dict[str, Any] | list | None:
    headers = {"X-Actor-Id": actor_id} if actor_id else {}
    try:
        response = httpx.request(method, f"{BASE_URL}{path}", headers=headers, timeout=10.0, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        print(f"❌ {method} {path}: HTTP {e.response.status_code}")
        print(f"Response: {e.response.text}")
        return None
    except httpx.HTTPError as e:
        print(f"❌ {method} {path}: {e}")
        return None
    print(f"✅ {method} {path}: {response.status_code}")
    return response.json() if response.content else {}


def main() -> int:
    provider_id = sys.argv[1] if len(sys.argv) > 1 else "provider_demo"
    client_id = sys.argv[2] if len(sys.argv) > 2 else "client_demo"
    day = date.today() + timedelta(days=1)

    print("=" * 60)
    print(f"Declaring {day.isoformat()} 09:00-12:00 for {SERVICE_ID}")
    print("=" * 60)
    slots = _call(
        "POST",
        "/timeslots",
        provider_id,
        json={
            "service_id": SERVICE_ID,
            "slots": [{"date": day.isoformat(), "start_time": "09:00", "end_time": "12:00"}],
        },
    )
    if not slots:
        return 1
    slot_id = slots[0]["id"]

    availability = _call(
        "GET",
        f"/services/{SERVICE_ID}/availability",
        params={"start_date": day.isoformat(), "end_date": day.isoformat()},
    )
    if availability:
        for slot in availability["grouped_slots"].get(day.isoformat(), []):
            states = ", ".join(s["state"] for s in slot["segments"])
            print(f"  {slot['time_slot']['id']}: {states}")

    booking = _call(
        "POST",
        "/bookings",
        client_id,
        json={
            "time_slot_id": slot_id,
            "segment_index": 0,
            "booking": {
                "service_id": SERVICE_ID,
                "duration": 60,
                "address": {"street": "1 Main St", "city": "Portland", "state": "OR", "zip_code": "97201"},
            },
        },
    )
    if not booking:
        return 1
    print(f"  booking {booking['id']} is {booking['status']} at {booking['date_time']}")

    payment = _call("POST", f"/bookings/{booking['id']}/payment", client_id)
    if payment:
        print(f"  transaction {payment['id']}: {payment['status']}")

    eligibility = _call("GET", f"/bookings/{booking['id']}/eligibility", client_id)
    if eligibility:
        print(f"  status={eligibility['status']} chat={eligibility['chat']} review={eligibility['review']}")

    cancelled = _call("DELETE", f"/bookings/{booking['id']}", client_id, params={"reason": "smoke test"})
    if cancelled:
        print(f"  booking {cancelled['id']} is {cancelled['status']}")

    return 0 if cancelled else 1


if __name__ == "__main__":
    sys.exit(main())
