# tests/test_api.py
"""HTTP layer: routing, actor header and error-to-status mapping."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from hostel_allocation.database import get_db
from hostel_allocation.main import app
from tests.factories import SCHOOL, YEAR

HEADERS = {"X-Actor-Id": "admin-1"}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def room_ids(client):
    hostel = client.post("/api/v1/hostels", headers=HEADERS, json={
        "school_id": SCHOOL, "hostel_name": "North", "hostel_code": "n1",
        "pricing": {"base_rent": "120.00", "security_deposit": "60.00"},
    }).json()
    room = client.post(f"/api/v1/hostels/{hostel['id']}/rooms", headers=HEADERS,
                       json={"room_number": "1", "total_beds": 1}).json()
    return hostel["id"], room["id"]


def allocate(client, hostel_id, room_id, student="s-1"):
    return client.post("/api/v1/allocations", headers=HEADERS, json={
        "student_id": student, "academic_year": YEAR, "hostel_id": hostel_id, "room_id": room_id,
    })


class TestAllocationsApi:
    def test_allocate_and_fetch(self, client, room_ids):
        resp = allocate(client, *room_ids)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "active"
        assert body["outstanding_amount"] == "180.00"

        fetched = client.get(f"/api/v1/allocations/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["room_id"] == room_ids[1]

        availability = client.get(f"/api/v1/hostels/{room_ids[0]}/availability").json()
        assert availability == {"hostel_id": room_ids[0], "total": 1, "occupied": 1, "available": 0}

    def test_domain_errors_map_to_status_codes(self, client, room_ids):
        allocate(client, *room_ids)

        duplicate = allocate(client, *room_ids)
        assert duplicate.status_code == 409
        assert duplicate.json()["kind"] == "DuplicateAllocation"

        full = allocate(client, *room_ids, student="s-2")
        assert full.status_code == 409
        assert full.json()["kind"] == "CapacityExhausted"

        missing = client.get("/api/v1/allocations/nope")
        assert missing.status_code == 404
        assert missing.json() == {"kind": "NotFound", "detail": "Allocation 'nope' not found",
                                  "entity": "Allocation", "id": "nope"}

    def test_non_positive_payment_is_unprocessable(self, client, room_ids):
        allocation_id = allocate(client, *room_ids).json()["id"]
        resp = client.post(f"/api/v1/allocations/{allocation_id}/payments", headers=HEADERS, json={"amount": "0"})
        assert resp.status_code == 422
        assert resp.json()["kind"] == "InvalidAmount"

    def test_writes_require_actor(self, client, room_ids):
        resp = client.post("/api/v1/allocations", json={
            "student_id": "s-1", "academic_year": YEAR, "hostel_id": room_ids[0],
        })
        assert resp.status_code == 400

    def test_report_period_is_validated(self, client, room_ids):
        resp = client.get(f"/api/v1/schools/{SCHOOL}/reports/revenue",
                          params={"start_date": "2025-10-01", "end_date": "2025-09-01"})
        assert resp.status_code == 422
        assert resp.json()["field"] == "end_date"

    def test_health(self, client):
        body = client.get("/api/v1/health").json()
        assert body["database"] == "ok"
        assert body["counter_drift"] == []
