"""Tests for registry lookups, role checks, vehicle payloads and the state store."""

import pytest

from errors import ValidationError
from registry import (
    Registry,
    can_review_course,
    describe_vehicle_changes,
    validate_user_payload,
    validate_vehicle_payload,
)
from store import AppState

COURSES = [{"id": 1, "name": "Green Valley"}, {"id": 2, "name": "Lake View"}]
VEHICLES = [
    {"id": 10, "serial_number": "SN-A01", "vehicle_number": "A01", "golf_course_id": 1, "status": "active"},
    {"id": 11, "serial_number": "SN-B01", "vehicle_number": "B01", "golf_course_id": 2, "status": "spare"},
]
USERS = [
    {"id": 100, "name": "Somchai", "role": "staff", "golf_course_id": 1},
    {"id": 101, "name": "Dao", "role": "staff", "golf_course_id": 2},
    {"id": 200, "name": "Malee", "role": "supervisor", "golf_course_id": 1, "managed_golf_courses": ["2"]},
]


class TestRegistry:
    @pytest.fixture
    def registry(self):
        return Registry(COURSES, VEHICLES, USERS)

    def test_lookups_accept_string_ids(self, registry):
        assert registry.vehicle("10")["vehicle_number"] == "A01"
        assert registry.golf_course_name("2") == "Lake View"

    def test_unknown_names(self, registry):
        assert registry.golf_course_name(99) == "N/A"
        assert registry.user_name(None) == "N/A"

    def test_by_serial_and_course(self, registry):
        assert registry.vehicle_by_serial("SN-B01")["id"] == 11
        assert [v["id"] for v in registry.vehicles_at(1)] == [10]
        assert [u["name"] for u in registry.staff_at(2)] == ["Dao"]

    def test_review_scope(self, registry):
        supervisor = registry.user(200)
        assert can_review_course(supervisor, 1)
        assert can_review_course(supervisor, 2)
        assert not can_review_course(supervisor, 3)
        assert not can_review_course(registry.user(100), 1)
        assert can_review_course({"id": 1, "role": "admin"}, 42)


class TestVehiclePayload:
    def test_create_defaults_to_active(self):
        data = validate_vehicle_payload({
            "serial_number": " SN-9 ", "vehicle_number": "9", "golf_course_id": "1", "year": "2020",
        })
        assert data == {
            "serial_number": "SN-9", "vehicle_number": "9", "golf_course_id": 1, "year": 2020, "status": "active",
        }

    @pytest.mark.parametrize("payload", [
        {"vehicle_number": "9", "golf_course_id": 1},
        {"serial_number": "SN-9", "vehicle_number": "9", "golf_course_id": 1, "status": "stolen"},
        {"serial_number": "SN-9", "vehicle_number": "9", "golf_course_id": 1, "year": "old"},
        {"serial_number": "SN-9", "vehicle_number": "9", "golf_course_id": 1, "transfer_date": "soon"},
    ])
    def test_invalid(self, payload):
        with pytest.raises(ValidationError):
            validate_vehicle_payload(payload)

    def test_partial_update(self):
        assert validate_vehicle_payload({"status": "parked"}, partial=True) == {"status": "parked"}
        with pytest.raises(ValidationError):
            validate_vehicle_payload({"serial_number": " "}, partial=True)

    def test_describe_changes(self):
        existing = {"vehicle_number": "A01", "golf_course_name": "Green Valley", "battery_serial": None}
        changes, affected = describe_vehicle_changes(existing, {
            "vehicle_number": "A01", "golf_course_name": "Lake View", "battery_serial": "BAT-7",
        })
        assert affected == ["golf_course_name", "battery_serial"]
        assert changes[0] == "transferred from Green Valley to Lake View"
        assert changes[1] == "battery serial changed from none to BAT-7"


def test_user_payload():
    data = validate_user_payload({"name": "Malee", "code": "SV1", "role": "supervisor", "managed_golf_courses": ["2"]})
    assert data["managed_golf_courses"] == [2]
    with pytest.raises(ValidationError):
        validate_user_payload({"name": "Malee", "code": "SV1"})


class TestAppState:
    def test_reads_are_copies(self):
        state = AppState()
        state.load(vehicles=VEHICLES)
        vehicle = state.vehicle(10)
        vehicle["status"] = "retired"
        assert state.vehicle(10)["status"] == "active"
        assert VEHICLES[0]["status"] == "active"

    def test_put_replaces_or_prepends(self):
        state = AppState()
        state.load(jobs=[{"id": 1, "status": "pending"}])
        state.put_job({"id": "1", "status": "approved"})
        state.put_job({"id": 2, "status": "pending"})
        assert [(j["id"], j["status"]) for j in state.jobs] == [(2, "pending"), ("1", "approved")]

    def test_job_queries(self):
        state = AppState()
        state.load(jobs=[
            {"id": 1, "status": "pending", "user_id": 100},
            {"id": 2, "status": "assigned", "user_id": 200, "assigned_to": 100},
            {"id": 3, "status": "approved", "user_id": 101},
        ])
        assert [j["id"] for j in state.jobs_with_status("pending", "assigned")] == [1, 2]
        assert [j["id"] for j in state.jobs_for_user(100)] == [1, 2]

    def test_unknown_collection(self):
        with pytest.raises(KeyError):
            AppState().load(invoices=[])
