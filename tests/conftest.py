"""Shared test fixtures."""

import os
from urllib.parse import urlsplit

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
import requests

from app import app as flask_app
from controller import MaintenanceController
from db import db
from gateway import ApiGateway
from outbox import SideEffectOutbox

BASE_URL = "http://testserver/api"


class FlaskResponse:
    """The part of ``requests.Response`` the gateway reads."""

    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("Response is not JSON")
        return self._body


class FlaskTestSession:
    """Sends gateway requests to the Flask test client instead of the network."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def request(self, method, url, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path))
        response = self.client.open(path, method=method, json=json, query_string=params)
        return FlaskResponse(response.status_code, response.get_json(silent=True))

    def writes(self):
        return [call for call in self.calls if call[0] != "GET"]


class FailingSession(FlaskTestSession):
    """Answers matching requests with an error, forwards everything else."""

    def __init__(self, client):
        super().__init__(client)
        self.failures = []

    def fail(self, method, path_prefix, status=500, message="Internal server error", offline=False):
        self.failures.append((method, path_prefix, status, message, offline))

    def clear(self):
        self.failures = []

    def request(self, method, url, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        for fail_method, prefix, status, message, offline in self.failures:
            if fail_method == method and path.startswith(prefix):
                self.calls.append((method, path))
                if offline:
                    raise requests.ConnectionError("connection refused")
                return FlaskResponse(status, {"success": False, "message": message})
        return super().request(method, url, json=json, params=params, timeout=timeout)


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def post(client, path, payload):
    response = client.post(path, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


@pytest.fixture
def seed(client):
    """One course with staff, a supervisor, an admin, two carts and two parts."""
    course = post(client, "/api/golf-courses", {"name": "Green Valley", "location": "Chiang Mai"})
    other_course = post(client, "/api/golf-courses", {"name": "Lake View", "location": "Hua Hin"})
    staff = post(client, "/api/users", {
        "name": "Somchai", "code": "ST01", "role": "staff", "golf_course_id": course["id"],
    })
    supervisor = post(client, "/api/users", {
        "name": "Malee", "code": "SV01", "role": "supervisor", "golf_course_id": course["id"],
    })
    admin = post(client, "/api/users", {"name": "Admin", "code": "AD01", "role": "admin"})
    vehicle = post(client, "/api/vehicles", {
        "serial_number": "SN-A01",
        "vehicle_number": "A01",
        "golf_course_id": course["id"],
        "battery_serial": "BAT-01",
        "brand": "Club Car",
        "model": "Tempo",
        "year": 2021,
    })
    spare_vehicle = post(client, "/api/vehicles", {
        "serial_number": "SN-A02",
        "vehicle_number": "A02",
        "golf_course_id": course["id"],
    })
    brake_pad = post(client, "/api/parts", {
        "name": "ผ้าเบรก", "part_number": "P7", "category": "brake", "unit": "set",
        "stock_qty": 10, "min_qty": 2, "max_qty": 20,
    })
    cable = post(client, "/api/parts", {
        "name": "Steering cable", "part_number": "P1", "category": "steering", "unit": "piece",
        "stock_qty": 3, "min_qty": 1, "max_qty": 10,
    })
    return {
        "course": course,
        "other_course": other_course,
        "staff": staff,
        "supervisor": supervisor,
        "admin": admin,
        "vehicle": vehicle,
        "spare_vehicle": spare_vehicle,
        "brake_pad": brake_pad,
        "cable": cable,
    }


@pytest.fixture
def session(client):
    return FailingSession(client)


@pytest.fixture
def controller(seed, session):
    gateway = ApiGateway(base_url=BASE_URL, timeout=5, session=session)
    controller = MaintenanceController(gateway, outbox=SideEffectOutbox())
    result = controller.refresh()
    assert result.ok, result.message
    session.calls.clear()
    return controller


def pm_payload(seed, **overrides):
    payload = {
        "type": "PM",
        "vehicle_id": seed["vehicle"]["id"],
        "vehicle_number": seed["vehicle"]["vehicle_number"],
        "golf_course_id": seed["course"]["id"],
        "user_id": seed["staff"]["id"],
        "userName": seed["staff"]["name"],
        "system": "brake",
        "subTasks": ["ทำความสะอาด"],
        "parts": [],
    }
    payload.update(overrides)
    return payload
