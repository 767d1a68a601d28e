"""Tests for the HTTP gateway's envelope handling and error mapping."""

from unittest.mock import MagicMock

import pytest
import requests

from errors import TransportError
from gateway import ApiGateway


def response(status_code, body):
    mocked = MagicMock()
    mocked.status_code = status_code
    if isinstance(body, Exception):
        mocked.json.side_effect = body
    else:
        mocked.json.return_value = body
    return mocked


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def gateway(session):
    return ApiGateway(base_url="http://carts.example/api/", timeout=7, session=session)


def test_returns_data_member(gateway, session):
    session.request.return_value = response(200, {"success": True, "message": "ok", "data": [{"id": 1}]})
    assert gateway.list("vehicles", golf_course_id=3, status=None) == [{"id": 1}]
    session.request.assert_called_once_with(
        "GET", "http://carts.example/api/vehicles", json=None, params={"golf_course_id": 3}, timeout=7
    )


def test_update_sends_json(gateway, session):
    session.request.return_value = response(200, {"success": True, "data": {"id": 4, "status": "approved"}})
    assert gateway.update("jobs", 4, {"status": "approved"})["status"] == "approved"
    method, url = session.request.call_args.args
    assert (method, url) == ("PUT", "http://carts.example/api/jobs/4")
    assert session.request.call_args.kwargs["json"] == {"status": "approved"}


def test_error_status_raises_with_message(gateway, session):
    session.request.return_value = response(409, {"success": False, "message": "Stale record"})
    with pytest.raises(TransportError) as excinfo:
        gateway.update("jobs", 1, {})
    assert excinfo.value.status_code == 409
    assert excinfo.value.is_conflict
    assert str(excinfo.value) == "Stale record"


def test_success_false_on_2xx_is_a_failure(gateway, session):
    session.request.return_value = response(200, {"success": False, "message": "Not saved"})
    with pytest.raises(TransportError, match="Not saved"):
        gateway.create("jobs", {})


def test_non_json_error_body(gateway, session):
    session.request.return_value = response(502, ValueError("no json"))
    with pytest.raises(TransportError, match="HTTP error 502") as excinfo:
        gateway.get("parts", 1)
    assert excinfo.value.status_code == 502


def test_timeout(gateway, session):
    session.request.side_effect = requests.Timeout()
    with pytest.raises(TransportError) as excinfo:
        gateway.list("jobs")
    assert excinfo.value.status_code == 408


def test_connection_error(gateway, session):
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportError) as excinfo:
        gateway.list("jobs")
    assert excinfo.value.status_code is None


def test_unknown_resource(gateway, session):
    with pytest.raises(ValueError):
        gateway.list("invoices")
    session.request.assert_not_called()


def test_vehicle_helpers(gateway, session):
    session.request.return_value = response(200, {"success": True, "data": {"id": 2}})
    gateway.set_vehicle_status(2, "parked", user_id=9, reason="storm")
    gateway.transfer_vehicles({"vehicle_ids": [2]})
    calls = [c.args for c in session.request.call_args_list]
    assert calls == [
        ("PATCH", "http://carts.example/api/vehicles/2"),
        ("POST", "http://carts.example/api/vehicles/transfer"),
    ]


def test_requisition_posts_job_id(gateway, session):
    session.request.return_value = response(200, {"success": True, "data": {"id": 4, "prrNumber": "PRR-260301-0001"}})
    assert gateway.request_requisition(4)["prrNumber"] == "PRR-260301-0001"
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://carts.example/api/jobs/requisition")
    assert session.request.call_args.kwargs["json"] == {"job_id": 4}


@pytest.mark.parametrize("status_code,permanent", [
    (400, True), (404, True), (408, False), (409, False), (429, False), (503, False), (None, False),
])
def test_permanent_rejections(status_code, permanent):
    assert TransportError("x", status_code=status_code).is_permanent is permanent
