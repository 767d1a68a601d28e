"""HTTP/JSON client for the persistence service.

Every call returns the ``data`` member of the service envelope
``{"success": bool, "message": str, "data": ...}``. Anything other than a 2xx
answer with ``success=true`` raises :class:`errors.TransportError`.
"""

import logging

import requests

from config import Config
from errors import TransportError

logger = logging.getLogger(__name__)

RESOURCES = (
    "golf-courses",
    "vehicles",
    "users",
    "jobs",
    "parts",
    "parts-usage-logs",
    "serial-history",
    "stock/transactions",
    "notifications",
)


class ApiGateway:
    def __init__(self, base_url=None, timeout=None, session=None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else Config.API_TIMEOUT
        self.session = session or requests.Session()

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method, path, payload=None, params=None):
        url = self._url(path)
        try:
            response = self.session.request(
                method, url, json=payload, params=params, timeout=self.timeout
            )
        except requests.Timeout as exc:
            logger.warning("%s %s timed out", method, url)
            raise TransportError("The server took too long to answer. Please try again.", status_code=408) from exc
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError("Cannot reach the server. Check the connection and try again.") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not (200 <= response.status_code < 300) or not body.get("success"):
            message = body.get("message") or body.get("error") or f"HTTP error {response.status_code}"
            logger.warning("%s %s returned %s: %s", method, url, response.status_code, message)
            raise TransportError(message, status_code=response.status_code)
        return body.get("data")

    @staticmethod
    def _check(resource):
        if resource not in RESOURCES:
            raise ValueError(f"Unknown resource: {resource}")

    def list(self, resource, **filters):
        self._check(resource)
        params = {key: value for key, value in filters.items() if value is not None}
        return self.request("GET", resource, params=params or None) or []

    def get(self, resource, item_id):
        self._check(resource)
        return self.request("GET", f"{resource}/{item_id}")

    def create(self, resource, data):
        self._check(resource)
        return self.request("POST", resource, payload=data)

    def update(self, resource, item_id, data):
        self._check(resource)
        return self.request("PUT", f"{resource}/{item_id}", payload=data)

    def delete(self, resource, item_id, **params):
        self._check(resource)
        return self.request("DELETE", f"{resource}/{item_id}", params=params or None)

    def set_vehicle_status(self, vehicle_id, status, user_id=None, reason=None):
        payload = {"status": status, "user_id": user_id, "reason": reason}
        return self.request("PATCH", f"vehicles/{vehicle_id}", payload=payload)

    def transfer_vehicles(self, payload):
        return self.request("POST", "vehicles/transfer", payload=payload)

    def request_requisition(self, job_id):
        return self.request("POST", "jobs/requisition", payload={"job_id": job_id})
