"""Reference data: golf courses, vehicles and users.

The job engine only ever reads from here; vehicles are mutated through the
service routes, which use the validation helpers at the bottom of this module.
"""

from errors import ValidationError
from utils import clean_text, is_blank, parse_date, parse_optional_int, same_id, validate_choice

ROLES = ("staff", "supervisor", "admin")
REVIEWER_ROLES = ("supervisor", "admin")

VEHICLE_STATUSES = ("active", "ready", "maintenance", "retired", "parked", "spare", "inactive")
OUT_OF_SERVICE_STATUSES = ("retired", "inactive")

UNKNOWN = "N/A"


class Registry:
    def __init__(self, golf_courses=(), vehicles=(), users=()):
        self.golf_courses = list(golf_courses)
        self.vehicles = list(vehicles)
        self.users = list(users)

    @staticmethod
    def _find(items, item_id):
        for item in items:
            if same_id(item.get("id"), item_id):
                return item
        return None

    def golf_course(self, golf_course_id):
        return self._find(self.golf_courses, golf_course_id)

    def vehicle(self, vehicle_id):
        return self._find(self.vehicles, vehicle_id)

    def user(self, user_id):
        return self._find(self.users, user_id)

    def vehicle_by_serial(self, serial_number):
        for vehicle in self.vehicles:
            if vehicle.get("serial_number") == serial_number:
                return vehicle
        return None

    def golf_course_name(self, golf_course_id):
        course = self.golf_course(golf_course_id)
        return course["name"] if course else UNKNOWN

    def user_name(self, user_id):
        user = self.user(user_id)
        return user["name"] if user else UNKNOWN

    def vehicles_at(self, golf_course_id):
        return [v for v in self.vehicles if same_id(v.get("golf_course_id"), golf_course_id)]

    def staff_at(self, golf_course_id):
        return [
            u for u in self.users
            if u.get("role") == "staff" and same_id(u.get("golf_course_id"), golf_course_id)
        ]


def is_reviewer(user):
    return bool(user) and user.get("role") in REVIEWER_ROLES


def can_review_course(user, golf_course_id):
    """Admins review everywhere, supervisors their own and managed courses."""
    if not is_reviewer(user):
        return False
    if user["role"] == "admin":
        return True
    managed = user.get("managed_golf_courses") or []
    if same_id(user.get("golf_course_id"), golf_course_id):
        return True
    return any(same_id(course_id, golf_course_id) for course_id in managed)


def vehicle_in_service(vehicle):
    return bool(vehicle) and vehicle.get("status") not in OUT_OF_SERVICE_STATUSES


def validate_vehicle_payload(payload, partial=False):
    """Normalize a vehicle create (``partial=False``) or update payload."""
    data = {}
    if not partial:
        if is_blank(payload.get("serial_number")) or is_blank(payload.get("vehicle_number")) or is_blank(payload.get("golf_course_id")):
            raise ValidationError("Serial number, vehicle number, and golf course ID are required.")

    for key in ("serial_number", "vehicle_number", "battery_serial", "brand", "model", "golf_course_name"):
        if key in payload:
            data[key] = clean_text(payload.get(key))
    for key in ("serial_number", "vehicle_number"):
        if key in data and data[key] is None:
            raise ValidationError(f"{key} cannot be empty.")

    if "golf_course_id" in payload:
        data["golf_course_id"] = parse_optional_int(payload.get("golf_course_id"), "golf_course_id")
        if data["golf_course_id"] is None:
            raise ValidationError("golf_course_id cannot be empty.")
    if "year" in payload:
        data["year"] = parse_optional_int(payload.get("year"), "year")
    if "transfer_date" in payload:
        data["transfer_date"] = parse_date(payload.get("transfer_date"), "transfer_date")
    if "status" in payload:
        data["status"] = validate_choice(payload.get("status"), VEHICLE_STATUSES, "Status")
        if data["status"] is None:
            del data["status"]
    if not partial:
        data.setdefault("status", "active")
    return data


def describe_vehicle_changes(existing, updates):
    """Human readable change list plus the affected field names.

    ``existing`` is the vehicle's current wire dict, ``updates`` the
    normalized payload from :func:`validate_vehicle_payload`.
    """
    labels = {
        "status": "status",
        "golf_course_name": "golf course",
        "vehicle_number": "vehicle number",
        "battery_serial": "battery serial",
        "serial_number": "serial number",
        "brand": "brand",
        "model": "model",
        "year": "year",
    }
    changes = []
    affected = []
    for key, label in labels.items():
        if key not in updates or updates[key] is None:
            continue
        before = existing.get(key)
        after = updates[key]
        if before == after:
            continue
        if key == "golf_course_name":
            changes.append(f"transferred from {before or UNKNOWN} to {after}")
        else:
            changes.append(f"{label} changed from {before if before is not None else 'none'} to {after}")
        affected.append(key)
    return changes, affected


def validate_user_payload(payload, partial=False):
    data = {}
    if not partial:
        if is_blank(payload.get("name")) or is_blank(payload.get("code")) or is_blank(payload.get("role")):
            raise ValidationError("Name, code, and role are required.")
    for key in ("name", "code"):
        if key in payload:
            data[key] = clean_text(payload.get(key))
            if data[key] is None:
                raise ValidationError(f"{key} cannot be empty.")
    if "role" in payload:
        data["role"] = validate_choice(payload.get("role"), ROLES, "Role")
        if data["role"] is None:
            raise ValidationError("role cannot be empty.")
    if "golf_course_id" in payload:
        data["golf_course_id"] = parse_optional_int(payload.get("golf_course_id"), "golf_course_id")
    if "managed_golf_courses" in payload:
        managed = payload.get("managed_golf_courses") or []
        if not isinstance(managed, list):
            raise ValidationError("managed_golf_courses must be a list.")
        data["managed_golf_courses"] = [parse_optional_int(c, "managed_golf_courses") for c in managed]
    if "permissions" in payload:
        permissions = payload.get("permissions") or []
        if not isinstance(permissions, list):
            raise ValidationError("permissions must be a list.")
        data["permissions"] = [str(p).strip() for p in permissions if not is_blank(p)]
    return data
