"""Builders and read-side filters for the two append-only ledgers.

Parts-usage rows are keyed by job and part, serial history rows by the
vehicle's serial number. Both carry an ``entry_key`` so that a replayed append
is recognised by the service instead of being stored twice.
"""

from datetime import date, datetime

from constants import JOB_TYPES
from errors import ValidationError
from registry import UNKNOWN, vehicle_in_service
from utils import is_blank, parse_date, same_id, utcnow

HISTORY_ACTION_TYPES = (
    "registration",
    "transfer",
    "maintenance",
    "decommission",
    "inspection",
    "status_change",
    "data_edit",
    "data_delete",
    "bulk_transfer",
    "bulk_upload",
)
HISTORY_STATUSES = ("completed", "pending", "in_progress", "approved", "assigned")
CHANGE_TYPES = ("create", "update", "delete", "transfer", "status_change")

USAGE_REQUIRED = ("jobId", "partId", "partName", "quantityUsed", "vehicleNumber", "usedBy", "jobType")
HISTORY_REQUIRED = ("serial_number", "vehicle_id", "vehicle_number", "action_type", "details")


def usage_entry_key(job_id, part_id, line_index):
    return f"usage:{job_id}:{part_id}:{line_index}"


def maintenance_entry_key(job_id):
    return f"maintenance:{job_id}"


def _day(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value, "usedDate")


def build_usage_entries(job, vehicle, golf_course, used_by, used_date=None):
    """One usage row per part line of an approved job."""
    used_date = _day(used_date or utcnow())
    entries = []
    for index, line in enumerate(job.get("parts") or []):
        entries.append({
            "entryKey": usage_entry_key(job["id"], line["part_id"], index),
            "jobId": job["id"],
            "partId": line["part_id"],
            "partName": line.get("part_name") or UNKNOWN,
            "quantityUsed": int(line["quantity_used"]),
            "vehicleNumber": job.get("vehicle_number") or (vehicle or {}).get("vehicle_number") or UNKNOWN,
            "vehicleSerial": (vehicle or {}).get("serial_number"),
            "golfCourseName": (golf_course or {}).get("name") or UNKNOWN,
            "usedBy": used_by or job.get("userName") or UNKNOWN,
            "usedDate": used_date.isoformat(),
            "notes": job.get("partsNotes") or "",
            "jobType": job["type"],
            "system": job.get("system"),
        })
    return entries


def build_maintenance_entry(job, vehicle, golf_course, performed_by, when=None, approved_by=None):
    """The single history row written when a job is approved."""
    when = when or utcnow()
    vehicle = vehicle or {}
    parts_used = [
        f"{line.get('part_name') or UNKNOWN} x {line['quantity_used']}"
        for line in job.get("parts") or []
    ]
    details = f"{job['type']} maintenance approved"
    if job.get("system"):
        details += f" - system: {job['system']}"
    if job.get("subTasks"):
        details += f" - tasks: {', '.join(job['subTasks'])}"
    if approved_by:
        details += f" - approved by {approved_by.get('name')}"
    return {
        "entry_key": maintenance_entry_key(job["id"]),
        "serial_number": vehicle.get("serial_number") or UNKNOWN,
        "vehicle_id": job["vehicle_id"],
        "vehicle_number": job.get("vehicle_number") or vehicle.get("vehicle_number") or UNKNOWN,
        "action_type": "maintenance",
        "action_date": when.isoformat(),
        "details": details,
        "performed_by": (performed_by or {}).get("name") or job.get("userName") or UNKNOWN,
        "performed_by_id": (performed_by or {}).get("id", job.get("user_id")),
        "golf_course_id": job.get("golf_course_id"),
        "golf_course_name": (golf_course or {}).get("name") or UNKNOWN,
        "is_active": vehicle_in_service(vehicle) if vehicle else True,
        "related_job_id": job["id"],
        "job_type": job["type"],
        "status": "completed",
        "change_type": "status_change",
        "parts_used": parts_used,
    }


def build_vehicle_entry(action_type, vehicle, details, performed_by_id=None, performed_by=None, when=None, **extra):
    """History row for a vehicle lifecycle event (registration, transfer, ...)."""
    if action_type not in HISTORY_ACTION_TYPES:
        raise ValidationError(f"Unknown history action type: {action_type}.")
    when = when or utcnow()
    entry = {
        "serial_number": vehicle["serial_number"],
        "vehicle_id": vehicle["id"],
        "vehicle_number": vehicle["vehicle_number"],
        "action_type": action_type,
        "action_date": when.isoformat(),
        "details": details,
        "performed_by": performed_by,
        "performed_by_id": performed_by_id,
        "golf_course_id": vehicle.get("golf_course_id"),
        "golf_course_name": vehicle.get("golf_course_name") or UNKNOWN,
        "is_active": action_type not in ("data_delete", "decommission") and vehicle_in_service(vehicle),
        "status": None,
    }
    entry.update(extra)
    return entry


def validate_usage_entry(payload):
    missing = [key for key in USAGE_REQUIRED if is_blank(payload.get(key))]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}.")
    try:
        quantity = int(payload["quantityUsed"])
    except (TypeError, ValueError) as exc:
        raise ValidationError("quantityUsed must be a whole number.") from exc
    if quantity <= 0:
        raise ValidationError("quantityUsed must be greater than 0.")
    if payload["jobType"] not in JOB_TYPES:
        raise ValidationError("Job type must be PM, BM, or Recondition.")
    return quantity


def validate_history_entry(payload):
    missing = [key for key in HISTORY_REQUIRED if is_blank(payload.get(key))]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}.")
    if payload["action_type"] not in HISTORY_ACTION_TYPES:
        raise ValidationError(f"Action type must be one of: {', '.join(HISTORY_ACTION_TYPES)}.")
    if payload.get("status") and payload["status"] not in HISTORY_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(HISTORY_STATUSES)}.")
    if payload.get("change_type") and payload["change_type"] not in CHANGE_TYPES:
        raise ValidationError(f"Change type must be one of: {', '.join(CHANGE_TYPES)}.")


def filter_usage_logs(logs, serial=None, date_from=None, date_to=None, job_type=None, golf_course=None):
    date_from = _day(date_from) if date_from else None
    date_to = _day(date_to) if date_to else None
    result = []
    for log in logs:
        if serial and log.get("vehicleSerial") != serial:
            continue
        if job_type and log.get("jobType") != job_type:
            continue
        if golf_course and log.get("golfCourseName") != golf_course:
            continue
        used = _day(log.get("usedDate"))
        # undated rows cannot match a date range
        if used is None and (date_from or date_to):
            continue
        if date_from and used < date_from:
            continue
        if date_to and used > date_to:
            continue
        result.append(log)
    return result


def history_for_serial(entries, serial_number):
    """All entries of one serial, newest first."""
    matching = [e for e in entries if e.get("serial_number") == serial_number]
    return sorted(matching, key=lambda e: str(e.get("action_date") or ""), reverse=True)


def usage_for_job(logs, job_id):
    return [log for log in logs if same_id(log.get("jobId"), job_id)]
