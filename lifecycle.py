"""Job lifecycle engine.

Every function here works on job snapshots (the wire dicts of the ``jobs``
resource) and returns a :class:`Plan`: the next snapshot plus the side effects
the caller has to carry out. Nothing is persisted from this module.

Status graph::

    pending     -> approved | rejected
    assigned    -> in_progress | completed
    in_progress -> completed

``assigned``/``in_progress`` jobs go back to ``pending`` only through
:func:`plan_submission`, when the assignee fills in the repair details.
``approved``, ``rejected`` and ``completed`` are terminal. An approved job can
be given a parts requisition number (``PRR-YYMMDD-NNNN``) once.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import ledgers
import stock
from constants import BM_CAUSES, JOB_STATUSES, JOB_TYPES
from errors import ConflictError, PermissionDeniedError, ValidationError
from registry import can_review_course, is_reviewer
from utils import clean_text, is_blank, parse_optional_int, same_id, utcnow

SYSTEMS = stock.PART_CATEGORIES

TERMINAL_STATUSES = ("approved", "rejected", "completed")
OPEN_STATUSES = ("pending", "assigned", "in_progress")

TRANSITIONS = {
    "pending": ("approved", "rejected"),
    "assigned": ("in_progress", "completed"),
    "in_progress": ("completed",),
    "approved": (),
    "rejected": (),
    "completed": (),
}
REVIEW_TARGETS = ("approved", "rejected")
REVIEW_BRANCH = ("pending",) + REVIEW_TARGETS
SUBMITTABLE_STATUSES = ("assigned", "in_progress")

REQUIRED_FIELDS = ("type", "status", "vehicle_id", "vehicle_number", "golf_course_id", "user_id", "userName")


@dataclass(frozen=True)
class PartLine:
    """A part consumed by a job, name copied at the time it was recorded."""

    part_id: object
    quantity_used: int
    part_name: str

    def to_dict(self):
        return {"part_id": self.part_id, "quantity_used": self.quantity_used, "part_name": self.part_name}


@dataclass(frozen=True)
class StockDecrement:
    part_id: object
    amount: int


@dataclass(frozen=True)
class StockRestock:
    part_id: object
    amount: int


@dataclass(frozen=True)
class UsageLogAppend:
    entry: dict


@dataclass(frozen=True)
class HistoryAppend:
    entry: dict


@dataclass
class Plan:
    job: dict
    effects: List[object] = field(default_factory=list)
    changed: bool = True
    previous_status: Optional[str] = None

    def effects_of(self, kind):
        return [effect for effect in self.effects if isinstance(effect, kind)]


def _normalize_lines(lines, parts=None):
    normalized = []
    for index, line in enumerate(lines or []):
        if not isinstance(line, dict) or is_blank(line.get("part_id")):
            raise ValidationError(f"Part line {index + 1} needs a part_id.")
        quantity = parse_optional_int(line.get("quantity_used"), f"Part line {index + 1} quantity_used")
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Part line {index + 1} quantity_used must be greater than 0.")
        part_name = clean_text(line.get("part_name"))
        if parts is not None:
            part = stock.find_part(parts, line["part_id"])
            if part is None:
                raise ValidationError(f"Part {line['part_id']} does not exist.")
            # the name is captured once; later renames do not rewrite history
            part_name = part_name or part.get("name")
        normalized.append(PartLine(line["part_id"], quantity, part_name or "").to_dict())
    return normalized


def validate_job_payload(payload, parts=None):
    """Check a job payload and return a normalized copy.

    ``parts`` is the part catalog; when given, every part line must refer to
    a known part and missing ``part_name`` values are filled from it.
    """
    missing = [key for key in REQUIRED_FIELDS if is_blank(payload.get(key))]
    if missing:
        raise ValidationError(
            "Type, status, vehicle_id, vehicle_number, golf_course_id, user_id, and userName are required "
            f"(missing: {', '.join(missing)})."
        )
    job = dict(payload)
    if job["type"] not in JOB_TYPES:
        raise ValidationError("Type must be PM, BM, or Recondition.")
    if job["status"] not in JOB_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(JOB_STATUSES)}.")

    job["vehicle_number"] = str(job["vehicle_number"]).strip()
    job["userName"] = str(job["userName"]).strip()
    for key in ("system", "partsNotes", "remarks", "battery_serial", "assigned_by_name"):
        if key in job:
            job[key] = clean_text(job[key])
    if is_blank(job.get("bmCause")):
        job["bmCause"] = None
    elif job["bmCause"] not in BM_CAUSES:
        raise ValidationError("BM cause must be breakdown or accident.")
    if job.get("system") and job["system"] not in SYSTEMS:
        raise ValidationError(f"System must be one of: {', '.join(SYSTEMS)}.")

    sub_tasks = [str(task).strip() for task in job.get("subTasks") or [] if not is_blank(task)]
    job["subTasks"] = sub_tasks
    job["images"] = list(job.get("images") or [])
    job["parts"] = _normalize_lines(job.get("parts"), parts)

    if job["type"] == "PM" and not job.get("system"):
        raise ValidationError("A PM job needs a system.")
    # supervisor work orders are filled in by the assignee later
    if job["status"] in REVIEW_BRANCH:
        if job["type"] == "PM" and not sub_tasks:
            raise ValidationError("A PM job needs at least one subtask.")
        if job["type"] == "BM" and not job["bmCause"]:
            raise ValidationError("A BM job needs a cause (breakdown or accident).")
    return job


def _stock_effects(deltas):
    effects = []
    for part_id, delta in deltas.items():
        if delta > 0:
            effects.append(StockDecrement(part_id, delta))
        elif delta < 0:
            effects.append(StockRestock(part_id, -delta))
    return effects


def plan_create(payload, parts, now=None):
    """Plan a new job; stock for its part lines is taken on creation."""
    now = now or utcnow()
    draft = dict(payload)
    draft.setdefault("status", "pending")
    job = validate_job_payload(draft, parts)
    if job["status"] not in ("pending", "assigned"):
        raise ValidationError("New jobs start as pending or assigned.")
    totals = stock.aggregate_lines(job["parts"])
    stock.check_quantities(totals, parts)
    job.setdefault("created_at", now.isoformat())
    job["updated_at"] = now.isoformat()
    return Plan(job=job, effects=_stock_effects(totals), previous_status=None)


def plan_assignment(assignment, supervisor, registry, now=None):
    """Supervisor multi-assign: one ``assigned`` work order for a vehicle.

    ``assignment`` holds ``vehicle_id``, ``user_id`` (the assignee), ``type``
    and optionally ``system`` and ``remarks``.
    """
    if not is_reviewer(supervisor):
        raise PermissionDeniedError("Only supervisors and admins can assign jobs.")
    vehicle = registry.vehicle(assignment.get("vehicle_id"))
    if vehicle is None:
        raise ValidationError("Select a vehicle for every assignment.")
    assignee = registry.user(assignment.get("user_id"))
    if assignee is None:
        raise ValidationError("Select a staff member for every assignment.")
    if not can_review_course(supervisor, vehicle["golf_course_id"]):
        raise PermissionDeniedError("You cannot assign work on this golf course.")
    payload = {
        "type": assignment.get("type"),
        "status": "assigned",
        "vehicle_id": vehicle["id"],
        "vehicle_number": vehicle["vehicle_number"],
        "golf_course_id": vehicle["golf_course_id"],
        "user_id": assignee["id"],
        "userName": assignee["name"],
        "system": assignment.get("system"),
        "remarks": assignment.get("remarks"),
        "battery_serial": vehicle.get("battery_serial"),
        "subTasks": [],
        "parts": [],
        "assigned_to": assignee["id"],
        "assigned_by": supervisor["id"],
        "assigned_by_name": supervisor["name"],
    }
    return plan_create(payload, [], now)


def _plan_edit(job, changes, parts, now):
    now = now or utcnow()
    merged = dict(job)
    merged.update(changes)
    merged["id"] = job["id"]
    merged["created_at"] = job.get("created_at")
    if "revision" in job:
        merged["revision"] = job["revision"]
    updated = validate_job_payload(merged, parts)
    deltas = stock.diff_lines(job.get("parts"), updated["parts"])
    stock.check_quantities({k: v for k, v in deltas.items() if v > 0}, parts)
    updated["updated_at"] = now.isoformat()
    return Plan(job=updated, effects=_stock_effects(deltas), previous_status=job["status"])


def plan_update(job, changes, parts, now=None):
    """Plan an edit of an existing job. Never produces ledger effects.

    The status is not editable here; it moves through :func:`plan_transition`
    and :func:`plan_submission` only. Terminal jobs are read-only.
    """
    if job["status"] in TERMINAL_STATUSES:
        raise ConflictError(f"A {job['status']} job can no longer be edited.")
    if "status" in changes and changes["status"] != job["status"]:
        raise ConflictError("Change the status with a transition, not an edit.")
    return _plan_edit(job, changes, parts, now)


def plan_submission(job, details, actor, parts, now=None):
    """Assignee fills in an assigned job; it goes back to supervisor review."""
    if job["status"] not in SUBMITTABLE_STATUSES:
        raise ConflictError(f"Only assigned jobs can be filled in (job is {job['status']}).")
    if actor is not None and not (same_id(job.get("assigned_to"), actor.get("id")) or is_reviewer(actor)):
        raise PermissionDeniedError("This job is assigned to someone else.")
    changes = {key: value for key, value in details.items() if key != "status"}
    changes["status"] = "pending"
    return _plan_edit(job, changes, parts, now)


def _check_transition_allowed(job, new_status, actor):
    if actor is None:
        raise PermissionDeniedError("Sign in to change the status of a job.")
    if new_status in REVIEW_TARGETS:
        if not is_reviewer(actor):
            raise PermissionDeniedError("Only supervisors and admins can approve or reject jobs.")
        if not can_review_course(actor, job.get("golf_course_id")):
            raise PermissionDeniedError("You cannot review jobs from this golf course.")
        return
    if not (same_id(job.get("assigned_to"), actor.get("id")) or is_reviewer(actor)):
        raise PermissionDeniedError("This job is assigned to someone else.")


def plan_transition(job, new_status, registry, actor=None, now=None):
    """Plan a status change.

    Asking for the current status yields an unchanged plan. Moving into
    ``approved`` emits one usage-log append per part line and exactly one
    maintenance history append; no other target emits ledger effects.
    """
    if new_status not in JOB_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(JOB_STATUSES)}.")
    current = job["status"]
    if new_status == current:
        return Plan(job=dict(job), effects=[], changed=False, previous_status=current)
    if new_status not in TRANSITIONS.get(current, ()):
        raise ConflictError(f"A job cannot move from {current} to {new_status}.")
    _check_transition_allowed(job, new_status, actor)

    now = now or utcnow()
    updated = dict(job)
    updated["status"] = new_status
    updated["updated_at"] = now.isoformat()

    effects = []
    if new_status == "approved":
        vehicle = registry.vehicle(job["vehicle_id"])
        golf_course = registry.golf_course(job["golf_course_id"])
        technician = registry.user(job["user_id"]) or {"id": job["user_id"], "name": job.get("userName")}
        for entry in ledgers.build_usage_entries(updated, vehicle, golf_course, technician["name"], now):
            effects.append(UsageLogAppend(entry))
        effects.append(HistoryAppend(
            ledgers.build_maintenance_entry(updated, vehicle, golf_course, technician, now, approved_by=actor)
        ))
    return Plan(job=updated, effects=effects, changed=True, previous_status=current)


def check_stored_status_change(current, new_status):
    """Status rule for a whole-job write where the caller's checks already ran.

    Allows keeping the status, any move in :data:`TRANSITIONS` and the
    submission of an assigned job back to ``pending``.
    """
    if new_status == current:
        if current in TERMINAL_STATUSES:
            raise ConflictError(f"A {current} job can no longer be edited.")
        return
    if new_status in TRANSITIONS.get(current, ()):
        return
    if current in SUBMITTABLE_STATUSES and new_status == "pending":
        return
    raise ConflictError(f"A job cannot move from {current} to {new_status}.")


REQUISITION_PREFIX = "PRR"


def requisition_prefix(now=None):
    """``PRR-YYMMDD-`` for the day of ``now``."""
    now = now or utcnow()
    return f"{REQUISITION_PREFIX}-{now:%y%m%d}-"


def next_requisition_number(issued, now=None):
    """Next parts requisition number of the day.

    ``issued`` holds the numbers already given out; only those carrying
    today's prefix count. Numbering restarts at 0001 every day.
    """
    prefix = requisition_prefix(now)
    sequence = 0
    for number in issued:
        if number and number.startswith(prefix):
            tail = number[len(prefix):]
            if tail.isdigit():
                sequence = max(sequence, int(tail))
    return f"{prefix}{sequence + 1:04d}"


def check_requisition(job):
    if job["status"] != "approved":
        raise ValidationError(
            f"Only approved jobs can get a requisition number (job is {job['status']})."
        )


def job_payload(job):
    """Wire payload for a create/update request."""
    payload = {key: value for key, value in job.items() if key not in ("id", "created_at", "updated_at")}
    payload["parts"] = [dict(line) for line in job.get("parts") or []]
    return payload
