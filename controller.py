"""Application controller.

Owns the :class:`store.AppState` and is the only place that talks to the
persistence service. Each public action asks :mod:`lifecycle` for a plan,
persists it through the gateway and then carries out the plan's side
effects. Actions never raise; they return an :class:`ActionResult` the UI can
show as a notification.
"""

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import List, Optional

import lifecycle
import stock
from errors import (
    ConflictError,
    MaintenanceError,
    PartialSideEffectError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)
from outbox import SideEffectOutbox
from registry import is_reviewer, validate_vehicle_payload
from store import AppState
from utils import same_id

logger = logging.getLogger(__name__)

USAGE_RESOURCE = "parts-usage-logs"
HISTORY_RESOURCE = "serial-history"


@dataclass
class ActionResult:
    ok: bool
    message: str
    data: object = None
    changed: bool = True
    error: Optional[Exception] = None
    warnings: List[Exception] = field(default_factory=list)


def action_handler(description):
    """Turn every failure of a controller action into a failed result."""
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except MaintenanceError as exc:
                logger.info("Could not %s: %s", description, exc)
                return ActionResult(ok=False, message=str(exc), changed=False, error=exc)
            except Exception as exc:
                logger.exception("Error trying to %s", description)
                return ActionResult(
                    ok=False,
                    message=f"Error trying to {description}. Please try again.",
                    changed=False,
                    error=exc,
                )
        return wrapper
    return decorator


class MaintenanceController:
    def __init__(self, gateway, outbox=None):
        self.gateway = gateway
        self.outbox = outbox if outbox is not None else SideEffectOutbox()
        self.state = AppState()

    # loading

    @action_handler("load data")
    def refresh(self):
        if len(self.outbox):
            self.outbox.drain(self.gateway.create)
        self.state.load(
            golf_courses=self.gateway.list("golf-courses"),
            vehicles=self.gateway.list("vehicles"),
            users=self.gateway.list("users"),
            parts=self.gateway.list("parts"),
            jobs=self.gateway.list("jobs"),
            usage_logs=self.gateway.list(USAGE_RESOURCE),
            history=self.gateway.list(HISTORY_RESOURCE),
        )
        return ActionResult(ok=True, message="Data loaded.")

    def _reload(self, name, resource):
        try:
            self.state.load(**{name: self.gateway.list(resource)})
        except TransportError as exc:
            logger.warning("Could not reload %s: %s", resource, exc)

    def _require_job(self, job_id):
        job = self.state.job(job_id)
        if job is None:
            raise ConflictError(f"Job {job_id} was not found.")
        return job

    def _require_vehicle(self, vehicle_id):
        vehicle = self.state.vehicle(vehicle_id)
        if vehicle is None:
            raise ConflictError(f"Vehicle {vehicle_id} was not found.")
        return vehicle

    # stock

    def _apply_stock_effects(self, effects):
        for effect in effects:
            if not isinstance(effect, (lifecycle.StockDecrement, lifecycle.StockRestock)):
                continue
            try:
                self.state.put_part(self.gateway.get("parts", effect.part_id))
                continue
            except TransportError as exc:
                logger.warning("Could not re-read part %s, adjusting locally: %s", effect.part_id, exc)
            part = self.state.part(effect.part_id)
            if part is None:
                continue
            if isinstance(effect, lifecycle.StockDecrement):
                part["stock_qty"] = (part.get("stock_qty") or 0) - effect.amount
            else:
                part["stock_qty"] = (part.get("stock_qty") or 0) + effect.amount
            part["stock_level"] = stock.classify(part)
            self.state.put_part(part)

    def low_stock_parts(self):
        return [part for part in self.state.parts if stock.classify(part) == stock.LOW]

    # jobs

    def _persist_job(self, previous, updated):
        # shown immediately, put back if the service does not confirm
        self.state.put_job(updated)
        try:
            saved = self.gateway.update("jobs", previous["id"], lifecycle.job_payload(updated))
        except TransportError:
            self.state.put_job(previous)
            raise
        self.state.put_job(saved)
        return saved

    @action_handler("create the job")
    def create_job(self, payload):
        plan = lifecycle.plan_create(payload, self.state.parts)
        saved = self.gateway.create("jobs", lifecycle.job_payload(plan.job))
        self.state.put_job(saved)
        self._apply_stock_effects(plan.effects)
        return ActionResult(ok=True, message="Job created.", data=saved)

    @action_handler("assign the jobs")
    def assign_jobs(self, assignments, supervisor):
        if not assignments:
            raise ValidationError("Add at least one assignment.")
        registry = self.state.registry()
        plans = [lifecycle.plan_assignment(a, supervisor, registry) for a in assignments]
        created = []
        for plan in plans:
            try:
                saved = self.gateway.create("jobs", lifecycle.job_payload(plan.job))
            except TransportError as exc:
                raise TransportError(
                    f"Assigned {len(created)} of {len(plans)} jobs: {exc}", status_code=exc.status_code
                ) from exc
            self.state.put_job(saved)
            created.append(saved)
        warnings = self._notify_assignees(created, supervisor)
        return ActionResult(ok=True, message=f"Assigned {len(created)} job(s).", data=created, warnings=warnings)

    def _notify_assignees(self, jobs, supervisor):
        warnings = []
        for job in jobs:
            try:
                self.gateway.create("notifications", {
                    "user_id": job["assigned_to"],
                    "title": f"New {job['type']} job",
                    "message": f"{supervisor['name']} assigned you vehicle {job['vehicle_number']}.",
                    "type": "info",
                    "related_job_id": job["id"],
                })
            except TransportError as exc:
                logger.warning("Could not notify user %s about job %s: %s", job["assigned_to"], job["id"], exc)
                warnings.append(exc)
        return warnings

    @action_handler("update the job")
    def update_job(self, job_id, changes):
        job = self._require_job(job_id)
        plan = lifecycle.plan_update(job, changes, self.state.parts)
        saved = self._persist_job(job, plan.job)
        self._apply_stock_effects(plan.effects)
        return ActionResult(ok=True, message="Job updated.", data=saved)

    @action_handler("submit the job details")
    def submit_job_details(self, job_id, details, actor):
        job = self._require_job(job_id)
        plan = lifecycle.plan_submission(job, details, actor, self.state.parts)
        saved = self._persist_job(job, plan.job)
        self._apply_stock_effects(plan.effects)
        return ActionResult(ok=True, message="Job details saved and sent for approval.", data=saved)

    @action_handler("change the job status")
    def transition_status(self, job_id, new_status, actor=None):
        job = self._require_job(job_id)
        plan = lifecycle.plan_transition(job, new_status, self.state.registry(), actor)
        if not plan.changed:
            return ActionResult(ok=True, message=f"Job is already {new_status}.", data=job, changed=False)

        saved = self._persist_job(job, plan.job)

        warnings = []
        failures = self._append_ledgers(plan)
        if failures:
            warnings.append(PartialSideEffectError(
                f"Job {job_id} is {new_status}, but {len(failures)} log entries could not be saved "
                "and were queued for retry.",
                failures=failures,
            ))
        return ActionResult(ok=True, message=f"Job {new_status}.", data=saved, warnings=warnings)

    @action_handler("issue the requisition number")
    def request_requisition(self, job_id):
        job = self._require_job(job_id)
        lifecycle.check_requisition(job)
        if job.get("prrNumber"):
            return ActionResult(ok=True, message=f"Requisition {job['prrNumber']}.", data=job, changed=False)
        saved = self.gateway.request_requisition(job["id"])
        self.state.put_job(saved)
        return ActionResult(ok=True, message=f"Requisition {saved['prrNumber']}.", data=saved)


    def _append_ledgers(self, plan):
        failures = []
        for effect in plan.effects:
            if isinstance(effect, lifecycle.UsageLogAppend):
                resource = USAGE_RESOURCE
            elif isinstance(effect, lifecycle.HistoryAppend):
                resource = HISTORY_RESOURCE
            else:
                continue
            try:
                saved = self.gateway.create(resource, effect.entry)
            except TransportError as exc:
                logger.error("Ledger append to %s for job %s failed: %s", resource, plan.job.get("id"), exc)
                self.outbox.add(resource, effect.entry, exc)
                failures.append({"resource": resource, "entry": effect.entry, "error": str(exc)})
                continue
            if resource == USAGE_RESOURCE:
                self.state.append_usage_log(saved)
            else:
                self.state.append_history(saved)
        return failures

    @action_handler("retry the queued log entries")
    def retry_side_effects(self):
        if not len(self.outbox):
            return ActionResult(ok=True, message="Nothing to retry.", changed=False)
        delivered, remaining = self.outbox.drain(self.gateway.create)
        if delivered:
            self._reload("usage_logs", USAGE_RESOURCE)
            self._reload("history", HISTORY_RESOURCE)
        if remaining:
            return ActionResult(
                ok=False,
                message=f"{len(remaining)} log entries are still waiting to be saved.",
                data={"delivered": len(delivered), "remaining": len(remaining)},
            )
        return ActionResult(ok=True, message=f"Saved {len(delivered)} queued log entries.",
                            data={"delivered": len(delivered), "remaining": 0})

    # vehicles

    @action_handler("register the vehicle")
    def register_vehicle(self, payload, actor):
        data = validate_vehicle_payload(payload)
        if self.state.registry().vehicle_by_serial(data["serial_number"]):
            raise ValidationError(f"Serial number {data['serial_number']} is already registered.")
        body = dict(payload)
        body["user_id"] = actor["id"] if actor else None
        saved = self.gateway.create("vehicles", body)
        self.state.put_vehicle(saved)
        self._reload("history", HISTORY_RESOURCE)
        return ActionResult(ok=True, message="Vehicle registered.", data=saved)

    @action_handler("update the vehicle")
    def update_vehicle(self, vehicle_id, changes, actor):
        self._require_vehicle(vehicle_id)
        validate_vehicle_payload(changes, partial=True)
        body = dict(changes)
        body["user_id"] = actor["id"] if actor else None
        saved = self.gateway.update("vehicles", vehicle_id, body)
        self.state.put_vehicle(saved)
        self._reload("history", HISTORY_RESOURCE)
        return ActionResult(ok=True, message="Vehicle updated.", data=saved)

    @action_handler("change the vehicle status")
    def set_vehicle_status(self, vehicle_id, status, actor, reason=None):
        vehicle = self._require_vehicle(vehicle_id)
        validate_vehicle_payload({"status": status}, partial=True)
        if vehicle.get("status") == status:
            return ActionResult(ok=True, message=f"Vehicle is already {status}.", data=vehicle, changed=False)
        saved = self.gateway.set_vehicle_status(vehicle_id, status, actor["id"] if actor else None, reason)
        self.state.put_vehicle(saved)
        self._reload("history", HISTORY_RESOURCE)
        return ActionResult(ok=True, message="Vehicle status updated.", data=saved)

    def _open_jobs_for(self, vehicle_ids):
        return [
            job for job in self.state.jobs_with_status(*lifecycle.OPEN_STATUSES)
            if any(same_id(job.get("vehicle_id"), vid) for vid in vehicle_ids)
        ]

    @action_handler("transfer the vehicles")
    def transfer_vehicles(self, vehicle_ids, to_golf_course_id, actor, transfer_date=None, reason=None):
        if not vehicle_ids:
            raise ValidationError("Select at least one vehicle to transfer.")
        if not is_reviewer(actor):
            raise PermissionDeniedError("Only supervisors and admins can transfer vehicles.")
        vehicles = [self._require_vehicle(vid) for vid in vehicle_ids]
        sources = {str(v["golf_course_id"]) for v in vehicles}
        if len(sources) != 1:
            raise ValidationError("All vehicles must come from the same golf course.")
        destination = self.state.registry().golf_course(to_golf_course_id)
        if destination is None:
            raise ConflictError("Destination golf course was not found.")
        if same_id(vehicles[0]["golf_course_id"], to_golf_course_id):
            raise ValidationError("Source and destination golf courses cannot be the same.")
        if self._open_jobs_for(vehicle_ids):
            raise ConflictError("Cannot transfer vehicles with pending or in-progress jobs.")

        result = self.gateway.transfer_vehicles({
            "vehicle_ids": [v["id"] for v in vehicles],
            "from_golf_course_id": vehicles[0]["golf_course_id"],
            "to_golf_course_id": destination["id"],
            "to_golf_course_name": destination["name"],
            "transfer_date": transfer_date,
            "user_id": actor["id"],
            "reason": reason,
        })
        for vehicle in result.get("transferred_vehicles", []):
            self.state.put_vehicle(vehicle)
        self._reload("history", HISTORY_RESOURCE)
        return ActionResult(ok=True, message=f"Transferred {len(vehicles)} vehicle(s).", data=result)

    @action_handler("delete the vehicle")
    def delete_vehicle(self, vehicle_id, actor):
        self._require_vehicle(vehicle_id)
        if any(same_id(job.get("vehicle_id"), vehicle_id) for job in self.state.jobs):
            raise ConflictError("Cannot delete a vehicle that has jobs.")
        self.gateway.delete("vehicles", vehicle_id, user_id=actor["id"] if actor else None)
        self.state.drop_vehicle(vehicle_id)
        self._reload("history", HISTORY_RESOURCE)
        return ActionResult(ok=True, message="Vehicle deleted.")

    # parts

    @action_handler("update the part")
    def update_part(self, part_id, changes, actor=None):
        part = self.state.part(part_id)
        if part is None:
            raise ConflictError(f"Part {part_id} was not found.")
        merged = dict(part)
        merged.update(changes)
        body = stock.validate_part_payload(merged)
        body["revision"] = part.get("revision")
        body["user_id"] = actor["id"] if actor else None
        saved = self.gateway.update("parts", part_id, body)
        self.state.put_part(saved)
        return ActionResult(ok=True, message="Part updated.", data=saved)

    # notifications

    @action_handler("load notifications")
    def load_notifications(self, user):
        self.state.load(notifications=self.gateway.list("notifications", user_id=user["id"]))
        unread = len(self.state.unread_notifications())
        return ActionResult(ok=True, message=f"{unread} unread notification(s).", data=self.state.notifications)

    @action_handler("mark the notification as read")
    def mark_notification_read(self, notification_id):
        saved = self.gateway.update("notifications", notification_id, {"is_read": True})
        self.state.put_notification(saved)
        return ActionResult(ok=True, message="Notification marked as read.", data=saved)

    @action_handler("mark all notifications as read")
    def mark_all_notifications_read(self):
        unread = self.state.unread_notifications()
        for notification in unread:
            self.state.put_notification(
                self.gateway.update("notifications", notification["id"], {"is_read": True})
            )
        return ActionResult(ok=True, message=f"Marked {len(unread)} notification(s) as read.", changed=bool(unread))

    @action_handler("delete the notification")
    def delete_notification(self, notification_id):
        self.gateway.delete("notifications", notification_id)
        self.state.drop_notification(notification_id)
        return ActionResult(ok=True, message="Notification deleted.")
