from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import DateTime, ForeignKey, Date, JSON
from datetime import datetime, date
from db import db
from stock import classify
from utils import iso, utcnow

class GolfCourse(db.Model):
    __tablename__ = "golf_course"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    name: Mapped[str] = mapped_column(unique=True, nullable=False)
    location: Mapped[str] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "location": self.location}

class User(db.Model):
    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    name: Mapped[str] = mapped_column(nullable=False)
    code: Mapped[str] = mapped_column(unique=True, nullable=False)
    role: Mapped[str] = mapped_column(nullable=False, default="staff")
    golf_course_id: Mapped[int] = mapped_column(ForeignKey("golf_course.id"), nullable=True)
    managed_golf_courses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "role": self.role,
            "golf_course_id": self.golf_course_id,
            "managed_golf_courses": list(self.managed_golf_courses or []),
            "permissions": list(self.permissions or []),
        }

class Vehicle(db.Model):
    __tablename__ = "vehicle"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    serial_number: Mapped[str] = mapped_column(unique=True, nullable=False)
    vehicle_number: Mapped[str] = mapped_column(nullable=False)
    golf_course_id: Mapped[int] = mapped_column(ForeignKey("golf_course.id"), nullable=False)
    golf_course_name: Mapped[str] = mapped_column(nullable=True)
    battery_serial: Mapped[str] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(nullable=False, default="active")
    brand: Mapped[str] = mapped_column(nullable=True)
    model: Mapped[str] = mapped_column(nullable=True)
    year: Mapped[int] = mapped_column(nullable=True)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "vehicle_number": self.vehicle_number,
            "golf_course_id": self.golf_course_id,
            "golf_course_name": self.golf_course_name,
            "battery_serial": self.battery_serial,
            "status": self.status,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "transfer_date": iso(self.transfer_date),
        }

class Part(db.Model):
    __tablename__ = "part"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    name: Mapped[str] = mapped_column(nullable=False)
    part_number: Mapped[str] = mapped_column(unique=True, nullable=True)
    category: Mapped[str] = mapped_column(nullable=True)
    unit: Mapped[str] = mapped_column(nullable=False)
    stock_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    min_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    max_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    revision: Mapped[int] = mapped_column(nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        data = {
            "id": self.id,
            "name": self.name,
            "part_number": self.part_number,
            "category": self.category,
            "unit": self.unit,
            "stock_qty": self.stock_qty,
            "min_qty": self.min_qty,
            "max_qty": self.max_qty,
            "revision": self.revision,
        }
        data["stock_level"] = classify(data)
        return data

class Job(db.Model):
    __tablename__ = "job"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=False)
    user_name: Mapped[str] = mapped_column(nullable=False)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    vehicle_number: Mapped[str] = mapped_column(nullable=False)
    golf_course_id: Mapped[int] = mapped_column(ForeignKey("golf_course.id"), nullable=False)
    type: Mapped[str] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(nullable=False, default="pending")
    system: Mapped[str] = mapped_column(nullable=True)
    sub_tasks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    parts: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    parts_notes: Mapped[str] = mapped_column(nullable=True)
    remarks: Mapped[str] = mapped_column(nullable=True)
    battery_serial: Mapped[str] = mapped_column(nullable=True)
    bm_cause: Mapped[str] = mapped_column(nullable=True)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    assigned_to: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    assigned_by: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=True)
    assigned_by_name: Mapped[str] = mapped_column(nullable=True)
    prr_number: Mapped[str] = mapped_column(unique=True, nullable=True)
    revision: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def apply_payload(self, payload):
        """Copy a validated wire payload onto the row."""
        self.user_id = payload["user_id"]
        self.user_name = payload["userName"]
        self.vehicle_id = payload["vehicle_id"]
        self.vehicle_number = payload["vehicle_number"]
        self.golf_course_id = payload["golf_course_id"]
        self.type = payload["type"]
        self.status = payload["status"]
        self.system = payload.get("system")
        self.sub_tasks = list(payload.get("subTasks") or [])
        self.parts = [dict(line) for line in payload.get("parts") or []]
        self.parts_notes = payload.get("partsNotes")
        self.remarks = payload.get("remarks")
        self.battery_serial = payload.get("battery_serial")
        self.bm_cause = payload.get("bmCause")
        self.images = list(payload.get("images") or [])
        self.assigned_to = payload.get("assigned_to")
        self.assigned_by = payload.get("assigned_by")
        self.assigned_by_name = payload.get("assigned_by_name")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "userName": self.user_name,
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle_number,
            "golf_course_id": self.golf_course_id,
            "type": self.type,
            "status": self.status,
            "system": self.system,
            "subTasks": list(self.sub_tasks or []),
            "parts": [dict(line) for line in self.parts or []],
            "partsNotes": self.parts_notes,
            "remarks": self.remarks,
            "battery_serial": self.battery_serial,
            "bmCause": self.bm_cause,
            "images": list(self.images or []),
            "assigned_to": self.assigned_to,
            "assigned_by": self.assigned_by,
            "assigned_by_name": self.assigned_by_name,
            "prrNumber": self.prr_number,
            "revision": self.revision,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

class PartsUsageLog(db.Model):
    __tablename__ = "parts_usage_log"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    entry_key: Mapped[str] = mapped_column(unique=True, nullable=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("job.id"), nullable=False)
    part_id: Mapped[int] = mapped_column(nullable=False)
    part_name: Mapped[str] = mapped_column(nullable=False)
    quantity_used: Mapped[int] = mapped_column(nullable=False)
    vehicle_number: Mapped[str] = mapped_column(nullable=False)
    vehicle_serial: Mapped[str] = mapped_column(nullable=True)
    golf_course_name: Mapped[str] = mapped_column(nullable=True)
    used_by: Mapped[str] = mapped_column(nullable=False)
    used_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str] = mapped_column(nullable=True)
    job_type: Mapped[str] = mapped_column(nullable=False)
    system: Mapped[str] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "entryKey": self.entry_key,
            "jobId": self.job_id,
            "partId": self.part_id,
            "partName": self.part_name,
            "quantityUsed": self.quantity_used,
            "vehicleNumber": self.vehicle_number,
            "vehicleSerial": self.vehicle_serial,
            "golfCourseName": self.golf_course_name,
            "usedBy": self.used_by,
            "usedDate": iso(self.used_date),
            "notes": self.notes,
            "jobType": self.job_type,
            "system": self.system,
        }

class SerialHistoryEntry(db.Model):
    __tablename__ = "serial_history_entry"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    entry_key: Mapped[str] = mapped_column(unique=True, nullable=True)
    serial_number: Mapped[str] = mapped_column(nullable=False, index=True)
    vehicle_id: Mapped[int] = mapped_column(nullable=False)
    vehicle_number: Mapped[str] = mapped_column(nullable=False)
    action_type: Mapped[str] = mapped_column(nullable=False)
    action_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    actual_transfer_date: Mapped[date] = mapped_column(Date, nullable=True)
    details: Mapped[str] = mapped_column(nullable=False)
    performed_by: Mapped[str] = mapped_column(nullable=True)
    performed_by_id: Mapped[int] = mapped_column(nullable=True)
    golf_course_id: Mapped[int] = mapped_column(nullable=True)
    golf_course_name: Mapped[str] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    related_job_id: Mapped[int] = mapped_column(nullable=True)
    job_type: Mapped[str] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(nullable=True)
    change_type: Mapped[str] = mapped_column(nullable=True)
    parts_used: Mapped[list] = mapped_column(JSON, nullable=True)
    affected_fields: Mapped[list] = mapped_column(JSON, nullable=True)
    previous_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict] = mapped_column(JSON, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "entry_key": self.entry_key,
            "serial_number": self.serial_number,
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle_number,
            "action_type": self.action_type,
            "action_date": iso(self.action_date),
            "actual_transfer_date": iso(self.actual_transfer_date),
            "details": self.details,
            "performed_by": self.performed_by,
            "performed_by_id": self.performed_by_id,
            "golf_course_id": self.golf_course_id,
            "golf_course_name": self.golf_course_name,
            "is_active": self.is_active,
            "related_job_id": self.related_job_id,
            "job_type": self.job_type,
            "status": self.status,
            "change_type": self.change_type,
            "parts_used": self.parts_used,
            "affected_fields": self.affected_fields,
            "previous_data": self.previous_data,
            "new_data": self.new_data,
        }

class StockTransaction(db.Model):
    __tablename__ = "stock_transaction"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    part_id: Mapped[int] = mapped_column(nullable=False, index=True)
    type: Mapped[str] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    previous_balance: Mapped[int] = mapped_column(nullable=False)
    new_balance: Mapped[int] = mapped_column(nullable=False)
    ref_type: Mapped[str] = mapped_column(nullable=False)
    ref_id: Mapped[int] = mapped_column(nullable=True)
    user_id: Mapped[int] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "part_id": self.part_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_balance": self.previous_balance,
            "new_balance": self.new_balance,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
        }

class Notification(db.Model):
    __tablename__ = "notification"

    id: Mapped[int] = mapped_column(primary_key=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(nullable=False)
    message: Mapped[str] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(nullable=False, default="info")
    link: Mapped[str] = mapped_column(nullable=True)
    related_job_id: Mapped[int] = mapped_column(nullable=True)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "link": self.link,
            "related_job_id": self.related_job_id,
            "is_read": self.is_read,
            "created_at": iso(self.created_at),
        }
