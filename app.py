import csv
import io
import os
from functools import wraps

from dotenv import load_dotenv
from flask import Flask, request, jsonify, Response
from sqlalchemy import or_, select, text, update
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

import ledgers
import lifecycle
import stock
from db import db, basedir
from errors import ConflictError, InsufficientStockError, ValidationError
from models import (
    GolfCourse,
    User,
    Vehicle,
    Part,
    Job,
    Notification,
    PartsUsageLog,
    SerialHistoryEntry,
    StockTransaction,
)
from registry import describe_vehicle_changes, validate_user_payload, validate_vehicle_payload
from utils import (
    is_blank,
    parse_date,
    parse_datetime,
    parse_optional_int,
    sanitize_csv_value,
    utcnow,
)

app = Flask(__name__)
load_dotenv()
secret_key = os.environ.get("SECRET_KEY")
if not secret_key:
    raise RuntimeError("SECRET_KEY is required to run the app securely.")
app.secret_key = secret_key
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL") or "sqlite:///" + os.path.join(basedir, "db.db")
app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024
app.json.ensure_ascii = False
app.json.sort_keys = False
db.init_app(app)

ID_FIELDS = ("vehicle_id", "golf_course_id", "user_id", "assigned_to", "assigned_by")
NOTIFICATION_LIMIT = 50

def api_response(data=None, message="", status=200, **extra):
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status

def api_error(message, status, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status

def get_payload():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload

def api_errors(description):
    """Map the error taxonomy onto HTTP answers, rolling back on failure."""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            try:
                return view_func(*args, **kwargs)
            except InsufficientStockError as exc:
                db.session.rollback()
                return api_error(str(exc), 409, data={"shortages": exc.shortages})
            except ConflictError as exc:
                db.session.rollback()
                return api_error(str(exc), 409)
            except ValueError as exc:
                db.session.rollback()
                return api_error(str(exc), 400)
            except IntegrityError:
                db.session.rollback()
                return api_error(f"Failed to {description}: a unique value is already in use.", 409)
            except Exception:
                db.session.rollback()
                app.logger.exception("Error trying to %s", description)
                return api_error(f"Failed to {description}.", 500)
        return wrapper
    return decorator

def get_or_404(model, item_id, label):
    item = db.session.get(model, item_id)
    if item is None:
        return None, api_error(f"{label} not found", 404)
    return item, None

def check_revision(payload, current):
    if "revision" not in payload or payload["revision"] is None:
        return
    if parse_optional_int(payload["revision"], "revision") != current:
        raise ConflictError("This record was changed by someone else. Reload and try again.")

def record_history(entry):
    """Add a serial history row from its wire dict."""
    row = SerialHistoryEntry(
        entry_key=entry.get("entry_key"),
        serial_number=str(entry["serial_number"]).strip(),
        vehicle_id=parse_optional_int(entry["vehicle_id"], "vehicle_id"),
        vehicle_number=str(entry["vehicle_number"]).strip(),
        action_type=entry["action_type"],
        action_date=parse_datetime(entry.get("action_date"), "action_date") or utcnow(),
        actual_transfer_date=parse_date(entry.get("actual_transfer_date"), "actual_transfer_date"),
        details=str(entry["details"]).strip(),
        performed_by=entry.get("performed_by"),
        performed_by_id=parse_optional_int(entry.get("performed_by_id"), "performed_by_id"),
        golf_course_id=parse_optional_int(entry.get("golf_course_id"), "golf_course_id"),
        golf_course_name=entry.get("golf_course_name"),
        is_active=bool(entry.get("is_active", True)),
        related_job_id=parse_optional_int(entry.get("related_job_id"), "related_job_id"),
        job_type=entry.get("job_type"),
        status=entry.get("status"),
        change_type=entry.get("change_type"),
        parts_used=entry.get("parts_used"),
        affected_fields=entry.get("affected_fields"),
        previous_data=entry.get("previous_data"),
        new_data=entry.get("new_data"),
    )
    db.session.add(row)
    return row

def user_label(user_id):
    user = db.session.get(User, user_id) if user_id else None
    return user.name if user else None

def move_stock(part_id, amount, job_id=None, user_id=None):
    """Take (amount > 0) or return (amount < 0) stock in one statement.

    Taking stock only succeeds while enough is left, so two jobs racing for
    the last units cannot both get them.
    """
    statement = update(Part).where(Part.id == part_id)
    if amount > 0:
        statement = statement.where(Part.stock_qty >= amount)
    result = db.session.execute(
        statement.values(stock_qty=Part.stock_qty - amount, revision=Part.revision + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        part = db.session.get(Part, part_id, populate_existing=True)
        if part is None:
            if amount < 0:
                return
            raise ValidationError(f"Part {part_id} does not exist.")
        stock.check_available(part.to_dict(), amount)
        raise ConflictError(f"Stock for {part.name} changed, please try again.")
    new_balance = db.session.execute(select(Part.stock_qty).where(Part.id == part_id)).scalar_one()
    db.session.add(StockTransaction(
        part_id=part_id,
        type="OUT" if amount > 0 else "IN",
        quantity=abs(amount),
        previous_balance=new_balance + amount,
        new_balance=new_balance,
        ref_type="JOB",
        ref_id=job_id,
        user_id=user_id,
    ))

def coerce_job_payload(payload):
    data = dict(payload)
    for key in ID_FIELDS:
        if key in data:
            data[key] = parse_optional_int(data[key], key)
    lines = []
    for line in data.get("parts") or []:
        if isinstance(line, dict) and "part_id" in line:
            line = dict(line)
            line["part_id"] = parse_optional_int(line["part_id"], "part_id")
        lines.append(line)
    data["parts"] = lines
    return data

def part_catalog(lines):
    ids = {line["part_id"] for line in lines if isinstance(line, dict) and line.get("part_id") is not None}
    if not ids:
        return []
    return [part.to_dict() for part in Part.query.filter(Part.id.in_(ids)).all()]

@app.errorhandler(HTTPException)
def handle_http_error(exc):
    return api_error(exc.description, exc.code)

@app.route("/api/health")
def health():
    db.session.execute(text("SELECT 1"))
    return api_response(message="ok")

# golf courses

@app.route("/api/golf-courses", methods=["GET", "POST"])
@api_errors("save golf course")
def golf_courses():
    if request.method == "GET":
        courses = GolfCourse.query.order_by(GolfCourse.name).all()
        return api_response([c.to_dict() for c in courses], "Golf courses retrieved successfully")

    payload = get_payload()
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required.")
    course = GolfCourse(name=name, location=(payload.get("location") or "").strip() or None)
    db.session.add(course)
    db.session.commit()
    return api_response(course.to_dict(), "Golf course created successfully", 201)

@app.route("/api/golf-courses/<int:course_id>", methods=["GET", "PUT", "DELETE"])
@api_errors("save golf course")
def golf_course_detail(course_id):
    course, error = get_or_404(GolfCourse, course_id, "Golf course")
    if error:
        return error
    if request.method == "GET":
        return api_response(course.to_dict(), "Golf course retrieved successfully")

    if request.method == "DELETE":
        if Vehicle.query.filter_by(golf_course_id=course_id).count():
            raise ConflictError("Move or delete the vehicles of this golf course first.")
        if User.query.filter_by(golf_course_id=course_id).count():
            raise ConflictError("Move the users of this golf course first.")
        db.session.delete(course)
        db.session.commit()
        return api_response(message="Golf course deleted successfully")

    payload = get_payload()
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty.")
        course.name = name
        Vehicle.query.filter_by(golf_course_id=course_id).update({"golf_course_name": name})
    if "location" in payload:
        course.location = (payload.get("location") or "").strip() or None
    db.session.commit()
    return api_response(course.to_dict(), "Golf course updated successfully")

# users

@app.route("/api/users", methods=["GET", "POST"])
@api_errors("save user")
def users():
    if request.method == "GET":
        query = User.query
        if request.args.get("role"):
            query = query.filter_by(role=request.args["role"])
        if request.args.get("golf_course_id"):
            query = query.filter_by(golf_course_id=parse_optional_int(request.args["golf_course_id"], "golf_course_id"))
        return api_response([u.to_dict() for u in query.order_by(User.name).all()], "Users retrieved successfully")

    data = validate_user_payload(get_payload())
    user = User(**data)
    db.session.add(user)
    db.session.commit()
    return api_response(user.to_dict(), "User created successfully", 201)

@app.route("/api/users/<int:user_id>", methods=["GET", "PUT", "DELETE"])
@api_errors("save user")
def user_detail(user_id):
    user, error = get_or_404(User, user_id, "User")
    if error:
        return error
    if request.method == "GET":
        return api_response(user.to_dict(), "User retrieved successfully")

    if request.method == "DELETE":
        in_use = Job.query.filter(or_(Job.user_id == user_id, Job.assigned_to == user_id)).count()
        if in_use:
            raise ConflictError("Cannot delete a user who has jobs.")
        Notification.query.filter_by(user_id=user_id).delete()
        db.session.delete(user)
        db.session.commit()
        return api_response(message="User deleted successfully")

    for key, value in validate_user_payload(get_payload(), partial=True).items():
        setattr(user, key, value)
    db.session.commit()
    return api_response(user.to_dict(), "User updated successfully")

# vehicles

@app.route("/api/vehicles", methods=["GET", "POST"])
@api_errors("save vehicle")
def vehicles():
    if request.method == "GET":
        query = Vehicle.query
        if request.args.get("golf_course_id"):
            query = query.filter_by(golf_course_id=parse_optional_int(request.args["golf_course_id"], "golf_course_id"))
        if request.args.get("status"):
            query = query.filter_by(status=request.args["status"])
        search = (request.args.get("search") or "").strip()
        if search:
            like = f"%{search}%"
            query = query.filter(or_(Vehicle.serial_number.ilike(like), Vehicle.vehicle_number.ilike(like)))
        return api_response([v.to_dict() for v in query.order_by(Vehicle.vehicle_number).all()], "Vehicles retrieved successfully")

    payload = get_payload()
    data = validate_vehicle_payload(payload)
    course, error = get_or_404(GolfCourse, data["golf_course_id"], "Golf course")
    if error:
        return error
    if Vehicle.query.filter_by(serial_number=data["serial_number"]).first():
        raise ConflictError(f"Serial number {data['serial_number']} is already registered.")
    data["golf_course_name"] = course.name
    vehicle = Vehicle(**data)
    db.session.add(vehicle)
    db.session.flush()

    user_id = parse_optional_int(payload.get("user_id"), "user_id")
    record_history(ledgers.build_vehicle_entry(
        "registration",
        vehicle.to_dict(),
        f"New vehicle registered - vehicle number: {vehicle.vehicle_number}, golf course: {course.name}",
        performed_by_id=user_id,
        performed_by=user_label(user_id),
        status="completed",
        change_type="create",
        new_data=vehicle.to_dict(),
    ))
    db.session.commit()
    return api_response(vehicle.to_dict(), "Vehicle created successfully", 201)

@app.route("/api/vehicles/<int:vehicle_id>", methods=["GET", "PUT", "PATCH", "DELETE"])
@api_errors("save vehicle")
def vehicle_detail(vehicle_id):
    vehicle, error = get_or_404(Vehicle, vehicle_id, "Vehicle")
    if error:
        return error
    if request.method == "GET":
        return api_response(vehicle.to_dict(), "Vehicle retrieved successfully")

    if request.method == "DELETE":
        if Job.query.filter_by(vehicle_id=vehicle_id).count():
            raise ConflictError("Cannot delete vehicle with existing jobs. Please remove all related jobs first.")
        user_id = parse_optional_int(request.args.get("user_id"), "user_id")
        if user_id:
            description = " ".join(str(p) for p in (vehicle.brand, vehicle.model, vehicle.year) if p)
            record_history(ledgers.build_vehicle_entry(
                "data_delete",
                vehicle.to_dict(),
                f"Vehicle deleted {description}".strip(),
                performed_by_id=user_id,
                performed_by=user_label(user_id),
                status=None,
                change_type="delete",
                previous_data=vehicle.to_dict(),
            ))
        db.session.delete(vehicle)
        db.session.commit()
        return api_response(message="Vehicle deleted successfully")

    payload = get_payload()
    user_id = parse_optional_int(payload.get("user_id"), "user_id")
    before = vehicle.to_dict()

    if request.method == "PATCH":
        data = validate_vehicle_payload({"status": payload.get("status")}, partial=True)
        if "status" not in data:
            raise ValidationError("Status is required.")
        vehicle.status = data["status"]
        if user_id and vehicle.status != before["status"]:
            reason = (payload.get("reason") or "").strip()
            details = f"Status changed from {before['status']} to {vehicle.status}"
            if reason:
                details += f" - reason: {reason}"
            record_history(ledgers.build_vehicle_entry(
                "status_change",
                vehicle.to_dict(),
                details,
                performed_by_id=user_id,
                performed_by=user_label(user_id),
                change_type="status_change",
                affected_fields=["status"],
                previous_data={"status": before["status"]},
                new_data={"status": vehicle.status},
            ))
        db.session.commit()
        return api_response(vehicle.to_dict(), "Vehicle status updated successfully")

    data = validate_vehicle_payload(payload, partial=True)
    if "golf_course_id" in data and data["golf_course_id"] != vehicle.golf_course_id:
        course, error = get_or_404(GolfCourse, data["golf_course_id"], "Golf course")
        if error:
            return error
        data["golf_course_name"] = course.name
    if "serial_number" in data and data["serial_number"] != vehicle.serial_number:
        if Vehicle.query.filter_by(serial_number=data["serial_number"]).first():
            raise ConflictError(f"Serial number {data['serial_number']} is already registered.")

    changes, affected = describe_vehicle_changes(before, data)
    for key, value in data.items():
        setattr(vehicle, key, value)
    db.session.flush()

    if user_id and changes:
        transferred = "golf_course_name" in affected
        record_history(ledgers.build_vehicle_entry(
            "transfer" if transferred else "data_edit",
            vehicle.to_dict(),
            f"Vehicle updated: {', '.join(changes)}",
            performed_by_id=user_id,
            performed_by=user_label(user_id),
            actual_transfer_date=data.get("transfer_date").isoformat() if data.get("transfer_date") else None,
            status=vehicle.status if vehicle.status in ledgers.HISTORY_STATUSES else None,
            change_type="transfer" if transferred else "update",
            affected_fields=affected,
            previous_data={key: before.get(key) for key in affected},
            new_data={key: vehicle.to_dict().get(key) for key in affected},
        ))
    db.session.commit()
    return api_response(vehicle.to_dict(), "Vehicle updated successfully")

@app.route("/api/vehicles/transfer", methods=["POST"])
@api_errors("transfer vehicles")
def transfer_vehicles():
    payload = get_payload()
    vehicle_ids = payload.get("vehicle_ids")
    if not isinstance(vehicle_ids, list) or not vehicle_ids:
        raise ValidationError("Vehicle IDs array is required and must not be empty.")
    vehicle_ids = [parse_optional_int(v, "vehicle_ids") for v in vehicle_ids]
    from_id = parse_optional_int(payload.get("from_golf_course_id"), "from_golf_course_id")
    to_id = parse_optional_int(payload.get("to_golf_course_id"), "to_golf_course_id")
    user_id = parse_optional_int(payload.get("user_id"), "user_id")
    if not from_id or not to_id or not user_id:
        raise ValidationError("From golf course ID, to golf course ID, and user ID are required.")
    if from_id == to_id:
        raise ValidationError("Source and destination golf courses cannot be the same.")

    destination, error = get_or_404(GolfCourse, to_id, "Destination golf course")
    if error:
        return error
    moving = Vehicle.query.filter(Vehicle.id.in_(vehicle_ids), Vehicle.golf_course_id == from_id).all()
    if len(moving) != len(set(vehicle_ids)):
        return api_error("Some vehicles not found or not in the source golf course", 404)

    busy = Job.query.filter(Job.vehicle_id.in_(vehicle_ids), Job.status.in_(lifecycle.OPEN_STATUSES)).all()
    if busy:
        return api_error(
            "Cannot transfer vehicles with pending or in-progress jobs",
            409,
            data={"vehicles_with_pending_jobs": sorted({job.vehicle_number for job in busy})},
        )

    transfer_date = parse_date(payload.get("transfer_date"), "transfer_date") or utcnow().date()
    reason = (payload.get("reason") or "").strip()
    performer = user_label(user_id)
    transferred = []
    for vehicle in moving:
        source_name = vehicle.golf_course_name
        vehicle.golf_course_id = destination.id
        vehicle.golf_course_name = destination.name
        vehicle.transfer_date = transfer_date
        details = f"Transferred from {source_name} to {destination.name}"
        if reason:
            details += f" - reason: {reason}"
        record_history(ledgers.build_vehicle_entry(
            "transfer",
            vehicle.to_dict(),
            details,
            performed_by_id=user_id,
            performed_by=performer,
            actual_transfer_date=transfer_date.isoformat(),
            change_type="transfer",
            affected_fields=["golf_course_id", "golf_course_name"],
            previous_data={"golf_course_id": from_id, "golf_course_name": source_name},
            new_data={"golf_course_id": destination.id, "golf_course_name": destination.name},
        ))
        transferred.append(vehicle.to_dict())
    db.session.commit()
    return api_response(
        {
            "transferred_vehicles": transferred,
            "transfer_summary": {
                "count": len(transferred),
                "from_golf_course_id": from_id,
                "to_golf_course_id": to_id,
                "to_golf_course_name": destination.name,
                "transfer_date": transfer_date.isoformat(),
                "user_id": user_id,
            },
        },
        f"Successfully transferred {len(transferred)} vehicle(s)",
    )

@app.route("/api/vehicles/<int:vehicle_id>/history.csv", methods=["GET"])
def vehicle_history_report(vehicle_id):
    vehicle, error = get_or_404(Vehicle, vehicle_id, "Vehicle")
    if error:
        return error

    entries = (
        SerialHistoryEntry.query
        .filter_by(serial_number=vehicle.serial_number)
        .order_by(SerialHistoryEntry.action_date.desc())
        .all()
    )
    usage = (
        PartsUsageLog.query
        .filter_by(vehicle_serial=vehicle.serial_number)
        .order_by(PartsUsageLog.used_date.desc())
        .all()
    )

    buffer = io.StringIO()
    writer = csv.writer(buffer)

    writer.writerow(["Vehicle History"])
    writer.writerow([])
    writer.writerow(["Serial Number", sanitize_csv_value(vehicle.serial_number)])
    writer.writerow(["Vehicle Number", sanitize_csv_value(vehicle.vehicle_number)])
    writer.writerow(["Golf Course", sanitize_csv_value(vehicle.golf_course_name or "")])
    writer.writerow(["Status", sanitize_csv_value(vehicle.status)])
    writer.writerow(["Battery Serial", sanitize_csv_value(vehicle.battery_serial or "")])
    writer.writerow([])

    writer.writerow(["History"])
    writer.writerow(["Date", "Action", "Details", "Performed By", "Golf Course", "Job", "Parts Used"])
    for entry in entries:
        writer.writerow(
            [
                sanitize_csv_value(entry.action_date.isoformat() if entry.action_date else ""),
                sanitize_csv_value(entry.action_type),
                sanitize_csv_value(entry.details),
                sanitize_csv_value(entry.performed_by or ""),
                sanitize_csv_value(entry.golf_course_name or ""),
                sanitize_csv_value(entry.related_job_id or ""),
                sanitize_csv_value("; ".join(entry.parts_used or [])),
            ]
        )
    writer.writerow([])

    writer.writerow(["Parts Used"])
    writer.writerow(["Date", "Part", "Quantity", "Job", "Job Type", "Used By"])
    for log in usage:
        writer.writerow(
            [
                sanitize_csv_value(log.used_date.isoformat()),
                sanitize_csv_value(log.part_name),
                sanitize_csv_value(log.quantity_used),
                sanitize_csv_value(log.job_id),
                sanitize_csv_value(log.job_type),
                sanitize_csv_value(log.used_by),
            ]
        )

    filename = f"{vehicle.serial_number}_history.csv".replace(" ", "_")
    response = Response(buffer.getvalue(), mimetype="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response

# parts

@app.route("/api/parts", methods=["GET", "POST"])
@api_errors("save part")
def parts():
    if request.method == "GET":
        query = Part.query
        if request.args.get("category"):
            query = query.filter_by(category=request.args["category"])
        items = [p.to_dict() for p in query.order_by(Part.name).all()]
        level = request.args.get("level")
        if level:
            items = [p for p in items if p["stock_level"] == level]
        return api_response(items, "Parts retrieved successfully")

    payload = get_payload()
    part = Part(**stock.validate_part_payload(payload))
    db.session.add(part)
    db.session.flush()
    if part.stock_qty:
        db.session.add(StockTransaction(
            part_id=part.id,
            type="IN",
            quantity=part.stock_qty,
            previous_balance=0,
            new_balance=part.stock_qty,
            ref_type="MANUAL",
            user_id=parse_optional_int(payload.get("user_id"), "user_id"),
        ))
    db.session.commit()
    return api_response(part.to_dict(), "Part created successfully", 201)

@app.route("/api/parts/<int:part_id>", methods=["GET", "PUT", "DELETE"])
@api_errors("save part")
def part_detail(part_id):
    part, error = get_or_404(Part, part_id, "Part")
    if error:
        return error
    if request.method == "GET":
        return api_response(part.to_dict(), "Part retrieved successfully")

    if request.method == "DELETE":
        db.session.delete(part)
        db.session.commit()
        return api_response(message="Part deleted successfully")

    payload = get_payload()
    check_revision(payload, part.revision)
    merged = part.to_dict()
    merged.update(payload)
    data = stock.validate_part_payload(merged)
    previous_qty = part.stock_qty
    for key, value in data.items():
        setattr(part, key, value)
    part.revision += 1
    if part.stock_qty != previous_qty:
        db.session.add(StockTransaction(
            part_id=part.id,
            type="ADJUST",
            quantity=abs(part.stock_qty - previous_qty),
            previous_balance=previous_qty,
            new_balance=part.stock_qty,
            ref_type="MANUAL",
            user_id=parse_optional_int(payload.get("user_id"), "user_id"),
        ))
    db.session.commit()
    return api_response(part.to_dict(), "Part updated successfully")

@app.route("/api/stock/transactions", methods=["GET"])
@api_errors("load stock transactions")
def stock_transactions():
    query = StockTransaction.query
    if request.args.get("part_id"):
        query = query.filter_by(part_id=parse_optional_int(request.args["part_id"], "part_id"))
    rows = query.order_by(StockTransaction.id.desc()).all()
    return api_response([row.to_dict() for row in rows], "Stock transactions retrieved successfully")

# jobs

@app.route("/api/jobs", methods=["GET", "POST"])
@api_errors("save job")
def jobs():
    if request.method == "GET":
        query = Job.query
        for key in ("user_id", "assigned_to", "golf_course_id", "vehicle_id"):
            if request.args.get(key):
                query = query.filter(getattr(Job, key) == parse_optional_int(request.args[key], key))
        if request.args.get("status"):
            query = query.filter(Job.status.in_(request.args["status"].split(",")))
        rows = query.order_by(Job.created_at.desc(), Job.id.desc()).all()
        return api_response([job.to_dict() for job in rows], "Jobs retrieved successfully")

    payload = coerce_job_payload(get_payload())
    data = lifecycle.validate_job_payload(payload, part_catalog(payload["parts"]))
    vehicle, error = get_or_404(Vehicle, data["vehicle_id"], "Vehicle")
    if error:
        return error

    job = Job()
    job.apply_payload(data)
    db.session.add(job)
    db.session.flush()
    for part_id, amount in stock.aggregate_lines(data["parts"]).items():
        move_stock(int(part_id), amount, job_id=job.id, user_id=job.user_id)
    db.session.commit()
    return api_response(job.to_dict(), "Job created successfully", 201)

@app.route("/api/jobs/requisition", methods=["POST"])
@api_errors("generate requisition number")
def job_requisition():
    payload = get_payload()
    job_id = parse_optional_int(payload.get("job_id", payload.get("jobId")), "job_id")
    if job_id is None:
        raise ValidationError("Job ID is required.")
    job, error = get_or_404(Job, job_id, "Job")
    if error:
        return error
    lifecycle.check_requisition(job.to_dict())
    if job.prr_number:
        return api_response(job.to_dict(), "Using existing requisition number")

    now = utcnow()
    issued = db.session.execute(
        select(Job.prr_number).where(Job.prr_number.like(lifecycle.requisition_prefix(now) + "%"))
    ).scalars().all()
    job.prr_number = lifecycle.next_requisition_number(issued, now)
    job.revision += 1
    db.session.commit()
    return api_response(job.to_dict(), "Generated new requisition number")

@app.route("/api/jobs/<int:job_id>", methods=["GET", "PUT"])
@api_errors("save job")
def job_detail(job_id):
    job, error = get_or_404(Job, job_id, "Job")
    if error:
        return error
    if request.method == "GET":
        return api_response(job.to_dict(), "Job retrieved successfully")

    payload = coerce_job_payload(get_payload())
    check_revision(payload, job.revision)
    # lines already on the job may point at parts deleted since; names come from the snapshot
    data = lifecycle.validate_job_payload(payload)
    lifecycle.check_stored_status_change(job.status, data["status"])
    for line in data["parts"]:
        if not line["part_name"]:
            part = db.session.get(Part, line["part_id"])
            line["part_name"] = part.name if part else ""
    for part_id, delta in stock.diff_lines(job.parts, data["parts"]).items():
        move_stock(int(part_id), delta, job_id=job.id, user_id=data["user_id"])
    job.apply_payload(data)
    job.revision += 1
    db.session.commit()
    return api_response(job.to_dict(), "Job updated successfully")

# ledgers

@app.route("/api/parts-usage-logs", methods=["GET", "POST"])
@api_errors("save parts usage log")
def parts_usage_logs():
    if request.method == "GET":
        query = PartsUsageLog.query
        args = request.args
        if args.get("serial"):
            query = query.filter_by(vehicle_serial=args["serial"])
        if args.get("job_id"):
            query = query.filter_by(job_id=parse_optional_int(args["job_id"], "job_id"))
        if args.get("job_type"):
            query = query.filter_by(job_type=args["job_type"])
        if args.get("golf_course"):
            query = query.filter_by(golf_course_name=args["golf_course"])
        if args.get("date_from"):
            query = query.filter(PartsUsageLog.used_date >= parse_date(args["date_from"], "date_from"))
        if args.get("date_to"):
            query = query.filter(PartsUsageLog.used_date <= parse_date(args["date_to"], "date_to"))
        rows = query.order_by(PartsUsageLog.used_date.desc(), PartsUsageLog.id.desc()).all()
        return api_response([row.to_dict() for row in rows], "Parts usage logs retrieved successfully")

    payload = get_payload()
    if payload.get("entryKey"):
        existing = PartsUsageLog.query.filter_by(entry_key=payload["entryKey"]).first()
        if existing:
            return api_response(existing.to_dict(), "Parts usage log already recorded")
    quantity = ledgers.validate_usage_entry(payload)
    job_id = parse_optional_int(payload["jobId"], "jobId")
    if db.session.get(Job, job_id) is None:
        return api_error("Job not found", 404)
    log = PartsUsageLog(
        entry_key=payload.get("entryKey"),
        job_id=job_id,
        part_id=parse_optional_int(payload["partId"], "partId"),
        part_name=str(payload["partName"]).strip(),
        quantity_used=quantity,
        vehicle_number=str(payload["vehicleNumber"]).strip(),
        vehicle_serial=payload.get("vehicleSerial"),
        golf_course_name=payload.get("golfCourseName"),
        used_by=str(payload["usedBy"]).strip(),
        used_date=parse_date(payload.get("usedDate"), "usedDate") or utcnow().date(),
        notes=payload.get("notes"),
        job_type=payload["jobType"],
        system=payload.get("system"),
    )
    db.session.add(log)
    db.session.commit()
    return api_response(log.to_dict(), "Parts usage log created successfully", 201)

@app.route("/api/serial-history", methods=["GET", "POST"])
@api_errors("save serial history entry")
def serial_history():
    if request.method == "GET":
        query = SerialHistoryEntry.query.filter(SerialHistoryEntry.serial_number != "")
        args = request.args
        if args.get("serial_number"):
            query = query.filter_by(serial_number=args["serial_number"])
        if args.get("vehicle_id"):
            query = query.filter_by(vehicle_id=parse_optional_int(args["vehicle_id"], "vehicle_id"))
        if args.get("action_type"):
            query = query.filter_by(action_type=args["action_type"])
        if args.get("related_job_id"):
            query = query.filter_by(related_job_id=parse_optional_int(args["related_job_id"], "related_job_id"))
        query = query.order_by(SerialHistoryEntry.action_date.desc(), SerialHistoryEntry.id.desc())
        limit = parse_optional_int(args.get("limit"), "limit")
        if limit:
            query = query.limit(limit)
        return api_response([row.to_dict() for row in query.all()], "Serial history retrieved successfully")

    payload = get_payload()
    if payload.get("entry_key"):
        existing = SerialHistoryEntry.query.filter_by(entry_key=payload["entry_key"]).first()
        if existing:
            return api_response(existing.to_dict(), "Serial history entry already recorded")
    ledgers.validate_history_entry(payload)
    if is_blank(payload.get("golf_course_name")):
        raise ValidationError("golf_course_name is required.")
    entry = record_history(payload)
    db.session.commit()
    return api_response(entry.to_dict(), "Serial history entry created successfully", 201)

# notifications

@app.route("/api/notifications", methods=["GET", "POST"])
@api_errors("save notification")
def notifications():
    if request.method == "GET":
        user_id = parse_optional_int(request.args.get("user_id"), "user_id")
        if user_id is None:
            raise ValidationError("User ID is required.")
        query = Notification.query.filter_by(user_id=user_id)
        if request.args.get("unread", "").lower() == "true":
            query = query.filter_by(is_read=False)
        rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(NOTIFICATION_LIMIT).all()
        return api_response([row.to_dict() for row in rows], "Notifications retrieved successfully")

    payload = get_payload()
    missing = [key for key in ("user_id", "title", "message") if is_blank(payload.get(key))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")
    user, error = get_or_404(User, parse_optional_int(payload["user_id"], "user_id"), "User")
    if error:
        return error
    notification = Notification(
        user_id=user.id,
        title=str(payload["title"]).strip(),
        message=str(payload["message"]).strip(),
        type=str(payload.get("type") or "info").strip(),
        link=payload.get("link"),
        related_job_id=parse_optional_int(payload.get("related_job_id"), "related_job_id"),
    )
    db.session.add(notification)
    db.session.commit()
    return api_response(notification.to_dict(), "Notification created successfully", 201)

@app.route("/api/notifications/<int:notification_id>", methods=["PUT", "DELETE"])
@api_errors("save notification")
def notification_detail(notification_id):
    notification, error = get_or_404(Notification, notification_id, "Notification")
    if error:
        return error
    if request.method == "DELETE":
        db.session.delete(notification)
        db.session.commit()
        return api_response(message="Notification deleted")

    payload = get_payload()
    is_read = payload.get("is_read", True)
    if not isinstance(is_read, bool):
        raise ValidationError("is_read must be true or false.")
    notification.is_read = is_read
    db.session.commit()
    return api_response(notification.to_dict(), "Notification updated successfully")


if __name__ == "__main__":
    app.run(debug=os.environ.get("FLASK_DEBUG", "false").lower() == "true")
