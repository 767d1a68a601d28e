import os

from app import app
from mailer import send_email
from models import GolfCourse, Part
from stock import LOW, classify


def build_alerts():
    """Parts at or below their minimum, lowest cover first."""
    low = [part.to_dict() for part in Part.query.order_by(Part.name).all()]
    low = [part for part in low if classify(part) == LOW]
    return sorted(low, key=lambda part: part["stock_qty"] - part["min_qty"])


def build_body(parts, course_count):
    lines = [
        f"Parts at or below minimum stock ({course_count} golf courses served):",
        "",
    ]
    for part in parts:
        number = part["part_number"] or "N/A"
        lines.append(
            f"- {part['name']} [{number}] | In stock: {part['stock_qty']} {part['unit']}"
            f" | Minimum: {part['min_qty']} | Reorder up to: {part['max_qty']}"
        )
    return "\n".join(lines)


def main():
    recipients = [a.strip() for a in os.environ.get("STOCK_ALERT_TO", "").split(",") if a.strip()]
    if not recipients:
        raise RuntimeError("STOCK_ALERT_TO must list at least one address.")

    with app.app_context():
        parts = build_alerts()
        if not parts:
            print("No parts below minimum stock.")
            return

        body = build_body(parts, GolfCourse.query.count())
        sent = send_email(recipients, f"Low stock alert: {len(parts)} part(s)", body)
        print(f"Sent stock alert to {sent} recipient(s)")


if __name__ == "__main__":
    main()
