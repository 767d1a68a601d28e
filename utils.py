from datetime import datetime, date, timezone

from errors import ValidationError

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# date/datetime -> ISO string, anything else passes through
def iso(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value

def parse_date(value, field_name):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD).") from exc

def parse_datetime(value, field_name):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be an ISO date-time.") from exc

def parse_optional_int(value, field_name):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a whole number.") from exc

def validate_choice(value, allowed_values, field_name):
    if value is None or value == "":
        return None
    if value not in allowed_values:
        allowed_text = ", ".join(allowed_values)
        raise ValidationError(f"{field_name} must be one of: {allowed_text}.")
    return value

def clean_text(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None

def is_blank(value):
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False

# ids travel as ints from the database and as strings through query params
def same_id(left, right):
    if left is None or right is None:
        return False
    return str(left) == str(right)

def sanitize_csv_value(value):
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return value
    text = str(value)
    if text and text[0] in ("=", "+", "-", "@"):
        return "'" + text
    return text
