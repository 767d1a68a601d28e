"""Part stock levels and the rules for moving stock.

Parts are handled as plain dict snapshots (the wire shape of the ``parts``
resource). Nothing here touches the database or the network; the service and
the controller both call into these functions so the two sides agree on the
same policy.
"""

from collections import OrderedDict

from errors import InsufficientStockError, ValidationError
from utils import is_blank, parse_optional_int, same_id, validate_choice

LOW = "low"
NORMAL = "normal"
HIGH = "high"

PART_CATEGORIES = ("brake", "steering", "motor", "electric", "other")


def classify(part) -> str:
    stock_qty = part.get("stock_qty") or 0
    if stock_qty <= (part.get("min_qty") or 0):
        return LOW
    if stock_qty >= (part.get("max_qty") or 0):
        return HIGH
    return NORMAL


def find_part(parts, part_id):
    for part in parts:
        if same_id(part.get("id"), part_id):
            return part
    return None


def aggregate_lines(lines) -> "OrderedDict[str, int]":
    """Total ``quantity_used`` per part id, keeping first-seen order."""
    totals = OrderedDict()
    for line in lines or []:
        key = str(line["part_id"])
        totals[key] = totals.get(key, 0) + int(line["quantity_used"])
    return totals


def diff_lines(old_lines, new_lines) -> "OrderedDict[str, int]":
    """Per-part change in consumed quantity; positive means more stock is taken."""
    old_totals = aggregate_lines(old_lines)
    new_totals = aggregate_lines(new_lines)
    deltas = OrderedDict()
    for key in list(new_totals) + [k for k in old_totals if k not in new_totals]:
        delta = new_totals.get(key, 0) - old_totals.get(key, 0)
        if delta:
            deltas[key] = delta
    return deltas


def check_available(part, amount):
    if amount > (part.get("stock_qty") or 0):
        raise InsufficientStockError(
            f"Not enough stock for {part.get('name')}: "
            f"requested {amount}, available {part.get('stock_qty') or 0}.",
            shortages=[{
                "part_id": part.get("id"),
                "part_name": part.get("name"),
                "requested": amount,
                "available": part.get("stock_qty") or 0,
            }],
        )


def check_quantities(quantities, parts):
    """Validate a ``{part_id: amount}`` mapping against the catalog.

    All shortages are collected so the caller can report them together.
    """
    shortages = []
    for part_id, amount in quantities.items():
        if amount <= 0:
            continue
        part = find_part(parts, part_id)
        if part is None:
            raise ValidationError(f"Part {part_id} does not exist.")
        try:
            check_available(part, amount)
        except InsufficientStockError as exc:
            shortages.extend(exc.shortages)
    if shortages:
        details = ", ".join(
            f"{s['part_name']} (requested {s['requested']}, available {s['available']})"
            for s in shortages
        )
        raise InsufficientStockError(f"Not enough stock: {details}.", shortages=shortages)


def decrement(part, amount):
    if amount < 0:
        raise ValidationError("Stock decrement must not be negative.")
    check_available(part, amount)
    updated = dict(part)
    updated["stock_qty"] = (part.get("stock_qty") or 0) - amount
    updated["stock_level"] = classify(updated)
    return updated


def restock(part, amount):
    if amount < 0:
        raise ValidationError("Restock amount must not be negative.")
    updated = dict(part)
    updated["stock_qty"] = (part.get("stock_qty") or 0) + amount
    updated["stock_level"] = classify(updated)
    return updated


def validate_part_payload(payload):
    """Normalize a create/update payload for the ``parts`` resource."""
    name = (payload.get("name") or "").strip()
    unit = (payload.get("unit") or "").strip()
    if not name or not unit:
        raise ValidationError("Name and unit are required.")
    if any(payload.get(key) is None or payload.get(key) == "" for key in ("stock_qty", "min_qty", "max_qty")):
        raise ValidationError("stock_qty, min_qty, and max_qty are required.")

    stock_qty = parse_optional_int(payload.get("stock_qty"), "stock_qty")
    min_qty = parse_optional_int(payload.get("min_qty"), "min_qty")
    max_qty = parse_optional_int(payload.get("max_qty"), "max_qty")
    if stock_qty < 0 or min_qty < 0 or max_qty < 0:
        raise ValidationError("Quantities cannot be negative.")
    if min_qty > max_qty:
        raise ValidationError("min_qty cannot be greater than max_qty.")

    category = payload.get("category")
    category = None if is_blank(category) else category.strip()
    validate_choice(category, PART_CATEGORIES, "Category")

    part_number = payload.get("part_number")
    return {
        "name": name,
        "unit": unit,
        "part_number": None if is_blank(part_number) else str(part_number).strip(),
        "category": category,
        "stock_qty": stock_qty,
        "min_qty": min_qty,
        "max_qty": max_qty,
    }
