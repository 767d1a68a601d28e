"""Tests for stock classification and stock movement rules."""

import pytest

import stock
from errors import InsufficientStockError, ValidationError


def part(**overrides):
    data = {"id": 1, "name": "ผ้าเบรก", "unit": "set", "stock_qty": 10, "min_qty": 2, "max_qty": 20}
    data.update(overrides)
    return data


class TestClassify:
    @pytest.mark.parametrize("qty,level", [
        (0, stock.LOW),
        (2, stock.LOW),
        (3, stock.NORMAL),
        (19, stock.NORMAL),
        (20, stock.HIGH),
        (35, stock.HIGH),
    ])
    def test_levels(self, qty, level):
        assert stock.classify(part(stock_qty=qty)) == level

    def test_missing_values_treated_as_zero(self):
        assert stock.classify({"stock_qty": None, "min_qty": None, "max_qty": None}) == stock.LOW


class TestMovement:
    def test_decrement_returns_new_snapshot(self):
        original = part()
        updated = stock.decrement(original, 2)
        assert updated["stock_qty"] == 8
        assert original["stock_qty"] == 10

    def test_decrement_to_zero_allowed(self):
        updated = stock.decrement(part(stock_qty=3), 3)
        assert updated["stock_qty"] == 0
        assert updated["stock_level"] == stock.LOW

    def test_decrement_below_zero_rejected(self):
        with pytest.raises(InsufficientStockError) as excinfo:
            stock.decrement(part(stock_qty=1), 2)
        assert excinfo.value.shortages == [
            {"part_id": 1, "part_name": "ผ้าเบรก", "requested": 2, "available": 1}
        ]

    def test_insufficient_stock_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            stock.decrement(part(stock_qty=0), 1)

    def test_restock(self):
        assert stock.restock(part(stock_qty=1), 4)["stock_qty"] == 5

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            stock.decrement(part(), -1)
        with pytest.raises(ValidationError):
            stock.restock(part(), -1)

    def test_check_quantities_reports_every_shortage(self):
        parts = [part(id=1, stock_qty=1), part(id=2, name="Cable", stock_qty=0)]
        with pytest.raises(InsufficientStockError) as excinfo:
            stock.check_quantities({"1": 2, "2": 1}, parts)
        assert [s["part_id"] for s in excinfo.value.shortages] == [1, 2]

    def test_check_quantities_unknown_part(self):
        with pytest.raises(ValidationError, match="does not exist"):
            stock.check_quantities({"9": 1}, [part()])


class TestLines:
    def test_aggregate_lines_sums_repeats(self):
        lines = [
            {"part_id": 1, "quantity_used": 2},
            {"part_id": "2", "quantity_used": 1},
            {"part_id": "1", "quantity_used": 3},
        ]
        assert dict(stock.aggregate_lines(lines)) == {"1": 5, "2": 1}

    def test_diff_lines(self):
        old = [{"part_id": 1, "quantity_used": 4}, {"part_id": 2, "quantity_used": 1}]
        new = [{"part_id": 1, "quantity_used": 1}, {"part_id": 3, "quantity_used": 2}]
        assert dict(stock.diff_lines(old, new)) == {"1": -3, "3": 2, "2": -1}

    def test_diff_lines_unchanged(self):
        lines = [{"part_id": 1, "quantity_used": 4}]
        assert not stock.diff_lines(lines, lines)


class TestPartPayload:
    def test_valid_payload(self):
        data = stock.validate_part_payload({
            "name": " Brake pad ", "unit": "set", "part_number": " P7 ",
            "category": "brake", "stock_qty": "5", "min_qty": 1, "max_qty": 9,
        })
        assert data["name"] == "Brake pad"
        assert data["part_number"] == "P7"
        assert data["stock_qty"] == 5

    @pytest.mark.parametrize("overrides", [
        {"name": ""},
        {"unit": None},
        {"stock_qty": -1},
        {"min_qty": 10, "max_qty": 5},
        {"category": "tyres"},
        {"max_qty": ""},
    ])
    def test_invalid_payloads(self, overrides):
        payload = {"name": "Brake pad", "unit": "set", "stock_qty": 5, "min_qty": 1, "max_qty": 9}
        payload.update(overrides)
        with pytest.raises(ValidationError):
            stock.validate_part_payload(payload)
