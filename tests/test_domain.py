"""
Domain model tests: status codes, stored JSON columns, due dates.
"""
import logging
from datetime import date
from decimal import Decimal

import pytest

from tailordesk.domain import DueState, Order, OrderStatus, due_state, is_urgent, parse_measurements, parse_squad, status_label

TODAY = date(2026, 3, 10)


def _order(due, status=OrderStatus.ASSIGNED):
    return Order(
        id="o1",
        shop_id=1,
        customer_name="A",
        customer_phone="",
        garment_type="Suit",
        price=Decimal("100"),
        due_date=due,
        status=status,
    )


class TestOrderStatus:
    def test_labels(self):
        assert [s.label for s in OrderStatus] == [
            "Assigned",
            "In Progress",
            "QA Check",
            "Ready",
            "Collected (Pending)",
            "Closed",
        ]

    def test_parse_accepts_strings(self):
        assert OrderStatus.parse("4") is OrderStatus.READY
        assert OrderStatus.parse(6) is OrderStatus.CLOSED

    @pytest.mark.parametrize("value", [0, 7, "x", None, ""])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            OrderStatus.parse(value)

    def test_status_label_for_unknown_code(self):
        assert status_label(9) == "Status 9"
        assert status_label(2) == "In Progress"


class TestParseSquad:
    def test_list_and_json_text(self):
        assert parse_squad(["w1", "w2"]) == ["w1", "w2"]
        assert parse_squad('["w1", "w2"]') == ["w1", "w2"]

    def test_empty_forms(self):
        assert parse_squad(None) == []
        assert parse_squad("") == []
        assert parse_squad("[]") == []

    def test_drops_blank_entries(self):
        assert parse_squad(["w1", None, " ", "w2"]) == ["w1", "w2"]

    def test_bad_data_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tailordesk.domain"):
            assert parse_squad("not json") == []
            assert parse_squad({"a": 1}) == []
        assert "bad squad data" in caplog.text


class TestParseMeasurements:
    def test_json_text(self):
        raw = '{"Coat": {"Chest": "40", "Sleeve": 24.5}, "Trouser": {"Waist": 32}}'
        assert parse_measurements(raw) == {"Coat": {"Chest": 40.0, "Sleeve": 24.5}, "Trouser": {"Waist": 32.0}}

    def test_skips_non_numeric(self):
        assert parse_measurements({"Coat": {"Chest": "wide", "Length": 30}}) == {"Coat": {"Length": 30.0}}

    def test_bad_data(self):
        assert parse_measurements("{oops") == {}
        assert parse_measurements([1, 2]) == {}
        assert parse_measurements(None) == {}


class TestDueState:
    def test_late(self):
        state = due_state(date(2026, 3, 7), OrderStatus.IN_PROGRESS, TODAY)
        assert state == DueState(-3, "late")
        assert state.caption == "LATE (3 days)"

    def test_due_today(self):
        state = due_state(TODAY, OrderStatus.ASSIGNED, TODAY)
        assert state.kind == "soon"
        assert state.caption == "DUE TODAY"

    def test_soon(self):
        assert due_state(date(2026, 3, 12), OrderStatus.READY, TODAY).caption == "2 days left"

    def test_ok(self):
        state = due_state(date(2026, 3, 20), OrderStatus.ASSIGNED, TODAY)
        assert state.kind == "ok"
        assert state.caption == ""

    def test_collected_orders_are_done(self):
        assert due_state(date(2026, 3, 1), OrderStatus.COLLECTED, TODAY).kind == "done"

    def test_no_due_date(self):
        assert due_state(None, OrderStatus.ASSIGNED, TODAY) == DueState(None, "ok")


class TestIsUrgent:
    def test_late_and_soon_are_urgent(self):
        assert is_urgent(_order(date(2026, 3, 1)), TODAY)
        assert is_urgent(_order(date(2026, 3, 12)), TODAY)

    def test_far_off_or_finished_is_not(self):
        assert not is_urgent(_order(date(2026, 3, 13)), TODAY)
        assert not is_urgent(_order(date(2026, 3, 1), OrderStatus.COLLECTED), TODAY)
        assert not is_urgent(_order(None), TODAY)
