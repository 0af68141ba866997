"""
Shift reconciliation tests.

Verifies:
- Counted cash arithmetic over the denomination table plus coins
- Close gates (empty counts, zero cash, note and confirmation on discrepancy)
- Expected cash from starting cash, paid cash sales and drawer movements
- Start/close lifecycle with explicit forced/validated close of an open shift
"""

from decimal import Decimal

import pytest

from tillbook.errors import ConflictError, NotFoundError, ValidationError
from tillbook.extensions import db
from tillbook.models import CashDrawerEvent, Shift
from tillbook.services import lifecycle_service, reconciliation_service as rs
from tillbook.services.reconciliation_service import CashCount, ForcedClose, ValidatedClose


def _close(counts, notes=None, confirm=False, **reported):
    return ValidatedClose(
        cash_count=rs.parse_cash_counts(counts),
        notes=notes,
        confirm_discrepancy=confirm,
        reported_actual=reported.get("actual"),
        reported_discrepancy=reported.get("discrepancy"),
    )


# =============================================================================
# ARITHMETIC AND GATES
# =============================================================================

class TestCashCount:

    def test_actual_cash_arithmetic(self):
        count = rs.parse_cash_counts({"hundreds": 2, "fifties": 1, "coins": 4.50})
        assert count.total == Decimal("254.50")

    def test_missing_denominations_count_zero(self):
        count = rs.parse_cash_counts({"ones": "7"})
        assert count.total == Decimal("7.00")
        assert count.to_json()["hundreds"] == 0

    @pytest.mark.parametrize("raw", [
        {"hundreds": -1},
        {"fifties": 1.5},
        {"coins": -0.25},
        {"twos": 3},
        ["hundreds"],
    ])
    def test_rejects_bad_counts(self, raw):
        with pytest.raises(ValidationError):
            rs.parse_cash_counts(raw)

    def test_empty(self):
        assert CashCount().is_empty
        assert not rs.parse_cash_counts({"coins": "0.05"}).is_empty


class TestReconcile:

    def test_discrepancy_without_notes_rejected(self, app):
        request = _close({"hundreds": 2, "fifties": 1, "coins": 4.50}, notes="  ")
        with pytest.raises(ValidationError, match="note") as exc:
            rs.reconcile(Decimal("300.00"), request)
        assert exc.value.details["discrepancy"] == -45.50

    def test_discrepancy_requires_confirmation(self, app):
        request = _close({"hundreds": 2, "fifties": 1, "coins": 4.50}, notes="Refund paid from drawer")
        with pytest.raises(ValidationError) as exc:
            rs.reconcile(Decimal("300.00"), request)
        assert exc.value.details["requiresConfirmation"] is True

    def test_confirmed_discrepancy_is_an_override(self, app):
        request = _close({"hundreds": 2, "fifties": 1, "coins": 4.50}, notes="Refund", confirm=True)
        result = rs.reconcile(Decimal("300.00"), request)
        assert result.actual_cash == Decimal("254.50")
        assert result.discrepancy == Decimal("-45.50")
        assert result.override is True

    def test_within_tolerance_needs_nothing(self, app):
        result = rs.reconcile(Decimal("100.00"), _close({"hundreds": 1, "coins": "0.75"}))
        assert result.discrepancy == Decimal("0.75")
        assert result.override is False

    def test_empty_counts_rejected_when_cash_expected(self, app):
        with pytest.raises(ValidationError, match="Please enter cash counts"):
            rs.reconcile(Decimal("50.00"), _close({}))

    def test_empty_counts_fine_when_nothing_expected(self, app):
        result = rs.reconcile(Decimal("0.00"), _close({}))
        assert result.actual_cash == Decimal("0.00")

    def test_reported_actual_must_match(self, app):
        request = _close({"hundreds": 1}, actual=Decimal("150.00"))
        with pytest.raises(ValidationError, match="actualCash does not match"):
            rs.reconcile(Decimal("100.00"), request)

    def test_reported_values_within_half_cent_accepted(self, app):
        request = _close({"tens": 3}, actual=Decimal("30.00"), discrepancy=Decimal("0.00"))
        assert rs.reconcile(Decimal("30.00"), request).discrepancy == Decimal("0.00")


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def _paid_invoice(customer, product, qty, method):
    doc = lifecycle_service.create_document(
        customer_id=customer.id,
        items=[{"product_id": product.id, "quantity": qty, "unit_price": None}],
    )
    return lifecycle_service.transition_status(doc.id, "paid", payment_method=method)


class TestShiftLifecycle:

    def test_summary_expected_cash(self, outlet, customer, make_product):
        product = make_product(stock=100, price="25.00")
        rs.start_shift(Decimal("200.00"), actor="cashier")

        _paid_invoice(customer, product, 2, "cash")   # 54.00 incl. 8% GST
        _paid_invoice(customer, product, 1, "card")   # 27.00
        rs.record_drawer_movement("PAY_IN", Decimal("20.00"), actor="cashier")
        rs.record_drawer_movement("CASH_DROP", Decimal("100.00"), actor="cashier")

        report = rs.current_shift_report()
        assert report["isOpen"] is True
        assert report["cashSales"] == 54.0
        assert report["cardSales"] == 27.0
        assert report["totalSales"] == 81.0
        assert report["transactionCount"] == 2
        assert report["expectedCash"] == 200.0 + 54.0 + 20.0 - 100.0

    def test_unpaid_and_earlier_sales_excluded(self, outlet, customer, make_product):
        product = make_product(stock=100, price="10.00")
        _paid_invoice(customer, product, 1, "cash")
        rs.start_shift(Decimal("50.00"))
        lifecycle_service.create_document(
            customer_id=customer.id,
            items=[{"product_id": product.id, "quantity": 1, "unit_price": None}],
        )
        report = rs.current_shift_report()
        assert report["transactionCount"] == 0
        assert report["expectedCash"] == 50.0

    def test_no_shift(self, db_session):
        assert rs.current_shift_report() == {"isOpen": False}

    def test_validated_close_writes_record(self, db_session):
        rs.start_shift(Decimal("300.00"), actor="manager")
        shift = rs.close_shift(
            _close({"hundreds": 2, "fifties": 1, "coins": 4.50}, notes="Short", confirm=True),
            actor="manager",
        )
        assert shift.status == "closed"
        assert shift.close_mode == "validated"
        assert shift.actual_cash == Decimal("254.50")
        assert shift.discrepancy == Decimal("-45.50")
        assert shift.discrepancy_override is True
        assert shift.cash_counts["hundreds"] == 2
        assert shift.closed_at is not None

    def test_rejected_close_keeps_shift_open(self, db_session):
        rs.start_shift(Decimal("300.00"))
        with pytest.raises(ValidationError):
            rs.close_shift(_close({"hundreds": 2, "fifties": 1, "coins": 4.50}))
        assert rs.get_open_shift() is not None

    def test_close_without_open_shift(self, db_session):
        with pytest.raises(NotFoundError, match="No open shift found"):
            rs.close_shift(ForcedClose())

    def test_start_over_open_shift_needs_mode(self, db_session):
        first = rs.start_shift(Decimal("100.00"))
        with pytest.raises(ConflictError):
            rs.start_shift(Decimal("100.00"))
        assert rs.get_open_shift().id == first.id

    def test_start_with_forced_close(self, db_session):
        first = rs.start_shift(Decimal("100.00"), actor="cashier")
        first_id = first.id
        second = rs.start_shift(Decimal("80.00"), actor="manager", close_previous=ForcedClose())

        closed = db.session.get(Shift, first_id)
        assert closed.status == "closed"
        assert closed.close_mode == "forced"
        assert closed.actual_cash == Decimal("0.00")
        assert closed.discrepancy == Decimal("-100.00")
        assert rs.get_open_shift().id == second.id

    def test_start_with_validated_close_runs_gates(self, db_session):
        first = rs.start_shift(Decimal("100.00"))
        with pytest.raises(ValidationError, match="Please enter cash counts"):
            rs.start_shift(Decimal("80.00"), close_previous=_close({}))

        assert rs.get_open_shift().id == first.id
        assert db.session.query(Shift).count() == 1

        rs.start_shift(Decimal("80.00"), close_previous=_close({"hundreds": 1}))
        assert db.session.get(Shift, first.id).close_mode == "validated"

    def test_drawer_events_recorded(self, db_session):
        shift = rs.start_shift(Decimal("100.00"))
        rs.record_drawer_movement("CASH_DROP", Decimal("40.00"), reason="Safe")
        types = [e.event_type for e in db.session.query(CashDrawerEvent).filter_by(shift_id=shift.id)]
        assert types == ["SHIFT_OPEN", "CASH_DROP"]

    def test_cash_drop_cannot_exceed_expected(self, db_session):
        rs.start_shift(Decimal("10.00"))
        with pytest.raises(ValidationError, match="exceeds"):
            rs.record_drawer_movement("CASH_DROP", Decimal("10.01"))

    def test_drawer_movement_needs_open_shift(self, db_session):
        with pytest.raises(NotFoundError):
            rs.record_drawer_movement("PAY_IN", Decimal("5.00"))

    def test_parse_close_request_modes(self):
        assert isinstance(rs.parse_close_request({"mode": "forced"}), ForcedClose)
        validated = rs.parse_close_request({"mode": "validated", "cashCounts": {"ones": 3}, "confirmDiscrepancy": True})
        assert isinstance(validated, ValidatedClose)
        assert validated.confirm_discrepancy is True
        with pytest.raises(ValidationError):
            rs.parse_close_request({"mode": "later"})

    @pytest.mark.parametrize("payload", [{}, {"mode": ""}, {"mode": None, "cashCounts": {"ones": 3}}])
    def test_close_previous_requires_mode(self, payload):
        with pytest.raises(ValidationError, match="closePrevious.mode is required"):
            rs.parse_close_request(payload)

    @pytest.mark.parametrize("count", [10**20, "1000001"])
    def test_denomination_count_is_bounded(self, count):
        with pytest.raises(ValidationError, match="cashCounts.hundreds must be at most"):
            rs.parse_cash_counts({"hundreds": count})
