# Overview: Shift reconciliation engine; cash counts, expected cash and the shift open/close lifecycle.

"""
Shift Reconciliation

WHY: A shift is a period of cash accountability. At close, the counted drawer
is compared with what the system expects to be there.

    expected = starting cash + cash sales + pay-ins - cash drops
    actual   = sum(count * denomination) + coins
    discrepancy = actual - expected

CLOSE GATES (ValidatedClose, expected above EXPECTED_CASH_EPSILON):
1. All denomination counts zero and no coins -> "enter cash counts"
2. actual <= 0 -> rejected
GATES (always):
3. |discrepancy| > tolerance without notes -> rejected
4. |discrepancy| > tolerance without confirmation -> 400 requiresConfirmation;
   a confirmed close records discrepancy_override and logs a warning

ForcedClose skips every gate, records zero counts and close_mode=forced.

DESIGN PRINCIPLES:
- At most one open shift (partial unique index on shifts.status)
- Shifts are immutable once closed
- Starting a shift while one is open requires an explicit close mode
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashDrawerEvent, Document, Shift
from ..time_utils import to_utc_z, utcnow
from ..validation import MAX_QUANTITY, parse_int, parse_money, quantize_money
from .activity_service import record_activity
from .concurrency import lock_for_update, unit_of_work

ZERO = Decimal("0.00")

# Denomination key -> face value. "coins" is a free-form amount, not a count.
DENOMINATIONS = {
    "hundreds": 100,
    "fifties": 50,
    "twenties": 20,
    "tens": 10,
    "fives": 5,
    "ones": 1,
}

# Reported figures may differ from the server computation by rounding only
REPORT_TOLERANCE = Decimal("0.005")


class CloseMode(str, Enum):
    VALIDATED = "validated"
    FORCED = "forced"


@dataclass(frozen=True)
class CashCount:
    counts: dict[str, int] = field(default_factory=dict)
    coins: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        notes = sum(
            (Decimal(DENOMINATIONS[key]) * count for key, count in self.counts.items()),
            ZERO,
        )
        return quantize_money(notes + self.coins)

    @property
    def is_empty(self) -> bool:
        return not any(self.counts.values()) and self.coins == 0

    def to_json(self) -> dict:
        data = {key: self.counts.get(key, 0) for key in DENOMINATIONS}
        data["coins"] = float(self.coins)
        return data


@dataclass(frozen=True)
class ForcedClose:
    reason: str | None = None


@dataclass(frozen=True)
class ValidatedClose:
    cash_count: CashCount
    notes: str | None = None
    confirm_discrepancy: bool = False
    reported_actual: Decimal | None = None
    reported_discrepancy: Decimal | None = None


CloseRequest = Union[ForcedClose, ValidatedClose]


@dataclass(frozen=True)
class Reconciliation:
    expected_cash: Decimal
    actual_cash: Decimal
    discrepancy: Decimal
    override: bool = False


@dataclass(frozen=True)
class ShiftSummary:
    shift: Shift
    starting_cash: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    total_sales: Decimal
    pay_ins: Decimal
    cash_drops: Decimal
    transaction_count: int

    @property
    def expected_cash(self) -> Decimal:
        return quantize_money(self.starting_cash + self.cash_sales + self.pay_ins - self.cash_drops)

    def to_dict(self) -> dict:
        return {
            "isOpen": self.shift.status == "open",
            "shiftId": self.shift.id,
            "openedAt": to_utc_z(self.shift.opened_at),
            "openedBy": self.shift.opened_by,
            "startingCash": float(self.starting_cash),
            "expectedCash": float(self.expected_cash),
            "totalSales": float(self.total_sales),
            "cashSales": float(self.cash_sales),
            "cardSales": float(self.card_sales),
            "payIns": float(self.pay_ins),
            "cashDrops": float(self.cash_drops),
            "transactionCount": self.transaction_count,
        }


# =============================================================================
# PARSING
# =============================================================================

def parse_cash_counts(raw) -> CashCount:
    """
    Parse {"hundreds": 2, "fifties": 1, ..., "coins": 4.50}.

    Counts must be non-negative integers; coins a non-negative amount.
    Missing keys count as zero.
    """
    if raw is None:
        return CashCount()
    if not isinstance(raw, dict):
        raise ValidationError("cashCounts must be an object")

    counts = {}
    coins = ZERO
    for key, value in raw.items():
        if key == "coins":
            coins = ZERO if value in (None, "") else parse_money(value, "cashCounts.coins")
        elif key in DENOMINATIONS:
            counts[key] = 0 if value in (None, "") else parse_int(
                value, f"cashCounts.{key}", minimum=0, maximum=MAX_QUANTITY
            )
        else:
            raise ValidationError(f"Unknown denomination: {key}")
    return CashCount(counts=counts, coins=coins)


def parse_close_request(payload: dict | None) -> CloseRequest:
    """{"mode": "forced"} or {"mode": "validated", "cashCounts", "notes", "confirmDiscrepancy", ...}."""
    if not isinstance(payload, dict):
        raise ValidationError("closePrevious must be an object")
    if payload.get("mode") in (None, ""):
        raise ValidationError("closePrevious.mode is required")
    try:
        mode = CloseMode(str(payload["mode"]).lower())
    except ValueError:
        raise ValidationError("closePrevious.mode must be 'forced' or 'validated'")

    if mode is CloseMode.FORCED:
        reason = payload.get("reason")
        return ForcedClose(reason=str(reason) if reason else None)
    return build_validated_close(payload)


def build_validated_close(payload: dict) -> ValidatedClose:
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")

    def _reported(key):
        value = payload.get(key)
        if value is None or value == "":
            return None
        return parse_money(value, key, allow_negative=True)

    confirm = payload.get("confirmDiscrepancy", False)
    return ValidatedClose(
        cash_count=parse_cash_counts(payload.get("cashCounts")),
        notes=notes,
        confirm_discrepancy=confirm is True or str(confirm).lower() == "true",
        reported_actual=_reported("actualCash"),
        reported_discrepancy=_reported("discrepancy"),
    )


# =============================================================================
# RECONCILIATION
# =============================================================================

def _thresholds() -> tuple[Decimal, Decimal]:
    cfg = current_app.config
    return (
        Decimal(str(cfg.get("CASH_DISCREPANCY_TOLERANCE", "1.00"))),
        Decimal(str(cfg.get("EXPECTED_CASH_EPSILON", "0.01"))),
    )


def reconcile(expected_cash: Decimal, request: ValidatedClose) -> Reconciliation:
    """
    Apply the close gates to a counted drawer.

    Raises:
        ValidationError: a gate failed; details carry requiresConfirmation
            when only the confirmation step is missing
    """
    tolerance, epsilon = _thresholds()
    count = request.cash_count
    actual = count.total
    discrepancy = quantize_money(actual - expected_cash)

    for label, reported, computed in (
        ("actualCash", request.reported_actual, actual),
        ("discrepancy", request.reported_discrepancy, discrepancy),
    ):
        if reported is not None and abs(reported - computed) > REPORT_TOLERANCE:
            current_app.logger.warning(
                "Client %s %s disagrees with counted %s", label, reported, computed
            )
            raise ValidationError(
                f"{label} does not match the cash counts",
                details={label: float(computed)},
            )

    if expected_cash > epsilon:
        if count.is_empty:
            raise ValidationError("Please enter cash counts before closing the shift")
        if actual <= 0:
            raise ValidationError("Counted cash must be greater than zero")

    override = False
    if abs(discrepancy) > tolerance:
        if not (request.notes or "").strip():
            raise ValidationError(
                "Please add a note explaining the cash discrepancy",
                details={"discrepancy": float(discrepancy)},
            )
        if not request.confirm_discrepancy:
            raise ValidationError(
                f"Cash discrepancy of {discrepancy} must be confirmed",
                details={
                    "requiresConfirmation": True,
                    "expectedCash": float(expected_cash),
                    "actualCash": float(actual),
                    "discrepancy": float(discrepancy),
                },
            )
        override = True

    return Reconciliation(expected_cash, actual, discrepancy, override)


# =============================================================================
# SHIFT SUMMARY
# =============================================================================

def get_open_shift(*, for_update: bool = False) -> Shift | None:
    query = db.session.query(Shift).filter(Shift.status == "open")
    if for_update:
        query = lock_for_update(query)
    return query.first()


def _drawer_total(shift: Shift, event_type: str) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(CashDrawerEvent.amount), 0))
        .filter(CashDrawerEvent.shift_id == shift.id, CashDrawerEvent.event_type == event_type)
        .scalar()
    )
    return quantize_money(Decimal(str(total)))


def summarize_shift(shift: Shift) -> ShiftSummary:
    """
    Sales over the shift window: documents marked paid between opened_at and
    closed_at (or now). Cash vs card is split on payment_method.
    """
    window_end = shift.closed_at or utcnow()
    paid = (
        db.session.query(Document.total, Document.payment_method)
        .filter(
            Document.status == "paid",
            Document.paid_at.isnot(None),
            Document.paid_at >= shift.opened_at,
            Document.paid_at <= window_end,
        )
        .all()
    )

    cash_sales = ZERO
    card_sales = ZERO
    total_sales = ZERO
    for total, method in paid:
        amount = Decimal(str(total))
        total_sales += amount
        if method == "cash":
            cash_sales += amount
        elif method:
            card_sales += amount

    return ShiftSummary(
        shift=shift,
        starting_cash=quantize_money(Decimal(str(shift.starting_cash))),
        cash_sales=quantize_money(cash_sales),
        card_sales=quantize_money(card_sales),
        total_sales=quantize_money(total_sales),
        pay_ins=_drawer_total(shift, "PAY_IN"),
        cash_drops=_drawer_total(shift, "CASH_DROP"),
        transaction_count=len(paid),
    )


def current_shift_report() -> dict:
    shift = get_open_shift()
    if shift is None:
        return {"isOpen": False}
    return summarize_shift(shift).to_dict()


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def _close_locked(shift: Shift, request: CloseRequest, actor: str | None) -> Shift:
    summary = summarize_shift(shift)
    expected = summary.expected_cash

    if isinstance(request, ForcedClose):
        mode = CloseMode.FORCED
        counts = CashCount()
        result = Reconciliation(expected, ZERO, quantize_money(ZERO - expected))
        notes = request.reason or "Forced close"
        current_app.logger.warning(
            "Shift %s force-closed by %s; expected %s, discrepancy %s",
            shift.id, actor, expected, result.discrepancy,
        )
    else:
        mode = CloseMode.VALIDATED
        counts = request.cash_count
        result = reconcile(expected, request)
        notes = (request.notes or "").strip() or None
        if result.override:
            current_app.logger.warning(
                "Shift %s closed with confirmed discrepancy %s by %s",
                shift.id, result.discrepancy, actor,
            )

    now = utcnow()
    shift.status = "closed"
    shift.closed_by = actor
    shift.closed_at = now
    shift.close_mode = mode.value
    shift.expected_cash = result.expected_cash
    shift.actual_cash = result.actual_cash
    shift.cash_counts = counts.to_json()
    shift.discrepancy = result.discrepancy
    shift.discrepancy_override = result.override
    shift.notes = notes

    db.session.add(CashDrawerEvent(
        shift_id=shift.id,
        event_type="SHIFT_CLOSE",
        amount=result.actual_cash,
        reason=f"Shift closed ({mode.value}). Discrepancy: {result.discrepancy}",
        actor=actor,
        occurred_at=now,
    ))
    record_activity(
        entity_type="shift",
        entity_id=shift.id,
        action=f"close_{mode.value}",
        actor=actor,
        details={
            "expected_cash": str(result.expected_cash),
            "actual_cash": str(result.actual_cash),
            "discrepancy": str(result.discrepancy),
            "override": result.override,
        },
    )
    # The single-open index requires the close to land before any new open
    db.session.flush()
    return shift


def start_shift(
    starting_cash: Decimal,
    *,
    actor: str | None = None,
    close_previous: CloseRequest | None = None,
) -> Shift:
    """
    Open a new shift.

    If a shift is already open the caller must say how to close it
    (ForcedClose or ValidatedClose); otherwise ConflictError.
    """
    if starting_cash < 0:
        raise ValidationError("startingCash cannot be negative")

    with unit_of_work():
        previous = get_open_shift(for_update=True)
        if previous is not None:
            if close_previous is None:
                raise ConflictError(
                    "A shift is already open; choose how to close it first",
                    details={"openShiftId": previous.id},
                )
            _close_locked(previous, close_previous, actor)

        shift = Shift(
            status="open",
            opened_by=actor,
            opened_at=utcnow(),
            starting_cash=quantize_money(starting_cash),
        )
        db.session.add(shift)
        db.session.flush()

        db.session.add(CashDrawerEvent(
            shift_id=shift.id,
            event_type="SHIFT_OPEN",
            amount=shift.starting_cash,
            reason="Shift opened",
            actor=actor,
            occurred_at=shift.opened_at,
        ))
        record_activity(
            entity_type="shift",
            entity_id=shift.id,
            action="open",
            actor=actor,
            details={"starting_cash": str(shift.starting_cash), "closed_previous": previous.id if previous else None},
        )

    current_app.logger.info("Shift %s opened by %s", shift.id, actor)
    return shift


def close_shift(request: CloseRequest, *, actor: str | None = None) -> Shift:
    """Close the open shift and write its immutable closing record."""
    with unit_of_work():
        shift = get_open_shift(for_update=True)
        if shift is None:
            raise NotFoundError("No open shift found")
        _close_locked(shift, request, actor)

    current_app.logger.info("Shift %s closed by %s", shift.id, actor)
    return shift


def record_drawer_movement(
    event_type: str,
    amount: Decimal,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> CashDrawerEvent:
    """
    Record a CASH_DROP (cash to the safe) or PAY_IN (cash into the drawer)
    on the open shift. Both move expected cash.
    """
    if event_type not in ("CASH_DROP", "PAY_IN"):
        raise ValidationError(f"Unsupported drawer movement: {event_type}")
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")

    with unit_of_work():
        shift = get_open_shift(for_update=True)
        if shift is None:
            raise NotFoundError("No open shift found")

        if event_type == "CASH_DROP":
            expected = summarize_shift(shift).expected_cash
            if amount > expected:
                raise ValidationError(
                    "Cash drop exceeds the cash expected in the drawer",
                    details={"expectedCash": float(expected)},
                )

        event = CashDrawerEvent(
            shift_id=shift.id,
            event_type=event_type,
            amount=quantize_money(amount),
            reason=reason,
            actor=actor,
            occurred_at=utcnow(),
        )
        db.session.add(event)
        db.session.flush()
        record_activity(
            entity_type="shift",
            entity_id=shift.id,
            action=event_type.lower(),
            actor=actor,
            details={"amount": str(event.amount), "reason": reason},
        )
    return event
