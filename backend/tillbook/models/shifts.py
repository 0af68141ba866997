from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def _money(value) -> float | None:
    return float(value) if value is not None else None


class Shift(db.Model):
    """
    Cash drawer session from start to close.

    LIFECYCLE:
    - open:   accepting sales and drawer movements
    - closed: reconciled (validated) or force-closed; immutable afterwards

    At most one shift is open at a time (partial unique index).
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)

    opened_by = db.Column(db.String(64), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    starting_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Closing record, written exactly once
    closed_by = db.Column(db.String(64), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    close_mode = db.Column(db.String(16), nullable=True)  # validated, forced
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)
    actual_cash = db.Column(db.Numeric(12, 2), nullable=True)
    cash_counts = db.Column(db.JSON, nullable=True)
    discrepancy = db.Column(db.Numeric(12, 2), nullable=True)
    discrepancy_override = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "opened_by": self.opened_by,
            "opened_at": to_utc_z(self.opened_at),
            "starting_cash": _money(self.starting_cash),
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "close_mode": self.close_mode,
            "expected_cash": _money(self.expected_cash),
            "actual_cash": _money(self.actual_cash),
            "cash_counts": self.cash_counts,
            "discrepancy": _money(self.discrepancy),
            "discrepancy_override": self.discrepancy_override,
            "notes": self.notes,
        }


class CashDrawerEvent(db.Model):
    """
    Cash drawer movement during a shift.

    EVENT TYPES:
    - SHIFT_OPEN: starting float placed in the drawer
    - CASH_DROP: cash removed to the safe (reduces expected cash)
    - PAY_IN: cash added mid-shift (increases expected cash)
    - SHIFT_CLOSE: final count
    """
    __tablename__ = "cash_drawer_events"
    __table_args__ = (
        db.Index("ix_drawer_events_shift_occurred", "shift_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    event_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    shift = db.relationship("Shift", backref=db.backref("drawer_events", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "event_type": self.event_type,
            "amount": _money(self.amount),
            "reason": self.reason,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
        }
