from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def _money(value) -> float:
    return float(value) if value is not None else 0.0


class Document(db.Model):
    """
    Quote, invoice or order, distinguished by `type`.

    LIFECYCLE (see services/lifecycle_service.py):
    - quote:   draft -> sent -> accepted | cancelled; converts one-way to invoice
    - invoice: issued -> paid | cancelled
    - order:   created issued, then shares the invoice statuses

    Invoices and orders hold stock; quotes never do.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_type_status", "type", "status"),
        db.Index("ix_invoices_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)

    type = db.Column(db.String(16), nullable=False, default="invoice")
    status = db.Column(db.String(16), nullable=False, default="issued")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Payment container only; no gateway integration
    payment_method = db.Column(db.String(32), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_by = db.Column(db.String(64), nullable=True)
    # Reset on quote -> invoice conversion
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("documents", lazy=True))
    outlet = db.relationship("Outlet")
    lines = db.relationship(
        "DocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "total": _money(self.total),
            "subtotal": _money(self.subtotal),
            "tax_amount": _money(self.tax_amount),
            "created_at": to_utc_z(self.created_at),
            "type": self.type,
            "status": self.status,
            "customer_name": self.customer.name if self.customer else None,
            "outlet_name": self.outlet.name if self.outlet else None,
        }

    def to_dict(self, include_lines: bool = False) -> dict:
        data = self.to_summary_dict()
        data.update({
            "customer_id": self.customer_id,
            "outlet_id": self.outlet_id,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        })
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class DocumentLine(db.Model):
    """
    Line item on a document.

    product_name and unit_price are snapshots taken at creation time, so
    historical documents stay readable after a product is renamed, repriced
    or deleted (product_id is then nulled).
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        "invoice_id", db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    document = db.relationship("Document", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": _money(self.unit_price),
            "line_total": _money(self.line_total),
        }
