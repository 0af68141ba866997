# Overview: Persistence helpers for documents (quotes, invoices, orders), their lines and customers.

"""
Document Store

Owns the invoices / invoice_items rows. Quotes, invoices and orders share one
table, distinguished by `type`. Nothing here touches stock or commits; the
lifecycle controller calls these helpers inside its unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Document, DocumentLine, Outlet, Product, StoreSettings
from ..time_utils import utcnow
from ..validation import MAX_AMOUNT, quantize_money
from .concurrency import lock_for_update

DOCUMENT_TYPES = ("quote", "invoice", "order")

ALLOWED_STATUSES = {
    "quote": ("draft", "sent", "accepted", "cancelled"),
    "invoice": ("issued", "paid", "cancelled"),
    "order": ("issued", "paid", "cancelled"),
}

INITIAL_STATUS = {"quote": "draft", "invoice": "issued", "order": "issued"}

# Forward-only transitions; terminal states have no entry
TRANSITIONS = {
    "quote": {
        "draft": {"sent", "accepted", "cancelled"},
        "sent": {"accepted", "cancelled"},
    },
    "invoice": {"issued": {"paid", "cancelled"}},
    "order": {"issued": {"paid", "cancelled"}},
}

# Document types whose lines hold stock
STOCK_HOLDING_TYPES = frozenset({"invoice", "order"})

EDITABLE_STATUSES = {
    "quote": {"draft", "sent"},
    "invoice": {"issued"},
    "order": {"issued"},
}


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_totals(lines, gst_rate: Decimal) -> Totals:
    """subtotal = sum(line_total); tax = subtotal * rate / 100, rounded half-up to cents."""
    subtotal = quantize_money(sum((Decimal(line.line_total) for line in lines), Decimal("0")))
    tax_amount = quantize_money(subtotal * Decimal(gst_rate) / Decimal("100"))
    return Totals(subtotal, tax_amount, subtotal + tax_amount)


def resolve_outlet() -> tuple[Outlet | None, Decimal]:
    """
    Active outlet and its GST rate.

    Falls back to the settings row rate when no outlet is selected, and to
    zero when there is no settings row at all.
    """
    settings = db.session.get(StoreSettings, 1)
    if settings is None:
        return None, Decimal("0")
    outlet = settings.current_outlet
    if outlet is not None:
        return outlet, Decimal(outlet.gst_rate or 0)
    return None, Decimal(settings.gst_rate or 0)


def build_lines(items: list[dict]) -> list[DocumentLine]:
    """
    Turn validated line payloads into DocumentLine rows.

    The product name is snapshotted; the unit price is the one supplied on
    the line, or the current catalog price when omitted.
    """
    lines = []
    for item in items:
        product = db.session.get(Product, item["product_id"])
        if product is None:
            raise ValidationError(f"Product {item['product_id']} not found")
        unit_price = item.get("unit_price")
        if unit_price is None:
            unit_price = Decimal(product.price or 0)
        unit_price = quantize_money(Decimal(unit_price))
        line_total = quantize_money(unit_price * item["quantity"])
        if line_total > MAX_AMOUNT:
            raise ValidationError(f"Line total for {product.name} is too large")
        lines.append(
            DocumentLine(
                product_id=product.id,
                product_name=product.name,
                quantity=item["quantity"],
                unit_price=unit_price,
                line_total=line_total,
            )
        )
    return lines


def _apply_totals(document: Document, gst_rate: Decimal) -> None:
    totals = compute_totals(document.lines, gst_rate)
    document.subtotal = totals.subtotal
    document.tax_amount = totals.tax_amount
    document.total = totals.total


def create_document(
    *,
    customer_id: int | None,
    items: list[dict],
    doc_type: str,
    created_by: str | None = None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> Document:
    if doc_type not in DOCUMENT_TYPES:
        raise ValidationError(f"Unknown document type: {doc_type}")

    outlet, gst_rate = resolve_outlet()
    document = Document(
        customer_id=customer_id,
        outlet_id=outlet.id if outlet else None,
        type=doc_type,
        status=INITIAL_STATUS[doc_type],
        created_by=created_by,
        payment_method=payment_method,
        payment_reference=payment_reference,
    )
    document.lines = build_lines(items)
    _apply_totals(document, gst_rate)

    db.session.add(document)
    db.session.flush()
    return document


def get_document(document_id: int, *, for_update: bool = False) -> Document:
    query = db.session.query(Document).filter(Document.id == document_id)
    if for_update:
        query = lock_for_update(query)
    document = query.first()
    if document is None:
        raise NotFoundError("Document not found")
    return document


def list_all() -> list[Document]:
    return (
        db.session.query(Document)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .all()
    )


def list_by_customer(customer_id: int) -> list[Document]:
    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError("Customer not found")
    return (
        db.session.query(Document)
        .filter(Document.customer_id == customer_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .all()
    )


def set_status(
    document: Document,
    new_status: str,
    *,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> bool:
    """
    Validate and apply a status change.

    Returns False when the document already has new_status (no-op).

    Raises:
        ValidationError: status not valid for the type, or a backwards move
    """
    if new_status not in ALLOWED_STATUSES.get(document.type, ()):
        raise ValidationError("Invalid status for this document type")

    if new_status == document.status:
        return False

    allowed = TRANSITIONS.get(document.type, {}).get(document.status, set())
    if new_status not in allowed:
        raise ValidationError(
            f"Cannot change {document.type} status from {document.status} to {new_status}"
        )

    document.status = new_status
    if new_status == "paid":
        document.paid_at = utcnow()
        if payment_method:
            document.payment_method = payment_method
        if payment_reference:
            document.payment_reference = payment_reference
    return True


def replace_lines(document: Document, items: list[dict]) -> None:
    """Swap the document's lines for new ones and recompute totals at the current rate."""
    new_lines = build_lines(items)
    document.lines.clear()
    db.session.flush()
    document.lines.extend(new_lines)

    if document.outlet is not None:
        gst_rate = Decimal(document.outlet.gst_rate or 0)
    else:
        gst_rate = resolve_outlet()[1]
    _apply_totals(document, gst_rate)
    db.session.flush()


def delete_document(document: Document) -> None:
    db.session.delete(document)
    db.session.flush()


def upsert_customer(
    *,
    name: str,
    email: str,
    phone: str | None = None,
    address: str | None = None,
    is_business: bool = False,
) -> Customer:
    """Email is the natural key: update the name on a match, insert otherwise."""
    email = email.strip().lower()
    customer = (
        db.session.query(Customer)
        .filter(func.lower(Customer.email) == email)
        .first()
    )
    if customer is None:
        customer = Customer(
            name=name,
            email=email,
            phone=phone,
            address=address,
            is_business=is_business,
        )
        db.session.add(customer)
    else:
        customer.name = name
        if phone:
            customer.phone = phone
        if address:
            customer.address = address
        if is_business:
            customer.is_business = True
    db.session.flush()
    return customer
