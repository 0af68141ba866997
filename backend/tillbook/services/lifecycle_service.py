# Overview: Document lifecycle controller; create, transition, convert, edit and delete documents with their stock effects.

"""
Document Lifecycle Service

================================================================================
PURPOSE: Move documents through their states and keep stock consistent
================================================================================

STATE MACHINES:
    quote:   draft -> sent -> accepted | cancelled
    invoice: issued -> paid | cancelled
    order:   issued -> paid | cancelled

    quote --convert--> invoice (issued)    one-way, stock-checked

STOCK EFFECTS:
    create invoice / order   decrement per product (oversell per config flag)
    convert quote            decrement per product, ALWAYS checked
    edit invoice / order     apply per-product deltas, increases checked
    delete invoice / order   increment per product (compensating path)
    anything on a quote      none

RULES (NON-NEGOTIABLE):
1. Each operation is ONE unit of work: header, lines, stock deltas and the
   activity log commit together or not at all.
2. No retries. A failure reaches the caller.
3. Notifications go out only after commit and can never undo it.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Document
from ..time_utils import utcnow
from . import document_store, notification_service, stock_ledger
from .activity_service import record_activity
from .concurrency import unit_of_work
from .document_store import EDITABLE_STATUSES, STOCK_HOLDING_TYPES


def _low_stock_events(movements) -> list:
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    return [
        notification_service.low_stock_event(movement)
        for movement in movements
        if movement.applied and movement.delta < 0 and movement.stock_after <= threshold
    ]


def _line_summary(document: Document) -> list[dict]:
    return [
        {"product_id": line.product_id, "quantity": line.quantity, "unit_price": str(line.unit_price)}
        for line in document.lines
    ]


# =============================================================================
# CREATE
# =============================================================================

def create_document(
    *,
    customer_id: int,
    items: list[dict],
    doc_type: str = "invoice",
    actor: str | None = None,
) -> Document:
    """
    Create an invoice (status issued) or a quote (status draft).

    Invoices take stock immediately; whether they may drive stock negative
    is the ALLOW_OVERSELL_INVOICE setting. Quotes never touch stock.

    Raises:
        NotFoundError: unknown customer
        ValidationError: bad type, unknown product, or a shortfall when
            overselling is disabled
    """
    if doc_type not in ("invoice", "quote"):
        raise ValidationError("type must be 'invoice' or 'quote'")

    allow_oversell = bool(current_app.config.get("ALLOW_OVERSELL_INVOICE", True))

    with unit_of_work():
        if db.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer not found")

        document = document_store.create_document(
            customer_id=customer_id,
            items=items,
            doc_type=doc_type,
            created_by=actor,
        )
        movements = []
        if doc_type in STOCK_HOLDING_TYPES:
            movements = stock_ledger.take_stock(document.lines, allow_oversell=allow_oversell)

        record_activity(
            entity_type=doc_type,
            entity_id=document.id,
            action="create",
            actor=actor,
            details={"total": str(document.total), "lines": _line_summary(document)},
        )

    notification_service.notify(*_low_stock_events(movements))
    return document


# =============================================================================
# STATUS
# =============================================================================

def transition_status(
    document_id: int,
    new_status: str,
    *,
    actor: str | None = None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> Document:
    """
    Move a document to new_status within its type's state machine.

    Setting the current status again is a no-op. Cancelling an invoice
    does not return stock; deleting it does.
    """
    with unit_of_work():
        document = document_store.get_document(document_id, for_update=True)
        previous = document.status
        changed = document_store.set_status(
            document,
            new_status,
            payment_method=payment_method,
            payment_reference=payment_reference,
        )
        if changed:
            record_activity(
                entity_type=document.type,
                entity_id=document.id,
                action="status",
                actor=actor,
                details={"from": previous, "to": new_status, "payment_method": document.payment_method},
            )
    return document


# =============================================================================
# CONVERSION
# =============================================================================

def _convert_quote_locked(document: Document, actor: str | None):
    if document.type != "quote":
        raise ValidationError("Only quotes can be converted to invoices")
    if document.status == "cancelled":
        raise ValidationError("Cancelled quotes cannot be converted")

    for line in document.lines:
        # A quote line only loses its product_id when the product was deleted
        if line.product_id is None:
            raise ValidationError(f"Product {line.product_name} no longer exists")

    movements = stock_ledger.take_stock(document.lines, allow_oversell=False)

    quote_status = document.status
    document.type = "invoice"
    document.status = "issued"
    document.created_at = utcnow()

    record_activity(
        entity_type="invoice",
        entity_id=document.id,
        action="convert",
        actor=actor,
        details={"from_status": quote_status, "lines": _line_summary(document)},
    )
    return movements


def convert_quote(document_id: int, *, actor: str | None = None) -> Document:
    """
    Convert a quote into an issued invoice.

    Every product line is decremented with a conditional UPDATE; if any
    product is short, the whole conversion rolls back and the error lists
    every shortfall in details["items"].
    """
    with unit_of_work():
        document = document_store.get_document(document_id, for_update=True)
        movements = _convert_quote_locked(document, actor)

    current_app.logger.info("Converted quote %s to invoice", document_id)
    notification_service.notify(*_low_stock_events(movements))
    return document


# =============================================================================
# EDIT
# =============================================================================

def _apply_line_deltas(before: dict[int, int], after: dict[int, int]) -> list:
    movements = []
    shortfalls = []
    for product_id in sorted(set(before) | set(after)):
        delta = after.get(product_id, 0) - before.get(product_id, 0)
        try:
            movement = stock_ledger.apply_delta(product_id, delta, allow_oversell=False)
        except stock_ledger.InsufficientStockError as exc:
            shortfalls.append(exc)
            continue
        if movement is not None:
            movements.append(movement)

    if shortfalls:
        raise ValidationError(
            shortfalls[0].message,
            details={"items": [exc.details for exc in shortfalls]},
        )
    return movements


def update_document(document_id: int, items: list[dict], *, actor: str | None = None) -> Document:
    """
    Replace a document's lines and recompute its totals.

    Allowed for draft/sent quotes and issued invoices/orders. For documents
    that hold stock, only the per-product difference between the old and
    new lines moves stock: increases are checked, decreases are returned.
    """
    with unit_of_work():
        document = document_store.get_document(document_id, for_update=True)
        if document.status not in EDITABLE_STATUSES.get(document.type, set()):
            raise ValidationError(f"A {document.status} {document.type} cannot be edited")

        before = stock_ledger.quantities_by_product(document.lines)
        document_store.replace_lines(document, items)
        after = stock_ledger.quantities_by_product(document.lines)

        movements = []
        if document.type in STOCK_HOLDING_TYPES:
            movements = _apply_line_deltas(before, after)

        record_activity(
            entity_type=document.type,
            entity_id=document.id,
            action="update",
            actor=actor,
            details={"total": str(document.total), "lines": _line_summary(document)},
        )

    notification_service.notify(*_low_stock_events(movements))
    return document


# =============================================================================
# DELETE
# =============================================================================

def delete_document(document_id: int, *, actor: str | None = None) -> None:
    """
    Delete a document and its lines.

    Invoices and orders return their stock first, whatever their status;
    quotes never held stock so nothing is restored.
    """
    with unit_of_work():
        document = document_store.get_document(document_id, for_update=True)
        restored = []
        if document.type in STOCK_HOLDING_TYPES:
            restored = stock_ledger.restore_stock(document.lines)

        record_activity(
            entity_type=document.type,
            entity_id=document.id,
            action="delete",
            actor=actor,
            details={
                "status": document.status,
                "total": str(document.total),
                "restored": {m.product_id: m.delta for m in restored if m.applied},
            },
        )
        document_store.delete_document(document)

    current_app.logger.info("Deleted document %s", document_id)


# =============================================================================
# STOREFRONT
# =============================================================================

def submit_order(
    *,
    customer: dict,
    items: list[dict],
    payment_method: str,
    payment_reference: str | None = None,
) -> Document:
    """
    Storefront checkout: upsert the customer by email, create an issued
    order, take stock (ALLOW_OVERSELL_ORDER) and notify staff.
    """
    allow_oversell = bool(current_app.config.get("ALLOW_OVERSELL_ORDER", True))

    with unit_of_work():
        buyer = document_store.upsert_customer(
            name=customer["name"],
            email=customer["email"],
            phone=customer.get("phone"),
            address=customer.get("address"),
        )
        document = document_store.create_document(
            customer_id=buyer.id,
            items=items,
            doc_type="order",
            created_by="storefront",
            payment_method=payment_method,
            payment_reference=payment_reference,
        )
        movements = stock_ledger.take_stock(document.lines, allow_oversell=allow_oversell)
        record_activity(
            entity_type="order",
            entity_id=document.id,
            action="create",
            actor="storefront",
            details={"customer_id": buyer.id, "total": str(document.total), "payment_method": payment_method},
        )

    notification_service.notify(
        notification_service.new_order_event(document, buyer),
        *_low_stock_events(movements),
    )
    return document


def submit_quote_request(
    *,
    contact_name: str,
    email: str,
    items: list[dict],
    phone: str | None = None,
    company_name: str | None = None,
    details: str | None = None,
) -> Document:
    """Storefront quote request: upsert the customer and create a draft quote."""
    with unit_of_work():
        buyer = document_store.upsert_customer(
            name=contact_name,
            email=email,
            phone=phone,
            is_business=bool(company_name),
        )
        document = document_store.create_document(
            customer_id=buyer.id,
            items=items,
            doc_type="quote",
            created_by="storefront",
        )
        record_activity(
            entity_type="quote",
            entity_id=document.id,
            action="create",
            actor="storefront",
            details={"customer_id": buyer.id, "company_name": company_name, "details": details},
        )

    notification_service.notify(
        notification_service.new_quote_event(document, buyer, company_name=company_name, details=details),
    )
    return document
