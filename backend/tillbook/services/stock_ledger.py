# Overview: Stock ledger; the only writer of products.stock.

"""
Stock Ledger

================================================================================
PURPOSE: Own the on-hand quantity per product
================================================================================

RULES:
1. Every stock write is ONE conditional UPDATE. The availability check lives
   in the WHERE clause (stock >= qty); a zero row count is the failure signal.
   There is no SELECT-then-UPDATE on the write path.
2. Callers must already be inside unit_of_work(); the ledger never commits.
3. Products with track_inventory = false are never checked or changed.
4. allow_oversell is always passed explicitly by the caller:
   - direct invoice / storefront order creation: configurable
   - quote conversion and document edits: always False
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select, update

from ..errors import ValidationError
from ..extensions import db
from ..models import Product


class InsufficientStockError(ValidationError):
    """Raised when a checked decrement would take stock below zero."""

    def __init__(self, product_id: int, product_name: str | None, requested: int, on_hand: int):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for product {label}",
            details={
                "product_id": product_id,
                "requested_quantity": requested,
                "on_hand": on_hand,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.on_hand = on_hand


@dataclass(frozen=True)
class StockMovement:
    product_id: int
    product_name: str | None
    delta: int
    stock_after: int | None  # None when the product is not tracked

    @property
    def applied(self) -> bool:
        return self.stock_after is not None


def _snapshot(product_id: int):
    # Column select always reads the row as this transaction sees it
    return db.session.execute(
        select(Product.name, Product.stock, Product.track_inventory).where(Product.id == product_id)
    ).first()


def _execute(stmt) -> int:
    result = db.session.execute(stmt, execution_options={"synchronize_session": False})
    return result.rowcount


def _require_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("Stock quantity must be a positive integer")


def decrement(product_id: int, quantity: int, *, allow_oversell: bool) -> StockMovement:
    """
    Remove `quantity` units from a product's stock.

    With allow_oversell=False the write is
        UPDATE products SET stock = stock - :q
        WHERE id = :id AND track_inventory AND stock >= :q
    so two concurrent decrements can never both pass the check.

    Raises:
        InsufficientStockError: checked decrement and stock < quantity
        ValidationError: the product no longer exists
    """
    _require_quantity(quantity)

    conditions = [Product.id == product_id, Product.track_inventory.is_(True)]
    if not allow_oversell:
        conditions.append(Product.stock >= quantity)

    stmt = update(Product).where(*conditions).values(stock=Product.stock - quantity)
    updated = _execute(stmt)

    row = _snapshot(product_id)
    if row is None:
        raise ValidationError(f"Product {product_id} no longer exists")

    if updated:
        return StockMovement(product_id, row.name, -quantity, row.stock)

    if not row.track_inventory:
        return StockMovement(product_id, row.name, 0, None)

    raise InsufficientStockError(product_id, row.name, quantity, row.stock)


def increment(product_id: int, quantity: int) -> StockMovement:
    """
    Return `quantity` units to stock (document deletion / edit reduction).

    A product that was deleted or is untracked is skipped; restoring stock
    for it has nothing to update.
    """
    _require_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.track_inventory.is_(True))
        .values(stock=Product.stock + quantity)
    )
    updated = _execute(stmt)

    row = _snapshot(product_id)
    name = row.name if row is not None else None
    if not updated:
        return StockMovement(product_id, name, 0, None)
    return StockMovement(product_id, name, quantity, row.stock)


def apply_delta(product_id: int, delta: int, *, allow_oversell: bool = False) -> StockMovement | None:
    """Positive delta takes stock (checked unless allow_oversell), negative returns it."""
    if delta > 0:
        return decrement(product_id, delta, allow_oversell=allow_oversell)
    if delta < 0:
        return increment(product_id, -delta)
    return None


def quantities_by_product(lines) -> dict[int, int]:
    """Sum line quantities per product, ignoring free-text lines (no product_id)."""
    totals: dict[int, int] = {}
    for line in lines:
        if line.product_id is None:
            continue
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def take_stock(lines, *, allow_oversell: bool) -> list[StockMovement]:
    """
    Decrement stock for every product on a document.

    Quantities are aggregated per product first so two lines of the same
    product are checked against their combined quantity. Every shortfall is
    collected before raising, so the caller sees all offending lines; the
    enclosing unit of work then rolls back the decrements that did succeed.
    """
    movements: list[StockMovement] = []
    shortfalls: list[InsufficientStockError] = []

    for product_id, quantity in quantities_by_product(lines).items():
        if quantity <= 0:
            continue
        try:
            movements.append(decrement(product_id, quantity, allow_oversell=allow_oversell))
        except InsufficientStockError as exc:
            shortfalls.append(exc)

    if shortfalls:
        raise ValidationError(
            shortfalls[0].message,
            details={"items": [exc.details for exc in shortfalls]},
        )

    return movements


def restore_stock(lines) -> list[StockMovement]:
    """Increment stock for every product on a document (compensating path)."""
    return [
        increment(product_id, quantity)
        for product_id, quantity in quantities_by_product(lines).items()
        if quantity > 0
    ]
