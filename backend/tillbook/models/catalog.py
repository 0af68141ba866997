from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Outlet(db.Model):
    """
    Trading location. Scopes the currency and GST rate applied to document totals.
    """
    __tablename__ = "outlets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="MVR")
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
            "gst_rate": float(self.gst_rate or 0),
        }


class StoreSettings(db.Model):
    """
    Singleton settings row (id=1).

    current_outlet_id selects the active outlet; gst_rate is the fallback
    rate when no outlet is configured.
    """
    __tablename__ = "settings"
    __table_args__ = (
        db.CheckConstraint("id = 1", name="ck_settings_singleton"),
    )

    id = db.Column(db.Integer, primary_key=True, default=1)
    current_outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="MVR")

    current_outlet = db.relationship("Outlet")


class Product(db.Model):
    """
    Catalog product.

    stock is the authoritative on-hand counter. Only the stock ledger
    (services/stock_ledger.py) writes it, always through a single
    conditional UPDATE.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category", "subcategory"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(128), nullable=True)
    subcategory = db.Column(db.String(128), nullable=True)

    # Untracked products (services, gift wrap...) are never stock-checked
    track_inventory = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price": float(self.price or 0),
            "stock": self.stock,
            "category": self.category,
            "subcategory": self.subcategory,
            "track_inventory": self.track_inventory,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
