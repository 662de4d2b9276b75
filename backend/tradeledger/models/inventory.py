from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

STOCK_IN = "STOCK_IN"
STOCK_OUT = "STOCK_OUT"
MOVEMENT_KINDS = (STOCK_IN, STOCK_OUT)


class InventoryItem(db.Model):
    """
    Stock-keeping item with its current on-hand quantity and pricing.

    quantity is the live counter used for the sale-time stock check; the
    authoritative history is InventoryTransaction. Replaying an item's
    transactions from zero must always reproduce quantity exactly.

    Pricing (all in cents):
    - base_price_cents: purchase/base cost, informational
    - sell_price_cents: suggested retail price; sales far below it are logged
    - limit_price_cents: hard floor, a sale line below it is rejected
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        db.Index("ix_inventory_items_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    quantity = db.Column(db.Integer, nullable=False, default=0)

    base_price_cents = db.Column(db.Integer, nullable=True)
    sell_price_cents = db.Column(db.Integer, nullable=True)
    limit_price_cents = db.Column(db.Integer, nullable=True)

    low_stock_limit = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.low_stock_limit

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "quantity": self.quantity,
            "base_price_cents": self.base_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "limit_price_cents": self.limit_price_cents,
            "low_stock_limit": self.low_stock_limit,
            "low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement.

    quantity is always positive; kind gives the direction. Rows are never
    updated or deleted.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_transactions_quantity_positive"),
        db.CheckConstraint(
            "kind IN (" + ", ".join(f"'{kind}'" for kind in MOVEMENT_KINDS) + ")",
            name="ck_inventory_transactions_kind",
        ),
        db.Index("ix_invtx_item_occurred", "item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Set for STOCK_OUT rows written by a sale commit
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    item = db.relationship("InventoryItem", backref=db.backref("transactions", lazy=True))

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.kind == STOCK_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "sale_id": self.sale_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
