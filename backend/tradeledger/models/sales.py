from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"


def payment_status_for(total_cents: int, paid_cents: int) -> str:
    if paid_cents <= 0:
        return PAYMENT_STATUS_PAID if total_cents <= 0 else PAYMENT_STATUS_UNPAID
    if paid_cents < total_cents:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PAID


class Sale(db.Model):
    """
    Committed sale.

    Written exactly once together with its items. Afterwards only paid_cents
    (and the derived payment_status) may change, and only upwards, through
    payment allocation.

    total_cents = subtotal_cents - discount_cents
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_customer_created", "customer_id", "created_at"),
        db.CheckConstraint("paid_cents >= 0", name="ck_sales_paid_non_negative"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sales_discount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_type = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_UNPAID, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def due_cents(self) -> int:
        return max(self.total_cents - self.paid_cents, 0)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} customer_id={self.customer_id} total={self.total_cents} paid={self.paid_cents}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "due_cents": self.due_cents,
            "payment_type": self.payment_type,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line of a sale. unit_price_cents is frozen at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )
    item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
