from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

# Ledger entry kinds
KIND_SALE = "SALE"
KIND_PAYMENT = "PAYMENT"
KIND_ADVANCE = "ADVANCE"
KIND_REFUND = "REFUND"

BALANCE_DUE = "Due"
BALANCE_SETTLED = "Settled"
BALANCE_CREDIT = "Credit"


class Customer(db.Model):
    """
    Customer master data.

    There is no balance column: the balance is always the sum of
    the customer's CustomerTransaction rows.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerTransaction(db.Model):
    """
    Append-only ledger of signed money movements for a customer.

    SIGN CONVENTION:
    - negative: the customer owes more (unpaid part of a sale, refund paid out)
    - positive: the customer paid (payment applied to a sale, advance payment,
      overpayment at the till)

    KINDS:
    - SALE: net effect of a sale at creation (paid - total), linked to the sale
    - PAYMENT: part of a later payment applied to one sale, linked to the sale
    - ADVANCE: leftover of a payment after all outstanding sales were settled
    - REFUND: credit paid back to the customer

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_transactions"
    __table_args__ = (
        db.Index("ix_customer_txns_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    payment_type = db.Column(db.String(16), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "kind": self.kind,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "payment_type": self.payment_type,
            "occurred_at": to_utc_z(self.occurred_at),
        }
