# Overview: Service-layer operations for payments; FIFO allocation of customer payments.

"""
Payment Allocation Service

Customers settle on account. A payment is not tied to one sale by the
cashier; it is spread over the customer's unpaid sales, oldest first.

DESIGN PRINCIPLES:
- FIFO by sale creation time (ties broken by sale id)
- Sale.paid_cents only ever increases, and only here
- One PAYMENT ledger entry per sale touched, linked to that sale
- Whatever is left after every outstanding sale is settled becomes one
  unlinked ADVANCE entry (customer credit)
- Money leaving the business goes through refund_credit(), never through a
  negative payment
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..models import Sale
from ..models.customers import KIND_ADVANCE, KIND_PAYMENT, KIND_REFUND
from ..models.sales import payment_status_for
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .customer_ledger_service import (
    append_customer_transaction,
    balance_status,
    get_balance,
    get_customer,
)
from .errors import InvalidAmount, InvalidPaymentType
from ..validation import MAX_PRICE_CENTS

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT TYPES (CONSTANTS)
# =============================================================================

PAYMENT_CASH = "CASH"
PAYMENT_MPESA = "MPESA"

VALID_PAYMENT_TYPES = (
    PAYMENT_CASH,
    PAYMENT_MPESA,
)


def validate_payment_type(payment_type) -> str:
    if payment_type not in VALID_PAYMENT_TYPES:
        raise InvalidPaymentType(payment_type, VALID_PAYMENT_TYPES)
    return payment_type


def _require_positive_amount(amount_cents) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmount("Payment amount must be positive", {"amount_cents": amount_cents})
    if amount_cents > MAX_PRICE_CENTS:
        raise InvalidAmount(f"Payment amount cannot exceed {MAX_PRICE_CENTS} cents", {"amount_cents": amount_cents})


@dataclass(frozen=True)
class Allocation:
    sale_id: int
    applied_cents: int
    remaining_due_cents: int
    payment_status: str

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "applied_cents": self.applied_cents,
            "remaining_due_cents": self.remaining_due_cents,
            "payment_status": self.payment_status,
        }


@dataclass
class PaymentAllocation:
    customer_id: int
    amount_cents: int
    payment_type: str
    allocations: list[Allocation] = field(default_factory=list)
    advance_cents: int = 0
    balance_cents: int = 0

    @property
    def applied_cents(self) -> int:
        return sum(a.applied_cents for a in self.allocations)

    @property
    def status(self) -> str:
        return balance_status(self.balance_cents)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_type": self.payment_type,
            "allocations": [a.to_dict() for a in self.allocations],
            "applied_cents": self.applied_cents,
            "advance_cents": self.advance_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
        }


def outstanding_sales(session, customer_id: int, *, lock: bool = False) -> list[Sale]:
    """Sales with money still due, oldest first."""
    q = session.query(Sale).filter(
        Sale.customer_id == customer_id,
        Sale.total_cents > Sale.paid_cents,
    ).order_by(Sale.created_at.asc(), Sale.id.asc())
    if lock:
        q = lock_for_update(q)
    return q.all()


def _apply_to_sale(sale: Sale, amount_cents: int) -> None:
    sale.paid_cents = sale.paid_cents + amount_cents
    sale.payment_status = payment_status_for(sale.total_cents, sale.paid_cents)


def record_payment(session, *, customer_id: int, amount_cents: int, payment_type: str) -> PaymentAllocation:
    """
    Record a customer payment and allocate it across outstanding sales (FIFO).

    Args:
        customer_id: Paying customer
        amount_cents: Amount received, must be > 0
        payment_type: One of VALID_PAYMENT_TYPES

    Returns:
        PaymentAllocation describing every sale touched and any advance

    Raises:
        InvalidAmount, InvalidPaymentType, CustomerNotFound
    """
    _require_positive_amount(amount_cents)
    validate_payment_type(payment_type)

    def _op():
        with unit_of_work(session):
            # Customer row lock: one payment per account at a time
            get_customer(session, customer_id, lock=True)

            result = PaymentAllocation(
                customer_id=customer_id,
                amount_cents=amount_cents,
                payment_type=payment_type,
            )
            remaining = amount_cents

            for sale in outstanding_sales(session, customer_id, lock=True):
                due = sale.total_cents - sale.paid_cents
                applied = min(due, remaining)
                _apply_to_sale(sale, applied)

                append_customer_transaction(
                    session,
                    customer_id=customer_id,
                    amount_cents=applied,
                    kind=KIND_PAYMENT,
                    reason=f"Payment applied to sale #{sale.id} via {payment_type}",
                    sale_id=sale.id,
                    payment_type=payment_type,
                )
                result.allocations.append(Allocation(
                    sale_id=sale.id,
                    applied_cents=applied,
                    remaining_due_cents=sale.total_cents - sale.paid_cents,
                    payment_status=sale.payment_status,
                ))

                remaining -= applied
                if remaining <= 0:
                    break

            if remaining > 0:
                append_customer_transaction(
                    session,
                    customer_id=customer_id,
                    amount_cents=remaining,
                    kind=KIND_ADVANCE,
                    reason=f"Advance payment via {payment_type}",
                    payment_type=payment_type,
                )
                result.advance_cents = remaining

            session.flush()
            result.balance_cents = get_balance(session, customer_id).balance_cents

        logger.info(
            "Payment recorded: customer=%s amount=%s sales=%s advance=%s",
            customer_id, amount_cents, [a.sale_id for a in result.allocations], result.advance_cents,
        )
        return result

    return run_with_retry(_op, session=session)


def refund_credit(
    session,
    *,
    customer_id: int,
    amount_cents: int,
    payment_type: str,
    reason: str | None = None,
):
    """
    Pay back part or all of a customer's credit balance.

    Only Credit balances can be refunded, and never more than the credit.
    The refund is one unlinked negative REFUND entry; sales are not touched.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidAmount("Refund amount must be positive", {"amount_cents": amount_cents})
    validate_payment_type(payment_type)

    def _op():
        with unit_of_work(session):
            get_customer(session, customer_id, lock=True)
            credit = get_balance(session, customer_id).balance_cents
            if amount_cents > credit:
                raise InvalidAmount(
                    "Refund exceeds the customer's credit balance",
                    {"amount_cents": amount_cents, "credit_cents": max(credit, 0)},
                )
            entry = append_customer_transaction(
                session,
                customer_id=customer_id,
                amount_cents=-amount_cents,
                kind=KIND_REFUND,
                reason=reason or f"Credit refund via {payment_type}",
                payment_type=payment_type,
            )
        logger.info("Credit refunded: customer=%s amount=%s", customer_id, amount_cents)
        return entry

    return run_with_retry(_op, session=session)
