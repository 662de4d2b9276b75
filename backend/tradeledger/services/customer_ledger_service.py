# Overview: Service-layer operations for the customer ledger; balances are derived, never stored.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..models import Customer, CustomerTransaction, Sale
from ..models.customers import BALANCE_CREDIT, BALANCE_DUE, BALANCE_SETTLED
from ..validation import ConflictError
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .errors import CustomerNotFound
"""
Customer Ledger Invariants (authoritative)

- Append-only: CustomerTransaction rows are never updated or deleted.
- Entries are written inside the same DB transaction as the sale or payment
  they record (append_customer_transaction only flushes).
- balance = SUM(amount_cents) over the customer's entries, computed at query
  time. There is no cached balance column to drift.
- status is a pure function of the sign of the balance:
    < 0 -> Due, == 0 -> Settled, > 0 -> Credit
- For every customer:
    SUM(entries) == SUM(sale.paid_cents - sale.total_cents) + SUM(unlinked entries)
  Linked entries are SALE and PAYMENT kinds; unlinked are ADVANCE and REFUND.
"""


@dataclass(frozen=True)
class CustomerBalance:
    customer_id: int
    balance_cents: int
    status: str

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "balance_cents": self.balance_cents,
            "status": self.status,
        }


def balance_status(balance_cents: int) -> str:
    if balance_cents < 0:
        return BALANCE_DUE
    if balance_cents > 0:
        return BALANCE_CREDIT
    return BALANCE_SETTLED


def get_customer(session, customer_id: int, *, lock: bool = False) -> Customer:
    query = session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def append_customer_transaction(
    session,
    *,
    customer_id: int,
    amount_cents: int,
    kind: str,
    reason: str,
    sale_id: int | None = None,
    payment_type: str | None = None,
) -> CustomerTransaction:
    """
    Append-only customer ledger entry.

    - No domain logic here.
    - No deletes/updates of existing entries.
    - Flushes but never commits; the caller owns the unit of work.
    """
    entry = CustomerTransaction(
        customer_id=customer_id,
        amount_cents=amount_cents,
        kind=kind,
        reason=reason,
        sale_id=sale_id,
        payment_type=payment_type,
    )
    session.add(entry)
    session.flush()
    return entry


def _ledger_sum(session, customer_id: int, *extra_filters) -> int:
    total = session.query(func.coalesce(func.sum(CustomerTransaction.amount_cents), 0)).filter(
        CustomerTransaction.customer_id == customer_id,
        *extra_filters,
    ).scalar()
    return int(total or 0)


def get_balance(session, customer_id: int) -> CustomerBalance:
    get_customer(session, customer_id)
    balance = _ledger_sum(session, customer_id)
    return CustomerBalance(customer_id=customer_id, balance_cents=balance, status=balance_status(balance))


def list_customer_transactions(session, customer_id: int) -> list[CustomerTransaction]:
    return session.query(CustomerTransaction).filter_by(customer_id=customer_id).order_by(
        CustomerTransaction.occurred_at.desc(),
        CustomerTransaction.id.desc(),
    ).all()


def get_customer_statement(session, customer_id: int) -> dict:
    """Balance, status and the full ledger history (newest first)."""
    balance = get_balance(session, customer_id)
    transactions = list_customer_transactions(session, customer_id)
    return {
        **balance.to_dict(),
        "transactions": [tx.to_dict() for tx in transactions],
    }


def verify_customer_ledger(session, customer_id: int) -> dict:
    """
    Check the ledger against the sales it describes.

    expected = SUM(paid - total) over the customer's sales + SUM(unlinked entries)
    """
    get_customer(session, customer_id)

    ledger_total = _ledger_sum(session, customer_id)
    unlinked_total = _ledger_sum(session, customer_id, CustomerTransaction.sale_id.is_(None))
    sales_delta = session.query(
        func.coalesce(func.sum(Sale.paid_cents - Sale.total_cents), 0)
    ).filter(Sale.customer_id == customer_id).scalar()
    expected = int(sales_delta or 0) + unlinked_total

    return {
        "customer_id": customer_id,
        "ledger_balance_cents": ledger_total,
        "expected_balance_cents": expected,
        "consistent": ledger_total == expected,
    }


def create_customer(session, *, name: str, phone: str) -> Customer:
    def _op():
        try:
            with unit_of_work(session):
                customer = Customer(name=name, phone=phone)
                session.add(customer)
                session.flush()
        except IntegrityError:
            raise ConflictError(f"Phone number {phone} is already registered")
        return customer

    return run_with_retry(_op, session=session)


def list_customers(session) -> list[Customer]:
    return session.query(Customer).order_by(Customer.name, Customer.id).all()


def outstanding_balances(session) -> list[dict]:
    """Customers whose ledger balance is negative (Due), most indebted first."""
    balance = func.sum(CustomerTransaction.amount_cents).label("balance_cents")
    rows = session.query(Customer, balance).join(
        CustomerTransaction, CustomerTransaction.customer_id == Customer.id
    ).group_by(Customer.id).having(balance < 0).order_by(balance.asc(), Customer.id).all()

    return [
        {
            "customer_id": customer.id,
            "name": customer.name,
            "phone": customer.phone,
            "balance_cents": int(balance_cents),
            "status": BALANCE_DUE,
        }
        for customer, balance_cents in rows
    ]
