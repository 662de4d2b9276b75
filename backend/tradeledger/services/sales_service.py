"""
Sales Service - atomic sale commit against live inventory

A sale touches three ledgers at once (the sale itself, stock, and the
customer's account). Either all three are written or none is.

Order of work inside one unit of work:
1. check the customer, lock every item row (ascending id), read live stock
2. validate every line (existence, stock, limit price)
3. write Sale + SaleItems
4. STOCK_OUT every line
5. one SALE ledger entry: paid - total
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from ..models import InventoryItem, Sale, SaleItem
from ..models.customers import KIND_SALE
from ..models.sales import payment_status_for
from ..time_utils import to_utc_z
from ..validation import MAX_PRICE_CENTS, SaleLineRequest
from .concurrency import run_with_retry, unit_of_work
from .customer_ledger_service import append_customer_transaction, get_customer
from .errors import InsufficientStock, InvalidAmount, PriceBelowLimit, SaleNotFound
from .inventory_service import _stock_out_locked, lock_items
from .payment_service import validate_payment_type

logger = logging.getLogger(__name__)

# A line priced below this share of the item's sell price is allowed but logged.
PRICE_WARNING_PERCENT = 80


def _requested_quantities(lines: Sequence[SaleLineRequest]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.item_id] = totals.get(line.item_id, 0) + line.quantity
    return totals


def _validate_amounts(lines: Sequence[SaleLineRequest], discount_cents: int, paid_cents: int) -> int:
    if not lines:
        raise InvalidAmount("Items are required")

    for line in lines:
        if line.quantity <= 0:
            raise InvalidAmount("quantity must be > 0", {"item_id": line.item_id, "quantity": line.quantity})
        if line.unit_price_cents < 0:
            raise InvalidAmount(
                "unit_price_cents must be >= 0",
                {"item_id": line.item_id, "unit_price_cents": line.unit_price_cents},
            )

    if discount_cents < 0:
        raise InvalidAmount("discount_cents must be >= 0", {"discount_cents": discount_cents})
    if paid_cents < 0:
        raise InvalidAmount("paid_cents must be >= 0", {"paid_cents": paid_cents})

    subtotal = sum(line.quantity * line.unit_price_cents for line in lines)
    if subtotal > MAX_PRICE_CENTS:
        raise InvalidAmount(
            f"sale subtotal cannot exceed {MAX_PRICE_CENTS} cents", {"subtotal_cents": subtotal},
        )
    if discount_cents > subtotal:
        raise InvalidAmount(
            "discount_cents cannot exceed the sale subtotal",
            {"discount_cents": discount_cents, "subtotal_cents": subtotal},
        )
    return subtotal


def _validate_against_inventory(items: dict[int, InventoryItem], lines: Sequence[SaleLineRequest]) -> None:
    """
    Check every line against the locked item rows. Nothing is written here.
    """
    for item_id, requested in _requested_quantities(lines).items():
        item = items[item_id]
        if requested > item.quantity:
            raise InsufficientStock(item_id, available=item.quantity, requested=requested)

    for line in lines:
        item = items[line.item_id]
        if item.limit_price_cents is not None and line.unit_price_cents < item.limit_price_cents:
            raise PriceBelowLimit(line.item_id, limit=item.limit_price_cents, given=line.unit_price_cents)

        if item.sell_price_cents and line.unit_price_cents * 100 < item.sell_price_cents * PRICE_WARNING_PERCENT:
            logger.warning(
                "Sale price %s for item %s (%s) is more than 20%% below its sell price %s",
                line.unit_price_cents, item.id, item.name, item.sell_price_cents,
            )


def create_sale(
    session,
    *,
    customer_id: int,
    items: Sequence[SaleLineRequest],
    payment_type: str,
    discount_cents: int = 0,
    paid_cents: int = 0,
) -> Sale:
    """
    Validate and commit a multi-item sale in one all-or-nothing transaction.

    Raises:
        InvalidAmount, InvalidPaymentType, CustomerNotFound, ItemNotFound,
        InsufficientStock, PriceBelowLimit. None of them leave any write behind.
    """
    lines = list(items)
    subtotal = _validate_amounts(lines, discount_cents, paid_cents)
    validate_payment_type(payment_type)
    total = subtotal - discount_cents

    def _op():
        with unit_of_work(session):
            get_customer(session, customer_id)
            locked = lock_items(session, [line.item_id for line in lines])
            _validate_against_inventory(locked, lines)

            sale = Sale(
                customer_id=customer_id,
                subtotal_cents=subtotal,
                discount_cents=discount_cents,
                total_cents=total,
                paid_cents=paid_cents,
                payment_type=payment_type,
                payment_status=payment_status_for(total, paid_cents),
            )
            session.add(sale)
            session.flush()

            for line in lines:
                session.add(SaleItem(
                    sale_id=sale.id,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                ))
                _stock_out_locked(
                    session,
                    locked[line.item_id],
                    line.quantity,
                    sale_id=sale.id,
                    note=f"Sale #{sale.id}",
                )

            append_customer_transaction(
                session,
                customer_id=customer_id,
                amount_cents=paid_cents - total,
                kind=KIND_SALE,
                reason="Sale",
                sale_id=sale.id,
                payment_type=payment_type,
            )

        logger.info(
            "Sale committed: id=%s customer=%s total=%s paid=%s lines=%s",
            sale.id, customer_id, total, paid_cents, len(lines),
        )
        return sale

    return run_with_retry(_op, session=session)


def get_sale(session, sale_id: int) -> Sale:
    sale = session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def list_sales(
    session,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    customer_id: int | None = None,
) -> list[Sale]:
    """Sales in [start, end] (inclusive), newest first."""
    q = session.query(Sale)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def sale_receipt(session, sale_id: int) -> dict:
    """Receipt data for a sale (rendering is left to the caller)."""
    sale = get_sale(session, sale_id)
    return {
        "sale_id": sale.id,
        "created_at": to_utc_z(sale.created_at),
        "customer": sale.customer.to_dict(),
        "lines": [
            {
                "item_id": line.item_id,
                "name": line.item.name,
                "unit": line.item.unit,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "line_total_cents": line.line_total_cents,
            }
            for line in sale.items
        ],
        "subtotal_cents": sale.subtotal_cents,
        "discount_cents": sale.discount_cents,
        "total_cents": sale.total_cents,
        "paid_cents": sale.paid_cents,
        "due_cents": sale.due_cents,
        "payment_type": sale.payment_type,
        "payment_status": sale.payment_status,
    }
