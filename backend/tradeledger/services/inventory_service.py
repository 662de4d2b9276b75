# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/tradeledger/services/inventory_service.py

from __future__ import annotations

import logging

from sqlalchemy import case, func

from ..models import InventoryItem, InventoryTransaction, SaleItem
from ..models.inventory import STOCK_IN, STOCK_OUT
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from ..validation import MAX_INT32, MAX_QUANTITY, ConflictError, ValidationError
from .errors import InsufficientStock, InvalidAmount, ItemNotFound
"""
Inventory Invariants (authoritative)

Inventory model:
- InventoryItem.quantity is the live on-hand counter; InventoryTransaction is
  the append-only movement history behind it.
- Replaying an item's transactions from zero (STOCK_IN adds, STOCK_OUT
  subtracts) reproduces InventoryItem.quantity exactly.
- Opening stock on item creation is recorded as a STOCK_IN.

Business invariants:
- quantity is never negative.
- A rejected stock-out changes nothing.
- Movements are always positive quantities; kind carries the direction.

Transactions:
- stock_in()/stock_out() run in their own unit of work.
- _stock_in_locked()/_stock_out_locked() only flush, so the sale
  coordinator can run them inside its own unit of work.
"""

logger = logging.getLogger(__name__)


def _require_positive_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidAmount("quantity must be a positive integer", {"quantity": quantity})
    if quantity > MAX_QUANTITY:
        raise InvalidAmount(f"quantity must be <= {MAX_QUANTITY}", {"quantity": quantity})


def _get_item(session, item_id: int, *, lock: bool = False) -> InventoryItem:
    query = session.query(InventoryItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise ItemNotFound(item_id)
    return item


def lock_items(session, item_ids) -> dict[int, InventoryItem]:
    """
    Lock every requested item row in ascending id order.

    Raises ItemNotFound for the first missing id.
    """
    ids = sorted(set(item_ids))
    rows = lock_for_update(
        session.query(InventoryItem).filter(InventoryItem.id.in_(ids)).order_by(InventoryItem.id)
    ).all()
    by_id = {row.id: row for row in rows}
    for item_id in ids:
        if item_id not in by_id:
            raise ItemNotFound(item_id)
    return by_id


def _stock_in_locked(session, item: InventoryItem, quantity: int, *, note: str | None = None) -> InventoryTransaction:
    """Core STOCK_IN logic without locking, retry or commit."""
    if item.quantity + quantity > MAX_INT32:
        raise InvalidAmount(
            "on-hand quantity would overflow", {"item_id": item.id, "quantity": item.quantity, "adding": quantity},
        )
    item.quantity = item.quantity + quantity
    tx = InventoryTransaction(
        item_id=item.id,
        kind=STOCK_IN,
        quantity=quantity,
        note=note,
    )
    session.add(tx)
    session.flush()
    return tx


def _stock_out_locked(
    session,
    item: InventoryItem,
    quantity: int,
    *,
    sale_id: int | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """
    Core STOCK_OUT logic without locking, retry or commit.

    The availability check happens before any mutation so a rejection leaves
    the item untouched.
    """
    if quantity > item.quantity:
        raise InsufficientStock(item.id, available=item.quantity, requested=quantity)

    item.quantity = item.quantity - quantity
    tx = InventoryTransaction(
        item_id=item.id,
        kind=STOCK_OUT,
        quantity=quantity,
        sale_id=sale_id,
        note=note,
    )
    session.add(tx)
    session.flush()
    return tx


def stock_in(session, *, item_id: int, quantity: int, note: str | None = None) -> InventoryItem:
    """Receive stock for an item (restock or positive adjustment)."""
    _require_positive_quantity(quantity)

    def _op():
        with unit_of_work(session):
            item = _get_item(session, item_id, lock=True)
            _stock_in_locked(session, item, quantity, note=note)
        logger.info("Stock in: item=%s quantity=%s on_hand=%s", item_id, quantity, item.quantity)
        return item

    return run_with_retry(_op, session=session)


def stock_out(session, *, item_id: int, quantity: int, note: str | None = None) -> InventoryItem:
    """Remove stock from an item outside of a sale (shrink, spoilage, manual correction)."""
    _require_positive_quantity(quantity)

    def _op():
        with unit_of_work(session):
            item = _get_item(session, item_id, lock=True)
            _stock_out_locked(session, item, quantity, note=note)
        logger.info("Stock out: item=%s quantity=%s on_hand=%s", item_id, quantity, item.quantity)
        return item

    return run_with_retry(_op, session=session)


def create_item(
    session,
    *,
    name: str,
    unit: str = "pcs",
    category: str | None = None,
    quantity: int = 0,
    base_price_cents: int | None = None,
    sell_price_cents: int | None = None,
    limit_price_cents: int | None = None,
    low_stock_limit: int = 0,
) -> InventoryItem:
    """
    Create an inventory item.

    Opening stock is booked as a STOCK_IN movement so the replay invariant
    holds from the item's first row.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise InvalidAmount("quantity must be a non-negative integer", {"quantity": quantity})

    def _op():
        with unit_of_work(session):
            item = InventoryItem(
                name=name,
                unit=unit,
                category=category,
                quantity=0,
                base_price_cents=base_price_cents,
                sell_price_cents=sell_price_cents,
                limit_price_cents=limit_price_cents,
                low_stock_limit=low_stock_limit,
            )
            session.add(item)
            session.flush()
            if quantity > 0:
                _stock_in_locked(session, item, quantity, note="Opening stock")
        return item

    return run_with_retry(_op, session=session)


# Fields that may be changed in place. quantity is not one of them: it only
# moves through stock_in/stock_out/sales so the history stays complete.
UPDATABLE_ITEM_FIELDS = {
    "name",
    "category",
    "unit",
    "base_price_cents",
    "sell_price_cents",
    "limit_price_cents",
    "low_stock_limit",
}


def update_item(session, item_id: int, changes: dict) -> InventoryItem:
    unknown = set(changes) - UPDATABLE_ITEM_FIELDS
    if unknown:
        raise ValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

    def _op():
        with unit_of_work(session):
            item = _get_item(session, item_id, lock=True)
            for key, value in changes.items():
                setattr(item, key, value)
        return item

    return run_with_retry(_op, session=session)


def delete_item(session, item_id: int) -> None:
    """
    Delete an item that no movement or sale line refers to.

    Any history at all, opening stock included, makes the item permanent.
    Raises ConflictError in that case.
    """
    def _op():
        with unit_of_work(session):
            item = _get_item(session, item_id, lock=True)
            movements = session.query(InventoryTransaction.id).filter_by(item_id=item_id).count()
            sale_lines = session.query(SaleItem.id).filter_by(item_id=item_id).count()
            if movements or sale_lines:
                raise ConflictError(
                    f"Item {item_id} has {movements} stock movement(s) and "
                    f"{sale_lines} sale line(s) and cannot be deleted"
                )
            session.delete(item)
        logger.info("Deleted inventory item %s", item_id)

    run_with_retry(_op, session=session)


def get_item(session, item_id: int) -> InventoryItem:
    return _get_item(session, item_id)


def list_items(session, *, low_stock_only: bool = False) -> list[InventoryItem]:
    q = session.query(InventoryItem)
    if low_stock_only:
        q = q.filter(InventoryItem.quantity <= InventoryItem.low_stock_limit)
    return q.order_by(InventoryItem.name, InventoryItem.id).all()


def list_item_transactions(session, item_id: int, *, limit: int = 200) -> list[InventoryTransaction]:
    _get_item(session, item_id)

    q = session.query(InventoryTransaction).filter_by(item_id=item_id).order_by(
        InventoryTransaction.occurred_at.desc(),
        InventoryTransaction.id.desc(),
    )
    return q.limit(limit).all()


def replay_quantity(session, item_id: int) -> int:
    """
    Recompute on-hand quantity from the movement history alone.
    """
    signed = case(
        (InventoryTransaction.kind == STOCK_IN, InventoryTransaction.quantity),
        else_=-InventoryTransaction.quantity,
    )
    total = session.query(func.coalesce(func.sum(signed), 0)).filter(
        InventoryTransaction.item_id == item_id,
    ).scalar()
    return int(total or 0)


def reconcile_item(session, item_id: int) -> dict:
    item = _get_item(session, item_id)
    replayed = replay_quantity(session, item_id)
    return {
        "item_id": item.id,
        "stored_quantity": item.quantity,
        "replayed_quantity": replayed,
        "consistent": replayed == item.quantity,
    }
