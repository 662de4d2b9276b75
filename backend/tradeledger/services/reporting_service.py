# Overview: Read-only aggregation over sales and inventory; never writes.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..models import InventoryItem, Sale, SaleItem
from ..time_utils import utcnow, to_utc_z


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


RANGES = ("daily", "weekly", "monthly", "yearly")


def resolve_range(range_name: str | None, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Calendar period containing `now`, as an inclusive [start, end] pair.

    Weeks start on Sunday. Unknown or missing range names fall back to daily.
    """
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if range_name == "weekly":
        start = day_start - timedelta(days=(now.weekday() + 1) % 7)
        next_start = start + timedelta(days=7)
    elif range_name == "monthly":
        start = day_start.replace(day=1)
        next_start = (start + timedelta(days=32)).replace(day=1)
    elif range_name == "yearly":
        start = day_start.replace(month=1, day=1)
        next_start = start.replace(year=start.year + 1)
    else:
        start = day_start
        next_start = start + timedelta(days=1)

    return start, next_start - timedelta(microseconds=1)


def _in_range(query, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def _item_quantities(session, start: datetime | None, end: datetime | None):
    query = session.query(
        SaleItem.item_id,
        InventoryItem.name,
        func.sum(SaleItem.quantity).label("quantity"),
    ).join(Sale, Sale.id == SaleItem.sale_id).join(InventoryItem, InventoryItem.id == SaleItem.item_id)
    query = _in_range(query, start, end)
    return query.group_by(SaleItem.item_id, InventoryItem.name)


def sales_summary(session, *, range_name: str | None = None, now: datetime | None = None) -> dict:
    if range_name is not None and range_name not in RANGES:
        raise ReportError(f"range must be one of {', '.join(RANGES)}")
    start, end = resolve_range(range_name, now)

    totals = _in_range(session.query(
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total_cents), 0).label("total_cents"),
        func.coalesce(func.sum(Sale.paid_cents), 0).label("paid_cents"),
        func.coalesce(func.sum(Sale.discount_cents), 0).label("discount_cents"),
    ), start, end).one()

    ranked = _item_quantities(session, start, end).order_by(
        func.sum(SaleItem.quantity).desc(), SaleItem.item_id
    ).all()

    def _item(row):
        if row is None:
            return None
        return {"item_id": row.item_id, "name": row.name, "quantity": int(row.quantity)}

    return {
        "range": range_name or "daily",
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "sales_count": int(totals.sales_count or 0),
        "total_cents": int(totals.total_cents or 0),
        "paid_cents": int(totals.paid_cents or 0),
        "discount_cents": int(totals.discount_cents or 0),
        "most_sold_item": _item(ranked[0]) if ranked else None,
        "least_sold_item": _item(ranked[-1]) if ranked else None,
    }


def top_products(session, *, start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> list[dict]:
    if limit <= 0:
        raise ReportError("limit must be > 0")
    rows = _item_quantities(session, start, end).order_by(
        func.sum(SaleItem.quantity).desc(), SaleItem.item_id
    ).limit(limit).all()
    return [
        {"item_id": row.item_id, "name": row.name, "quantity_sold": int(row.quantity)}
        for row in rows
    ]


def inventory_usage(session) -> list[dict]:
    """Units sold per item over all time next to the current stock level."""
    sold = func.coalesce(func.sum(SaleItem.quantity), 0).label("total_sold")
    rows = session.query(InventoryItem, sold).outerjoin(
        SaleItem, SaleItem.item_id == InventoryItem.id
    ).group_by(InventoryItem.id).order_by(InventoryItem.id).all()
    return [
        {
            "item_id": item.id,
            "name": item.name,
            "total_sold": int(total_sold),
            "current_stock": item.quantity,
            "low_stock": item.is_low_stock,
        }
        for item, total_sold in rows
    ]
