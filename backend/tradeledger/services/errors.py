# Overview: Typed business errors raised by the ledger services.

"""
Every error here is raised before the current unit of work writes anything,
so catching one never leaves a partial sale, stock movement or ledger entry.

status_code is the HTTP mapping used by the Flask error handler; services do
not depend on it.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for sale/inventory/ledger rule violations."""
    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self), "details": self.details}


class ItemNotFound(LedgerError):
    code = "ITEM_NOT_FOUND"
    status_code = 404

    def __init__(self, item_id: int):
        super().__init__(f"Inventory item {item_id} not found", {"item_id": item_id})
        self.item_id = item_id


class CustomerNotFound(LedgerError):
    code = "CUSTOMER_NOT_FOUND"
    status_code = 404

    def __init__(self, customer_id: int):
        super().__init__(f"Customer {customer_id} not found", {"customer_id": customer_id})
        self.customer_id = customer_id


class SaleNotFound(LedgerError):
    code = "SALE_NOT_FOUND"
    status_code = 404

    def __init__(self, sale_id: int):
        super().__init__(f"Sale {sale_id} not found", {"sale_id": sale_id})
        self.sale_id = sale_id


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, item_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for item {item_id}: available {available}, requested {requested}",
            {"item_id": item_id, "available": available, "requested": requested},
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class PriceBelowLimit(LedgerError):
    code = "PRICE_BELOW_LIMIT"
    status_code = 422

    def __init__(self, item_id: int, limit: int, given: int):
        super().__init__(
            f"Price {given} for item {item_id} is below the limit price {limit}",
            {"item_id": item_id, "limit": limit, "given": given},
        )
        self.item_id = item_id
        self.limit = limit
        self.given = given


class InvalidPaymentType(LedgerError):
    code = "INVALID_PAYMENT_TYPE"

    def __init__(self, payment_type, allowed):
        super().__init__(
            f"Invalid payment type: {payment_type!r}. Must be one of {list(allowed)}",
            {"payment_type": payment_type, "allowed": list(allowed)},
        )
        self.payment_type = payment_type


class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"
