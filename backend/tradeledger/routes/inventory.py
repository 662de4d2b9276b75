# backend/tradeledger/routes/inventory.py
"""
Inventory management routes.

Quantities only move through stock-in / stock-out (or a sale). The item
update endpoint rejects quantity so the movement history stays complete.
"""
from flask import Blueprint, jsonify, request

from ..extensions import db
from ..models import InventoryItem
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    StockMovementRequest,
    enforce_rules_item,
    validate_payload,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "unit",
        "quantity",
        "base_price_cents",
        "sell_price_cents",
        "limit_price_cents",
        "low_stock_limit",
    },
    required_on_create={"name"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(inventory_service.UPDATABLE_ITEM_FIELDS),
)


@inventory_bp.get("/")
def list_items_route():
    low_stock_only = request.args.get("low_stock", "").lower() in ("1", "true", "yes")
    items = inventory_service.list_items(db.session, low_stock_only=low_stock_only)
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@inventory_bp.post("/")
def create_item_route():
    patch = validate_payload(
        model=InventoryItem,
        payload=request.get_json(silent=True),
        policy=ITEM_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_item(patch)

    item = inventory_service.create_item(db.session, **{k: v for k, v in patch.items() if v is not None})
    return jsonify({"item": item.to_dict()}), 201


@inventory_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    item = inventory_service.get_item(db.session, item_id)
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.patch("/<int:item_id>")
def update_item_route(item_id: int):
    patch = validate_payload(
        model=InventoryItem,
        payload=request.get_json(silent=True),
        policy=ITEM_UPDATE_POLICY,
        partial=True,
    )
    enforce_rules_item(patch)

    item = inventory_service.update_item(db.session, item_id, patch)
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    """
    Delete an item with no history.

    Returns:
        200: {"deleted": item_id}
        404: ITEM_NOT_FOUND
        409: CONFLICT (the item has stock movements or sale lines)
    """
    inventory_service.delete_item(db.session, item_id)
    return jsonify({"deleted": item_id}), 200


@inventory_bp.post("/<int:item_id>/stock-in")
def stock_in_route(item_id: int):
    """
    Add stock to an item.

    Request body:
    {
        "quantity": 10,
        "note": "Delivery from supplier"  (optional)
    }
    """
    req = StockMovementRequest.from_payload(request.get_json(silent=True))
    item = inventory_service.stock_in(db.session, item_id=item_id, quantity=req.quantity, note=req.note)
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.post("/<int:item_id>/stock-out")
def stock_out_route(item_id: int):
    """
    Remove stock from an item outside of a sale.

    Returns:
        200: Updated item
        409: INSUFFICIENT_STOCK (nothing changed)
    """
    req = StockMovementRequest.from_payload(request.get_json(silent=True))
    item = inventory_service.stock_out(db.session, item_id=item_id, quantity=req.quantity, note=req.note)
    return jsonify({"item": item.to_dict()}), 200


@inventory_bp.get("/<int:item_id>/transactions")
def list_item_transactions_route(item_id: int):
    limit = request.args.get("limit", default=200, type=int)
    limit = max(1, min(limit, 1000))
    transactions = inventory_service.list_item_transactions(db.session, item_id, limit=limit)
    return jsonify({"transactions": [tx.to_dict() for tx in transactions]}), 200


@inventory_bp.get("/<int:item_id>/reconcile")
def reconcile_item_route(item_id: int):
    return jsonify(inventory_service.reconcile_item(db.session, item_id)), 200
