# backend/tradeledger/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, jsonify, request

from ..extensions import db
from ..services import sales_service
from ..validation import CreateSaleRequest, parse_id_arg, parse_range_bound


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
def create_sale_route():
    """
    Create and commit a sale.

    Request body:
    {
        "customer_id": 1,
        "items": [{"item_id": 3, "quantity": 2, "unit_price_cents": 45000}],
        "discount_cents": 0,      (optional)
        "paid_cents": 50000,      (optional)
        "payment_type": "CASH"
    }

    Returns:
        201: Sale with items
        400: Malformed payload, INVALID_AMOUNT, INVALID_PAYMENT_TYPE
        404: CUSTOMER_NOT_FOUND, ITEM_NOT_FOUND
        409: INSUFFICIENT_STOCK
        422: PRICE_BELOW_LIMIT
    """
    req = CreateSaleRequest.from_payload(request.get_json(silent=True))

    sale = sales_service.create_sale(
        db.session,
        customer_id=req.customer_id,
        items=req.items,
        payment_type=req.payment_type,
        discount_cents=req.discount_cents,
        paid_cents=req.paid_cents,
    )
    return jsonify({"sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("/")
def list_sales_route():
    start = parse_range_bound(request.args.get("start"), "start")
    end = parse_range_bound(request.args.get("end"), "end")
    customer_id = parse_id_arg(request.args.get("customer_id"), "customer_id")

    sales = sales_service.list_sales(db.session, start=start, end=end, customer_id=customer_id)
    return jsonify({"sales": [sale.to_dict(include_items=True) for sale in sales]}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(db.session, sale_id)
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


@sales_bp.get("/<int:sale_id>/receipt")
def sale_receipt_route(sale_id: int):
    return jsonify({"receipt": sales_service.sale_receipt(db.session, sale_id)}), 200
