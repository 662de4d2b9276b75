# backend/tradeledger/routes/customers.py
"""
Customer account API routes.

DESIGN:
- Balance and status are derived from the customer ledger on every read
- Payments are allocated to the oldest unpaid sales first
- Refunds can only pay back an existing credit balance
"""

from flask import Blueprint, jsonify, request

from ..extensions import db
from ..services import customer_ledger_service, payment_service
from ..validation import PaymentRequest, RefundRequest, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("/")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    name = str(payload.get("name") or "").strip()
    phone = str(payload.get("phone") or "").strip()
    if not name or not phone:
        raise ValidationError("name and phone required")

    customer = customer_ledger_service.create_customer(db.session, name=name, phone=phone)
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/")
def list_customers_route():
    customers = customer_ledger_service.list_customers(db.session)
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.get("/<int:customer_id>/balance")
def customer_balance_route(customer_id: int):
    """
    Balance, status (Due / Settled / Credit) and full ledger history.
    """
    return jsonify(customer_ledger_service.get_customer_statement(db.session, customer_id)), 200


@customers_bp.post("/<int:customer_id>/payments")
def record_payment_route(customer_id: int):
    """
    Record a payment on account.

    Request body:
    {
        "amount_cents": 15000,
        "payment_type": "MPESA"
    }

    Returns:
        201: Allocation per sale, advance amount and the new balance
    """
    req = PaymentRequest.from_payload(request.get_json(silent=True))
    result = payment_service.record_payment(
        db.session,
        customer_id=customer_id,
        amount_cents=req.amount_cents,
        payment_type=req.payment_type,
    )
    return jsonify({"payment": result.to_dict()}), 201


@customers_bp.post("/<int:customer_id>/refunds")
def refund_credit_route(customer_id: int):
    req = RefundRequest.from_payload(request.get_json(silent=True))
    entry = payment_service.refund_credit(
        db.session,
        customer_id=customer_id,
        amount_cents=req.amount_cents,
        payment_type=req.payment_type,
        reason=req.reason,
    )
    balance = customer_ledger_service.get_balance(db.session, customer_id)
    return jsonify({"refund": entry.to_dict(), "balance": balance.to_dict()}), 201


@customers_bp.get("/<int:customer_id>/ledger-check")
def ledger_check_route(customer_id: int):
    return jsonify(customer_ledger_service.verify_customer_ledger(db.session, customer_id)), 200
