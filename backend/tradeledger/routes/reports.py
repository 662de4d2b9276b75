from flask import Blueprint, jsonify, request

from ..extensions import db
from ..services import customer_ledger_service, reporting_service
from ..validation import parse_range_bound


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales-summary")
def sales_summary_report():
    range_name = request.args.get("range")
    try:
        report = reporting_service.sales_summary(db.session, range_name=range_name)
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/top-products")
def top_products_report():
    start = parse_range_bound(request.args.get("start"), "start")
    end = parse_range_bound(request.args.get("end"), "end")
    limit = request.args.get("limit", default=10, type=int)

    try:
        rows = reporting_service.top_products(db.session, start=start, end=end, limit=limit)
        return jsonify({"items": rows}), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/inventory-usage")
def inventory_usage_report():
    return jsonify({"items": reporting_service.inventory_usage(db.session)}), 200


@reports_bp.get("/outstanding-balances")
def outstanding_balances_report():
    return jsonify({"customers": customer_ledger_service.outstanding_balances(db.session)}), 200
