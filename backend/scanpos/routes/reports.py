from flask import Blueprint, jsonify, request

from scanpos.services import reporting_service
from scanpos.validation import ServiceError


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/reports")
def sales_report():
    period = request.args.get("period", "24h")

    try:
        report = reporting_service.build_report(period)
        return jsonify(report), 200
    except ServiceError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@reports_bp.get("/stats")
def stats():
    try:
        snapshot = reporting_service.stats_snapshot()
        return jsonify(snapshot), 200
    except ServiceError as exc:
        return jsonify(exc.to_dict()), exc.status_code
