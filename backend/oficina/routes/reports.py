from flask import Blueprint, jsonify, request, g

from ..decorators import api_errors, require_actor
from ..services import reporting_service
from ..validation import parse_datetime, parse_int, require_fields


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue/monthly")
@api_errors
@require_actor()
def monthly_revenue_report():
    require_fields(request.args, ["year", "month"])
    report = reporting_service.monthly_revenue(
        g.establishment_id,
        parse_int(request.args["year"], "year", minimum=1),
        parse_int(request.args["month"], "month", minimum=1),
    )
    return jsonify(report), 200


@reports_bp.get("/revenue/annual")
@api_errors
@require_actor()
def annual_revenue_report():
    require_fields(request.args, ["year"])
    report = reporting_service.annual_revenue(
        g.establishment_id,
        parse_int(request.args["year"], "year", minimum=1),
    )
    return jsonify(report), 200


@reports_bp.get("/cash-sessions/summary")
@api_errors
@require_actor()
def cash_session_summary_report():
    report = reporting_service.session_summary(
        g.establishment_id,
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
    )
    return jsonify(report), 200
