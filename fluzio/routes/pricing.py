"""Advisory pricing endpoints for the dashboard."""

from __future__ import annotations

from flask import Blueprint, jsonify

from ..services.estimator import CompetitivePricingEstimator
from ..services.performance import PerformanceAnalyzer
from ..services.pricing import PricingEngine
from ..utils.identity import acting_business_id, json_body, request_deadline, require_business

bp = Blueprint("pricing", __name__)


@bp.get("/api/missions/<mission_id>/performance")
def mission_performance(mission_id: str):
    performance = PerformanceAnalyzer().analyze_mission(
        mission_id, business_id=acting_business_id(), deadline=request_deadline()
    )
    if performance is None:
        return jsonify({"ok": False, "error": "not_found", "message": "No analysis available"}), 404
    return jsonify({"ok": True, "performance": performance.to_dict()})


@bp.get("/api/businesses/<business_id>/pricing/recommendations")
def recommendations(business_id: str):
    require_business(business_id)
    items = PricingEngine().get_business_recommendations(business_id, deadline=request_deadline())
    return jsonify({"ok": True, "recommendations": [item.to_dict() for item in items]})


@bp.get("/api/businesses/<business_id>/pricing/summary")
def summary(business_id: str):
    require_business(business_id)
    return jsonify(
        {"ok": True, "summary": PricingEngine().get_pricing_summary(business_id, deadline=request_deadline())}
    )


@bp.post("/api/pricing/estimate")
def estimate():
    business_id = acting_business_id()
    payload = json_body()
    points = CompetitivePricingEstimator().estimate_starting_points(
        business_id,
        payload.get("mission_type") or "CUSTOM",
        str(payload.get("category") or "Other"),
        payload.get("complexity") or "MEDIUM",
        deadline=request_deadline(),
    )
    return jsonify({"ok": True, "suggested_points": points})
