"""Mission lifecycle endpoints used by the business dashboard."""

from __future__ import annotations

from flask import Blueprint, jsonify

from ..errors import ValidationError
from ..services.lifecycle import MissionDraft, MissionLifecycleManager
from ..services.participation import ParticipationWorkflow
from ..services.templates import list_templates
from ..utils.identity import acting_business_id, json_body, request_deadline, require_business

bp = Blueprint("missions", __name__)


@bp.get("/api/templates")
def templates():
    return jsonify({"ok": True, "templates": [t.to_dict() for t in list_templates()]})


@bp.post("/api/templates/<template_key>/activate")
def activate_template(template_key: str):
    business_id = acting_business_id()
    payload = json_body()
    reward_points = payload.get("reward_points")
    if reward_points is not None:
        if isinstance(reward_points, bool) or not isinstance(reward_points, int):
            raise ValidationError("reward_points must be an integer", field="reward_points")

    activation = MissionLifecycleManager().activate_template(
        template_key,
        business_id,
        reward_points=reward_points,
        deadline=request_deadline(),
    )
    return jsonify(activation.to_dict()), 201 if activation.created else 200


@bp.post("/api/missions")
def create_mission():
    business_id = acting_business_id()
    draft = MissionDraft.from_payload(json_body())
    mission = MissionLifecycleManager().create_mission(
        business_id, draft, deadline=request_deadline()
    )
    return jsonify({"ok": True, "mission": mission.to_dict()}), 201


@bp.post("/api/missions/<mission_id>/toggle")
def toggle_mission(mission_id: str):
    business_id = acting_business_id()
    payload = json_body()
    currently_active = payload.get("currently_active")
    if not isinstance(currently_active, bool):
        raise ValidationError("currently_active must be a boolean", field="currently_active")

    mission = MissionLifecycleManager().toggle_mission_status(
        mission_id,
        currently_active,
        business_id=business_id,
        deadline=request_deadline(),
    )
    return jsonify({"ok": True, "mission": mission.to_dict()})


@bp.post("/api/missions/<mission_id>/complete")
def complete_mission(mission_id: str):
    mission = MissionLifecycleManager().complete_mission(
        mission_id, business_id=acting_business_id(), deadline=request_deadline()
    )
    return jsonify({"ok": True, "mission": mission.to_dict()})


@bp.get("/api/businesses/<business_id>/missions")
def business_missions(business_id: str):
    require_business(business_id)
    missions = MissionLifecycleManager().business_missions(
        business_id, deadline=request_deadline()
    )
    return jsonify({"ok": True, "missions": missions})


@bp.post("/api/businesses/<business_id>/missions/reconcile")
def reconcile_missions(business_id: str):
    require_business(business_id)
    report = MissionLifecycleManager().reconcile_cache(business_id, deadline=request_deadline())
    return jsonify({"ok": True, "report": report.to_dict()})


@bp.get("/api/businesses/<business_id>/stats")
def business_stats(business_id: str):
    require_business(business_id)
    stats = ParticipationWorkflow().business_stats(business_id, deadline=request_deadline())
    return jsonify({"ok": True, "stats": stats})
