"""Creator applications and their review by the owning business."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..errors import ValidationError
from ..models.participation import ParticipationStatus
from ..services.participation import ParticipationWorkflow
from ..utils.identity import (
    acting_business_id,
    acting_user_id,
    json_body,
    request_deadline,
    require_business,
)

bp = Blueprint("participations", __name__)


def _status_filter() -> ParticipationStatus | None:
    raw = (request.args.get("status") or "").strip().upper()
    if not raw:
        return None
    try:
        return ParticipationStatus(raw)
    except ValueError:
        raise ValidationError(f"Unknown participation status {raw!r}", field="status") from None


def _feedback() -> str | None:
    feedback = json_body().get("feedback")
    if feedback is not None and not isinstance(feedback, str):
        raise ValidationError("feedback must be a string", field="feedback")
    return feedback or None


@bp.post("/api/missions/<mission_id>/apply")
def apply(mission_id: str):
    participation = ParticipationWorkflow().apply(
        mission_id, acting_user_id(), deadline=request_deadline()
    )
    return jsonify({"ok": True, "participation": participation.to_dict()}), 201


@bp.post("/api/participations/<participation_id>/approve")
def approve(participation_id: str):
    participation = ParticipationWorkflow().approve(
        participation_id,
        business_id=acting_business_id(),
        feedback=_feedback(),
        deadline=request_deadline(),
    )
    return jsonify({"ok": True, "participation": participation.to_dict()})


@bp.post("/api/participations/<participation_id>/reject")
def reject(participation_id: str):
    participation = ParticipationWorkflow().reject(
        participation_id,
        business_id=acting_business_id(),
        feedback=_feedback(),
        deadline=request_deadline(),
    )
    return jsonify({"ok": True, "participation": participation.to_dict()})


@bp.get("/api/businesses/<business_id>/participations")
def business_participations(business_id: str):
    require_business(business_id)
    participations = ParticipationWorkflow().list_by_business(
        business_id, status=_status_filter(), deadline=request_deadline()
    )
    return jsonify({"ok": True, "participations": [p.to_dict() for p in participations]})


@bp.get("/api/missions/<mission_id>/participations")
def mission_participations(mission_id: str):
    participations = ParticipationWorkflow().list_by_mission(
        mission_id,
        business_id=acting_business_id(),
        status=_status_filter(),
        deadline=request_deadline(),
    )
    return jsonify({"ok": True, "participations": [p.to_dict() for p in participations]})
