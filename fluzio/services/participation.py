"""Creator applications and their approval by the owning business."""

from __future__ import annotations

from datetime import datetime

from ..errors import (
    AlreadyDecidedError,
    ForbiddenError,
    InvalidStateError,
    MissionError,
    MissionFullError,
    ValidationError,
)
from ..models.mission import LifecycleStatus
from ..models.participation import Participation, ParticipationStatus
from ..stores import Deadline, MissionStore, ParticipationStore, PointsLedger, commit, rollback
from ..utils.logger import get_logger
from ..utils.time import normalize_datetime, utcnow
from .lifecycle import MissionLifecycleManager

logger = get_logger(__name__)


class ParticipationWorkflow:
    """apply -> PENDING -> APPROVED | REJECTED, with the point award on approval."""

    def __init__(
        self,
        lifecycle: MissionLifecycleManager | None = None,
        participations: ParticipationStore | None = None,
        ledger: PointsLedger | None = None,
    ) -> None:
        self.lifecycle = lifecycle or MissionLifecycleManager()
        self.missions: MissionStore = self.lifecycle.store
        self.participations = participations or ParticipationStore()
        self.ledger = ledger or PointsLedger()

    def apply(
        self,
        mission_id: str,
        user_id: str,
        *,
        business_id: str | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Participation:
        if not user_id:
            raise ValidationError("Acting user id is required", field="user_id")
        now = normalize_datetime(now or utcnow())

        mission = self.missions.require(mission_id, deadline=deadline)
        if business_id is not None and business_id != mission.business_id:
            raise ValidationError(
                "business_id does not match the mission owner", field="business_id"
            )
        if not mission.has_capacity:
            raise MissionFullError(
                "Mission has reached its participant limit",
                mission_id=mission_id,
                max_participants=mission.max_participants,
            )
        self.lifecycle.ensure_accepting_applications(mission, now=now, deadline=deadline)

        participation = Participation(
            mission_id=mission.id,
            user_id=user_id,
            business_id=mission.business_id,
            status=ParticipationStatus.PENDING,
            applied_at=now,
        )
        try:
            self.participations.create(participation, deadline=deadline)
        except Exception:
            rollback()
            raise
        commit("apply_to_mission", deadline)

        logger.info(
            "[PARTICIPATION] User %s applied to mission %s (participation %s)",
            user_id,
            mission_id,
            participation.id,
        )
        return self.participations.require(participation.id, deadline=deadline)

    def approve(
        self,
        participation_id: str,
        *,
        business_id: str,
        feedback: str | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Participation:
        """Approve a pending application and credit the mission reward.

        The status check-and-set, the participant counter and the ledger
        credit share one transaction. Exactly one of two concurrent approvals
        wins; the other gets :class:`AlreadyDecidedError` and changes nothing.

        The counter only moves on an open mission below its cap: a completed
        mission raises :class:`InvalidStateError` and a full one
        :class:`MissionFullError`, both rolling the approval back. The approval
        that fills the cap completes the mission in the same transaction.
        """
        now = normalize_datetime(now or utcnow())
        participation = self._require_owned(participation_id, business_id, deadline=deadline)
        if participation.is_decided:
            raise self._already_decided(participation)

        mission = self.missions.require(participation.mission_id, deadline=deadline)
        reward = int(mission.reward_points or 0)

        fields = {"approved_at": now, "points": reward}
        if feedback:
            fields["feedback"] = feedback
        if not self.participations.update_status(
            participation_id,
            ParticipationStatus.PENDING,
            ParticipationStatus.APPROVED,
            fields,
            deadline=deadline,
        ):
            rollback()
            raise self._already_decided(
                self.participations.require(participation_id, deadline=deadline)
            )

        try:
            if not self.missions.increment_participants(mission.id, deadline=deadline):
                raise self._cannot_take_participant(mission.id, deadline=deadline)
            filled = self.missions.complete_if_full(mission.id, now, deadline=deadline)
            balance = self.ledger.increment_points(
                participation.user_id, reward, deadline=deadline
            )
        except Exception:
            rollback()
            raise
        commit("approve_participation", deadline)
        self.lifecycle.mirror.invalidate(mission.business_id)

        logger.info(
            "[PARTICIPATION] Approved %s: user %s +%d points (balance %d)",
            participation_id,
            participation.user_id,
            reward,
            balance,
        )
        if filled:
            logger.info(
                "[MISSIONS] Mission %s reached %s participants and was completed",
                mission.id,
                mission.max_participants,
            )
        return self.participations.require(participation_id, deadline=deadline)

    def reject(
        self,
        participation_id: str,
        *,
        business_id: str,
        feedback: str | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Participation:
        now = normalize_datetime(now or utcnow())
        participation = self._require_owned(participation_id, business_id, deadline=deadline)
        if participation.is_decided:
            raise self._already_decided(participation)

        fields = {"rejected_at": now}
        if feedback:
            fields["feedback"] = feedback
        if not self.participations.update_status(
            participation_id,
            ParticipationStatus.PENDING,
            ParticipationStatus.REJECTED,
            fields,
            deadline=deadline,
        ):
            rollback()
            raise self._already_decided(
                self.participations.require(participation_id, deadline=deadline)
            )
        commit("reject_participation", deadline)

        logger.info("[PARTICIPATION] Rejected %s", participation_id)
        return self.participations.require(participation_id, deadline=deadline)

    def list_by_business(
        self,
        business_id: str,
        *,
        status: ParticipationStatus | None = None,
        deadline: Deadline | None = None,
    ) -> list[Participation]:
        return self.participations.query_by_business(
            business_id, status=status, deadline=deadline
        )

    def list_by_mission(
        self,
        mission_id: str,
        *,
        business_id: str,
        status: ParticipationStatus | None = None,
        deadline: Deadline | None = None,
    ) -> list[Participation]:
        mission = self.missions.require(mission_id, deadline=deadline)
        if mission.business_id != business_id:
            raise ForbiddenError("Mission belongs to another business", mission_id=mission_id)
        return self.participations.query_by_mission(
            mission_id, status=status, deadline=deadline
        )

    def business_stats(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> dict:
        missions = self.missions.query_by_business(business_id, deadline=deadline)
        participations = self.participations.query_by_business(business_id, deadline=deadline)

        by_status = {status: 0 for status in LifecycleStatus}
        for mission in missions:
            by_status[mission.lifecycle_status] += 1

        approved = [p for p in participations if p.status == ParticipationStatus.APPROVED]
        return {
            "business_id": business_id,
            "total_missions": len(missions),
            "active_missions": by_status[LifecycleStatus.ACTIVE],
            "paused_missions": by_status[LifecycleStatus.PAUSED],
            "completed_missions": by_status[LifecycleStatus.COMPLETED],
            "total_applications": len(participations),
            "pending_reviews": sum(
                1 for p in participations if p.status == ParticipationStatus.PENDING
            ),
            "approved_participations": len(approved),
            "points_awarded": sum(p.points or 0 for p in approved),
        }

    def _require_owned(
        self, participation_id: str, business_id: str, *, deadline: Deadline | None
    ) -> Participation:
        if not business_id:
            raise ValidationError("Acting business id is required", field="business_id")
        participation = self.participations.require(participation_id, deadline=deadline)
        if participation.business_id != business_id:
            raise ForbiddenError(
                "Participation belongs to another business",
                participation_id=participation_id,
            )
        return participation

    def _cannot_take_participant(
        self, mission_id: str, *, deadline: Deadline | None
    ) -> MissionError:
        mission = self.missions.require(mission_id, deadline=deadline)
        if mission.is_completed:
            return InvalidStateError(
                "Mission is COMPLETED; applications can no longer be approved",
                mission_id=mission_id,
            )
        return MissionFullError(
            "Mission has reached its participant limit",
            mission_id=mission_id,
            max_participants=mission.max_participants,
        )

    @staticmethod
    def _already_decided(participation: Participation) -> AlreadyDecidedError:
        return AlreadyDecidedError(
            f"Participation already {participation.status.value}",
            participation_id=participation.id,
            status=participation.status.value,
        )


__all__ = ["ParticipationWorkflow"]
