"""Mission lifecycle: activation, pause, completion and template activation.

Every mutation is a conditional write against the authoritative store,
committed as one unit and then confirmed by re-reading the row. The UI mirror
is invalidated only after the store acknowledged the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping

from ..errors import (
    ForbiddenError,
    InvalidStateError,
    MissionExpiredError,
    MissionInactiveError,
    StoreUnavailableError,
    ValidationError,
)
from ..models.business import SUBSCRIPTION_PARTICIPANT_CAPS, SubscriptionLevel
from ..models.mission import LifecycleStatus, Mission, MissionType, status_fields
from ..stores import BusinessDirectory, Deadline, MissionStore, commit, rollback
from ..utils.logger import get_logger
from ..utils.time import normalize_datetime, parse_datetime, utcnow
from .mission_cache import MissionCache, ReconcileReport
from .templates import StandardMissionTemplate, get_template

logger = get_logger(__name__)

OPEN_STATUSES = (LifecycleStatus.ACTIVE, LifecycleStatus.PAUSED)


def _coerce_int(payload: Mapping[str, Any], name: str, *, minimum: int, required: bool):
    raw = payload.get(name)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{name} is required", field=name)
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{name} must be an integer", field=name)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", field=name) from None
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", field=name)
    return value


@dataclass(frozen=True)
class MissionDraft:
    """Validated input for a custom mission."""

    title: str
    reward_points: int
    category: str = "Other"
    mission_type: MissionType = MissionType.CUSTOM
    description: str | None = None
    max_participants: int | None = None
    valid_until: datetime | None = None
    city: str | None = None
    start_paused: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MissionDraft":
        title = str(payload.get("title") or "").strip()
        if not title:
            raise ValidationError("title is required", field="title")
        if len(title) > 200:
            raise ValidationError("title must be at most 200 characters", field="title")

        valid_until = None
        if payload.get("valid_until"):
            valid_until = parse_datetime(payload["valid_until"])
            if valid_until is None:
                raise ValidationError("valid_until must be an ISO-8601 timestamp", field="valid_until")

        return cls(
            title=title,
            reward_points=_coerce_int(payload, "reward_points", minimum=0, required=True),
            category=str(payload.get("category") or "Other").strip() or "Other",
            mission_type=MissionType.parse(payload.get("mission_type") or MissionType.CUSTOM),
            description=payload.get("description") or None,
            max_participants=_coerce_int(payload, "max_participants", minimum=1, required=False),
            valid_until=valid_until,
            city=(str(payload["city"]).strip() or None) if payload.get("city") else None,
            start_paused=bool(payload.get("start_paused", False)),
        )


@dataclass(frozen=True)
class TemplateActivation:
    mission: Mission
    template: StandardMissionTemplate
    outcome: str  # "created", "reactivated" or "already_active"

    @property
    def created(self) -> bool:
        return self.outcome == "created"

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "outcome": self.outcome,
            "template": self.template.key,
            "mission": self.mission.to_dict(),
        }


class MissionLifecycleManager:
    """Owns the ACTIVE/PAUSED/COMPLETED state machine of a mission."""

    def __init__(
        self,
        store: MissionStore | None = None,
        directory: BusinessDirectory | None = None,
        mirror: MissionCache | None = None,
    ) -> None:
        self.store = store or MissionStore()
        self.directory = directory or BusinessDirectory()
        self.mirror = mirror or MissionCache(self.store)

    # ------------------------------------------------------------------ reads

    def get_mission(self, mission_id: str, *, deadline: Deadline | None = None) -> Mission:
        return self.store.require(mission_id, deadline=deadline)

    def business_missions(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> list[dict]:
        """UI feed served from the mirror; never used for decisions."""
        return self.mirror.get_business_missions(business_id, deadline=deadline)

    def reconcile_cache(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> ReconcileReport:
        return self.mirror.reconcile(business_id, deadline=deadline)

    # -------------------------------------------------------------- creation

    def create_mission(
        self,
        business_id: str,
        draft: MissionDraft,
        *,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Mission:
        now = normalize_datetime(now or utcnow())
        if draft.valid_until is not None and normalize_datetime(draft.valid_until) <= now:
            raise ValidationError("valid_until must be in the future", field="valid_until")

        city = draft.city
        if city is None:
            profile = self.directory.get(business_id, deadline=deadline)
            city = profile.city if profile is not None else None

        status = LifecycleStatus.PAUSED if draft.start_paused else LifecycleStatus.ACTIVE
        mission = Mission(
            business_id=business_id,
            title=draft.title,
            description=draft.description,
            category=draft.category,
            mission_type=draft.mission_type,
            reward_points=draft.reward_points,
            max_participants=draft.max_participants,
            current_participants=0,
            valid_until=draft.valid_until,
            city=city,
            **status_fields(status),
        )
        mission_id = self.store.create(mission, deadline=deadline)
        commit("create_mission", deadline)
        self.mirror.invalidate(business_id)

        confirmed = self._confirm(mission_id, status, deadline=deadline)
        logger.info(
            "[MISSIONS] Business %s created mission %s (%s, %s points)",
            business_id,
            mission_id,
            status.value,
            draft.reward_points,
        )
        return confirmed

    # ------------------------------------------------------------ transitions

    def toggle_mission_status(
        self,
        mission_id: str,
        currently_active: bool,
        *,
        business_id: str,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Mission:
        """Pause an active mission or resume a paused one.

        ``currently_active`` is what the caller believes the status to be.
        When the mission already sits in the requested target state the call
        is a no-op, so repeated toggles converge instead of flapping.
        """
        now = normalize_datetime(now or utcnow())
        mission = self.store.require(mission_id, deadline=deadline)
        self._check_owner(mission, business_id)

        if mission.is_completed:
            raise InvalidStateError(
                "Completed missions cannot be paused or resumed", mission_id=mission_id
            )
        if mission.is_expired(now):
            self._complete_expired(mission, now, deadline=deadline)
            raise MissionExpiredError(
                "Mission validity has ended; it is now completed", mission_id=mission_id
            )

        source = LifecycleStatus.ACTIVE if currently_active else LifecycleStatus.PAUSED
        target = LifecycleStatus.PAUSED if currently_active else LifecycleStatus.ACTIVE
        if mission.lifecycle_status == target:
            logger.debug(
                "[MISSIONS] Mission %s already %s; toggle is a no-op", mission_id, target.value
            )
            return mission

        if not self.store.transition(mission_id, (source,), target, deadline=deadline):
            rollback()
            current = self.store.require(mission_id, deadline=deadline)
            if current.lifecycle_status == target:
                return current
            raise InvalidStateError(
                f"Mission is {current.lifecycle_status.value}, cannot toggle",
                mission_id=mission_id,
            )

        commit("toggle_mission_status", deadline)
        self.mirror.invalidate(mission.business_id)
        confirmed = self._confirm(mission_id, target, deadline=deadline)
        logger.info(
            "[MISSIONS] Mission %s %s -> %s", mission_id, source.value, target.value
        )
        return confirmed

    def complete_mission(
        self,
        mission_id: str,
        *,
        business_id: str,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Mission:
        now = normalize_datetime(now or utcnow())
        mission = self.store.require(mission_id, deadline=deadline)
        self._check_owner(mission, business_id)
        if mission.is_completed:
            return mission

        if not self.store.transition(
            mission_id,
            OPEN_STATUSES,
            LifecycleStatus.COMPLETED,
            extra_fields={"completed_at": now, "template_key": None},
            deadline=deadline,
        ):
            rollback()
            current = self.store.require(mission_id, deadline=deadline)
            if current.is_completed:
                return current
            raise InvalidStateError("Mission could not be completed", mission_id=mission_id)

        commit("complete_mission", deadline)
        self.mirror.invalidate(mission.business_id)
        confirmed = self._confirm(mission_id, LifecycleStatus.COMPLETED, deadline=deadline)
        logger.info("[MISSIONS] Mission %s completed by business %s", mission_id, business_id)
        return confirmed

    def expire_missions(
        self, *, now: datetime | None = None, deadline: Deadline | None = None
    ) -> int:
        """Complete every open mission whose validity window has ended."""
        now = normalize_datetime(now or utcnow())
        expired = self.store.complete_expired(now, deadline=deadline)
        if not expired:
            return 0
        commit("expire_missions", deadline)
        for business_id in {business_id for _, business_id in expired}:
            self.mirror.invalidate(business_id)
        logger.info("[MISSIONS] Completed %d expired missions", len(expired))
        return len(expired)

    def ensure_accepting_applications(
        self,
        mission: Mission,
        *,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        now = normalize_datetime(now or utcnow())
        if mission.is_expired(now):
            self._complete_expired(mission, now, deadline=deadline)
            raise MissionExpiredError(
                "Mission validity has ended", mission_id=mission.id
            )
        if mission.lifecycle_status != LifecycleStatus.ACTIVE:
            raise MissionInactiveError(
                f"Mission is {mission.lifecycle_status.value}", mission_id=mission.id
            )

    # ------------------------------------------------------------- templates

    def activate_template(
        self,
        template_key: str,
        business_id: str,
        *,
        reward_points: int | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> TemplateActivation:
        """Lookup-or-create the business's mission for a standard template.

        An ACTIVE match makes this a no-op, a PAUSED match is resumed in
        place, and only when nothing matches is a new mission inserted. The
        insert is conditional on the ``(business_id, template_key)`` unique
        constraint, so two concurrent activations yield one mission.
        """
        template = get_template(template_key)
        now = normalize_datetime(now or utcnow())
        if reward_points is not None and reward_points < 0:
            raise ValidationError("reward_points must be >= 0", field="reward_points")

        existing = self.store.find_open_by_title(business_id, template.title, deadline=deadline)
        if existing is not None and existing.is_expired(now):
            self._complete_expired(existing, now, deadline=deadline)
            existing = None
        if existing is not None:
            return self._resolve_existing(existing, template, deadline=deadline)

        profile = self.directory.get(business_id, deadline=deadline)
        if profile is not None:
            cap = profile.participant_cap()
            category = profile.category or "Other"
            city = profile.city
        else:
            cap = SUBSCRIPTION_PARTICIPANT_CAPS[SubscriptionLevel.FREE]
            category = "Other"
            city = None

        mission = Mission(
            business_id=business_id,
            title=template.title,
            description=template.description,
            category=category,
            mission_type=template.mission_type,
            reward_points=template.default_reward if reward_points is None else reward_points,
            max_participants=cap,
            current_participants=0,
            valid_until=now + timedelta(days=template.validity_days),
            city=city,
            template_key=template.title,
            **status_fields(LifecycleStatus.ACTIVE),
        )
        if not self.store.insert_if_absent(mission, deadline=deadline):
            rollback()
            winner = self.store.find_open_by_title(business_id, template.title, deadline=deadline)
            if winner is None:
                raise InvalidStateError(
                    "Template activation conflicted with a concurrent write",
                    template=template.key,
                )
            logger.info(
                "[TEMPLATES] Concurrent activation of %s for business %s resolved to %s",
                template.key,
                business_id,
                winner.id,
            )
            return self._resolve_existing(winner, template, deadline=deadline)

        commit("activate_template", deadline)
        self.mirror.invalidate(business_id)
        confirmed = self._confirm(mission.id, LifecycleStatus.ACTIVE, deadline=deadline)
        logger.info(
            "[TEMPLATES] Activated %s for business %s as mission %s",
            template.key,
            business_id,
            confirmed.id,
        )
        return TemplateActivation(mission=confirmed, template=template, outcome="created")

    def _resolve_existing(
        self,
        existing: Mission,
        template: StandardMissionTemplate,
        *,
        deadline: Deadline | None,
    ) -> TemplateActivation:
        if existing.lifecycle_status == LifecycleStatus.ACTIVE:
            logger.debug(
                "[TEMPLATES] %s already active for business %s (mission %s)",
                template.key,
                existing.business_id,
                existing.id,
            )
            return TemplateActivation(mission=existing, template=template, outcome="already_active")

        if not self.store.transition(
            existing.id, (LifecycleStatus.PAUSED,), LifecycleStatus.ACTIVE, deadline=deadline
        ):
            rollback()
            current = self.store.require(existing.id, deadline=deadline)
            if current.lifecycle_status == LifecycleStatus.ACTIVE:
                return TemplateActivation(mission=current, template=template, outcome="already_active")
            raise InvalidStateError(
                f"Mission is {current.lifecycle_status.value}, cannot reactivate",
                mission_id=existing.id,
            )

        commit("reactivate_template_mission", deadline)
        self.mirror.invalidate(existing.business_id)
        confirmed = self._confirm(existing.id, LifecycleStatus.ACTIVE, deadline=deadline)
        logger.info(
            "[TEMPLATES] Reactivated paused mission %s for template %s",
            existing.id,
            template.key,
        )
        return TemplateActivation(mission=confirmed, template=template, outcome="reactivated")

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _check_owner(mission: Mission, business_id: str) -> None:
        if not business_id:
            raise ValidationError("Acting business id is required", field="business_id")
        if mission.business_id != business_id:
            raise ForbiddenError(
                "Mission belongs to another business", mission_id=mission.id
            )

    def _complete_expired(
        self, mission: Mission, now: datetime, *, deadline: Deadline | None
    ) -> None:
        if self.store.transition(
            mission.id,
            OPEN_STATUSES,
            LifecycleStatus.COMPLETED,
            extra_fields={"completed_at": now, "template_key": None},
            deadline=deadline,
        ):
            commit("complete_expired_mission", deadline)
            self.mirror.invalidate(mission.business_id)
            logger.info("[MISSIONS] Mission %s expired and was completed", mission.id)
        else:
            rollback()

    def _confirm(
        self,
        mission_id: str,
        expected: LifecycleStatus,
        *,
        deadline: Deadline | None,
    ) -> Mission:
        """Read back a committed write from the authoritative store."""
        confirmed = self.store.require(mission_id, deadline=deadline)
        if confirmed.lifecycle_status != expected:
            raise StoreUnavailableError(
                "Store did not confirm the mission status write",
                mission_id=mission_id,
                expected=expected.value,
                actual=confirmed.lifecycle_status.value,
            )
        return confirmed


__all__ = ["MissionDraft", "MissionLifecycleManager", "TemplateActivation", "OPEN_STATUSES"]
