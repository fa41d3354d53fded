"""CRUD access to mission rows in the authoritative store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError
from ..models import db
from ..models.mission import LifecycleStatus, Mission, status_fields
from ..utils.time import normalize_datetime
from .base import Deadline, store_call

_OPEN_STATUSES = (LifecycleStatus.ACTIVE, LifecycleStatus.PAUSED)


def _newest_first(missions: Iterable[Mission]) -> list[Mission]:
    return sorted(
        missions,
        key=lambda mission: normalize_datetime(mission.created_at),
        reverse=True,
    )


class MissionStore:
    """Field mapping over the ``missions`` table; no lifecycle rules here."""

    def get(self, mission_id: str, *, deadline: Deadline | None = None) -> Mission | None:
        with store_call("get_mission", deadline):
            return db.session.get(Mission, mission_id, populate_existing=True)

    def require(self, mission_id: str, *, deadline: Deadline | None = None) -> Mission:
        mission = self.get(mission_id, deadline=deadline)
        if mission is None:
            raise NotFoundError(f"Mission {mission_id} not found", mission_id=mission_id)
        return mission

    def query_by_business(
        self,
        business_id: str,
        *,
        status: LifecycleStatus | None = None,
        deadline: Deadline | None = None,
    ) -> list[Mission]:
        with store_call("query_missions_by_business", deadline):
            missions = (
                db.session.execute(
                    select(Mission)
                    .where(Mission.business_id == business_id)
                    .execution_options(populate_existing=True)
                )
                .scalars()
                .all()
            )
        if status is not None:
            missions = [mission for mission in missions if mission.lifecycle_status == status]
        return _newest_first(missions)

    def query_active_by_city_category(
        self,
        city: str,
        category: str,
        *,
        exclude_business_id: str | None = None,
        deadline: Deadline | None = None,
    ) -> list[Mission]:
        statement = select(Mission).where(
            Mission.city == city,
            Mission.category == category,
            Mission.lifecycle_status == LifecycleStatus.ACTIVE,
        )
        if exclude_business_id is not None:
            statement = statement.where(Mission.business_id != exclude_business_id)
        with store_call("query_active_missions_by_city", deadline):
            return list(db.session.execute(statement).scalars().all())

    def find_open_by_title(
        self, business_id: str, title: str, *, deadline: Deadline | None = None
    ) -> Mission | None:
        """Return the non-completed mission of ``business_id`` titled ``title``."""
        with store_call("find_mission_by_title", deadline):
            candidates = (
                db.session.execute(
                    select(Mission)
                    .where(
                        Mission.business_id == business_id,
                        Mission.title == title,
                        Mission.lifecycle_status.in_(_OPEN_STATUSES),
                    )
                    .execution_options(populate_existing=True)
                )
                .scalars()
                .all()
            )
        if not candidates:
            return None
        # An ACTIVE match wins over a PAUSED one so activation stays a no-op.
        candidates.sort(key=lambda mission: mission.lifecycle_status != LifecycleStatus.ACTIVE)
        return candidates[0]

    def create(self, mission: Mission, *, deadline: Deadline | None = None) -> str:
        with store_call("create_mission", deadline):
            db.session.add(mission)
            db.session.flush()
        return mission.id

    def insert_if_absent(
        self, mission: Mission, *, deadline: Deadline | None = None
    ) -> bool:
        """Insert ``mission`` unless its ``(business_id, template_key)`` exists.

        Runs inside a savepoint so a losing concurrent insert only rolls back
        itself. Returns ``True`` when the row was inserted.
        """
        with store_call("insert_mission_if_absent", deadline):
            try:
                with db.session.begin_nested():
                    db.session.add(mission)
                    db.session.flush()
            except IntegrityError:
                return False
        return True

    def update(
        self,
        mission_id: str,
        fields: dict[str, Any],
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        with store_call("update_mission", deadline):
            result = db.session.execute(
                update(Mission)
                .where(Mission.id == mission_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def transition(
        self,
        mission_id: str,
        expected: Iterable[LifecycleStatus],
        target: LifecycleStatus,
        *,
        extra_fields: dict[str, Any] | None = None,
        deadline: Deadline | None = None,
    ) -> bool:
        """Conditional write: move to ``target`` only from an ``expected`` status."""
        values = status_fields(target)
        if extra_fields:
            values.update(extra_fields)
        with store_call("transition_mission", deadline):
            result = db.session.execute(
                update(Mission)
                .where(
                    Mission.id == mission_id,
                    Mission.lifecycle_status.in_(tuple(expected)),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def increment_participants(
        self, mission_id: str, *, deadline: Deadline | None = None
    ) -> bool:
        """Count one more participant on an open mission that still has room.

        Returns False, leaving the row untouched, when the mission is
        completed or already at ``max_participants``.
        """
        with store_call("increment_mission_participants", deadline):
            result = db.session.execute(
                update(Mission)
                .where(
                    Mission.id == mission_id,
                    Mission.lifecycle_status.in_(_OPEN_STATUSES),
                    or_(
                        Mission.max_participants.is_(None),
                        Mission.current_participants < Mission.max_participants,
                    ),
                )
                .values(current_participants=Mission.current_participants + 1)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def complete_if_full(
        self, mission_id: str, now: datetime, *, deadline: Deadline | None = None
    ) -> bool:
        """Complete an open mission whose participant count reached its cap."""
        values = status_fields(LifecycleStatus.COMPLETED)
        values.update(completed_at=now, template_key=None)
        with store_call("complete_full_mission", deadline):
            result = db.session.execute(
                update(Mission)
                .where(
                    Mission.id == mission_id,
                    Mission.lifecycle_status.in_(_OPEN_STATUSES),
                    Mission.max_participants.is_not(None),
                    Mission.current_participants >= Mission.max_participants,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def complete_expired(
        self, now: datetime, *, deadline: Deadline | None = None
    ) -> list[tuple[str, str]]:
        """Complete every open mission whose ``valid_until`` is before ``now``.

        Returns ``(mission_id, business_id)`` pairs for the completed rows.
        """
        with store_call("complete_expired_missions", deadline):
            expired = [
                (row.id, row.business_id)
                for row in db.session.execute(
                    select(Mission.id, Mission.business_id).where(
                        Mission.lifecycle_status.in_(_OPEN_STATUSES),
                        Mission.valid_until.is_not(None),
                        Mission.valid_until < now,
                    )
                )
            ]
            if not expired:
                return []
            expired_ids = [mission_id for mission_id, _ in expired]
            values = status_fields(LifecycleStatus.COMPLETED)
            values.update(completed_at=now, template_key=None)
            db.session.execute(
                update(Mission)
                .where(
                    Mission.id.in_(expired_ids),
                    Mission.lifecycle_status.in_(_OPEN_STATUSES),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return expired


__all__ = ["MissionStore"]
