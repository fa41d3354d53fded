"""CRUD access to participation rows in the authoritative store."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyAppliedError, NotFoundError
from ..models import db
from ..models.participation import Participation, ParticipationStatus
from ..utils.time import normalize_datetime
from .base import Deadline, store_call


def _sort_and_filter(
    participations: list[Participation], status: ParticipationStatus | None
) -> list[Participation]:
    # Filtering and ordering happen here, after a single-key fetch.
    if status is not None:
        participations = [p for p in participations if p.status == status]
    return sorted(
        participations,
        key=lambda participation: normalize_datetime(participation.applied_at),
        reverse=True,
    )


class ParticipationStore:
    def get(
        self, participation_id: str, *, deadline: Deadline | None = None
    ) -> Participation | None:
        with store_call("get_participation", deadline):
            return db.session.get(Participation, participation_id, populate_existing=True)

    def require(
        self, participation_id: str, *, deadline: Deadline | None = None
    ) -> Participation:
        participation = self.get(participation_id, deadline=deadline)
        if participation is None:
            raise NotFoundError(
                f"Participation {participation_id} not found",
                participation_id=participation_id,
            )
        return participation

    def query_by_business(
        self,
        business_id: str,
        *,
        status: ParticipationStatus | None = None,
        deadline: Deadline | None = None,
    ) -> list[Participation]:
        with store_call("query_participations_by_business", deadline):
            rows = list(
                db.session.execute(
                    select(Participation)
                    .where(Participation.business_id == business_id)
                    .execution_options(populate_existing=True)
                )
                .scalars()
                .all()
            )
        return _sort_and_filter(rows, status)

    def query_by_mission(
        self,
        mission_id: str,
        *,
        status: ParticipationStatus | None = None,
        deadline: Deadline | None = None,
    ) -> list[Participation]:
        with store_call("query_participations_by_mission", deadline):
            rows = list(
                db.session.execute(
                    select(Participation)
                    .where(Participation.mission_id == mission_id)
                    .execution_options(populate_existing=True)
                )
                .scalars()
                .all()
            )
        return _sort_and_filter(rows, status)

    def create(
        self, participation: Participation, *, deadline: Deadline | None = None
    ) -> str:
        with store_call("create_participation", deadline):
            try:
                with db.session.begin_nested():
                    db.session.add(participation)
                    db.session.flush()
            except IntegrityError as exc:
                raise AlreadyAppliedError(
                    "User already applied to this mission",
                    mission_id=participation.mission_id,
                    user_id=participation.user_id,
                ) from exc
        return participation.id

    def update_status(
        self,
        participation_id: str,
        expected: ParticipationStatus,
        new_status: ParticipationStatus,
        fields: dict[str, Any] | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        """Check-and-set on ``status``; ``False`` when the row was not ``expected``."""
        values = {"status": new_status}
        if fields:
            values.update(fields)
        with store_call("update_participation_status", deadline):
            result = db.session.execute(
                update(Participation)
                .where(
                    Participation.id == participation_id,
                    Participation.status == expected,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1


__all__ = ["ParticipationStore"]
