"""Stores backing the collaborators the workflows consume.

The points ledger and the business directory belong to other parts of the
platform; only the calls the mission core needs are exposed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..models import db
from ..models.business import BusinessProfile
from ..models.points import UserPointsBalance, level_for_points
from .base import Deadline, store_call


class PointsLedger:
    def increment_points(
        self, user_id: str, amount: int, *, deadline: Deadline | None = None
    ) -> int:
        """Credit ``amount`` points to ``user_id`` and return the new balance."""
        amount = max(0, int(amount))
        now = datetime.now(timezone.utc)
        with store_call("increment_points", deadline):
            credited = self._atomic_add(user_id, amount, now)
            if not credited:
                try:
                    with db.session.begin_nested():
                        db.session.add(
                            UserPointsBalance(
                                user_id=user_id,
                                points=amount,
                                level=level_for_points(amount),
                                last_credited_at=now,
                            )
                        )
                        db.session.flush()
                except IntegrityError:
                    # Another transaction created the row first.
                    self._atomic_add(user_id, amount, now)

            balance = db.session.get(UserPointsBalance, user_id, populate_existing=True)
            balance.level = level_for_points(balance.points)
            db.session.flush()
            return balance.points

    def balance(self, user_id: str, *, deadline: Deadline | None = None) -> int:
        with store_call("get_points_balance", deadline):
            balance = db.session.get(UserPointsBalance, user_id, populate_existing=True)
        return balance.points if balance is not None else 0

    @staticmethod
    def _atomic_add(user_id: str, amount: int, now: datetime) -> bool:
        result = db.session.execute(
            update(UserPointsBalance)
            .where(UserPointsBalance.user_id == user_id)
            .values(
                points=UserPointsBalance.points + amount,
                last_credited_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class BusinessDirectory:
    def get(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> BusinessProfile | None:
        with store_call("get_business_profile", deadline):
            return db.session.get(BusinessProfile, business_id)


__all__ = ["BusinessDirectory", "PointsLedger"]
