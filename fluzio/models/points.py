"""User point balances credited when a participation is approved."""

from __future__ import annotations

from . import db


POINTS_PER_LEVEL = 100
MAX_LEVEL = 50


def level_for_points(points: int) -> int:
    if points < POINTS_PER_LEVEL:
        return 1
    return min(MAX_LEVEL, max(1, (points // POINTS_PER_LEVEL) + 1))


class UserPointsBalance(db.Model):
    """Aggregated point balance for a creator."""

    __tablename__ = "user_point_balances"

    user_id = db.Column(db.String(64), primary_key=True)
    points = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    level = db.Column(db.Integer, nullable=False, default=1, server_default="1")
    last_credited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint("points >= 0", name="ck_point_balances_points_non_negative"),
        db.CheckConstraint("level >= 1", name="ck_point_balances_level_positive"),
    )

    def __repr__(self) -> str:  # pragma: no cover - helper
        return f"<UserPointsBalance {self.user_id} points={self.points}>"


__all__ = ["UserPointsBalance", "level_for_points"]
