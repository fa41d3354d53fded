"""Participation (creator application) model."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import uuid4

from ..utils.time import to_iso_utc
from . import db


class ParticipationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Participation(db.Model):
    """A single creator's application to, and outcome on, a mission."""

    __tablename__ = "participations"
    __table_args__ = (
        # Single-field indexes only: dashboards filter by one key and sort
        # in memory, so no composite index is required.
        db.Index("ix_participations_mission_id", "mission_id"),
        db.Index("ix_participations_business_id", "business_id"),
        db.Index("ix_participations_user_id", "user_id"),
        db.UniqueConstraint("mission_id", "user_id", name="uq_participations_mission_user"),
        db.CheckConstraint(
            "(status = 'APPROVED' AND approved_at IS NOT NULL) "
            "OR (status <> 'APPROVED' AND approved_at IS NULL)",
            name="ck_participations_approved_at_consistent",
        ),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid4().hex)
    mission_id = db.Column(
        db.String(32), db.ForeignKey("missions.id"), nullable=False
    )
    user_id = db.Column(db.String(64), nullable=False)
    business_id = db.Column(db.String(64), nullable=False)
    status = db.Column(
        db.Enum(ParticipationStatus, native_enum=False, length=16),
        nullable=False,
        default=ParticipationStatus.PENDING,
    )
    applied_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    points = db.Column(db.Integer, nullable=True)
    feedback = db.Column(db.Text, nullable=True)

    mission = db.relationship("Mission", backref=db.backref("participations", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<Participation id={self.id} mission_id={self.mission_id} "
            f"user_id={self.user_id} status={self.status}>"
        )

    @property
    def is_decided(self) -> bool:
        return self.status != ParticipationStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mission_id": self.mission_id,
            "user_id": self.user_id,
            "business_id": self.business_id,
            "status": self.status.value if self.status else None,
            "applied_at": to_iso_utc(self.applied_at),
            "approved_at": to_iso_utc(self.approved_at),
            "rejected_at": to_iso_utc(self.rejected_at),
            "points": self.points if self.status == ParticipationStatus.APPROVED else None,
            "feedback": self.feedback,
        }


__all__ = ["Participation", "ParticipationStatus"]
