"""Business profile model consumed by the pricing estimator and templates."""

from __future__ import annotations

import enum
from datetime import datetime

from . import db


class SubscriptionLevel(str, enum.Enum):
    FREE = "FREE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


# Participant cap granted to template-spawned missions per subscription tier.
SUBSCRIPTION_PARTICIPANT_CAPS: dict[SubscriptionLevel, int] = {
    SubscriptionLevel.FREE: 5,
    SubscriptionLevel.SILVER: 10,
    SubscriptionLevel.GOLD: 50,
    SubscriptionLevel.PLATINUM: 100,
}


class BusinessProfile(db.Model):
    """Read-mostly mirror of the business account owned by account management."""

    __tablename__ = "business_profiles"

    id: str = db.Column(db.String(64), primary_key=True)
    name: str = db.Column(db.Text, nullable=False)
    city: str | None = db.Column(db.String(120))
    category: str | None = db.Column(db.String(64))
    subscription_level = db.Column(
        db.Enum(SubscriptionLevel, native_enum=False, length=16),
        nullable=False,
        default=SubscriptionLevel.FREE,
        server_default=SubscriptionLevel.FREE.value,
    )
    created_at: datetime = db.Column(
        db.DateTime, server_default=db.func.now(), nullable=False
    )

    def participant_cap(self) -> int:
        level = self.subscription_level or SubscriptionLevel.FREE
        return SUBSCRIPTION_PARTICIPANT_CAPS.get(
            level, SUBSCRIPTION_PARTICIPANT_CAPS[SubscriptionLevel.FREE]
        )

    def __repr__(self) -> str:  # pragma: no cover - helper
        return f"<BusinessProfile {self.id} city={self.city}>"


__all__ = ["BusinessProfile", "SubscriptionLevel", "SUBSCRIPTION_PARTICIPANT_CAPS"]
