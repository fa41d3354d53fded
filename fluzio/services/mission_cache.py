"""Per-business mission mirror used by the UI for instant feedback.

The mirror is never consulted for lifecycle or pricing decisions. It is
invalidated after every mutation and can be reconciled against the
authoritative store on demand.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import cache
from ..stores import Deadline, MissionStore
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Fields whose divergence makes a mirrored entry stale.
RECONCILED_FIELDS = (
    "lifecycle_status",
    "is_active",
    "reward_points",
    "current_participants",
    "max_participants",
    "title",
    "valid_until",
)


@dataclass
class ReconcileReport:
    business_id: str
    stale: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    refreshed: int = 0

    @property
    def in_sync(self) -> bool:
        return not (self.stale or self.missing or self.orphaned)

    def to_dict(self) -> dict:
        return {
            "business_id": self.business_id,
            "in_sync": self.in_sync,
            "stale": self.stale,
            "missing": self.missing,
            "orphaned": self.orphaned,
            "refreshed": self.refreshed,
        }


class MissionCache:
    KEY_TEMPLATE = "missions:business:{business_id}"

    def __init__(self, store: MissionStore | None = None) -> None:
        self.store = store or MissionStore()

    @classmethod
    def key_for(cls, business_id: str) -> str:
        return cls.KEY_TEMPLATE.format(business_id=business_id)

    @staticmethod
    def _timeout() -> int:
        return int(current_app.config.get("MISSION_CACHE_TIMEOUT", 90))

    def peek(self, business_id: str) -> list[dict] | None:
        """Return the mirrored snapshot without touching the store."""
        return cache.get(self.key_for(business_id))

    def get_business_missions(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> list[dict]:
        cached = self.peek(business_id)
        if cached is not None:
            return cached
        return self.refresh(business_id, deadline=deadline)

    def refresh(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> list[dict]:
        snapshot = [
            mission.to_dict()
            for mission in self.store.query_by_business(business_id, deadline=deadline)
        ]
        cache.set(self.key_for(business_id), snapshot, timeout=self._timeout())
        return snapshot

    def invalidate(self, business_id: str) -> None:
        cache.delete(self.key_for(business_id))
        logger.debug("[CACHE] Invalidated mission mirror for business %s", business_id)

    def reconcile(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> ReconcileReport:
        cached = {entry["id"]: entry for entry in (self.peek(business_id) or [])}
        authoritative = {
            mission.id: mission.to_dict()
            for mission in self.store.query_by_business(business_id, deadline=deadline)
        }

        report = ReconcileReport(business_id=business_id)
        for mission_id, fresh in authoritative.items():
            mirrored = cached.get(mission_id)
            if mirrored is None:
                report.missing.append(mission_id)
            elif any(mirrored.get(name) != fresh.get(name) for name in RECONCILED_FIELDS):
                report.stale.append(mission_id)
        report.orphaned = [mission_id for mission_id in cached if mission_id not in authoritative]

        snapshot = sorted(
            authoritative.values(), key=lambda entry: entry["created_at"] or "", reverse=True
        )
        cache.set(self.key_for(business_id), snapshot, timeout=self._timeout())
        report.refreshed = len(snapshot)

        if not report.in_sync:
            logger.info(
                "[CACHE] Reconciled business %s: stale=%d missing=%d orphaned=%d",
                business_id,
                len(report.stale),
                len(report.missing),
                len(report.orphaned),
            )
        return report


__all__ = ["MissionCache", "ReconcileReport", "RECONCILED_FIELDS"]
