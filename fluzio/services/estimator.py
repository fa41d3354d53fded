"""Suggested starting reward for a new mission."""

from __future__ import annotations

from flask import current_app, has_app_context

from ..errors import MissionError
from ..models.mission import Complexity, MissionType
from ..stores import BusinessDirectory, Deadline, MissionStore
from ..utils.logger import get_logger
from .performance import round_half_up

logger = get_logger(__name__)

BASE_POINTS = {
    Complexity.EASY: 50,
    Complexity.MEDIUM: 100,
    Complexity.HARD: 200,
}

TYPE_MULTIPLIERS = {
    MissionType.FOLLOW_BUSINESS_APP: 0.8,
    MissionType.WRITE_REVIEW_APP: 1.2,
    MissionType.REVIEW_WITH_PHOTO_APP: 1.5,
    MissionType.SHARE_PHOTO_APP: 1.3,
    MissionType.IN_PERSON: 1.0,
    MissionType.CUSTOM: 1.1,
}

# Slightly above the local market average.
COMPETITOR_PREMIUM = 1.1


class CompetitivePricingEstimator:
    def __init__(
        self,
        missions: MissionStore | None = None,
        directory: BusinessDirectory | None = None,
        min_points: int | None = None,
        max_points: int | None = None,
    ) -> None:
        self.missions = missions or MissionStore()
        self.directory = directory or BusinessDirectory()
        self._min_points = min_points
        self._max_points = max_points

    def _bounds(self) -> tuple[int, int]:
        config = current_app.config if has_app_context() else {}
        low = self._min_points if self._min_points is not None else config.get("ESTIMATOR_MIN_POINTS", 25)
        high = self._max_points if self._max_points is not None else config.get("ESTIMATOR_MAX_POINTS", 500)
        return int(low), int(high)

    def estimate_starting_points(
        self,
        business_id: str,
        mission_type: MissionType | str,
        category: str,
        complexity: Complexity | str,
        *,
        deadline: Deadline | None = None,
    ) -> int:
        """Never raises for lookup failures; falls back to the complexity base."""
        mission_type = MissionType.parse(mission_type)
        complexity = Complexity.parse(complexity)
        base = BASE_POINTS[complexity]

        try:
            profile = self.directory.get(business_id, deadline=deadline)
            if profile is None or not profile.city:
                logger.warning(
                    "[ESTIMATOR] Business %s has no resolvable city; using base %d",
                    business_id,
                    base,
                )
                return base
            competitors = self.missions.query_active_by_city_category(
                profile.city, category, exclude_business_id=business_id, deadline=deadline
            )
        except MissionError as exc:
            logger.warning(
                "[ESTIMATOR] Lookup failed for business %s (%s); using base %d",
                business_id,
                exc.message,
                base,
            )
            return base

        suggested = base
        rewards = [m.reward_points for m in competitors if (m.reward_points or 0) > 0]
        if rewards:
            suggested = round_half_up(sum(rewards) / len(rewards) * COMPETITOR_PREMIUM)

        suggested = round_half_up(suggested * TYPE_MULTIPLIERS[mission_type])
        low, high = self._bounds()
        suggested = max(low, min(high, suggested))

        logger.info(
            "[ESTIMATOR] %s/%s/%s in %s: %d points (%d competitors)",
            mission_type.value,
            category,
            complexity.value,
            profile.city,
            suggested,
            len(rewards),
        )
        return suggested


__all__ = ["BASE_POINTS", "TYPE_MULTIPLIERS", "CompetitivePricingEstimator"]
