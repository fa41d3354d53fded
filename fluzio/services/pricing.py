"""Advisory reward adjustments for a business's active missions."""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass

from ..errors import MissionError
from ..models.mission import LifecycleStatus
from ..stores import Deadline, MissionStore, ParticipationStore
from ..utils.logger import get_logger
from .performance import MissionPerformance, PricingSettings, compute_performance, round_half_up

logger = get_logger(__name__)


class PricingAction(str, enum.Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    KEEP = "KEEP"
    PAUSE = "PAUSE"


@dataclass(frozen=True)
class PricingRecommendation:
    mission_id: str
    current_points: int
    suggested_points: int
    action: PricingAction
    confidence: int
    expected_impact: str

    def to_dict(self) -> dict:
        return {
            "mission_id": self.mission_id,
            "current_points": self.current_points,
            "suggested_points": self.suggested_points,
            "action": self.action.value,
            "confidence": self.confidence,
            "expected_impact": self.expected_impact,
        }


def _percent_change(performance: MissionPerformance) -> int:
    if performance.current_points <= 0:
        return 0
    delta = abs(performance.suggested_points - performance.current_points)
    return round_half_up(delta / performance.current_points * 100)


def recommend_for(
    performance: MissionPerformance, settings: PricingSettings | None = None
) -> PricingRecommendation:
    settings = settings or PricingSettings()
    current = performance.current_points
    suggested = performance.suggested_points
    large_sample = performance.total_participants > 20

    if performance.completion_rate < 5 and performance.total_views > 50:
        action, confidence = PricingAction.PAUSE, 75
        impact = "Mission has poor performance despite visibility. Consider redesigning or pausing."
    elif suggested > current * 1.15:
        action, confidence = PricingAction.INCREASE, 80 if large_sample else 60
        impact = (
            f"Increase by {_percent_change(performance)}% to boost participation by ~30-40%"
        )
    elif suggested < current * 0.95:
        action, confidence = PricingAction.DECREASE, 85 if large_sample else 65
        impact = (
            f"Decrease by {_percent_change(performance)}% to optimize costs "
            "(already performing well)"
        )
    else:
        action, confidence = PricingAction.KEEP, 70
        impact = "Current pricing is optimal. Continue monitoring."

    if performance.total_participants < settings.min_sample_size:
        confidence = min(confidence, settings.low_sample_confidence_cap)

    return PricingRecommendation(
        mission_id=performance.mission_id,
        current_points=current,
        suggested_points=suggested,
        action=action,
        confidence=confidence,
        expected_impact=impact,
    )


class PricingEngine:
    """Read-only; never mutates missions or participations."""

    def __init__(
        self,
        missions: MissionStore | None = None,
        participations: ParticipationStore | None = None,
        settings: PricingSettings | None = None,
    ) -> None:
        self.missions = missions or MissionStore()
        self.participations = participations or ParticipationStore()
        self._settings = settings

    @property
    def settings(self) -> PricingSettings:
        return self._settings or PricingSettings.current()

    def get_business_recommendations(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> list[PricingRecommendation]:
        settings = self.settings
        try:
            missions = self.missions.query_by_business(
                business_id, status=LifecycleStatus.ACTIVE, deadline=deadline
            )
            if not missions:
                return []
            # One fetch for the whole business, grouped here per mission.
            history = defaultdict(list)
            for participation in self.participations.query_by_business(
                business_id, deadline=deadline
            ):
                history[participation.mission_id].append(participation)
        except MissionError as exc:
            logger.warning(
                "[PRICING] Recommendations unavailable for business %s: %s",
                business_id,
                exc.message,
            )
            return []

        recommendations = [
            recommend_for(compute_performance(mission, history[mission.id], settings), settings)
            for mission in missions
        ]
        logger.info(
            "[PRICING] %d recommendations for business %s", len(recommendations), business_id
        )
        return recommendations

    def get_pricing_summary(
        self, business_id: str, *, deadline: Deadline | None = None
    ) -> dict:
        recommendations = self.get_business_recommendations(business_id, deadline=deadline)
        counts = {action: 0 for action in PricingAction}
        for recommendation in recommendations:
            counts[recommendation.action] += 1

        headlines = []
        if not recommendations:
            headlines.append(
                "No active missions to analyze yet. Create your first mission to get pricing insights."
            )
        if counts[PricingAction.INCREASE]:
            headlines.append(
                f"{_missions(counts[PricingAction.INCREASE])} could benefit from higher "
                "rewards to boost participation."
            )
        if counts[PricingAction.DECREASE]:
            headlines.append(
                f"{_missions(counts[PricingAction.DECREASE])} performing great; "
                "costs can be optimized."
            )
        if counts[PricingAction.PAUSE]:
            headlines.append(
                f"{_missions(counts[PricingAction.PAUSE])} need attention; "
                "consider redesigning or pausing."
            )
        if counts[PricingAction.KEEP]:
            headlines.append(f"{_missions(counts[PricingAction.KEEP])} optimally priced.")

        return {
            "business_id": business_id,
            "total": len(recommendations),
            "counts": {action.value: count for action, count in counts.items()},
            "headlines": headlines,
        }


def _missions(count: int) -> str:
    return f"{count} mission" if count == 1 else f"{count} missions"


__all__ = ["PricingAction", "PricingEngine", "PricingRecommendation", "recommend_for"]
