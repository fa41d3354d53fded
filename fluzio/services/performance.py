"""Completion-rate and ROI metrics for a single mission.

The analysis is advisory: malformed or missing participation data falls back
to documented defaults instead of raising. Until impression telemetry is
reported for a mission, views are *estimated* from participant counts and the
result says so with ``views_estimated=True``.
"""

from __future__ import annotations

import enum
import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping

from flask import current_app, has_app_context

from ..errors import MissionError
from ..models.mission import Mission
from ..models.participation import Participation, ParticipationStatus
from ..stores import Deadline, MissionStore, ParticipationStore
from ..utils.logger import get_logger
from ..utils.time import normalize_datetime

logger = get_logger(__name__)


class PerformanceRating(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` is banker's)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class PricingSettings:
    value_per_completion_eur: float = 7.5
    points_per_eur: int = 100
    views_per_participant: int = 3
    default_views: int = 100
    default_completion_minutes: float = 30.0
    rating_excellent: float = 40.0
    rating_good: float = 25.0
    rating_fair: float = 15.0
    min_sample_size: int = 5
    low_sample_confidence_cap: int = 65

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PricingSettings":
        defaults = cls()
        return cls(
            value_per_completion_eur=float(
                config.get("PRICING_VALUE_PER_COMPLETION_EUR", defaults.value_per_completion_eur)
            ),
            points_per_eur=int(config.get("PRICING_POINTS_PER_EUR", defaults.points_per_eur)),
            views_per_participant=int(
                config.get("PRICING_VIEWS_PER_PARTICIPANT", defaults.views_per_participant)
            ),
            default_views=int(config.get("PRICING_DEFAULT_VIEWS", defaults.default_views)),
            default_completion_minutes=float(
                config.get(
                    "PRICING_DEFAULT_COMPLETION_MINUTES", defaults.default_completion_minutes
                )
            ),
            rating_excellent=float(
                config.get("PRICING_RATING_EXCELLENT", defaults.rating_excellent)
            ),
            rating_good=float(config.get("PRICING_RATING_GOOD", defaults.rating_good)),
            rating_fair=float(config.get("PRICING_RATING_FAIR", defaults.rating_fair)),
            min_sample_size=int(config.get("PRICING_MIN_SAMPLE_SIZE", defaults.min_sample_size)),
            low_sample_confidence_cap=int(
                config.get(
                    "PRICING_LOW_SAMPLE_CONFIDENCE_CAP", defaults.low_sample_confidence_cap
                )
            ),
        )

    @classmethod
    def current(cls) -> "PricingSettings":
        if has_app_context():
            return cls.from_config(current_app.config)
        return cls()


@dataclass(frozen=True)
class MissionPerformance:
    mission_id: str
    mission_title: str
    current_points: int
    total_participants: int
    completed_count: int
    total_views: int
    views_estimated: bool
    completion_rate: float
    view_to_completion_ratio: float
    avg_time_to_complete: float
    cost_per_acquisition: float
    roi: float
    performance_rating: PerformanceRating
    suggested_points: int
    reasoning: str

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["performance_rating"] = self.performance_rating.value
        payload["completion_rate"] = round(self.completion_rate, 2)
        payload["view_to_completion_ratio"] = round(self.view_to_completion_ratio, 2)
        payload["avg_time_to_complete"] = round(self.avg_time_to_complete, 2)
        payload["roi"] = round(self.roi, 2)
        return payload


def rate_completion(completion_rate: float, settings: PricingSettings) -> PerformanceRating:
    if completion_rate >= settings.rating_excellent:
        return PerformanceRating.EXCELLENT
    if completion_rate >= settings.rating_good:
        return PerformanceRating.GOOD
    if completion_rate >= settings.rating_fair:
        return PerformanceRating.FAIR
    return PerformanceRating.POOR


def suggest_points(
    current_points: int, completion_rate: float, total_participants: int, roi: float
) -> tuple[int, str]:
    """Decision table mapping observed performance to a suggested reward."""
    rate = f"{completion_rate:.1f}%"
    if completion_rate < 10 and total_participants > 20:
        return (
            round_half_up(current_points * 1.5),
            f"Only {rate} completion rate. Increase reward to attract more participants.",
        )
    if completion_rate < 20 and total_participants > 10:
        return (
            round_half_up(current_points * 1.25),
            f"Below average completion rate ({rate}). Try increasing reward by 25%.",
        )
    if completion_rate > 60 and roi > 200:
        return (
            round_half_up(current_points * 0.9),
            f"High completion rate ({rate}) and strong ROI. Can optimize cost slightly.",
        )
    if 30 <= completion_rate <= 50:
        return current_points, f"Optimal completion rate ({rate}). Current pricing is effective."
    if total_participants < 5:
        return (
            round_half_up(current_points * 1.2),
            "Not enough data yet. Consider boosting visibility with higher reward.",
        )
    return (
        current_points,
        "Current performance is acceptable. Monitor for another week before adjusting.",
    )


def _minutes_between(participation: Participation) -> float | None:
    if participation.applied_at is None or participation.approved_at is None:
        return None
    try:
        delta = normalize_datetime(participation.approved_at) - normalize_datetime(
            participation.applied_at
        )
    except (AttributeError, TypeError):
        return None
    minutes = delta.total_seconds() / 60
    return minutes if minutes >= 0 else None


def compute_performance(
    mission: Mission,
    participations: Iterable[Participation],
    settings: PricingSettings | None = None,
) -> MissionPerformance:
    """Pure computation over a mission and its participation history."""
    settings = settings or PricingSettings()
    participations = list(participations)
    current_points = max(0, int(mission.reward_points or 0))

    total = len(participations)
    approved = [p for p in participations if p.status == ParticipationStatus.APPROVED]
    completed = len(approved)

    if mission.view_count and mission.view_count > 0:
        views, views_estimated = int(mission.view_count), False
    elif total > 0:
        views, views_estimated = total * settings.views_per_participant, True
    else:
        views, views_estimated = settings.default_views, True

    completion_rate = (completed / views) * 100 if views > 0 else 0.0
    view_to_completion = (completed / total) * 100 if total > 0 else 0.0

    durations = [m for m in (_minutes_between(p) for p in approved) if m is not None]
    avg_time = (
        sum(durations) / len(durations) if durations else settings.default_completion_minutes
    )

    cost_per_acquisition = (
        (completed * current_points) / completed if completed > 0 else float(current_points)
    )

    cost_eur = current_points / settings.points_per_eur if settings.points_per_eur else 0.0
    roi = (settings.value_per_completion_eur / cost_eur) * 100 if cost_eur > 0 else 0.0

    suggested, reasoning = suggest_points(current_points, completion_rate, total, roi)
    if views_estimated:
        reasoning += " (views estimated)"

    return MissionPerformance(
        mission_id=mission.id,
        mission_title=mission.title or "Untitled Mission",
        current_points=current_points,
        total_participants=total,
        completed_count=completed,
        total_views=views,
        views_estimated=views_estimated,
        completion_rate=completion_rate,
        view_to_completion_ratio=view_to_completion,
        avg_time_to_complete=avg_time,
        cost_per_acquisition=cost_per_acquisition,
        roi=roi,
        performance_rating=rate_completion(completion_rate, settings),
        suggested_points=suggested,
        reasoning=reasoning,
    )


class PerformanceAnalyzer:
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

    def analyze_mission(
        self,
        mission_id: str,
        *,
        business_id: str | None = None,
        deadline: Deadline | None = None,
    ) -> MissionPerformance | None:
        """Best-effort analysis; ``None`` when the mission cannot be analysed."""
        try:
            mission = self.missions.get(mission_id, deadline=deadline)
            if mission is None:
                return None
            if business_id is not None and mission.business_id != business_id:
                return None
            history = self.participations.query_by_mission(mission_id, deadline=deadline)
        except MissionError as exc:
            logger.warning("[PRICING] Could not analyse mission %s: %s", mission_id, exc.message)
            return None
        return compute_performance(mission, history, self.settings)


__all__ = [
    "MissionPerformance",
    "PerformanceAnalyzer",
    "PerformanceRating",
    "PricingSettings",
    "compute_performance",
    "rate_completion",
    "round_half_up",
    "suggest_points",
]
