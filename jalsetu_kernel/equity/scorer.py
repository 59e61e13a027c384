"""
Equity Scorer — one ward's water service level relative to the city.

score = 1.0
      * ward.avg_supply_hours / city.avg_supply_hours
      * ward.avg_pressure / city.avg_pressure        (only when the ward has readings)
      * max(0.7, 1 - open_complaints / 100)
clamped to [0.3, 2.0]. A zero citywide baseline makes its ratio neutral.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from jalsetu_kernel.errors import ZeroBaseline
from jalsetu_kernel.models.config import EquityConfig
from jalsetu_kernel.models.equity import (
    CityAggregate,
    EquityLevel,
    EquityMetrics,
    EquitySnapshot,
    WardAggregate,
)

logger = logging.getLogger("jalsetu.equity")


# level -> (color, description)
LEVEL_STYLES: Dict[EquityLevel, Tuple[str, str]] = {
    EquityLevel.EXCELLENT: ("#10B981", "Above average water access"),
    EquityLevel.FAIR: ("#3B82F6", "Adequate water access"),
    EquityLevel.MODERATE: ("#F59E0B", "Below average, needs attention"),
    EquityLevel.POOR: ("#EF4444", "Critical water access issues"),
}

RECOMMENDATION_TEMPLATES: Dict[EquityLevel, List[str]] = {
    EquityLevel.POOR: [
        "Priority intervention needed in {ward_name} ({level} equity)",
        "Consider increasing supply hours during peak demand",
        "Install additional pressure monitoring sensors",
        "Schedule pipe network inspection for leaks",
    ],
    EquityLevel.MODERATE: [
        "Monitor water distribution in {ward_name} ({level} equity)",
        "Optimize supply timing based on consumption patterns",
        "Engage with community for feedback",
    ],
    EquityLevel.FAIR: [
        "Maintain current service levels in {ward_name} ({level} equity)",
        "Continue regular monitoring",
    ],
    EquityLevel.EXCELLENT: [
        "Share best practices from {ward_name} with other wards ({level} equity)",
        "Consider redistributing excess to underserved areas",
    ],
}


def determine_level(score: float) -> EquityLevel:
    if score >= 1.3:
        return EquityLevel.EXCELLENT
    elif score >= 0.9:
        return EquityLevel.FAIR
    elif score >= 0.6:
        return EquityLevel.MODERATE
    return EquityLevel.POOR


def recommendations_for(level: EquityLevel, ward_name: str) -> List[str]:
    return [
        template.format(ward_name=ward_name, level=level.value)
        for template in RECOMMENDATION_TEMPLATES[level]
    ]


def _ratio(value: float, baseline: Optional[float], metric: str) -> float:
    if not baseline:
        raise ZeroBaseline(metric)
    return value / baseline


class EquityScorer:
    """Pure scorer: same aggregates in, same snapshot out (apart from the timestamp)."""

    def __init__(
        self,
        config: Optional[EquityConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or EquityConfig()
        self.clock = clock or datetime.now

    def score_ward(self, ward: WardAggregate, city: CityAggregate) -> EquitySnapshot:
        score = 1.0
        neutralized: List[str] = []

        # Factor 1: supply hours against the city average
        try:
            score *= _ratio(ward.avg_supply_hours, city.avg_supply_hours, "avg_supply_hours")
        except ZeroBaseline as e:
            logger.warning(f"Ward {ward.ward_id}: {e}; supply ratio treated as neutral")
            neutralized.append(e.metric)

        # Factor 2: pressure against the city average, only with ward readings
        if ward.avg_pressure is not None:
            try:
                score *= _ratio(ward.avg_pressure, city.avg_pressure, "avg_pressure")
            except ZeroBaseline as e:
                logger.warning(f"Ward {ward.ward_id}: {e}; pressure ratio treated as neutral")
                neutralized.append(e.metric)

        # Factor 3: complaint density penalty
        score *= max(
            self.config.complaint_penalty_floor,
            1 - ward.open_complaints / self.config.complaint_penalty_divisor,
        )

        score = max(self.config.min_score, min(self.config.max_score, score))
        score = round(score, 2)

        level = determine_level(score)
        color, description = LEVEL_STYLES[level]

        return EquitySnapshot(
            ward_id=ward.ward_id,
            ward_name=ward.ward_name,
            score=score,
            level=level,
            color=color,
            description=description,
            metrics=EquityMetrics(
                supply_hours=ward.avg_supply_hours,
                city_avg_supply=round(city.avg_supply_hours, 1),
                avg_pressure=(
                    round(ward.avg_pressure, 2) if ward.avg_pressure is not None else None
                ),
                city_avg_pressure=(
                    round(city.avg_pressure, 2) if city.avg_pressure is not None else None
                ),
                complaint_count=ward.open_complaints,
                neutralized=neutralized,
                last_updated=self.clock(),
            ),
            recommendations=recommendations_for(level, ward.ward_name),
        )
