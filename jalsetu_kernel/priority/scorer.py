"""
Priority Scorer — turns one complaint into a priority tier and SLA deadline.

Behavioral Contract:
- Additive, order-independent factor sum; every weight is non-negative,
  so a predicate flipping to true never lowers the score
- Tier and SLA are a pure function of the score
- Unknown ward: ward-dependent factors are skipped, the result is flagged
  as degraded, scoring never fails
- Empty issue text: keyword factors are skipped
- Pure apart from the injected clock and the read-only lookups
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from croniter import croniter

from jalsetu_kernel.errors import UnknownWard
from jalsetu_kernel.models.complaint import Complaint
from jalsetu_kernel.models.config import ScoringConfig
from jalsetu_kernel.models.telemetry import SensorReading
from jalsetu_kernel.models.ticket import PriorityResult, PriorityTier, ScoreFactor
from jalsetu_kernel.models.ward import Ward
from jalsetu_kernel.priority.matchers import IssueRule, default_issue_rules

logger = logging.getLogger("jalsetu.priority")


class WardLookup(Protocol):
    def require_ward(self, ward_id: str) -> Ward: ...


class ComplaintCounter(Protocol):
    def count_unresolved_complaints(self, ward_id: str, since: datetime) -> int: ...


def determine_tier(score: int, config: ScoringConfig) -> Tuple[PriorityTier, int]:
    """
    Map a score to (tier, sla_hours):
      score >= 25:       P1, 4h
      15 <= score < 25:  P2, 12h
      otherwise:         P3, 48h
    """
    if score >= config.p1_min_score:
        return PriorityTier.P1, config.p1_sla_hours
    elif score >= config.p2_min_score:
        return PriorityTier.P2, config.p2_sla_hours
    else:
        return PriorityTier.P3, config.p3_sla_hours


def in_peak_window(schedule: str, current_time: datetime) -> bool:
    """Whether ``current_time`` falls inside the cron-described peak window."""
    try:
        return croniter.match(schedule, current_time)
    except (ValueError, KeyError):
        # Invalid cron expression: never peak
        logger.warning(f"Invalid peak hours schedule '{schedule}'; peak factor disabled")
        return False


class PriorityScorer:
    """
    Scores complaints. Constructed once with its lookups and clock, then
    shared freely across threads.
    """

    def __init__(
        self,
        wards: WardLookup,
        complaints: ComplaintCounter,
        config: Optional[ScoringConfig] = None,
        rules: Optional[List[IssueRule]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.wards = wards
        self.complaints = complaints
        self.config = config or ScoringConfig()
        self.rules = rules if rules is not None else default_issue_rules(self.config)
        self.clock = clock or datetime.now

    def score(
        self,
        complaint: Complaint,
        sensor_reading: Optional[SensorReading] = None,
        current_time: Optional[datetime] = None,
    ) -> PriorityResult:
        """Compute the additive score, tier and SLA deadline for one complaint."""
        if current_time is None:
            current_time = self.clock()

        factors: List[ScoreFactor] = []
        degraded = False

        # 1. Issue text
        issue = complaint.issue or ""
        if issue.strip():
            for rule in self.rules:
                if rule.applies(issue):
                    factors.append(ScoreFactor(
                        name=rule.name, weight=rule.weight, detail=rule.description,
                    ))

        # 2. Ward-dependent factors
        ward = None
        if complaint.ward_id:
            try:
                ward = self.wards.require_ward(complaint.ward_id)
            except UnknownWard as e:
                logger.warning(f"Complaint {complaint.id}: {e}; skipping ward factors")
                degraded = True

        if ward is not None:
            factors.extend(self._ward_factors(ward, current_time))

        # 3. Sensor corroboration
        if sensor_reading is not None and sensor_reading.pressure < self.config.sensor_low_pressure:
            factors.append(ScoreFactor(
                name="sensor_corroboration",
                weight=self.config.sensor_corroboration_weight,
                detail=f"Sensor confirms low pressure: {sensor_reading.pressure} bar",
            ))

        # 4. Time of day
        if in_peak_window(self.config.peak_hours_schedule, current_time):
            factors.append(ScoreFactor(
                name="peak_hours",
                weight=self.config.peak_hours_weight,
                detail="Peak usage time",
            ))

        score = sum(f.weight for f in factors)
        tier, sla_hours = determine_tier(score, self.config)

        logger.debug(
            f"Complaint {complaint.id} scored {score} ({tier.value}): "
            f"{[f.name for f in factors]}"
        )

        return PriorityResult(
            score=score,
            priority=tier,
            sla_hours=sla_hours,
            sla_deadline=current_time + timedelta(hours=sla_hours),
            factors=[f.name for f in factors],
            factor_details=factors,
            calculated_at=current_time,
            degraded=degraded,
        )

    def _ward_factors(self, ward: Ward, current_time: datetime) -> List[ScoreFactor]:
        factors = []

        # Equity: prioritize underserved wards
        if ward.equity_score is not None and ward.equity_score < self.config.low_equity_threshold:
            factors.append(ScoreFactor(
                name="low_equity_ward",
                weight=self.config.low_equity_weight,
                detail=f"Underserved ward: {ward.name}",
            ))

        if ward.population > self.config.high_population_threshold:
            factors.append(ScoreFactor(
                name="high_population",
                weight=self.config.high_population_weight,
                detail="High population area",
            ))

        since = current_time - timedelta(hours=self.config.complaint_window_hours)
        recent = self.complaints.count_unresolved_complaints(ward.id, since)
        if recent >= self.config.multiple_complaints_min_count:
            factors.append(ScoreFactor(
                name="multiple_complaints",
                weight=self.config.multiple_complaints_weight
                * min(recent, self.config.multiple_complaints_cap),
                detail=f"{recent} recent complaints in area",
            ))

        return factors
