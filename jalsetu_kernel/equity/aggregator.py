"""
Inequality Aggregator — combines ward equity scores into a citywide report.

Gini over the ascending-sorted scores s[0..n-1]:
    G = sum((2i - n + 1) * s[i]) / (n * sum(s))
defined as 0 when n <= 1 or the scores sum to 0.
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from jalsetu_kernel.models.equity import CitywideEquityReport, EquitySnapshot, InequalityStatus

# status -> (message, action)
STATUS_TEXT: Dict[InequalityStatus, Tuple[str, str]] = {
    InequalityStatus.HIGH_INEQUALITY: (
        "Significant disparities in water access across wards",
        "Immediate redistributive measures recommended",
    ),
    InequalityStatus.MODERATE_INEQUALITY: (
        "Noticeable differences in water access",
        "Targeted improvements needed in low-scoring wards",
    ),
    InequalityStatus.GOOD_EQUITY: (
        "Relatively equitable water distribution",
        "Maintain and monitor current distribution",
    ),
}


def gini_coefficient(values: Iterable[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    total = sum(ordered)
    if n <= 1 or total == 0:
        return 0.0

    numerator = sum((2 * i - n + 1) * value for i, value in enumerate(ordered))
    return numerator / (n * total)


def classify_inequality(mean_score: float, gini: float) -> InequalityStatus:
    if mean_score < 0.7 or gini > 0.3:
        return InequalityStatus.HIGH_INEQUALITY
    elif mean_score < 0.9 or gini > 0.2:
        return InequalityStatus.MODERATE_INEQUALITY
    return InequalityStatus.GOOD_EQUITY


class InequalityAggregator:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or datetime.now

    def aggregate(self, snapshots: List[EquitySnapshot]) -> CitywideEquityReport:
        """
        Mean, Gini and status over all ward snapshots, worst ward first.
        An empty city is reported at the 1.0 baseline with no inequality.
        """
        scores = [s.score for s in snapshots]
        mean_score = sum(scores) / len(scores) if scores else 1.0
        gini = gini_coefficient(scores)
        status = classify_inequality(mean_score, gini)
        message, action = STATUS_TEXT[status]

        return CitywideEquityReport(
            mean_score=round(mean_score, 2),
            gini=round(gini, 3),
            status=status,
            message=message,
            action=action,
            ward_count=len(snapshots),
            wards=sorted(snapshots, key=lambda s: s.score),
            generated_at=self.clock(),
        )
