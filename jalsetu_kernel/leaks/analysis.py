"""Water loss summary over detected leak events."""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from jalsetu_kernel.models.leak import LeakEvent, WardLoss, WaterLossSummary


def summarize_water_loss(
    events: Iterable[LeakEvent],
    generated_at: Optional[datetime] = None,
) -> WaterLossSummary:
    """Totals and a per-ward breakdown; daily loss is loss_lph * 24."""
    events = list(events)
    by_ward: Dict[Optional[str], List[LeakEvent]] = defaultdict(list)
    for event in events:
        by_ward[event.ward_id].append(event)

    ward_losses = [
        WardLoss(
            ward_id=ward_id,
            leak_count=len(ward_events),
            estimated_daily_loss_liters=round(
                sum(e.estimated_loss_lph for e in ward_events) * 24, 1
            ),
            avg_detection_confidence=round(
                sum(e.confidence for e in ward_events) / len(ward_events), 3
            ),
        )
        for ward_id, ward_events in by_ward.items()
    ]
    ward_losses.sort(key=lambda w: w.estimated_daily_loss_liters, reverse=True)

    return WaterLossSummary(
        leak_count=len(events),
        estimated_daily_loss_liters=round(sum(e.estimated_loss_lph for e in events) * 24, 1),
        avg_detection_confidence=(
            round(sum(e.confidence for e in events) / len(events), 3) if events else 0.0
        ),
        by_ward=ward_losses,
        generated_at=generated_at or datetime.now(),
    )
