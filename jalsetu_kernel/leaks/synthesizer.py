"""
Leak Event Synthesizer — turns critical telemetry into a leak record and a P1 ticket.

Behavioral Contract:
- Acts only on alerts with severity CRITICAL
- Leak confidence is the alert confidence clamped to [0.85, 0.9]
- estimated_loss_lph = flow * 60 * 24 * 0.3, a fixed heuristic multiplier,
  not a hydraulic model
- The ticket is forced to P1 with a 4 hour SLA; the priority scorer is
  bypassed, so critical telemetry always outranks text-derived scoring
- At most one open leak ticket per sensor (configurable): a repeat
  critical alert for a sensor with an open ticket creates nothing and is
  only re-broadcast
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from jalsetu_kernel.models.config import LeakConfig
from jalsetu_kernel.models.leak import LeakEvent, LeakOutcome
from jalsetu_kernel.models.telemetry import AnomalyAlert, SensorReading, Severity
from jalsetu_kernel.models.ticket import PriorityTier, Ticket, TicketOrigin
from jalsetu_kernel.tickets.store import TicketStore
from jalsetu_kernel.utils import KeyedLock

logger = logging.getLogger("jalsetu.leaks")


def estimate_loss_lph(flow: float, multiplier: float = 0.3) -> float:
    """Heuristic loss estimate from the sensor's flow rate."""
    return max(0.0, flow * 60 * 24 * multiplier)


class LeakEventSynthesizer:
    def __init__(
        self,
        tickets: TicketStore,
        config: Optional[LeakConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tickets = tickets
        self.config = config or LeakConfig()
        self.clock = clock or datetime.now
        self._locks = KeyedLock()

    def process(self, alert: AnomalyAlert, reading: SensorReading) -> Optional[LeakOutcome]:
        """
        Handle one classified reading. Returns None for non-critical alerts.

        The open-ticket check and the inserts happen under the sensor's lock,
        so two near-simultaneous critical readings cannot both create tickets.
        """
        if alert.severity != Severity.CRITICAL:
            return None

        with self._locks.hold(alert.sensor_id):
            if self.config.enforce_single_open_ticket:
                existing = self.tickets.find_open_leak_ticket(alert.sensor_id)
                if existing is not None:
                    logger.info(
                        f"Sensor {alert.sensor_id} still has open leak ticket "
                        f"{existing.id}; re-broadcasting alert only"
                    )
                    repeated = alert.model_copy(update={
                        "repeated": True,
                        "ticket_id": existing.id,
                        "leak_event_id": existing.leak_event_id,
                    })
                    return LeakOutcome(alert=repeated, duplicate_of=existing.id)

            now = self.clock()
            leak = LeakEvent(
                id=f"leak_{uuid4().hex[:12]}",
                sensor_id=alert.sensor_id,
                ward_id=alert.ward_id,
                confidence=min(
                    self.config.max_confidence,
                    max(self.config.min_confidence, alert.confidence),
                ),
                estimated_loss_lph=estimate_loss_lph(reading.flow, self.config.loss_multiplier),
                pressure=reading.pressure,
                flow=reading.flow,
                detected_at=alert.detected_at,
            )
            ticket = Ticket(
                id=f"tkt_{uuid4().hex[:12]}",
                origin=TicketOrigin.LEAK_EVENT,
                leak_event_id=leak.id,
                sensor_id=alert.sensor_id,
                ward_id=alert.ward_id,
                title=f"Leak detected - sensor {alert.sensor_id}",
                priority=PriorityTier.P1,
                score=self.config.ticket_score,
                sla_hours=self.config.sla_hours,
                sla_deadline=now + timedelta(hours=self.config.sla_hours),
                factors=[alert.anomaly_type.value],
                created_at=now,
            )
            self.tickets.create_leak_ticket(leak, ticket)

        logger.warning(
            f"Leak event {leak.id} at sensor {alert.sensor_id} "
            f"(ward={alert.ward_id}, est. loss {leak.estimated_loss_lph:.0f} L/h); "
            f"P1 ticket {ticket.id}"
        )
        tagged = alert.model_copy(update={"leak_event_id": leak.id, "ticket_id": ticket.id})
        return LeakOutcome(alert=tagged, leak_event=leak, ticket=ticket)
