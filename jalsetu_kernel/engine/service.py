"""
Decision Engine — the single service object the outer layers talk to.

Constructed once at startup with its collaborators injected (ward
registry, aggregate source, ticket store, alert bus, config, clock) and
passed explicitly to call sites.

Flows:
  complaint -> PriorityScorer -> complaint ticket
  reading   -> AnomalyClassifier -> (CRITICAL) LeakEventSynthesizer -> P1 ticket
            -> alert broadcast for every non-normal reading
  wards     -> EquityScorer (per ward) -> InequalityAggregator -> citywide report

Batch operations isolate failures per item: a failing complaint or
reading is reported and skipped, the rest proceed. Nothing is retried.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel

from jalsetu_kernel.alerts.bus import AlertBus
from jalsetu_kernel.equity.aggregator import InequalityAggregator
from jalsetu_kernel.equity.scorer import EquityScorer
from jalsetu_kernel.errors import JalSetuError
from jalsetu_kernel.leaks.analysis import summarize_water_loss
from jalsetu_kernel.leaks.synthesizer import LeakEventSynthesizer
from jalsetu_kernel.models.complaint import Complaint, ComplaintStatus
from jalsetu_kernel.models.config import EngineConfig
from jalsetu_kernel.models.equity import CitywideEquityReport, EquitySnapshot
from jalsetu_kernel.models.leak import LeakOutcome, WaterLossSummary
from jalsetu_kernel.models.telemetry import (
    AnomalyAlert,
    AnomalyType,
    SensorHealth,
    SensorReading,
)
from jalsetu_kernel.models.ticket import (
    PriorityResult,
    QueuedTicket,
    Ticket,
    TicketOrigin,
)
from jalsetu_kernel.priority.matchers import IssueRule
from jalsetu_kernel.priority.scorer import PriorityScorer
from jalsetu_kernel.registry.aggregates import AggregateStore
from jalsetu_kernel.registry.store import WardRegistry
from jalsetu_kernel.telemetry.classifier import AnomalyClassifier, parse_reading
from jalsetu_kernel.telemetry.health import assess_sensor_health
from jalsetu_kernel.tickets.queue import rank_open_tickets
from jalsetu_kernel.tickets.store import TicketStore
from jalsetu_kernel.utils import setup_logging, to_local_naive

logger = logging.getLogger("jalsetu.engine")


class ComplaintOutcome(BaseModel):
    complaint: Complaint
    priority: PriorityResult
    ticket: Ticket


class ReadingOutcome(BaseModel):
    reading: SensorReading
    alert: AnomalyAlert
    leak: Optional[LeakOutcome] = None


class BatchFailure(BaseModel):
    index: int
    item_id: Optional[str] = None           # complaint id or sensor id, when known
    error: str                              # Exception class name, e.g. "MalformedReading"
    message: str


class BatchResult(BaseModel):
    results: List[Any] = []
    failures: List[BatchFailure] = []

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)


class DecisionEngine:
    def __init__(
        self,
        registry: WardRegistry,
        aggregates: AggregateStore,
        tickets: TicketStore,
        bus: Optional[AlertBus] = None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rules: Optional[List[IssueRule]] = None,
    ):
        self.registry = registry
        self.aggregates = aggregates
        self.tickets = tickets
        self.bus = bus or AlertBus()
        self.config = config or EngineConfig()
        self.clock = clock or datetime.now

        self.scorer = PriorityScorer(
            wards=registry,
            complaints=aggregates,
            config=self.config.scoring,
            rules=rules,
            clock=self.clock,
        )
        self.classifier = AnomalyClassifier(config=self.config.classifier)
        self.leaks = LeakEventSynthesizer(
            tickets=tickets, config=self.config.leak, clock=self.clock,
        )
        self.equity = EquityScorer(config=self.config.equity, clock=self.clock)
        self.inequality = InequalityAggregator(clock=self.clock)

    @classmethod
    def build(
        cls,
        registry: Optional[WardRegistry] = None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "DecisionEngine":
        """Wire an engine with the in-process reference collaborators."""
        config = config or EngineConfig()
        setup_logging(config.log_level)
        registry = registry or WardRegistry()
        return cls(
            registry=registry,
            aggregates=AggregateStore(registry, config=config.equity, clock=clock),
            tickets=TicketStore(db_path=config.ticket_db_path),
            config=config,
            clock=clock,
        )

    # === COMPLAINTS ===

    def submit_complaint(
        self,
        complaint: Complaint,
        sensor_reading: Optional[SensorReading] = None,
    ) -> ComplaintOutcome:
        """
        Score a complaint and request its ticket.

        The complaint is logged after scoring, so the repeat-complaint factor
        counts the *other* unresolved complaints in the ward.
        """
        now = self.clock()
        priority = self.scorer.score(complaint, sensor_reading, current_time=now)
        self.aggregates.record_complaint(complaint)

        ward = self.registry.get_ward(complaint.ward_id) if complaint.ward_id else None
        ticket = Ticket(
            id=f"tkt_{uuid4().hex[:12]}",
            origin=TicketOrigin.COMPLAINT,
            complaint_id=complaint.id,
            ward_id=ward.id if ward else None,
            title=f"Water Issue - {ward.name if ward else 'Unknown Ward'}",
            priority=priority.priority,
            score=priority.score,
            sla_hours=priority.sla_hours,
            sla_deadline=priority.sla_deadline,
            factors=priority.factors,
            created_at=now,
        )
        self.tickets.create_ticket(ticket)

        logger.info(
            f"Complaint {complaint.id} -> ticket {ticket.id} "
            f"{priority.priority.value} (score {priority.score}, SLA {priority.sla_hours}h)"
        )
        return ComplaintOutcome(complaint=complaint, priority=priority, ticket=ticket)

    def score_complaints(self, complaints: Iterable[Complaint]) -> BatchResult:
        """Submit many complaints; failures are isolated per complaint."""
        batch = BatchResult()
        for index, complaint in enumerate(complaints):
            try:
                batch.results.append(self.submit_complaint(complaint))
            except Exception as e:
                batch.failures.append(self._failure(index, getattr(complaint, "id", None), e))
        return batch

    # === TELEMETRY ===

    def ingest_reading(self, payload: Union[Mapping[str, Any], SensorReading]) -> ReadingOutcome:
        """
        Classify one reading, synthesize a leak if it is critical, and
        broadcast any non-normal alert.

        Raises MalformedReading without touching any state.
        """
        if isinstance(payload, SensorReading):
            reading = payload
        else:
            reading = parse_reading(payload, default_time=self.clock())

        reading = reading.model_copy(update={"ward_id": self._resolve_sensor_ward(reading)})

        alert = self.classifier.classify(reading)
        self.aggregates.record_reading(reading)

        leak = self.leaks.process(alert, reading)
        if leak is not None:
            alert = leak.alert

        if alert.anomaly_type != AnomalyType.NORMAL:
            self.bus.publish(alert)

        return ReadingOutcome(reading=reading, alert=alert, leak=leak)

    def ingest_readings(self, payloads: Iterable[Union[Mapping[str, Any], SensorReading]]) -> BatchResult:
        """Ingest many readings; failures are isolated per reading."""
        batch = BatchResult()
        for index, payload in enumerate(payloads):
            try:
                batch.results.append(self.ingest_reading(payload))
            except Exception as e:
                sensor_id = (
                    payload.sensor_id if isinstance(payload, SensorReading)
                    else payload.get("sensor_id") if isinstance(payload, Mapping)
                    else None
                )
                batch.failures.append(self._failure(index, sensor_id, e))
        return batch

    def latest_reading(self, sensor_id: str) -> Optional[SensorReading]:
        return self.classifier.state.latest(sensor_id)

    def sensor_health(self, sensor_id: str) -> SensorHealth:
        return assess_sensor_health(
            self.latest_reading(sensor_id), self.clock(), self.config.classifier
        )

    def _resolve_sensor_ward(self, reading: SensorReading) -> Optional[str]:
        ward_id = reading.ward_id or self.registry.ward_for_sensor(reading.sensor_id)
        if ward_id is not None and self.registry.get_ward(ward_id) is None:
            logger.warning(
                f"Sensor {reading.sensor_id} references unknown ward {ward_id}; "
                f"processing without ward"
            )
            return None
        return ward_id

    # === EQUITY ===

    def ward_equity(self, ward_id: str) -> EquitySnapshot:
        """Equity snapshot for one ward. Raises UnknownWard."""
        now = self.clock()
        ward = self.aggregates.ward_aggregate(ward_id, now)
        city = self.aggregates.city_aggregate(now)
        return self.equity.score_ward(ward, city)

    def citywide_equity(self) -> CitywideEquityReport:
        """Score every ward against one citywide baseline, then aggregate."""
        now = self.clock()
        city = self.aggregates.city_aggregate(now)

        snapshots = []
        for ward in self.registry.list_wards():
            try:
                aggregate = self.aggregates.ward_aggregate(ward.id, now)
                snapshots.append(self.equity.score_ward(aggregate, city))
            except JalSetuError as e:
                logger.warning(f"Skipping ward {ward.id} in citywide equity: {e}")

        report = self.inequality.aggregate(snapshots)
        logger.info(
            f"Citywide equity: mean={report.mean_score} gini={report.gini} "
            f"status={report.status.value} over {report.ward_count} wards"
        )
        return report

    # === TICKETS ===

    def top_priorities(self, limit: int = 10) -> List[QueuedTicket]:
        return rank_open_tickets(self.tickets.query_open(), self.clock(), limit=limit)

    def close_ticket(self, ticket_id: str) -> Ticket:
        """Close a ticket; closing a complaint ticket resolves its complaint. Raises TicketStoreError."""
        ticket = self.tickets.close_ticket(ticket_id, at=self.clock())
        if ticket.complaint_id is not None:
            self.aggregates.update_complaint_status(ticket.complaint_id, ComplaintStatus.RESOLVED)
        logger.info(f"Ticket {ticket_id} closed")
        return ticket

    def water_loss_summary(self, since: Optional[datetime] = None) -> WaterLossSummary:
        """Loss totals over leak events detected since ``since`` (all events when None)."""
        if since is not None:
            since = to_local_naive(since)
        events = self.tickets.query_leak_events(since=since)
        return summarize_water_loss(events, generated_at=self.clock())

    # --- helpers ---

    def _failure(self, index: int, item_id: Optional[str], error: Exception) -> BatchFailure:
        if isinstance(error, JalSetuError):
            logger.warning(f"Batch item {index} ({item_id}) skipped: {error}")
        else:
            logger.exception(f"Batch item {index} ({item_id}) failed unexpectedly")
        return BatchFailure(
            index=index,
            item_id=item_id,
            error=type(error).__name__,
            message=str(error),
        )
