"""End-to-end tests for the Decision Engine."""

from datetime import datetime, timedelta, timezone

import pytest

from jalsetu_kernel.engine.service import DecisionEngine
from jalsetu_kernel.errors import TicketStoreError, UnknownWard
from jalsetu_kernel.models.complaint import Complaint, ComplaintStatus
from jalsetu_kernel.models.config import EngineConfig, LeakConfig
from jalsetu_kernel.models.equity import EquityLevel, InequalityStatus
from jalsetu_kernel.models.telemetry import AnomalyType, SensorHealth
from jalsetu_kernel.models.ticket import PriorityTier, TicketOrigin
from jalsetu_kernel.models.ward import Ward
from jalsetu_kernel.registry.store import WardRegistry

NOW = datetime(2026, 3, 10, 14, 0)


class _Clock:
    """Settable clock for deterministic engine runs."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _make_registry() -> WardRegistry:
    registry = WardRegistry([
        Ward(id="w1", name="Nana Peth", population=55000, avg_supply_hours=6.0, equity_score=0.6),
        Ward(id="w2", name="Hotgi Road", population=20000, avg_supply_hours=18.0),
    ])
    registry.assign_sensor("S1", "w1")
    registry.assign_sensor("S2", "w2")
    return registry


def _make_engine(clock: _Clock, config: EngineConfig = None) -> DecisionEngine:
    return DecisionEngine.build(registry=_make_registry(), config=config, clock=clock)


def _payload(sensor_id: str, pressure, flow=100.0, at: datetime = NOW) -> dict:
    return {"sensor_id": sensor_id, "pressure": pressure, "flow": flow, "timestamp": at.isoformat()}


def _make_complaint(complaint_id: str, ward_id: str = "w1", issue: str = "No water since morning"):
    return Complaint(id=complaint_id, ward_id=ward_id, issue=issue, created_at=NOW)


class TestComplaintFlow:
    def setup_method(self):
        self.clock = _Clock(NOW)
        self.engine = _make_engine(self.clock)

    def test_worked_example(self):
        """Fourth complaint in an underserved, populous ward at 14:00."""
        for i in range(3):
            self.engine.submit_complaint(_make_complaint(f"prior_{i}", issue="water problem"))

        outcome = self.engine.submit_complaint(_make_complaint("cmp_main"))

        assert outcome.priority.score == 45
        assert outcome.priority.priority == PriorityTier.P1
        assert outcome.priority.sla_hours == 4
        assert outcome.ticket.sla_deadline == NOW + timedelta(hours=4)
        assert outcome.ticket.origin == TicketOrigin.COMPLAINT
        assert outcome.ticket.complaint_id == "cmp_main"
        assert outcome.ticket.title == "Water Issue - Nana Peth"
        assert self.engine.tickets.count() == 4

    def test_complaint_does_not_count_itself(self):
        outcome = self.engine.submit_complaint(_make_complaint("only", ward_id="w2", issue=""))
        assert "multiple_complaints" not in outcome.priority.factors
        assert self.engine.aggregates.get_complaint("only") is not None

    def test_unknown_ward_still_ticketed(self):
        outcome = self.engine.submit_complaint(_make_complaint("c1", ward_id="ghost"))
        assert outcome.priority.degraded
        assert outcome.ticket.title == "Water Issue - Unknown Ward"
        assert outcome.ticket.ward_id is None

    def test_close_ticket_resolves_complaint(self):
        outcome = self.engine.submit_complaint(_make_complaint("c1"))
        closed = self.engine.close_ticket(outcome.ticket.id)

        assert not closed.is_open
        assert self.engine.aggregates.get_complaint("c1").status == ComplaintStatus.RESOLVED
        assert self.engine.top_priorities() == []

    def test_close_unknown_ticket(self):
        with pytest.raises(TicketStoreError):
            self.engine.close_ticket("tkt_missing")

    def test_batch_isolates_failures(self):
        batch = self.engine.score_complaints([
            _make_complaint("c1"),
            "not a complaint",
            _make_complaint("c2", ward_id="w2"),
        ])
        assert batch.succeeded == 2
        assert batch.failed == 1
        assert batch.failures[0].index == 1
        assert batch.failures[0].item_id is None
        assert batch.failures[0].error == "AttributeError"
        assert self.engine.tickets.count() == 2


class TestTelemetryFlow:
    def setup_method(self):
        self.clock = _Clock(NOW)
        self.engine = _make_engine(self.clock)
        self.alerts = []
        self.engine.bus.subscribe(self.alerts.append)

    def test_worked_example_single_leak_ticket(self):
        """A pressure drop opens one leak ticket; a follow-up drop does not open another."""
        first = self.engine.ingest_reading(_payload("S1", 2.0))
        assert first.alert.anomaly_type == AnomalyType.NORMAL
        assert first.leak is None

        drop = self.engine.ingest_reading(_payload("S1", 1.2))
        assert drop.alert.anomaly_type == AnomalyType.CRITICAL_LOW_PRESSURE
        assert drop.alert.previous_pressure == 2.0
        assert drop.reading.ward_id == "w1"
        assert drop.leak.ticket.priority == PriorityTier.P1
        assert drop.leak.ticket.ward_id == "w1"

        self.clock.advance(seconds=30)
        repeat = self.engine.ingest_reading(_payload("S1", 1.1, at=self.clock.now))
        assert repeat.alert.anomaly_type == AnomalyType.CRITICAL_LOW_PRESSURE
        assert repeat.alert.repeated
        assert repeat.leak.duplicate_of == drop.leak.ticket.id

        assert self.engine.tickets.count() == 1
        assert len(self.engine.tickets.query_leak_events()) == 1
        # Normal readings are not broadcast; both critical ones are
        assert [a.repeated for a in self.alerts] == [False, True]
        assert self.alerts[0].ticket_id == drop.leak.ticket.id

    def test_leak_ticket_leads_the_queue(self):
        self.engine.submit_complaint(_make_complaint("c1", ward_id="w2", issue="low pressure"))
        self.engine.ingest_reading(_payload("S2", 1.0))

        queue = self.engine.top_priorities()
        assert queue[0].ticket.origin == TicketOrigin.LEAK_EVENT
        assert queue[0].urgency == "HIGH"

    def test_legacy_mode_duplicates_tickets(self):
        engine = _make_engine(
            self.clock, EngineConfig(leak=LeakConfig(enforce_single_open_ticket=False)),
        )
        engine.ingest_reading(_payload("S1", 1.2))
        engine.ingest_reading(_payload("S1", 1.1))
        assert engine.tickets.count() == 2

    def test_malformed_reading_rejected_without_state_change(self):
        self.engine.ingest_reading(_payload("S1", 3.0))
        batch = self.engine.ingest_readings([
            _payload("S2", 3.1),
            _payload("S1", "abc"),
            {"sensor_id": "S1", "flow": 100},
            _payload("S2", 3.2),
        ])

        assert batch.succeeded == 2
        assert [f.index for f in batch.failures] == [1, 2]
        assert batch.failures[0].error == "MalformedReading"
        assert batch.failures[0].item_id == "S1"
        assert self.engine.latest_reading("S1").pressure == 3.0

    def test_unknown_ward_on_reading(self):
        outcome = self.engine.ingest_reading({**_payload("S7", 3.0), "ward_id": "ghost"})
        assert outcome.reading.ward_id is None
        assert outcome.alert.ward_id is None

    def test_non_normal_alerts_broadcast(self):
        self.engine.ingest_reading(_payload("S2", 3.0))
        self.engine.ingest_reading(_payload("S2", 1.8))
        assert [a.anomaly_type for a in self.alerts] == [AnomalyType.LOW_PRESSURE]
        assert self.engine.bus.recent()[-1].sensor_id == "S2"

    def test_failing_subscriber_does_not_block_ingest(self):
        def broken(alert):
            raise RuntimeError("push gateway down")

        self.engine.bus.subscribe(broken)
        outcome = self.engine.ingest_reading(_payload("S2", 1.8))
        assert outcome.alert.anomaly_type == AnomalyType.LOW_PRESSURE
        assert len(self.alerts) == 1

    def test_sensor_health(self):
        assert self.engine.sensor_health("S1") == SensorHealth.OFFLINE
        self.engine.ingest_reading(_payload("S1", 3.0))
        assert self.engine.sensor_health("S1") == SensorHealth.HEALTHY
        self.clock.advance(minutes=45)
        assert self.engine.sensor_health("S1") == SensorHealth.WARNING

    def test_water_loss_summary(self):
        self.engine.ingest_reading(_payload("S1", 1.0, flow=100))
        self.engine.ingest_reading(_payload("S2", 1.0, flow=50))

        summary = self.engine.water_loss_summary()
        assert summary.leak_count == 2
        assert [w.ward_id for w in summary.by_ward] == ["w1", "w2"]
        assert summary.generated_at == NOW

        later = self.engine.water_loss_summary(since=NOW + timedelta(hours=1))
        assert later.leak_count == 0


class TestEquityFlow:
    def setup_method(self):
        self.clock = _Clock(NOW)
        self.engine = _make_engine(self.clock)

    def test_ward_equity(self):
        self.engine.ingest_reading(_payload("S1", 2.5))
        self.engine.ingest_reading(_payload("S2", 3.5))

        snapshot = self.engine.ward_equity("w1")
        # supply 6/12, pressure 2.5/3.0
        assert snapshot.score == 0.42
        assert snapshot.level == EquityLevel.POOR

    def test_ward_equity_unknown(self):
        with pytest.raises(UnknownWard):
            self.engine.ward_equity("ghost")

    def test_citywide_report(self):
        self.engine.ingest_reading(_payload("S1", 2.5))
        self.engine.ingest_reading(_payload("S2", 3.5))

        report = self.engine.citywide_equity()
        assert report.ward_count == 2
        assert [w.ward_id for w in report.wards] == ["w1", "w2"]
        assert report.wards[1].score == 1.75
        assert report.status == InequalityStatus.HIGH_INEQUALITY

    def test_city_without_readings_uses_supply_only(self):
        report = self.engine.citywide_equity()
        assert [w.score for w in report.wards] == [0.5, 1.5]
        assert report.mean_score == 1.0


def _utc_z(at: datetime) -> str:
    """The same instant as the local-naive ``at``, written as UTC with a ``Z`` suffix."""
    return at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TestUtcTimestamps:
    def setup_method(self):
        self.clock = _Clock(NOW)
        self.engine = _make_engine(self.clock)

    def test_reading_with_z_timestamp(self):
        outcome = self.engine.ingest_reading(
            {"sensor_id": "S1", "pressure": 3.0, "flow": 100.0, "timestamp": _utc_z(NOW)}
        )
        assert outcome.reading.timestamp == NOW
        assert self.engine.sensor_health("S1") == SensorHealth.HEALTHY

        report = self.engine.citywide_equity()
        assert report.ward_count == 2

    def test_complaints_with_z_created_at(self):
        first = Complaint(id="cmp_a", ward_id="w1", issue="no water", created_at=_utc_z(NOW))
        second = Complaint(id="cmp_b", ward_id="w1", issue="no water", created_at=_utc_z(NOW))

        self.engine.submit_complaint(first)
        outcome = self.engine.submit_complaint(second)
        assert "multiple_complaints" in outcome.priority.factors

    def test_water_loss_summary_with_aware_since(self):
        self.engine.ingest_reading(_payload("S1", 1.0))
        since = (NOW - timedelta(hours=1)).astimezone(timezone.utc)
        assert self.engine.water_loss_summary(since=since).leak_count == 1
