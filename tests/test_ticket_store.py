"""Tests for the Ticket Store and the work queue."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from jalsetu_kernel.errors import TicketStoreError
from jalsetu_kernel.models.leak import LeakEvent
from jalsetu_kernel.models.ticket import PriorityTier, Ticket, TicketOrigin, TicketStatus
from jalsetu_kernel.tickets.queue import rank_open_tickets
from jalsetu_kernel.tickets.store import TicketStore

NOW = datetime(2026, 3, 10, 14, 0)

SLA_HOURS = {PriorityTier.P1: 4, PriorityTier.P2: 12, PriorityTier.P3: 48}


def _make_complaint_ticket(
    ticket_id: str = "tkt_1",
    priority: PriorityTier = PriorityTier.P2,
    created_at: datetime = NOW,
    ward_id: str = "w1",
) -> Ticket:
    sla_hours = SLA_HOURS[priority]
    return Ticket(
        id=ticket_id,
        origin=TicketOrigin.COMPLAINT,
        complaint_id=f"cmp_{ticket_id}",
        ward_id=ward_id,
        title="Water Issue - Nana Peth",
        priority=priority,
        score=17,
        sla_hours=sla_hours,
        sla_deadline=created_at + timedelta(hours=sla_hours),
        factors=["no_water"],
        created_at=created_at,
    )


def _make_leak_ticket(ticket_id: str = "tkt_leak", sensor_id: str = "S1") -> Ticket:
    return Ticket(
        id=ticket_id,
        origin=TicketOrigin.LEAK_EVENT,
        leak_event_id=f"leak_{ticket_id}",
        sensor_id=sensor_id,
        ward_id="w1",
        title=f"Leak detected - sensor {sensor_id}",
        priority=PriorityTier.P1,
        score=25,
        sla_hours=4,
        sla_deadline=NOW + timedelta(hours=4),
        factors=["CRITICAL_LOW_PRESSURE"],
        created_at=NOW,
    )


def _make_leak_event(event_id: str, detected_at: datetime) -> LeakEvent:
    return LeakEvent(
        id=event_id,
        sensor_id="S1",
        ward_id="w1",
        confidence=0.9,
        estimated_loss_lph=43200.0,
        pressure=1.2,
        flow=100.0,
        detected_at=detected_at,
    )


class TestTicketStore:
    def setup_method(self):
        self.store = TicketStore(db_path=":memory:")

    def test_create_and_retrieve(self):
        created = self.store.create_ticket(_make_complaint_ticket())

        assert created.signature != ""
        assert created.prior_record_hash is None  # First ticket

        retrieved = self.store.get_ticket("tkt_1")
        assert retrieved is not None
        assert retrieved.complaint_id == "cmp_tkt_1"
        assert retrieved.status == TicketStatus.OPEN
        assert retrieved.signature == created.signature

    def test_missing_ticket(self):
        assert self.store.get_ticket("nope") is None

    def test_tickets_are_chained(self):
        first = self.store.create_ticket(_make_complaint_ticket("tkt_1"))
        second = self.store.create_ticket(_make_complaint_ticket("tkt_2"))
        assert second.prior_record_hash == first.signature

    def test_chain_integrity(self):
        for i in range(25):
            self.store.create_ticket(_make_complaint_ticket(f"tkt_{i}"))
        assert self.store.count() == 25
        assert self.store.verify_chain_integrity() is True

    def test_tampering_detected(self):
        for i in range(3):
            self.store.create_ticket(_make_complaint_ticket(f"tkt_{i}"))

        tampered = self.store.get_ticket("tkt_1").model_copy(update={"score": 99})
        self.store._conn.execute(
            "UPDATE tickets SET record_json = ? WHERE id = ?",
            (tampered.model_dump_json(), "tkt_1"),
        )
        assert self.store.verify_chain_integrity() is False

    def test_close_ticket(self):
        self.store.create_ticket(_make_complaint_ticket())
        closed = self.store.close_ticket("tkt_1", at=NOW + timedelta(hours=2))

        assert closed.status == TicketStatus.CLOSED
        assert closed.closed_at == NOW + timedelta(hours=2)
        assert not closed.is_open
        # Workflow changes do not break the audit chain
        assert self.store.verify_chain_integrity() is True

    def test_update_status(self):
        self.store.create_ticket(_make_complaint_ticket())
        updated = self.store.update_status("tkt_1", TicketStatus.ASSIGNED)
        assert updated.status == TicketStatus.ASSIGNED
        assert updated.closed_at is None

    def test_close_unknown_ticket(self):
        with pytest.raises(TicketStoreError):
            self.store.close_ticket("nope")

    def test_find_open_leak_ticket(self):
        self.store.create_ticket(_make_complaint_ticket())
        assert self.store.find_open_leak_ticket("S1") is None

        self.store.create_ticket(_make_leak_ticket())
        found = self.store.find_open_leak_ticket("S1")
        assert found.id == "tkt_leak"
        assert self.store.find_open_leak_ticket("S2") is None

        self.store.close_ticket("tkt_leak", at=NOW)
        assert self.store.find_open_leak_ticket("S1") is None

    def test_queries(self):
        self.store.create_ticket(_make_complaint_ticket("tkt_1", ward_id="w1"))
        self.store.create_ticket(_make_complaint_ticket("tkt_2", ward_id="w2"))
        self.store.create_ticket(_make_leak_ticket())
        self.store.close_ticket("tkt_2", at=NOW)

        assert [t.id for t in self.store.query_open()] == ["tkt_1", "tkt_leak"]
        assert [t.id for t in self.store.query_by_ward("w1")] == ["tkt_1", "tkt_leak"]
        assert [t.id for t in self.store.query_by_sensor("S1")] == ["tkt_leak"]

    def test_duplicate_ticket_id_rejected(self):
        self.store.create_ticket(_make_complaint_ticket())
        with pytest.raises(sqlite3.IntegrityError):
            self.store.create_ticket(_make_complaint_ticket())

    def test_leak_events(self):
        self.store.record_leak_event(_make_leak_event("leak_old", NOW - timedelta(days=40)))
        self.store.record_leak_event(_make_leak_event("leak_new", NOW))

        assert self.store.get_leak_event("leak_new").estimated_loss_lph == 43200.0
        assert self.store.get_leak_event("missing") is None
        assert len(self.store.query_leak_events()) == 2
        recent = self.store.query_leak_events(since=NOW - timedelta(days=30))
        assert [e.id for e in recent] == ["leak_new"]

    def test_create_leak_ticket_writes_both(self):
        event = _make_leak_event("leak_tkt_leak", NOW)
        self.store.create_leak_ticket(event, _make_leak_ticket())

        assert self.store.get_leak_event("leak_tkt_leak") is not None
        assert self.store.find_open_leak_ticket("S1").leak_event_id == "leak_tkt_leak"
        assert self.store.verify_chain_integrity()

    def test_failed_ticket_insert_discards_leak_event(self):
        self.store.create_ticket(_make_complaint_ticket(ticket_id="tkt_leak"))
        event = _make_leak_event("leak_tkt_leak", NOW)

        with pytest.raises(sqlite3.IntegrityError):
            self.store.create_leak_ticket(event, _make_leak_ticket())

        assert self.store.get_leak_event("leak_tkt_leak") is None
        assert self.store.query_leak_events() == []
        assert self.store.count() == 1

        # The connection is usable after the rollback
        self.store.create_ticket(_make_complaint_ticket(ticket_id="tkt_2"))
        assert self.store.count() == 2
        assert self.store.verify_chain_integrity()


class TestWorkQueue:
    def test_tier_then_deadline(self):
        tickets = [
            _make_complaint_ticket("p3", PriorityTier.P3, created_at=NOW - timedelta(hours=47)),
            _make_complaint_ticket("p2_late", PriorityTier.P2, created_at=NOW),
            _make_complaint_ticket("p2_early", PriorityTier.P2, created_at=NOW - timedelta(hours=6)),
            _make_complaint_ticket("p1", PriorityTier.P1, created_at=NOW),
        ]
        queue = rank_open_tickets(tickets, NOW)
        assert [q.ticket.id for q in queue] == ["p1", "p2_early", "p2_late", "p3"]

    def test_hours_remaining_and_urgency(self):
        tickets = [
            _make_complaint_ticket("overdue", PriorityTier.P1, created_at=NOW - timedelta(hours=5)),
            _make_complaint_ticket("soon", PriorityTier.P1, created_at=NOW - timedelta(hours=3)),
            _make_complaint_ticket("fresh", PriorityTier.P2, created_at=NOW - timedelta(hours=8)),
            _make_complaint_ticket("later", PriorityTier.P3, created_at=NOW),
        ]
        queue = {q.ticket.id: q for q in rank_open_tickets(tickets, NOW)}

        assert queue["overdue"].is_overdue
        assert queue["overdue"].hours_remaining == -1.0
        assert queue["overdue"].urgency == "CRITICAL"
        assert queue["soon"].urgency == "CRITICAL"
        assert queue["fresh"].hours_remaining == 4.0
        assert queue["fresh"].urgency == "HIGH"
        assert queue["later"].urgency == "NORMAL"
        assert not queue["later"].is_overdue

    def test_closed_tickets_excluded_and_limit(self):
        tickets = [_make_complaint_ticket(f"t{i}") for i in range(15)]
        tickets[0] = tickets[0].model_copy(update={"status": TicketStatus.CLOSED})

        queue = rank_open_tickets(tickets, NOW, limit=10)
        assert len(queue) == 10
        assert "t0" not in [q.ticket.id for q in queue]
