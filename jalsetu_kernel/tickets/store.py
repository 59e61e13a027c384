"""
Ticket Store — reference storage collaborator for ticket and leak event requests.

Behavioral Contract:
- Ticket creation payloads are append-only and chained: each ticket is
  hashed and linked to the previous ticket (tamper-evident audit trail)
- Only the workflow columns (status, closed_at) change after creation
- Check-then-create for leak tickets is made atomic by the caller holding
  a per-sensor lock around find_open_leak_ticket() and create_leak_ticket()
- A leak event and its ticket are written in one transaction
"""

import hashlib
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from jalsetu_kernel.errors import TicketStoreError
from jalsetu_kernel.models.leak import LeakEvent
from jalsetu_kernel.models.ticket import Ticket, TicketOrigin, TicketStatus


def _sign(ticket: Ticket) -> str:
    """Signature over the creation payload, excluding chain and workflow fields."""
    payload = ticket.model_dump(
        mode="json", exclude={"signature", "status", "closed_at"}
    )
    payload_bytes = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(payload_bytes).hexdigest()


class TicketStore:
    """
    Ticket and leak event store.
    Prototype: SQLite. Production: the relational store behind the ticket API.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the ticket and leak event tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tickets (
                id TEXT PRIMARY KEY,
                origin TEXT NOT NULL,
                complaint_id TEXT,
                leak_event_id TEXT,
                sensor_id TEXT,
                ward_id TEXT,
                priority TEXT NOT NULL,
                score INTEGER NOT NULL,
                sla_deadline TEXT NOT NULL,
                status TEXT NOT NULL,
                closed_at TEXT,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tickets_sensor_status ON tickets(sensor_id, status)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tickets_ward ON tickets(ward_id)
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS leak_events (
                id TEXT PRIMARY KEY,
                sensor_id TEXT NOT NULL,
                ward_id TEXT,
                confidence REAL NOT NULL,
                estimated_loss_lph REAL NOT NULL,
                detected_at TEXT NOT NULL,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.commit()

    # --- Tickets ---

    def create_ticket(self, ticket: Ticket) -> Ticket:
        """Append a ticket, signing it and chaining it to the previous ticket."""
        with self._lock, self._transaction():
            self._insert_ticket(ticket)
        return ticket

    def create_leak_ticket(self, event: LeakEvent, ticket: Ticket) -> Ticket:
        """Record a leak event and its ticket together; neither is kept if either insert fails."""
        with self._lock, self._transaction():
            self._insert_leak_event(event)
            self._insert_ticket(ticket)
        return ticket

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit the block's inserts together, or roll all of them back."""
        try:
            yield
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def _insert_ticket(self, ticket: Ticket) -> None:
        # Caller holds self._lock and commits
        ticket.prior_record_hash = self._get_latest_hash()
        ticket.signature = _sign(ticket)

        self._conn.execute(
            """
            INSERT INTO tickets (
                id, origin, complaint_id, leak_event_id, sensor_id, ward_id,
                priority, score, sla_deadline, status, closed_at,
                signature, prior_record_hash, record_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                ticket.id,
                ticket.origin.value,
                ticket.complaint_id,
                ticket.leak_event_id,
                ticket.sensor_id,
                ticket.ward_id,
                ticket.priority.value,
                ticket.score,
                ticket.sla_deadline.isoformat(),
                ticket.status.value,
                ticket.closed_at.isoformat() if ticket.closed_at else None,
                ticket.signature,
                ticket.prior_record_hash,
                json.dumps(ticket.model_dump(mode="json"), default=str),
                ticket.created_at.isoformat(),
            ),
        )

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM tickets ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> Ticket:
        """Rebuild a ticket from its creation payload plus current workflow columns."""
        ticket = Ticket.model_validate_json(row["record_json"])
        ticket.status = TicketStatus(row["status"])
        ticket.closed_at = (
            datetime.fromisoformat(row["closed_at"]) if row["closed_at"] else None
        )
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM tickets WHERE id = ?", (ticket_id,)
            ).fetchone()
        return self._deserialize(row) if row else None

    def update_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        at: Optional[datetime] = None,
    ) -> Ticket:
        """Move a ticket through its workflow. Closing stamps closed_at."""
        closed_at = None
        if status == TicketStatus.CLOSED:
            closed_at = (at or datetime.now()).isoformat()

        with self._lock:
            cursor = self._conn.execute(
                "UPDATE tickets SET status = ?, closed_at = ? WHERE id = ?",
                (status.value, closed_at, ticket_id),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                raise TicketStoreError(f"Ticket {ticket_id} not found")
            return self.get_ticket(ticket_id)

    def close_ticket(self, ticket_id: str, at: Optional[datetime] = None) -> Ticket:
        return self.update_status(ticket_id, TicketStatus.CLOSED, at=at)

    def find_open_leak_ticket(self, sensor_id: str) -> Optional[Ticket]:
        """The open leak-derived ticket for a sensor, if any."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM tickets WHERE sensor_id = ? AND origin = ? "
                "AND status != ? ORDER BY rowid DESC LIMIT 1",
                (sensor_id, TicketOrigin.LEAK_EVENT.value, TicketStatus.CLOSED.value),
            ).fetchone()
        return self._deserialize(row) if row else None

    def query_open(self) -> List[Ticket]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM tickets WHERE status != ? ORDER BY rowid",
                (TicketStatus.CLOSED.value,),
            ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_ward(self, ward_id: str) -> List[Ticket]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM tickets WHERE ward_id = ? ORDER BY rowid", (ward_id,)
            ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_sensor(self, sensor_id: str) -> List[Ticket]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM tickets WHERE sensor_id = ? ORDER BY rowid", (sensor_id,)
            ).fetchall()
        return [self._deserialize(r) for r in rows]

    def count(self) -> int:
        """Total number of tickets."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM tickets").fetchone()
        return row["cnt"]

    def verify_chain_integrity(self) -> bool:
        """Verify no ticket creation payload has been tampered with."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json, signature FROM tickets ORDER BY rowid"
            ).fetchall()

        for i, row in enumerate(rows):
            ticket = Ticket.model_validate_json(row["record_json"])

            if ticket.signature != row["signature"] or _sign(ticket) != ticket.signature:
                return False

            # Check chain link; the genesis ticket has no prior hash
            expected_prior = rows[i - 1]["signature"] if i > 0 else None
            if ticket.prior_record_hash != expected_prior:
                return False

        return True

    # --- Leak events ---

    def record_leak_event(self, event: LeakEvent) -> LeakEvent:
        with self._lock, self._transaction():
            self._insert_leak_event(event)
        return event

    def _insert_leak_event(self, event: LeakEvent) -> None:
        # Caller holds self._lock and commits
        self._conn.execute(
            """
            INSERT INTO leak_events (
                id, sensor_id, ward_id, confidence, estimated_loss_lph,
                detected_at, record_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.sensor_id,
                event.ward_id,
                event.confidence,
                event.estimated_loss_lph,
                event.detected_at.isoformat(),
                event.model_dump_json(),
            ),
        )

    def get_leak_event(self, event_id: str) -> Optional[LeakEvent]:
        with self._lock:
            row = self._conn.execute(
                "SELECT record_json FROM leak_events WHERE id = ?", (event_id,)
            ).fetchone()
        return LeakEvent.model_validate_json(row["record_json"]) if row else None

    def query_leak_events(self, since: Optional[datetime] = None) -> List[LeakEvent]:
        with self._lock:
            if since:
                rows = self._conn.execute(
                    "SELECT record_json FROM leak_events WHERE detected_at >= ? ORDER BY rowid",
                    (since.isoformat(),),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT record_json FROM leak_events ORDER BY rowid"
                ).fetchall()
        return [LeakEvent.model_validate_json(r["record_json"]) for r in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
