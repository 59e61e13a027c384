"""Tickets — prioritized, time-bounded work items requested by the engine."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class PriorityTier(str, Enum):
    P1 = "P1"   # Critical, 4 hour SLA by default
    P2 = "P2"   # High, 12 hours
    P3 = "P3"   # Normal, 48 hours


class TicketOrigin(str, Enum):
    COMPLAINT = "complaint"
    LEAK_EVENT = "leak_event"


class TicketStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class ScoreFactor(BaseModel):
    """One triggered factor of the additive priority score."""

    name: str                               # e.g. "no_water"
    weight: int
    detail: str                             # Human-readable, e.g. "Underserved ward: Nana Peth"


class PriorityResult(BaseModel):
    """Output of the priority scorer for one complaint."""

    score: int = Field(ge=0)
    priority: PriorityTier
    sla_hours: int
    sla_deadline: datetime
    factors: List[str] = []                 # Triggered factor names, in evaluation order
    factor_details: List[ScoreFactor] = []
    calculated_at: datetime
    degraded: bool = False                  # Ward factors skipped (unknown ward)


class Ticket(BaseModel):
    """
    A ticket creation request.

    Exactly one origin: either a complaint or a leak event, never both.
    """

    id: str
    origin: TicketOrigin
    complaint_id: Optional[str] = None
    leak_event_id: Optional[str] = None
    sensor_id: Optional[str] = None
    ward_id: Optional[str] = None
    title: str
    priority: PriorityTier
    score: int = Field(ge=0)
    sla_hours: int
    sla_deadline: datetime
    factors: List[str] = []
    status: TicketStatus = TicketStatus.OPEN
    created_at: datetime
    closed_at: Optional[datetime] = None

    # Integrity chain, filled in by the ticket store
    signature: str = ""
    prior_record_hash: Optional[str] = None

    @model_validator(mode="after")
    def _check_single_origin(self) -> "Ticket":
        has_complaint = self.complaint_id is not None
        has_leak = self.leak_event_id is not None
        if has_complaint == has_leak:
            raise ValueError(
                "ticket must reference exactly one of complaint_id or leak_event_id"
            )
        expected = TicketOrigin.COMPLAINT if has_complaint else TicketOrigin.LEAK_EVENT
        if self.origin != expected:
            raise ValueError(f"origin {self.origin.value} does not match the referenced record")
        return self

    @property
    def is_open(self) -> bool:
        return self.status != TicketStatus.CLOSED


class QueuedTicket(BaseModel):
    """An open ticket as ranked on the work queue."""

    ticket: Ticket
    hours_remaining: float
    is_overdue: bool
    urgency: str                            # "CRITICAL" | "HIGH" | "NORMAL"
