"""Work queue — open tickets ranked by tier, then by SLA deadline."""

from datetime import datetime
from typing import Iterable, List

from jalsetu_kernel.models.ticket import PriorityTier, QueuedTicket, Ticket

TIER_RANK = {
    PriorityTier.P1: 1,
    PriorityTier.P2: 2,
    PriorityTier.P3: 3,
}


def _urgency(hours_remaining: float) -> str:
    if hours_remaining < 2:
        return "CRITICAL"
    elif hours_remaining < 6:
        return "HIGH"
    return "NORMAL"


def rank_open_tickets(
    tickets: Iterable[Ticket],
    current_time: datetime,
    limit: int = 10,
) -> List[QueuedTicket]:
    """Top ``limit`` open tickets, most urgent tier first, earliest deadline first."""
    open_tickets = [t for t in tickets if t.is_open]
    open_tickets.sort(key=lambda t: (TIER_RANK[t.priority], t.sla_deadline))

    queued = []
    for ticket in open_tickets[:limit]:
        hours_remaining = (ticket.sla_deadline - current_time).total_seconds() / 3600.0
        queued.append(QueuedTicket(
            ticket=ticket,
            hours_remaining=round(hours_remaining, 2),
            is_overdue=hours_remaining < 0,
            urgency=_urgency(hours_remaining),
        ))
    return queued
