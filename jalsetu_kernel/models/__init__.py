"""JalSetu Kernel data models."""

from jalsetu_kernel.models.complaint import Complaint, ComplaintStatus
from jalsetu_kernel.models.config import (
    ClassifierConfig,
    EngineConfig,
    EquityConfig,
    LeakConfig,
    ScoringConfig,
)
from jalsetu_kernel.models.equity import (
    CityAggregate,
    CitywideEquityReport,
    EquityLevel,
    EquityMetrics,
    EquitySnapshot,
    InequalityStatus,
    WardAggregate,
)
from jalsetu_kernel.models.leak import LeakEvent, LeakOutcome, WardLoss, WaterLossSummary
from jalsetu_kernel.models.telemetry import (
    AnomalyAlert,
    AnomalyType,
    SensorHealth,
    SensorReading,
    Severity,
)
from jalsetu_kernel.models.ticket import (
    PriorityResult,
    PriorityTier,
    QueuedTicket,
    ScoreFactor,
    Ticket,
    TicketOrigin,
    TicketStatus,
)
from jalsetu_kernel.models.ward import Ward

__all__ = [
    "AnomalyAlert",
    "AnomalyType",
    "CityAggregate",
    "CitywideEquityReport",
    "ClassifierConfig",
    "Complaint",
    "ComplaintStatus",
    "EngineConfig",
    "EquityConfig",
    "EquityLevel",
    "EquityMetrics",
    "EquitySnapshot",
    "InequalityStatus",
    "LeakConfig",
    "LeakEvent",
    "LeakOutcome",
    "PriorityResult",
    "PriorityTier",
    "QueuedTicket",
    "ScoreFactor",
    "ScoringConfig",
    "SensorHealth",
    "SensorReading",
    "Severity",
    "Ticket",
    "TicketOrigin",
    "TicketStatus",
    "Ward",
    "WardAggregate",
    "WardLoss",
    "WaterLossSummary",
]
