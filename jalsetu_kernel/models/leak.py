"""Leak events inferred from telemetry, and their loss summaries."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from jalsetu_kernel.models.telemetry import AnomalyAlert
from jalsetu_kernel.models.ticket import Ticket


class LeakEvent(BaseModel):
    id: str
    sensor_id: str
    ward_id: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    estimated_loss_lph: float = Field(ge=0.0)   # Heuristic, not a hydraulic model
    pressure: float
    flow: float
    detected_by: str = "sensor"
    detected_at: datetime


class LeakOutcome(BaseModel):
    """What the synthesizer did with one critical alert."""

    alert: AnomalyAlert
    leak_event: Optional[LeakEvent] = None
    ticket: Optional[Ticket] = None
    duplicate_of: Optional[str] = None      # Open ticket that suppressed a new one


class WardLoss(BaseModel):
    ward_id: Optional[str] = None
    leak_count: int
    estimated_daily_loss_liters: float
    avg_detection_confidence: float


class WaterLossSummary(BaseModel):
    leak_count: int
    estimated_daily_loss_liters: float
    avg_detection_confidence: float
    by_ward: List[WardLoss] = []            # Highest loss first
    generated_at: datetime
