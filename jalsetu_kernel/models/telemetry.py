"""Sensor telemetry and the anomaly alerts derived from it."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from jalsetu_kernel.utils import to_local_naive


class AnomalyType(str, Enum):
    CRITICAL_LOW_PRESSURE = "CRITICAL_LOW_PRESSURE"
    LOW_PRESSURE = "LOW_PRESSURE"
    PRESSURE_SPIKE = "PRESSURE_SPIKE"
    LOW_FLOW = "LOW_FLOW"
    HIGH_FLOW = "HIGH_FLOW"
    NORMAL = "NORMAL"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    NONE = "NONE"


class SensorHealth(str, Enum):
    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    LOW_BATTERY = "LOW_BATTERY"
    CRITICAL = "CRITICAL"
    OFFLINE = "OFFLINE"


class SensorReading(BaseModel):
    """One telemetry sample. Pressure in bar, flow in L/min."""

    sensor_id: str
    pressure: float = Field(allow_inf_nan=False)
    flow: float = Field(allow_inf_nan=False)
    ph: Optional[float] = None
    turbidity: Optional[float] = None
    battery: Optional[float] = None         # Percent
    timestamp: datetime
    ward_id: Optional[str] = None           # Resolved from the registry when absent

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class AnomalyAlert(BaseModel):
    """Classification of one reading against the sensor's previous reading."""

    sensor_id: str
    ward_id: Optional[str] = None
    anomaly_type: AnomalyType
    severity: Severity
    confidence: float = Field(ge=0.0, le=1.0)
    recommended_action: str
    pressure: float
    flow: float
    previous_pressure: Optional[float] = None
    detected_at: datetime
    # Set once the leak synthesizer has acted on a critical alert
    leak_event_id: Optional[str] = None
    ticket_id: Optional[str] = None
    repeated: bool = False                  # Critical alert for a sensor with an open leak ticket
