"""Engine configuration: weights, thresholds and windows for every scorer."""

import os
from typing import List

from pydantic import BaseModel, Field


class ScoringConfig(BaseModel):
    """Priority scorer weights. All weights are non-negative, so the score is monotone."""

    no_water_weight: int = Field(ge=0, default=15)
    no_water_phrases: List[str] = ["no water", "zero water"]
    low_pressure_weight: int = Field(ge=0, default=10)
    low_pressure_phrases: List[str] = ["low pressure", "less pressure"]
    leak_report_weight: int = Field(ge=0, default=12)
    leak_report_phrases: List[str] = ["leak", "overflow"]

    low_equity_weight: int = Field(ge=0, default=7)
    low_equity_threshold: float = 0.8
    high_population_weight: int = Field(ge=0, default=8)
    high_population_threshold: int = 50000

    multiple_complaints_weight: int = Field(ge=0, default=5)
    multiple_complaints_cap: int = Field(ge=0, default=5)
    multiple_complaints_min_count: int = Field(ge=1, default=1)
    complaint_window_hours: int = Field(gt=0, default=24)

    sensor_corroboration_weight: int = Field(ge=0, default=9)
    sensor_low_pressure: float = 1.5

    peak_hours_weight: int = Field(ge=0, default=4)
    peak_hours_schedule: str = "* 6-10,18-22 * * *"     # Cron: 06:00-10:59, 18:00-22:59

    p1_min_score: int = 25
    p2_min_score: int = 15
    p1_sla_hours: int = 4
    p2_sla_hours: int = 12
    p3_sla_hours: int = 48


class ClassifierConfig(BaseModel):
    critical_pressure: float = 1.5
    low_pressure: float = 2.0
    spike_delta: float = 1.0
    low_flow: float = 50.0
    high_flow: float = 300.0

    # Sensor health
    offline_after_minutes: int = 120
    stale_after_minutes: int = 30
    low_battery_percent: float = 20.0


class LeakConfig(BaseModel):
    min_confidence: float = Field(ge=0.0, le=1.0, default=0.85)
    max_confidence: float = Field(ge=0.0, le=1.0, default=0.9)
    loss_multiplier: float = Field(ge=0.0, default=0.3)
    sla_hours: int = 4
    ticket_score: int = Field(ge=0, default=25)
    enforce_single_open_ticket: bool = True     # False restores the legacy one-ticket-per-reading behaviour


class EquityConfig(BaseModel):
    min_score: float = 0.3
    max_score: float = 2.0
    complaint_window_days: int = Field(gt=0, default=7)
    pressure_window_hours: int = Field(gt=0, default=24)
    complaint_penalty_floor: float = 0.7
    complaint_penalty_divisor: float = Field(gt=0, default=100.0)


class EngineConfig(BaseModel):
    """Top-level configuration handed to the DecisionEngine at startup."""

    scoring: ScoringConfig = ScoringConfig()
    classifier: ClassifierConfig = ClassifierConfig()
    leak: LeakConfig = LeakConfig()
    equity: EquityConfig = EquityConfig()
    log_level: str = "INFO"
    ticket_db_path: str = ":memory:"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from defaults overridden by JALSETU_* environment variables."""
        legacy = os.environ.get("JALSETU_LEGACY_LEAK_TICKETS", "").lower()
        return cls(
            leak=LeakConfig(enforce_single_open_ticket=legacy not in ("1", "true", "yes")),
            log_level=os.environ.get("JALSETU_LOG_LEVEL", "INFO"),
            ticket_db_path=os.environ.get("JALSETU_TICKET_DB", ":memory:"),
        )
