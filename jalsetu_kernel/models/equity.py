"""Equity snapshots per ward and the citywide inequality report."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class EquityLevel(str, Enum):
    EXCELLENT = "EXCELLENT"
    FAIR = "FAIR"
    MODERATE = "MODERATE"
    POOR = "POOR"


class InequalityStatus(str, Enum):
    HIGH_INEQUALITY = "HIGH_INEQUALITY"
    MODERATE_INEQUALITY = "MODERATE_INEQUALITY"
    GOOD_EQUITY = "GOOD_EQUITY"


class WardAggregate(BaseModel):
    """Per-ward inputs to the equity scorer, over the trailing windows."""

    ward_id: str
    ward_name: str
    avg_supply_hours: float = Field(ge=0)
    avg_pressure: Optional[float] = None    # 24h trailing; None when no readings
    open_complaints: int = Field(ge=0, default=0)   # 7d trailing


class CityAggregate(BaseModel):
    """Citywide baselines, computed in a pass separate from the ward pass."""

    avg_supply_hours: float = Field(ge=0, default=0.0)
    avg_pressure: Optional[float] = None


class EquityMetrics(BaseModel):
    supply_hours: float
    city_avg_supply: float
    avg_pressure: Optional[float] = None
    city_avg_pressure: Optional[float] = None
    complaint_count: int
    neutralized: List[str] = []             # Ratios skipped because the baseline was zero
    last_updated: datetime


class EquitySnapshot(BaseModel):
    ward_id: str
    ward_name: str
    score: float = Field(ge=0.3, le=2.0)
    level: EquityLevel
    color: str
    description: str
    metrics: EquityMetrics
    recommendations: List[str] = []


class CitywideEquityReport(BaseModel):
    mean_score: float
    gini: float = Field(ge=0.0, le=1.0)
    status: InequalityStatus
    message: str
    action: str
    ward_count: int
    wards: List[EquitySnapshot] = []        # Ascending by score, worst first
    generated_at: datetime
