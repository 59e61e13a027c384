"""Citizen complaint — read-only input to the priority scorer."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from jalsetu_kernel.utils import to_local_naive


class ComplaintStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class Complaint(BaseModel):
    id: str
    ward_id: Optional[str] = None
    issue: str = ""                         # Free text, e.g. "No water since morning"
    location: Optional[str] = None          # Opaque to the engine, e.g. "POINT(75.91 17.68)"
    created_at: datetime
    status: ComplaintStatus = ComplaintStatus.PENDING

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return to_local_naive(value)
