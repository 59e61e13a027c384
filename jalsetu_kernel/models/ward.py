"""Ward — the administrative unit of equity measurement."""

from typing import Optional

from pydantic import BaseModel, Field


class Ward(BaseModel):
    """A ward as held by the registry. Read-only to the scoring engines."""

    id: str
    name: str
    population: int = Field(ge=0, default=0)
    avg_supply_hours: float = Field(ge=0, default=0.0)
    equity_score: Optional[float] = None    # Cached from the last equity run
