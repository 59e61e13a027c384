"""Error taxonomy for the decision engine.

Every error here is per-item and non-fatal: the engine reports it for the
offending complaint or reading and keeps processing the rest.
"""

from typing import Optional


class JalSetuError(Exception):
    """Base class for all decision engine errors."""
    pass


class MalformedReading(JalSetuError):
    """Raised when a telemetry reading has missing or non-numeric pressure/flow.

    The reading is discarded and the sensor's stored state is left unchanged.
    """

    def __init__(self, sensor_id: Optional[str], reason: str):
        self.sensor_id = sensor_id
        self.reason = reason
        super().__init__(f"Malformed reading from sensor {sensor_id or '<unknown>'}: {reason}")


class UnknownWard(JalSetuError):
    """Raised when a complaint or sensor references a ward missing from the registry."""

    def __init__(self, ward_id: str):
        self.ward_id = ward_id
        super().__init__(f"Ward {ward_id} not found in registry")


class ZeroBaseline(JalSetuError):
    """Raised internally when a citywide average used as a divisor is zero.

    Callers treat the affected ratio as neutral (1.0); it never escapes the
    equity scorer.
    """

    def __init__(self, metric: str):
        self.metric = metric
        super().__init__(f"Citywide baseline for {metric} is zero")


class TicketStoreError(JalSetuError):
    """Raised when the ticket store is asked to act on a ticket it does not hold."""
    pass
