"""
Aggregate Store — reference implementation of the storage collaborator's
windowed lookups.

Keeps the complaint log and the raw pressure readings and answers:
- unresolved complaints per ward in a trailing window
- per-ward aggregates (pass 1)
- citywide aggregates over the same window (pass 2, independent of pass 1)
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, NamedTuple, Optional

from jalsetu_kernel.models.complaint import Complaint, ComplaintStatus
from jalsetu_kernel.models.config import EquityConfig
from jalsetu_kernel.models.equity import CityAggregate, WardAggregate
from jalsetu_kernel.models.telemetry import SensorReading
from jalsetu_kernel.registry.store import WardRegistry


class _PressureSample(NamedTuple):
    sensor_id: str
    ward_id: Optional[str]
    pressure: float
    timestamp: datetime


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class AggregateStore:
    """
    In-memory complaint and reading log for the prototype.
    Production would run these as queries against the relational store.
    """

    def __init__(
        self,
        registry: WardRegistry,
        config: Optional[EquityConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.config = config or EquityConfig()
        self.clock = clock or datetime.now
        self._complaints: Dict[str, Complaint] = {}
        self._samples: List[_PressureSample] = []
        self._lock = threading.Lock()

    # --- Complaints ---

    def record_complaint(self, complaint: Complaint) -> None:
        with self._lock:
            self._complaints[complaint.id] = complaint

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        return self._complaints.get(complaint_id)

    def update_complaint_status(self, complaint_id: str, status: ComplaintStatus) -> Optional[Complaint]:
        with self._lock:
            complaint = self._complaints.get(complaint_id)
            if complaint is None:
                return None
            updated = complaint.model_copy(update={"status": status})
            self._complaints[complaint_id] = updated
            return updated

    def count_unresolved_complaints(
        self,
        ward_id: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> int:
        """Complaints in ``ward_id`` created in [since, until] and not resolved."""
        with self._lock:
            complaints = list(self._complaints.values())
        return sum(
            1 for c in complaints
            if c.ward_id == ward_id
            and c.status != ComplaintStatus.RESOLVED
            and c.created_at >= since
            and (until is None or c.created_at <= until)
        )

    # --- Readings ---

    def record_reading(self, reading: SensorReading) -> bool:
        """
        Log a reading's pressure for the trailing-window aggregates.

        Only the pressure window is retained: samples older than
        ``pressure_window_hours`` before the clock are dropped on every call,
        and a reading already outside the window is not logged. Returns
        whether the reading was kept.
        """
        ward_id = reading.ward_id or self.registry.ward_for_sensor(reading.sensor_id)
        cutoff = self.clock() - timedelta(hours=self.config.pressure_window_hours)
        with self._lock:
            self._drop_before(cutoff)
            if reading.timestamp < cutoff:
                return False
            self._samples.append(_PressureSample(
                sensor_id=reading.sensor_id,
                ward_id=ward_id,
                pressure=reading.pressure,
                timestamp=reading.timestamp,
            ))
            return True

    def prune_readings(self, before: datetime) -> int:
        """Drop samples older than ``before``. Returns how many were dropped."""
        with self._lock:
            return self._drop_before(before)

    def reading_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def _drop_before(self, before: datetime) -> int:
        # Caller holds self._lock
        kept = [s for s in self._samples if s.timestamp >= before]
        dropped = len(self._samples) - len(kept)
        self._samples = kept
        return dropped

    def _samples_since(self, since: datetime, until: datetime) -> List[_PressureSample]:
        with self._lock:
            return [s for s in self._samples if since <= s.timestamp <= until]

    # --- Equity aggregates ---

    def ward_aggregate(self, ward_id: str, current_time: Optional[datetime] = None) -> WardAggregate:
        """Pass 1: one ward's supply hours, trailing pressure and open complaints."""
        if current_time is None:
            current_time = self.clock()
        ward = self.registry.require_ward(ward_id)

        pressure_since = current_time - timedelta(hours=self.config.pressure_window_hours)
        pressures = [
            s.pressure for s in self._samples_since(pressure_since, current_time)
            if s.ward_id == ward_id
        ]

        complaint_since = current_time - timedelta(days=self.config.complaint_window_days)
        return WardAggregate(
            ward_id=ward.id,
            ward_name=ward.name,
            avg_supply_hours=ward.avg_supply_hours,
            avg_pressure=_mean(pressures),
            open_complaints=self.count_unresolved_complaints(
                ward_id, complaint_since, until=current_time
            ),
        )

    def city_aggregate(self, current_time: Optional[datetime] = None) -> CityAggregate:
        """Pass 2: citywide supply hours over all wards, pressure over all readings in the window."""
        if current_time is None:
            current_time = self.clock()

        supply = [w.avg_supply_hours for w in self.registry.list_wards()]
        pressure_since = current_time - timedelta(hours=self.config.pressure_window_hours)
        pressures = [s.pressure for s in self._samples_since(pressure_since, current_time)]

        return CityAggregate(
            avg_supply_hours=_mean(supply) or 0.0,
            avg_pressure=_mean(pressures),
        )
