"""
Anomaly Classifier — classifies one reading against the sensor's last reading.

Rules, evaluated in fixed order, first match wins:
  1. pressure < 1.5                          -> CRITICAL_LOW_PRESSURE (0.9, CRITICAL)
  2. pressure < 2.0                          -> LOW_PRESSURE          (0.7, HIGH)
  3. previous exists and |delta| > 1.0       -> PRESSURE_SPIKE        (0.6, MEDIUM)
  4. flow < 50                               -> LOW_FLOW              (0.5, MEDIUM)
  5. flow > 300                              -> HIGH_FLOW             (0.5, MEDIUM)
  6. otherwise                               -> NORMAL                (0.0, NONE)

The only shared mutable state in the engine is the per-sensor latest
reading. Updates for one sensor_id are serialized; different sensors never
contend.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from jalsetu_kernel.errors import MalformedReading
from jalsetu_kernel.models.config import ClassifierConfig
from jalsetu_kernel.models.telemetry import AnomalyAlert, AnomalyType, SensorReading, Severity
from jalsetu_kernel.utils import KeyedLock

logger = logging.getLogger("jalsetu.telemetry")


SEVERITY_BY_TYPE: Dict[AnomalyType, Severity] = {
    AnomalyType.CRITICAL_LOW_PRESSURE: Severity.CRITICAL,
    AnomalyType.LOW_PRESSURE: Severity.HIGH,
    AnomalyType.PRESSURE_SPIKE: Severity.MEDIUM,
    AnomalyType.LOW_FLOW: Severity.MEDIUM,
    AnomalyType.HIGH_FLOW: Severity.MEDIUM,
    AnomalyType.NORMAL: Severity.NONE,
}

CONFIDENCE_BY_TYPE: Dict[AnomalyType, float] = {
    AnomalyType.CRITICAL_LOW_PRESSURE: 0.9,
    AnomalyType.LOW_PRESSURE: 0.7,
    AnomalyType.PRESSURE_SPIKE: 0.6,
    AnomalyType.LOW_FLOW: 0.5,
    AnomalyType.HIGH_FLOW: 0.5,
    AnomalyType.NORMAL: 0.0,
}

RECOMMENDED_ACTIONS: Dict[AnomalyType, str] = {
    AnomalyType.CRITICAL_LOW_PRESSURE: (
        "Immediate inspection required. Possible major leak or valve failure."
    ),
    AnomalyType.LOW_PRESSURE: "Schedule inspection. Check for leaks or valve issues.",
    AnomalyType.PRESSURE_SPIKE: (
        "Monitor closely. Could indicate valve operation or pump issue."
    ),
    AnomalyType.LOW_FLOW: "Check for blockages or meter issues.",
    AnomalyType.HIGH_FLOW: "Verify meter reading. Possible leak downstream.",
    AnomalyType.NORMAL: "No action required.",
}


def _require_number(value: Any, field: str, sensor_id: Optional[str]) -> None:
    if value is None:
        raise MalformedReading(sensor_id, f"missing {field}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedReading(sensor_id, f"{field} is not numeric: {value!r}")
    if not math.isfinite(value):
        raise MalformedReading(sensor_id, f"{field} is not finite: {value!r}")


def parse_reading(payload: Mapping[str, Any], default_time: Optional[datetime] = None) -> SensorReading:
    """
    Convert a raw telemetry payload into a SensorReading.

    Raises MalformedReading when sensor_id is missing or pressure/flow are
    missing, non-numeric or non-finite.
    """
    sensor_id = payload.get("sensor_id")
    if not sensor_id:
        raise MalformedReading(None, "missing sensor_id")

    for field in ("pressure", "flow"):
        value = payload.get(field)
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                raise MalformedReading(sensor_id, f"{field} is not numeric: {value!r}")
        _require_number(value, field, sensor_id)

    data = dict(payload)
    if data.get("timestamp") is None:
        data["timestamp"] = default_time or datetime.now()

    try:
        return SensorReading.model_validate(data)
    except ValidationError as e:
        raise MalformedReading(sensor_id, f"invalid payload: {e.errors()[0]['msg']}") from e


def classify_values(
    pressure: float,
    flow: float,
    previous_pressure: Optional[float],
    config: Optional[ClassifierConfig] = None,
) -> AnomalyType:
    """The fixed-order rule table. Total over all finite inputs."""
    config = config or ClassifierConfig()

    if pressure < config.critical_pressure:
        return AnomalyType.CRITICAL_LOW_PRESSURE
    if pressure < config.low_pressure:
        return AnomalyType.LOW_PRESSURE
    if previous_pressure is not None and abs(pressure - previous_pressure) > config.spike_delta:
        return AnomalyType.PRESSURE_SPIKE
    if flow < config.low_flow:
        return AnomalyType.LOW_FLOW
    if flow > config.high_flow:
        return AnomalyType.HIGH_FLOW
    return AnomalyType.NORMAL


class SensorStateTable:
    """
    Latest reading per sensor_id. Not a history buffer: each accepted
    reading overwrites the previous one.
    """

    def __init__(self):
        self._latest: Dict[str, SensorReading] = {}
        self._locks = KeyedLock()

    def hold(self, sensor_id: str):
        """Single-writer section for one sensor."""
        return self._locks.hold(sensor_id)

    def latest(self, sensor_id: str) -> Optional[SensorReading]:
        return self._latest.get(sensor_id)

    def put(self, reading: SensorReading) -> None:
        self._latest[reading.sensor_id] = reading

    def known_sensors(self) -> List[str]:
        return sorted(self._latest)

    def __len__(self) -> int:
        return len(self._latest)


class AnomalyClassifier:
    """Classifies readings and keeps the per-sensor previous value."""

    def __init__(
        self,
        state: Optional[SensorStateTable] = None,
        config: Optional[ClassifierConfig] = None,
    ):
        # An empty table is falsy; only a missing one is replaced
        self.state = state if state is not None else SensorStateTable()
        self.config = config or ClassifierConfig()

    def classify(self, reading: SensorReading) -> AnomalyAlert:
        """
        Classify a reading and record it as the sensor's latest.

        A malformed reading raises MalformedReading before any state is touched.
        """
        _require_number(reading.pressure, "pressure", reading.sensor_id)
        _require_number(reading.flow, "flow", reading.sensor_id)

        with self.state.hold(reading.sensor_id):
            previous = self.state.latest(reading.sensor_id)
            previous_pressure = previous.pressure if previous is not None else None
            anomaly_type = classify_values(
                reading.pressure, reading.flow, previous_pressure, self.config
            )
            self.state.put(reading)

        alert = AnomalyAlert(
            sensor_id=reading.sensor_id,
            ward_id=reading.ward_id,
            anomaly_type=anomaly_type,
            severity=SEVERITY_BY_TYPE[anomaly_type],
            confidence=CONFIDENCE_BY_TYPE[anomaly_type],
            recommended_action=RECOMMENDED_ACTIONS[anomaly_type],
            pressure=reading.pressure,
            flow=reading.flow,
            previous_pressure=previous_pressure,
            detected_at=reading.timestamp,
        )

        if anomaly_type != AnomalyType.NORMAL:
            logger.info(
                f"Sensor {reading.sensor_id}: {anomaly_type.value} "
                f"(pressure={reading.pressure}, flow={reading.flow}, "
                f"previous={previous_pressure})"
            )
        return alert
