"""Sensor health from the most recent reading."""

from datetime import datetime
from typing import Optional

from jalsetu_kernel.models.config import ClassifierConfig
from jalsetu_kernel.models.telemetry import SensorHealth, SensorReading


def assess_sensor_health(
    reading: Optional[SensorReading],
    current_time: datetime,
    config: Optional[ClassifierConfig] = None,
) -> SensorHealth:
    """
    Staleness first, then battery, then pressure:
      never seen / silent > 120 min  -> OFFLINE
      silent > 30 min                -> WARNING
      battery < 20%                  -> LOW_BATTERY
      pressure < 1.5                 -> CRITICAL
      pressure < 2.0                 -> WARNING
    """
    config = config or ClassifierConfig()
    if reading is None:
        return SensorHealth.OFFLINE

    minutes_ago = (current_time - reading.timestamp).total_seconds() / 60.0
    if minutes_ago > config.offline_after_minutes:
        return SensorHealth.OFFLINE
    if minutes_ago > config.stale_after_minutes:
        return SensorHealth.WARNING
    if reading.battery is not None and reading.battery < config.low_battery_percent:
        return SensorHealth.LOW_BATTERY
    if reading.pressure < config.critical_pressure:
        return SensorHealth.CRITICAL
    if reading.pressure < config.low_pressure:
        return SensorHealth.WARNING
    return SensorHealth.HEALTHY
