"""
Alert Bus — fans anomaly alerts out to subscribers.

Subscribers stand in for the push-notification transport and dashboards.
A subscriber that raises is logged and skipped; delivery to the others
continues.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List

from jalsetu_kernel.models.telemetry import AnomalyAlert

logger = logging.getLogger("jalsetu.alerts")

AlertCallback = Callable[[AnomalyAlert], None]


class AlertBus:
    def __init__(self, history_size: int = 100):
        self._subscribers: List[AlertCallback] = []
        self._history: Deque[AnomalyAlert] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, callback: AlertCallback) -> None:
        """Register a callback for every published alert."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: AlertCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, alert: AnomalyAlert) -> int:
        """Deliver an alert to all subscribers. Returns the number of successful deliveries."""
        with self._lock:
            self._history.append(alert)
            subscribers = list(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(alert)
                delivered += 1
            except Exception as e:
                logger.error(f"Alert subscriber {callback!r} failed for sensor {alert.sensor_id}: {e}")
        return delivered

    def recent(self, limit: int = 20) -> List[AnomalyAlert]:
        """The most recently published alerts, oldest first."""
        with self._lock:
            return list(self._history)[-limit:]
