"""
Ward Registry — reference implementation of the registry collaborator.

Holds wards and the sensor -> ward mapping. The scoring engines only read
from it; cached equity scores are written back by the outer layer.
"""

import threading
from typing import Dict, Iterable, List, Optional

from jalsetu_kernel.errors import UnknownWard
from jalsetu_kernel.models.equity import EquitySnapshot
from jalsetu_kernel.models.ward import Ward


class WardRegistry:
    """
    In-memory ward registry for the prototype.
    Production would read the wards table.
    """

    def __init__(self, wards: Optional[Iterable[Ward]] = None):
        self._wards: Dict[str, Ward] = {}
        self._sensor_wards: Dict[str, str] = {}
        self._lock = threading.Lock()
        for ward in wards or []:
            self.upsert_ward(ward)

    def upsert_ward(self, ward: Ward) -> None:
        """Insert or update a ward."""
        with self._lock:
            self._wards[ward.id] = ward

    def get_ward(self, ward_id: str) -> Optional[Ward]:
        return self._wards.get(ward_id)

    def require_ward(self, ward_id: str) -> Ward:
        """Get a ward or raise UnknownWard."""
        ward = self._wards.get(ward_id)
        if ward is None:
            raise UnknownWard(ward_id)
        return ward

    def remove_ward(self, ward_id: str) -> bool:
        with self._lock:
            if ward_id in self._wards:
                del self._wards[ward_id]
                return True
            return False

    def list_wards(self) -> List[Ward]:
        """All wards, ordered by name."""
        return sorted(self._wards.values(), key=lambda w: w.name)

    def assign_sensor(self, sensor_id: str, ward_id: str) -> None:
        """Map a sensor to the ward it is installed in."""
        self.require_ward(ward_id)
        with self._lock:
            self._sensor_wards[sensor_id] = ward_id

    def ward_for_sensor(self, sensor_id: str) -> Optional[str]:
        return self._sensor_wards.get(sensor_id)

    def sensors_in_ward(self, ward_id: str) -> List[str]:
        return sorted(s for s, w in self._sensor_wards.items() if w == ward_id)

    def cache_equity_scores(self, snapshots: Iterable[EquitySnapshot]) -> int:
        """Write snapshot scores back as the wards' cached equity_score."""
        updated = 0
        with self._lock:
            for snapshot in snapshots:
                ward = self._wards.get(snapshot.ward_id)
                if ward is None:
                    continue
                self._wards[ward.id] = ward.model_copy(update={"equity_score": snapshot.score})
                updated += 1
        return updated
