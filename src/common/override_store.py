#
# override_store.py
# user-supplied speed limit corrections, deduplicated by proximity
#
from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional

from common.models import LimitOverride
from common.persistence import Persistence, load_records
from common.utils import haversine_km

logger = logging.getLogger(__name__)

STORE_KEY = "osm_reports"


class _Missing:
    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


# no record at the queried location / limit argument not given
MISSING = _Missing()


def road_name(address: str) -> str:
    # addresses read "<suburb> <road>", the road is the last token
    parts = (address or "").split()
    return parts[-1] if parts else ""


class OverrideStore:
    MAX_RECORDS = 100
    SAME_SPOT_KM = 0.2  # always the same location, whatever the address says
    SAME_ROAD_KM = 1.0  # same location if the road name also matches
    LOOKUP_BOX_DEG = 0.0005  # ~55 m, read side is tighter than the merge side

    def __init__(self, persistence: Persistence, clock: Callable[[], float] = time.time):
        self.persistence = persistence
        self.clock = clock
        self._records: List[LimitOverride] = load_records(
            persistence, STORE_KEY, LimitOverride.from_dict
        )
        if len(self._records) > self.MAX_RECORDS:
            del self._records[self.MAX_RECORDS:]

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[LimitOverride]:
        return list(self._records)

    def _save(self):
        self.persistence.save(STORE_KEY, [r.to_dict() for r in self._records])

    def _find_same_location(self, lat: float, lon: float, address: str) -> int:
        """
        Index of the first record (store order) that counts as the same
        location, or -1. First match wins, not the closest one.
        """
        road = road_name(address)
        for i, record in enumerate(self._records):
            dist = haversine_km(record.latitude, record.longitude, lat, lon)
            if dist < self.SAME_SPOT_KM:
                return i
            if road and road in record.address and dist < self.SAME_ROAD_KM:
                return i
        return -1

    def upsert(self, lat: float, lon: float, limit=MISSING, address: str = "") -> LimitOverride:
        """
        Remember ``limit`` at (lat, lon). ``limit=None`` marks the spot as
        known-but-unresolved; leaving ``limit`` out keeps whatever an
        existing record already holds.
        """
        now = self.clock()
        idx = self._find_same_location(lat, lon, address)

        if idx != -1:
            record = self._records.pop(idx)
            if limit is not MISSING:
                record.limit = limit
            record.latitude = lat
            record.longitude = lon
            record.address = address
            record.last_updated = now
            logger.info(f"[STORE] Updated override #{idx} -> {record.limit} at ({lat:.6f}, {lon:.6f})")
        else:
            record = LimitOverride(
                latitude=lat,
                longitude=lon,
                limit=None if limit is MISSING else limit,
                address=address,
                last_updated=now,
            )
            logger.info(f"[STORE] New override {record.limit} at ({lat:.6f}, {lon:.6f})")

        self._records.insert(0, record)

        if len(self._records) > self.MAX_RECORDS:
            evicted = len(self._records) - self.MAX_RECORDS
            del self._records[self.MAX_RECORDS:]
            logger.debug(f"[STORE] Evicted {evicted} oldest override(s)")

        self._save()
        return record

    def lookup(self, lat: float, lon: float):
        """Limit (int or None) of the first record within the lookup box, else MISSING."""
        for record in self._records:
            if (abs(record.latitude - lat) < self.LOOKUP_BOX_DEG
                    and abs(record.longitude - lon) < self.LOOKUP_BOX_DEG):
                return record.limit
        return MISSING

    def has_limit(self, lat: float, lon: float) -> bool:
        return isinstance(self.lookup(lat, lon), int)

    def get(self, index: int) -> LimitOverride:
        return self._records[index]

    def set_limit(self, index: int, limit: Optional[int]):
        # quick-set from the review list, position in the store is kept
        self._records[index].limit = limit
        self._save()

    def remove(self, index: int) -> LimitOverride:
        record = self._records.pop(index)
        self._save()
        return record

    def clear_all(self):
        self._records.clear()
        self._save()
        logger.info("[STORE] Cleared all overrides")
