#
# trip.py
# distance / duration / max speed of a monitoring session,
# the bounded trip history and GPX export
#
from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from lxml import etree

from common.models import GeoSample, TripRecord
from common.persistence import Persistence, load_records
from common.utils import haversine_km

logger = logging.getLogger(__name__)

HISTORY_KEY = "trip_records"
GPX_NS = "http://www.topografix.com/GPX/1/1"


def _q(tag: str) -> str:
    return f"{{{GPX_NS}}}{tag}"


class TripAccumulator:
    # GPS jitter and teleport filters (km)
    MIN_STEP_KM = 0.0005
    MAX_STEP_KM = 0.2
    MIN_MOVING_KMH = 2
    # path simplification by distance, not by time
    PATH_STEP_KM = 0.01

    # trips that are both this short and this near are not recorded
    MIN_DURATION_S = 10
    MIN_DISTANCE_KM = 0.1

    def __init__(self, start_time: float):
        self.start_time = start_time
        self.distance_km = 0.0
        self.max_speed_kmh = 0.0
        self.path: List[Tuple[float, float]] = []
        self._last: Optional[Tuple[float, float]] = None

    def add(self, sample: GeoSample):
        lat, lon = sample.latitude, sample.longitude
        speed = sample.speed_kmh

        if self._last is None:
            self.path.append((lat, lon))
        else:
            dist = haversine_km(self._last[0], self._last[1], lat, lon)
            if speed > self.MIN_MOVING_KMH and self.MIN_STEP_KM < dist < self.MAX_STEP_KM:
                self.distance_km += dist
            last_lat, last_lon = self.path[-1]
            if haversine_km(last_lat, last_lon, lat, lon) > self.PATH_STEP_KM:
                self.path.append((lat, lon))

        if speed > self.max_speed_kmh:
            self.max_speed_kmh = speed
        self._last = (lat, lon)

    def is_trivial(self, duration_s: float) -> bool:
        return duration_s < self.MIN_DURATION_S and self.distance_km < self.MIN_DISTANCE_KM

    def finish(self, end_time: float) -> Optional[TripRecord]:
        duration_s = max(0.0, end_time - self.start_time)
        if self.is_trivial(duration_s):
            logger.info(f"[TRIP] Discarded trivial trip ({duration_s:.0f}s, {self.distance_km:.3f} km)")
            return None

        hours = duration_s / 3600
        avg = self.distance_km / hours if hours > 0 else 0.0
        return TripRecord(
            start_time=self.start_time,
            duration_s=duration_s,
            distance_km=self.distance_km,
            max_speed_kmh=self.max_speed_kmh,
            avg_speed_kmh=avg,
            path=list(self.path),
        )


class TripHistory:
    MAX_RECORDS = 20

    def __init__(self, persistence: Persistence):
        self.persistence = persistence
        self._records: List[TripRecord] = load_records(
            persistence, HISTORY_KEY, TripRecord.from_dict
        )[:self.MAX_RECORDS]

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[TripRecord]:
        return list(self._records)

    def _save(self):
        self.persistence.save(HISTORY_KEY, [r.to_dict() for r in self._records])

    def add(self, record: TripRecord):
        self._records.insert(0, record)
        del self._records[self.MAX_RECORDS:]
        self._save()
        logger.info(
            f"[TRIP] Recorded {record.distance_km:.1f} km in {record.duration_s / 60:.1f} min, "
            f"max {record.max_speed_kmh:.0f} km/h"
        )

    def remove(self, index: int) -> TripRecord:
        record = self._records.pop(index)
        self._save()
        return record

    def clear(self):
        self._records.clear()
        self._save()


def export_gpx(record: TripRecord, creator: str = "SpeedTrap") -> str:
    """GPX 1.1 document with one track point per path point."""
    if not record.path:
        raise ValueError("Trip has no track data")

    gpx = etree.Element(_q("gpx"), nsmap={None: GPX_NS}, version="1.1", creator=creator)
    trk = etree.SubElement(gpx, _q("trk"))
    name = etree.SubElement(trk, _q("name"))
    started = datetime.fromtimestamp(record.start_time).strftime("%Y-%m-%d %H:%M:%S")
    name.text = f"Trip on {started}"
    seg = etree.SubElement(trk, _q("trkseg"))
    for lat, lon in record.path:
        seg.append(etree.Element(_q("trkpt"), lat=str(lat), lon=str(lon)))

    return etree.tostring(gpx, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")


def gpx_filename(record: TripRecord) -> str:
    return datetime.fromtimestamp(record.start_time).strftime("trip_%Y_%m_%d_%H_%M_%S.gpx")
