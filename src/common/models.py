# domain models shared by the store, resolver, alert engine and trips
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
import time
import json

from common.errors import PersistenceCorrupt


def _opt_float(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _epoch_or_zero(value) -> float:
    # older records carry a locale date string such as "2024/3/5 下午2:14:07"
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class GeoSample:
    # one position fix, any of the motion fields may be missing
    latitude: float
    longitude: float
    speed_mps: Optional[float] = None
    heading_deg: Optional[float] = None
    altitude_m: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def speed_kmh(self) -> float:
        # absent or negative speed reads as standing still
        if self.speed_mps is None or self.speed_mps < 0:
            return 0.0
        return self.speed_mps * 3.6

    def to_dict(self) -> Dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed_mps": self.speed_mps,
            "heading_deg": self.heading_deg,
            "altitude_m": self.altitude_m,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict) -> "GeoSample":
        speed_mps = _opt_float(data.get("speed_mps"))
        if speed_mps is None and data.get("speed_kmh") is not None:
            speed_mps = float(data["speed_kmh"]) / 3.6
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            speed_mps=speed_mps,
            heading_deg=_opt_float(data.get("heading_deg")),
            altitude_m=_opt_float(data.get("altitude_m")),
            timestamp=float(data.get("timestamp", time.time())),
        )


@dataclass
class LimitOverride:
    """A remembered speed limit; ``limit is None`` marks a spot for review."""
    latitude: float
    longitude: float
    limit: Optional[int]
    address: str = ""
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            "lat": self.latitude,
            "lon": self.longitude,
            "limit": self.limit,
            "address": self.address,
            "date": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LimitOverride":
        try:
            limit = data.get("limit")
            return cls(
                latitude=float(data["lat"]),
                longitude=float(data["lon"]),
                limit=None if limit is None else int(limit),
                address=str(data.get("address") or ""),
                last_updated=_epoch_or_zero(data.get("date", 0.0)),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceCorrupt(f"Malformed override record: {data!r}") from e


class LimitSource(str, Enum):
    LOCAL_OVERRIDE = "local_override"
    REMOTE_AUTO = "remote_auto"
    DEFAULT = "default"
    UNKNOWN = "unknown"
    MANUAL = "manual"


@dataclass(frozen=True)
class ResolvedLimit:
    value_kmh: Optional[int]
    source: LimitSource


class AlertLevel(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


@dataclass
class TripRecord:
    start_time: float
    duration_s: float
    distance_km: float
    max_speed_kmh: float
    avg_speed_kmh: float
    path: List[Tuple[float, float]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "start_time": self.start_time,
            "duration_s": self.duration_s,
            "distance_km": self.distance_km,
            "max_speed_kmh": self.max_speed_kmh,
            "avg_speed_kmh": self.avg_speed_kmh,
            "path": [[lat, lon] for lat, lon in self.path],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TripRecord":
        try:
            return cls(
                start_time=float(data["start_time"]),
                duration_s=float(data["duration_s"]),
                distance_km=float(data["distance_km"]),
                max_speed_kmh=float(data["max_speed_kmh"]),
                avg_speed_kmh=float(data["avg_speed_kmh"]),
                path=[(float(lat), float(lon)) for lat, lon in data.get("path", [])],
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceCorrupt(f"Malformed trip record: {data!r}") from e


@dataclass
class UploadRecord:
    # a correction that was filed as a map note
    override: LimitOverride
    note_id: int
    uploaded_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        data = self.override.to_dict()
        data["note_id"] = self.note_id
        data["upload_date"] = self.uploaded_at
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "UploadRecord":
        try:
            return cls(
                override=LimitOverride.from_dict(data),
                note_id=int(data["note_id"]),
                uploaded_at=float(data.get("upload_date", 0.0)),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceCorrupt(f"Malformed upload record: {data!r}") from e
