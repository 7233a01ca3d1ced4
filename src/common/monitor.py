#
# monitor.py
# per-fix pipeline: limit resolution, alerting and trip accumulation
#
# every public method is called from a single control flow (the MQTT
# network loop in the service). Only the remote limit query and the
# address lookup run on worker threads, their results are applied back
# here on the next fix.
#
from __future__ import annotations
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from common.alert_engine import AlertEngine
from common.errors import SensorUnavailable
from common.geocoder import ReverseGeocoder
from common.limit_resolver import LimitResolver
from common.models import AlertLevel, GeoSample, LimitSource, ResolvedLimit, TripRecord
from common.trip import TripAccumulator, TripHistory
from common.utils import compass_direction

logger = logging.getLogger(__name__)


@dataclass
class MonitorStatus:
    monitoring: bool
    degraded: bool
    speed_kmh: float
    limit: ResolvedLimit
    level: AlertLevel
    warning_kmh: float
    danger_kmh: float
    address: str = ""
    heading: Optional[str] = None
    altitude_m: Optional[float] = None
    trip_distance_km: Optional[float] = None

    def to_dict(self) -> Dict:
        return {
            "monitoring": self.monitoring,
            "degraded": self.degraded,
            "speed_kmh": round(self.speed_kmh, 1),
            "limit_kmh": self.limit.value_kmh,
            "limit_source": self.limit.source.value,
            "level": self.level.value,
            "warning_kmh": self.warning_kmh,
            "danger_kmh": self.danger_kmh,
            "address": self.address,
            "heading": self.heading,
            "altitude_m": self.altitude_m,
            "trip_distance_km": self.trip_distance_km,
            "timestamp": time.time(),
        }


class SpeedMonitor:
    ADDRESS_REFRESH_S = 15

    def __init__(
        self,
        resolver: LimitResolver,
        alerts: AlertEngine,
        history: TripHistory,
        geocoder: Optional[ReverseGeocoder] = None,
        executor: Optional[Executor] = None,
        auto_limit: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.resolver = resolver
        self.alerts = alerts
        self.history = history
        self.geocoder = geocoder
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="speed-monitor")
        self.auto_limit = auto_limit
        self.clock = clock

        self.limit = ResolvedLimit(resolver.default_limit_kmh, LimitSource.DEFAULT)
        self.monitoring = False
        self.degraded = False
        self.address = ""
        self.last_sample: Optional[GeoSample] = None
        self.trip: Optional[TripAccumulator] = None

        # at most one resolution pass in flight
        self._pending: Optional[Tuple[GeoSample, Future]] = None
        self._address_future: Optional[Future] = None
        self._last_address_at: Optional[float] = None

    @property
    def store(self):
        return self.resolver.store

    @property
    def resolution_pending(self) -> bool:
        return self._pending is not None

    # session lifecycle

    def start(self):
        if self.monitoring:
            return
        self.trip = TripAccumulator(self.clock())
        self.alerts.activate()
        self.monitoring = True
        logger.info("[MONITOR] Monitoring started")

    def stop(self) -> Optional[TripRecord]:
        if not self.monitoring:
            return None
        record = self.trip.finish(self.clock()) if self.trip else None
        if record is not None:
            self.history.add(record)
        self.trip = None
        self.alerts.deactivate()
        self.monitoring = False
        logger.info("[MONITOR] Monitoring stopped")
        return record

    def shutdown(self):
        self.executor.shutdown(wait=False)

    # fix handling

    def on_sample(self, sample: GeoSample) -> MonitorStatus:
        self.drain()
        now = self.clock()
        speed = sample.speed_kmh

        if self.degraded:
            logger.info("[MONITOR] Position signal recovered")
        self.degraded = False
        self.last_sample = sample

        if self.monitoring and self.trip is not None:
            self.trip.add(sample)

        if self.monitoring and self.auto_limit and self.resolver.should_resolve(speed, now):
            self._start_resolution(sample)

        if self.geocoder is not None and (
            self._last_address_at is None or now - self._last_address_at >= self.ADDRESS_REFRESH_S
        ):
            self._refresh_address(sample)
            self._last_address_at = now

        self.alerts.evaluate(speed, self.limit.value_kmh, now)
        return self.status()

    def on_signal_lost(self) -> MonitorStatus:
        # last known state is kept, only the status degrades
        if not self.degraded:
            logger.warning("[MONITOR] Position signal lost")
        self.degraded = True
        return self.status()

    def _start_resolution(self, sample: GeoSample):
        if self._pending is not None:
            logger.debug("[LIMIT] Resolution already in flight, trigger dropped")
            return

        local = self.resolver.resolve_local(sample)
        if local is not None:
            self._apply_limit(local)
            return

        future = self.executor.submit(self.resolver.resolve_remote, sample)
        self._pending = (sample, future)

    def _refresh_address(self, sample: GeoSample):
        if self._address_future is not None and not self._address_future.done():
            return
        self._address_future = self.executor.submit(
            self.geocoder.lookup, sample.latitude, sample.longitude
        )

    def drain(self, wait_for_pending: bool = False):
        """Apply finished background work; optionally block until it finishes."""
        if wait_for_pending:
            pending = [f for f in (self._address_future,) if f is not None]
            if self._pending is not None:
                pending.append(self._pending[1])
            if pending:
                wait(pending)

        if self._address_future is not None and self._address_future.done():
            future, self._address_future = self._address_future, None
            try:
                address = future.result()
            except Exception as e:
                logger.error(f"Address lookup crashed: {e}")
                address = None
            if address:
                self.address = address

        if self._pending is not None and self._pending[1].done():
            (sample, future), self._pending = self._pending, None
            try:
                resolved = future.result()
            except Exception as e:
                logger.error(f"[LIMIT] Remote resolution crashed: {e}")
                resolved = None
            if resolved is None:
                resolved = self.resolver.fallback(sample, self.address)
            self._apply_limit(resolved)

    def _apply_limit(self, resolved: ResolvedLimit):
        if resolved != self.limit:
            logger.info(f"[LIMIT] Now {resolved.value_kmh} km/h ({resolved.source.value})")
        self.limit = resolved

    # driver actions

    def _require_fix(self) -> GeoSample:
        if self.last_sample is None:
            raise SensorUnavailable("No position fix yet")
        return self.last_sample

    def set_manual_limit(self, limit_kmh: int):
        self._apply_limit(ResolvedLimit(limit_kmh, LimitSource.MANUAL))

    def correct_current_limit(self, limit_kmh: int):
        """Remember ``limit_kmh`` here; it is applied the next time we pass by."""
        sample = self._require_fix()
        self.store.upsert(sample.latitude, sample.longitude, limit_kmh, self.address)
        self._apply_limit(ResolvedLimit(limit_kmh, LimitSource.LOCAL_OVERRIDE))

    def mark_current_missing(self):
        sample = self._require_fix()
        self.store.upsert(sample.latitude, sample.longitude, None, self.address)

    def status(self) -> MonitorStatus:
        warning, danger = self.alerts.thresholds(self.limit.value_kmh)
        sample = self.last_sample
        heading = None
        if sample is not None and sample.heading_deg is not None:
            heading = f"{compass_direction(sample.heading_deg)} ({round(sample.heading_deg)}°)"
        return MonitorStatus(
            monitoring=self.monitoring,
            degraded=self.degraded,
            speed_kmh=sample.speed_kmh if sample is not None else 0.0,
            limit=self.limit,
            level=self.alerts.level,
            warning_kmh=warning,
            danger_kmh=danger,
            address=self.address,
            heading=heading,
            altitude_m=sample.altitude_m if sample is not None else None,
            trip_distance_km=round(self.trip.distance_km, 3) if self.trip is not None else None,
        )
