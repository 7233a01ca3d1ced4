#
# limit_resolver.py
# decides the limit that applies at a fix:
# local override -> Overpass mirrors -> fixed default
#
from __future__ import annotations
import logging
from typing import Optional

from common.models import GeoSample, LimitSource, ResolvedLimit
from common.overpass_client import OverpassClient
from common.override_store import MISSING, OverrideStore

logger = logging.getLogger(__name__)


class LimitResolver:
    RESOLVE_INTERVAL_S = 15
    # below this, lookups are suppressed to avoid false triggers while stationary
    MIN_SPEED_KMH = 10
    DEFAULT_LIMIT_KMH = 50

    def __init__(
        self,
        store: OverrideStore,
        overpass: OverpassClient,
        default_limit_kmh: int = DEFAULT_LIMIT_KMH,
        auto_log: bool = False,
    ):
        self.store = store
        self.overpass = overpass
        self.default_limit_kmh = default_limit_kmh
        self.auto_log = auto_log

        self._last_pass_at: Optional[float] = None

    def should_resolve(self, speed_kmh: float, now: float) -> bool:
        """
        Gate for a new resolution pass. The first fix always passes,
        later ones need the interval to have elapsed and the car moving.
        Opening the gate starts the next interval.
        """
        if self._last_pass_at is not None:
            if now - self._last_pass_at < self.RESOLVE_INTERVAL_S:
                return False
            if speed_kmh <= self.MIN_SPEED_KMH:
                return False
        self._last_pass_at = now
        return True

    def resolve_local(self, sample: GeoSample) -> Optional[ResolvedLimit]:
        saved = self.store.lookup(sample.latitude, sample.longitude)
        if saved is MISSING:
            return None
        if saved is None:
            # marked for review, do not ask the remote service
            return ResolvedLimit(None, LimitSource.UNKNOWN)
        return ResolvedLimit(saved, LimitSource.LOCAL_OVERRIDE)

    def resolve_remote(self, sample: GeoSample) -> Optional[ResolvedLimit]:
        # the only step that touches the network
        limit = self.overpass.get_speed_limit(
            sample.latitude, sample.longitude, sample.speed_kmh
        )
        if limit is None:
            return None
        return ResolvedLimit(limit, LimitSource.REMOTE_AUTO)

    def fallback(self, sample: GeoSample, address: str = "") -> ResolvedLimit:
        if self.auto_log:
            self.store.upsert(sample.latitude, sample.longitude, None, address)
            logger.info(
                f"[LIMIT] No limit at ({sample.latitude:.6f}, {sample.longitude:.6f}), marked for review"
            )
        return ResolvedLimit(self.default_limit_kmh, LimitSource.DEFAULT)

    def resolve(self, sample: GeoSample, address: str = "") -> ResolvedLimit:
        resolved = self.resolve_local(sample)
        if resolved is None:
            resolved = self.resolve_remote(sample)
        if resolved is None:
            resolved = self.fallback(sample, address)
        logger.info(f"[LIMIT] Resolved {resolved.value_kmh} km/h ({resolved.source.value})")
        return resolved
