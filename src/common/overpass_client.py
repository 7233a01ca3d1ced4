#
# overpass_client.py
# speed limits of the ways around a fix, from the Overpass API
# mirrors are tried one after another, never in parallel
#
from __future__ import annotations
import json
import logging
import re
import time
from typing import Callable, List, Optional, Sequence

import requests

from common.config import DEFAULT_OVERPASS_MIRRORS
from common.errors import MirrorError

logger = logging.getLogger(__name__)

SEARCH_RADIUS_M = 20
# above this speed the fastest nearby way is assumed to be the one we are on
HIGHWAY_SPEED_KMH = 60
USER_AGENT = "SpeedTrap/1.0"

_LEADING_INT = re.compile(r"^\s*(\d+)")


def build_query(lat: float, lon: float, radius_m: int = SEARCH_RADIUS_M) -> str:
    return f"[out:json];way[maxspeed](around:{radius_m},{lat},{lon});out tags;"


def parse_limits(data) -> List[int]:
    """
    Numeric ``maxspeed`` tags of the returned ways, in response order.
    Values such as "50 mph" keep their leading number; "none" or
    "signals" are dropped.
    """
    if not isinstance(data, dict):
        raise ValueError("Overpass payload is not an object")
    elements = data.get("elements")
    if elements is None:
        return []
    if not isinstance(elements, list):
        raise ValueError("Overpass 'elements' is not a list")

    limits = []
    for element in elements:
        tags = element.get("tags", {}) if isinstance(element, dict) else {}
        raw = tags.get("maxspeed") if isinstance(tags, dict) else None
        if raw is None:
            continue
        match = _LEADING_INT.match(str(raw))
        if match:
            limits.append(int(match.group(1)))
    return limits


def select_limit(limits: Sequence[int], speed_kmh: float) -> Optional[int]:
    # highway speed: take the highest class road nearby, not the ramp
    # otherwise the first way reported
    if not limits:
        return None
    best = max(limits) if speed_kmh > HIGHWAY_SPEED_KMH else limits[0]
    if not best:
        return None
    return best


class OverpassClient:
    def __init__(
        self,
        mirrors: Sequence[str] = DEFAULT_OVERPASS_MIRRORS,
        timeout_s: float = 3.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mirrors = list(mirrors)
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.clock = clock

    def _read_body(self, response, mirror: str, deadline: float) -> bytes:
        # the whole attempt must end by the deadline, not just each read
        body = bytearray()
        for chunk in response.iter_content(chunk_size=1024):
            if self.clock() > deadline:
                raise MirrorError(f"No complete answer within {self.timeout_s}s", mirror=mirror)
            body.extend(chunk)
        if self.clock() > deadline:
            raise MirrorError(f"No complete answer within {self.timeout_s}s", mirror=mirror)
        return bytes(body)

    def _query_mirror(self, mirror: str, query: str) -> List[int]:
        deadline = self.clock() + self.timeout_s
        try:
            response = self.session.get(
                mirror,
                params={"data": query},
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout_s,
                stream=True,
            )
            try:
                response.raise_for_status()
                body = self._read_body(response, mirror, deadline)
            finally:
                response.close()
            return parse_limits(json.loads(body))
        except requests.Timeout as e:
            raise MirrorError(f"Timed out after {self.timeout_s}s", mirror=mirror) from e
        except requests.RequestException as e:
            raise MirrorError(f"Request failed: {e}", mirror=mirror) from e
        except ValueError as e:
            # covers JSONDecodeError as well
            raise MirrorError(f"Malformed payload: {e}", mirror=mirror) from e

    def get_speed_limit(self, lat: float, lon: float, speed_kmh: float) -> Optional[int]:
        """
        Consult the mirrors in priority order and return the first usable
        limit, or None when every mirror failed or had nothing usable.
        """
        query = build_query(lat, lon)
        for mirror in self.mirrors:
            try:
                limits = self._query_mirror(mirror, query)
            except MirrorError as e:
                logger.warning(f"[LIMIT] Mirror {e.mirror} failed ({e}), switching server...")
                continue

            limit = select_limit(limits, speed_kmh)
            if limit is not None:
                logger.info(f"[LIMIT] {mirror} -> {limit} km/h (candidates {limits})")
                return limit
            logger.info(f"[LIMIT] {mirror} returned no usable limit, switching server...")

        return None
