#
# geocoder.py
# human readable "<suburb> <road>" labels for a fix
#
from __future__ import annotations
import logging
from typing import Optional

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

logger = logging.getLogger(__name__)


def format_address(address: dict) -> str:
    road = address.get("road") or ""
    suburb = address.get("suburb") or address.get("city_district") or ""
    city = address.get("city") or ""
    label = f"{suburb} {road}" if road else f"{city} {suburb}"
    return label.strip()


class ReverseGeocoder:
    def __init__(self, user_agent: str = "SpeedTrap/1.0", language: str = "zh-TW",
                 timeout_s: float = 5.0, geolocator=None):
        self.language = language
        self.geolocator = geolocator or Nominatim(user_agent=user_agent, timeout=timeout_s)

    def lookup(self, lat: float, lon: float) -> Optional[str]:
        # display only, failures never reach the caller
        try:
            location = self.geolocator.reverse(
                (lat, lon),
                zoom=18,
                addressdetails=True,
                language=self.language,
            )
        except (GeopyError, ValueError) as e:
            logger.debug(f"Reverse geocoding failed for ({lat:.6f}, {lon:.6f}): {e}")
            return None

        if location is None:
            return None
        address = (location.raw or {}).get("address")
        if not isinstance(address, dict):
            return None
        return format_address(address) or None
