from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# load environment variables from .env file
load_dotenv()

DEFAULT_OVERPASS_MIRRORS = [
    "https://overpass-api.de/api/interpreter",
    "https://maps.mail.ru/osm/tools/overpass/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
]

@dataclass
class AppConfig:
    # MQTT Broker
    broker_host: str
    broker_port: int
    broker_user: Optional[str]
    broker_password: Optional[str]

    # Topics
    car_updates_topic: str
    commands_topic: str
    status_topic: str

    # Limit resolution
    overpass_mirrors: List[str] = field(default_factory=lambda: list(DEFAULT_OVERPASS_MIRRORS))
    overpass_timeout_s: float = 3.0
    default_limit_kmh: int = 50
    auto_limit: bool = True
    # mark unresolved spots in the override store for later review
    auto_log: bool = False

    # Alerts
    voice_text: str = "Slow down"

    # Storage / geocoding
    data_dir: str = "./data"
    nominatim_user_agent: str = "SpeedTrap/1.0"
    geocoder_language: str = "zh-TW"


def _get_env(name: str, default: str | None = None, required: bool = False) -> str | None:
    value = os.getenv(name, default)
    if required and (value is None or value == ""):
        raise RuntimeError(f"Environment variable {name} is required but not set.")
    return value


def _get_bool(name: str, default: bool) -> bool:
    value = _get_env(name, default=None)
    if value is None or value == "":
        return default
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise RuntimeError(f"Invalid {name} value: {value!r}")


def _get_number(name: str, default: str, cast):
    raw = _get_env(name, default=default)
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise RuntimeError(f"Invalid {name} value: {raw!r}")


def load_config() -> AppConfig:
    # MQTT basic config
    broker_host = _get_env("MQTT_BROKER_HOST", required=True)
    broker_port = _get_number("MQTT_BROKER_PORT", "1883", int)

    broker_user = _get_env("MQTT_BROKER_USER", default=None)
    broker_password = _get_env("MQTT_BROKER_PASSWORD", default=None)

    # position fixes in, commands in, status out
    car_updates_topic = _get_env("MQTT_CAR_UPDATES_TOPIC", default="cars/updates")
    commands_topic = _get_env("MQTT_COMMANDS_TOPIC", default="speed/commands")
    status_topic = _get_env("MQTT_STATUS_TOPIC", default="speed/status")

    mirrors_raw = _get_env("OVERPASS_MIRRORS", default="")
    mirrors = [m.strip() for m in mirrors_raw.split(",") if m.strip()]

    return AppConfig(
        # MQTT
        broker_host=broker_host,
        broker_port=broker_port,
        broker_user=broker_user,
        broker_password=broker_password,

        # Topics
        car_updates_topic=car_updates_topic,
        commands_topic=commands_topic,
        status_topic=status_topic,

        # Limit resolution
        overpass_mirrors=mirrors or list(DEFAULT_OVERPASS_MIRRORS),
        overpass_timeout_s=_get_number("OVERPASS_TIMEOUT_S", "3", float),
        default_limit_kmh=_get_number("DEFAULT_LIMIT_KMH", "50", int),
        auto_limit=_get_bool("AUTO_LIMIT", True),
        auto_log=_get_bool("AUTO_LOG", False),

        # Alerts
        voice_text=_get_env("ALERT_VOICE_TEXT", default="Slow down"),

        # Storage / geocoding
        data_dir=_get_env("DATA_DIR", default="./data"),
        nominatim_user_agent=_get_env("NOMINATIM_USER_AGENT", default="SpeedTrap/1.0"),
        geocoder_language=_get_env("GEOCODER_LANGUAGE", default="zh-TW"),
    )
