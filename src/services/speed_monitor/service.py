#
# Speed monitor
# compares the car's speed against the limit that applies where it is
# and raises tiered alerts
#
from __future__ import annotations
import json
import logging
import sys
import time
from pathlib import Path

# add parent dir
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from common.logging_config import setup_logging
from common.config import load_config
from common.mqtt_client import MQTTClient
from common.models import GeoSample
from common.alert_engine import AlertEngine
from common.corrections import CorrectionPublisher, UploadHistory
from common.errors import PublishError, SensorUnavailable
from common.geocoder import ReverseGeocoder
from common.limit_resolver import LimitResolver
from common.monitor import SpeedMonitor
from common.notes_client import NotesClient
from common.overpass_client import OverpassClient
from common.override_store import OverrideStore
from common.persistence import JsonFilePersistence
from common.trip import TripHistory, export_gpx, gpx_filename

logger = logging.getLogger(__name__)


def _index(cmd, default=None) -> int:
    # list positions from the UI, counted from the newest entry
    raw = cmd["index"] if default is None else cmd.get("index", default)
    index = int(raw)
    if index < 0:
        raise IndexError(f"index {index} out of range")
    return index


class MqttNotifier:
    """Audible and spoken alerts are played by whoever listens on alerts/speed."""

    def __init__(self, mqtt: MQTTClient, topic: str = "alerts/speed"):
        self.mqtt = mqtt
        self.topic = topic

    def beep(self):
        self.mqtt.publish(self.topic, json.dumps({
            "alert_type": "speed_alert",
            "action": "beep",
            "timestamp": time.time(),
        }))

    def speak(self, text: str):
        self.mqtt.publish(self.topic, json.dumps({
            "alert_type": "speed_alert",
            "action": "speak",
            "text": text,
            "timestamp": time.time(),
        }))


class SpeedMonitorService:
    def __init__(self, config):
        self.config = config

        self.mqtt = MQTTClient(
            host=config.broker_host,
            port=config.broker_port,
            username=config.broker_user,
            password=config.broker_password,
            client_id="speed-monitor",
        )

        persistence = JsonFilePersistence(config.data_dir)
        self.exports_dir = Path(config.data_dir) / "exports"

        store = OverrideStore(persistence)
        resolver = LimitResolver(
            store,
            OverpassClient(config.overpass_mirrors, timeout_s=config.overpass_timeout_s),
            default_limit_kmh=config.default_limit_kmh,
            auto_log=config.auto_log,
        )
        self.monitor = SpeedMonitor(
            resolver,
            AlertEngine(MqttNotifier(self.mqtt), voice_text=config.voice_text),
            TripHistory(persistence),
            geocoder=ReverseGeocoder(config.nominatim_user_agent, config.geocoder_language),
            auto_limit=config.auto_limit,
        )
        self.publisher = CorrectionPublisher(store, UploadHistory(persistence), NotesClient())

        self.commands = {
            "start": self._cmd_start,
            "stop": self._cmd_stop,
            "signal_lost": lambda cmd: self.monitor.on_signal_lost(),
            "set_limit": lambda cmd: self.monitor.set_manual_limit(int(cmd["limit"])),
            "correct_limit": lambda cmd: self.monitor.correct_current_limit(int(cmd["limit"])),
            "mark_missing": lambda cmd: self.monitor.mark_current_missing(),
            "set_report_limit": lambda cmd: store.set_limit(_index(cmd), int(cmd["limit"])),
            "delete_report": lambda cmd: store.remove(_index(cmd)),
            "clear_reports": lambda cmd: store.clear_all(),
            "publish_correction": self._cmd_publish,
            "delete_trip": lambda cmd: self.monitor.history.remove(_index(cmd)),
            "clear_trips": lambda cmd: self.monitor.history.clear(),
            "export_gpx": self._cmd_export_gpx,
        }

    def _publish_status(self):
        self.mqtt.publish(self.config.status_topic, json.dumps(self.monitor.status().to_dict()), qos=0)

    def _on_car_update(self, payload: str):
        try:
            sample = GeoSample.from_dict(json.loads(payload))
        except Exception as e:
            logger.error(f"Error processing car update: {e}")
            return

        status = self.monitor.on_sample(sample)
        logger.debug(
            f"[MONITOR] {status.speed_kmh:.1f} km/h, limit {status.limit.value_kmh} "
            f"({status.limit.source.value}) -> {status.level.value}"
        )
        self._publish_status()

    def _on_command(self, payload: str):
        try:
            cmd = json.loads(payload)
            handler = self.commands[cmd["command"]]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error(f"Invalid command {payload[:200]!r}: {e}")
            return

        try:
            handler(cmd)
        except SensorUnavailable as e:
            logger.warning(f"Command {cmd['command']} needs a position fix: {e}")
        except PublishError as e:
            self.mqtt.publish("alerts/publish", json.dumps({
                "alert_type": "publish_failed",
                "error": str(e),
                "timestamp": time.time(),
            }))
            logger.error(f"[STORE] {e}")
        except (KeyError, IndexError, ValueError, TypeError) as e:
            logger.error(f"Command {cmd['command']} rejected: {e}")
            return

        self._publish_status()

    def _cmd_start(self, cmd):
        self.monitor.start()

    def _cmd_stop(self, cmd):
        record = self.monitor.stop()
        if record is not None:
            self.mqtt.publish("trips/finished", json.dumps(record.to_dict()))

    def _cmd_publish(self, cmd):
        record = self.publisher.publish(_index(cmd))
        self.mqtt.publish("alerts/publish", json.dumps({
            "alert_type": "publish_ok",
            "note_id": record.note_id,
            "timestamp": time.time(),
        }))

    def _cmd_export_gpx(self, cmd):
        record = self.monitor.history.records()[_index(cmd, default=0)]
        self.exports_dir.mkdir(parents=True, exist_ok=True)
        path = self.exports_dir / gpx_filename(record)
        path.write_text(export_gpx(record), encoding="utf-8")
        logger.info(f"[TRIP] Exported {path}")

    def run(self):
        logger.info("Starting Speed Monitor...")
        self.mqtt.connect()
        self.mqtt.subscribe(self.config.car_updates_topic, self._on_car_update)
        self.mqtt.subscribe(self.config.commands_topic, self._on_command)
        try:
            self.mqtt.loop_forever()
        finally:
            self.monitor.stop()
            self.monitor.shutdown()
            self.mqtt.disconnect()


def main():
    setup_logging("speed-monitor")
    config = load_config()
    service = SpeedMonitorService(config)
    service.run()


if __name__ == "__main__":
    main()
