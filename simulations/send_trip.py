#!/usr/bin/env python3
"""
Replay a straight-line drive into the speed monitor.

Publishes GeoSamples between two coordinates at a constant speed to the
car updates topic, optionally starting and stopping monitoring around it.
"""
import argparse
import json
import sys
import time
from pathlib import Path

import paho.mqtt.client as mqtt

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from common.config import load_config
from common.geopy_utils import simulate_drive


def validate_coordinates(lat: float, lon: float) -> None:
    if not (-90 <= lat <= 90):
        sys.exit("Latitude must be between -90 and 90.")
    if not (-180 <= lon <= 180):
        sys.exit("Longitude must be between -180 and 180.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a simulated drive to the speed monitor.")
    parser.add_argument("start_lat", type=float)
    parser.add_argument("start_lon", type=float)
    parser.add_argument("end_lat", type=float)
    parser.add_argument("end_lon", type=float)
    parser.add_argument("--speed-kmh", type=float, default=60.0)
    parser.add_argument("--interval", type=float, default=1.0, help="seconds between fixes")
    parser.add_argument("--monitor", action="store_true", help="send start/stop commands around the drive")
    args = parser.parse_args()

    validate_coordinates(args.start_lat, args.start_lon)
    validate_coordinates(args.end_lat, args.end_lon)

    config = load_config()
    samples = simulate_drive(
        args.start_lat, args.start_lon, args.end_lat, args.end_lon,
        args.speed_kmh, interval_s=args.interval, start_time=time.time(),
    )

    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id="speed-trip-sim")
    if config.broker_user and config.broker_password:
        client.username_pw_set(config.broker_user, config.broker_password)

    print(f"Connecting to {config.broker_host}:{config.broker_port}")
    client.connect(config.broker_host, config.broker_port, 60)
    client.loop_start()

    if args.monitor:
        client.publish(config.commands_topic, json.dumps({"command": "start"}), qos=1)

    for sample in samples:
        sample.timestamp = time.time()
        client.publish(config.car_updates_topic, sample.to_json(), qos=1)
        print(f"Sent ({sample.latitude:.6f}, {sample.longitude:.6f}) at {args.speed_kmh:.0f} km/h")
        time.sleep(args.interval)

    if args.monitor:
        info = client.publish(config.commands_topic, json.dumps({"command": "stop"}), qos=1)
        info.wait_for_publish(timeout=5)

    client.loop_stop()
    client.disconnect()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(1)
