"""
Sensor recorder entry point.

Connects to the distance sensor, records every reading to the log file and
offers a small console for checking on it.
"""

import argparse
import asyncio

from ble_manager import STATUS_WAITING, SensorPipeline
from ble_utils import discover_sensors
from config import SensorConfig
from logging_setup import get_logger, setup_logging
from notification_handler import load_log_entries

logger = get_logger(__name__)

COMMANDS = """Commands:
  - 'status'  connection and recording state
  - 'data'    latest reading
  - 'history' recent readings
  - 'record'  start recording
  - 'stop'    stop recording
  - 'log'     last lines of the log file
  - 'quit'    exit
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Record distance sensor readings over BLE")
    parser.add_argument("--config", help="JSON config file (default: $SENSOR_CONFIG)")
    parser.add_argument("--data-dir", help="Directory holding the log file")
    parser.add_argument("--no-timestamps", action="store_true", help="Persist payloads without timeStamp")
    parser.add_argument("--gate-recording", action="store_true",
                        help="Only persist while recording is started")
    parser.add_argument("--scan", action="store_true", help="List nearby sensors and exit")
    parser.add_argument("--headless", action="store_true", help="No console, run until Ctrl+C")
    parser.add_argument("--log-file", help="Also write service logs to this file")
    parser.add_argument("--save-config", metavar="PATH",
                        help="Write the effective configuration to PATH and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def load_config(args) -> SensorConfig:
    """Config file and environment first, then command line flags."""
    config = SensorConfig.load(args.config)
    if args.data_dir:
        config.data_dir = args.data_dir
    if args.no_timestamps:
        config.timestamping = False
    if args.gate_recording:
        config.gate_on_recording = True
    return config


def print_reading(reading):
    print(f"  Distance: {reading.distance} cm")
    print(f"  Flux: {reading.flux}")
    print(f"  Temperature: {reading.temperature} °C")
    if reading.timestamp is not None:
        print(f"  Time Stamp: {reading.timestamp}")


async def console(pipeline: SensorPipeline):
    """Interactive command loop; returns when the user quits."""
    print(COMMANDS)
    recorder = pipeline.recorder

    while True:
        try:
            command = await asyncio.to_thread(input, "Enter command: ")
        except (EOFError, KeyboardInterrupt):
            print("\nExiting...")
            break

        command = command.strip().lower()
        if command == "quit":
            break

        elif command == "status":
            status = pipeline.status()
            print(f"\n[STATUS] {status['status_text']} ({status['phase']})")
            print(f"  Recording: {'on' if status['recording'] else 'off'}")
            print(f"  Log file: {status['log_path']}\n")

        elif command == "data":
            print("\n[SENSOR DATA]")
            if recorder.latest_reading:
                print_reading(recorder.latest_reading)
            else:
                print(f"  {STATUS_WAITING}")
            print()

        elif command == "history":
            print("\n[READING HISTORY]")
            history = recorder.get_history(limit=20)
            if history:
                for reading in history:
                    print(f"  {reading.to_json()}")
            else:
                print("  No readings received yet")
            print()

        elif command == "record":
            recorder.start_recording()

        elif command == "stop":
            recorder.stop_recording()

        elif command == "log":
            for line in load_log_entries(recorder.log_path, limit=10):
                print(f"  {line}")

        elif command:
            print(f"Unknown command: {command}")


async def run(config: SensorConfig, headless: bool = False):
    pipeline = SensorPipeline(config)
    logger.info("[RECORDER] Writing readings to %s", config.log_path)
    service = asyncio.create_task(pipeline.run())

    if headless:
        await service
        return

    await console(pipeline)
    pipeline.stop()
    await service


async def scan(config: SensorConfig):
    sensors = await discover_sensors(timeout=config.scan_timeout, service_uuid=config.service_uuid)
    if not sensors:
        print("\nNo sensors found.")
        return
    print("\nDiscovered sensors:")
    for sensor in sensors:
        print(f"  - {sensor['name']}: {sensor['address']} (RSSI {sensor['rssi']})")


def cli(argv=None):
    args = build_parser().parse_args(argv)
    # timestamps would clutter the interactive prompt
    setup_logging(verbose=args.verbose, log_file=args.log_file,
                  simple_format=not (args.headless or args.scan))
    config = load_config(args)

    if args.save_config:
        config.save(args.save_config)
        return

    try:
        if args.scan:
            asyncio.run(scan(config))
        else:
            asyncio.run(run(config, headless=args.headless))
    except KeyboardInterrupt:
        print("\nInterrupted")


if __name__ == "__main__":
    cli()
