"""
Configuration for the sensor recorder.

Dataclass defaults, overridden by an optional JSON file and then by
SENSOR_* environment variables.
"""
import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from logging_setup import get_logger

logger = get_logger(__name__)

# Sensor GATT layout
SENSOR_SERVICE_UUID = "dca96e5a-fe28-4697-9c1a-d67181d8fa8b"
SENSOR_DATA_CHAR_UUID = "77eed7e7-4bf1-478d-a432-440428ed4acf"  # notify, JSON text

DEFAULT_LOG_FILE = "sensorData.txt"
DEFAULT_DATA_DIR = str(Path.home() / ".distance-sensor")

# env var -> config field
_ENV_OVERRIDES = {
    "SENSOR_SERVICE_UUID": "service_uuid",
    "SENSOR_CHARACTERISTIC_UUID": "characteristic_uuid",
    "SENSOR_SCAN_TIMEOUT": "scan_timeout",
    "SENSOR_DATA_DIR": "data_dir",
    "SENSOR_LOG_FILE": "log_file_name",
    "SENSOR_TIMESTAMPS": "timestamping",
    "SENSOR_GATE_RECORDING": "gate_on_recording",
    "SENSOR_API_HOST": "api_host",
    "SENSOR_API_PORT": "api_port",
}

_TRUE_STRINGS = ("1", "true", "yes", "on")


def _coerce(value: Any, target_type: type) -> Any:
    """Convert a JSON/env value to the type of the field it overrides."""
    if target_type is bool:
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)
    return target_type(value)


@dataclass
class SensorConfig:
    """Runtime configuration for the connector, recorder and API."""

    service_uuid: str = SENSOR_SERVICE_UUID
    characteristic_uuid: str = SENSOR_DATA_CHAR_UUID
    scan_timeout: float = 10.0          # seconds per scan sweep
    data_dir: str = DEFAULT_DATA_DIR
    log_file_name: str = DEFAULT_LOG_FILE
    timestamping: bool = True           # inject timeStamp before persisting
    gate_on_recording: bool = False     # observed behavior persists regardless of the flag
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    @property
    def log_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.log_file_name

    @classmethod
    def load(cls, path: Union[str, Path, None] = None, env: Optional[Dict[str, str]] = None) -> "SensorConfig":
        """
        Build a config from defaults, an optional JSON file and the environment.

        Args:
            path: JSON config file. Falls back to $SENSOR_CONFIG when None.
            env: Environment mapping (defaults to os.environ)

        Returns:
            SensorConfig instance
        """
        env = os.environ if env is None else env
        if path is None:
            path = env.get("SENSOR_CONFIG")

        data: Dict[str, Any] = {}
        if path:
            path = Path(path)
            if path.exists():
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                logger.info("Loaded config from %s", path)
            else:
                logger.warning("Config file not found: %s, using defaults", path)

        for env_name, field_name in _ENV_OVERRIDES.items():
            if env_name in env:
                data[field_name] = env[env_name]

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SensorConfig":
        """Create a config from a dict; unknown keys are ignored."""
        types = {f.name: type(f.default) for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in types:
                logger.debug("Ignoring unknown config key: %s", key)
                continue
            kwargs[key] = _coerce(value, types[key])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Saved config to %s", path)
