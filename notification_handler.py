"""
Reading Recorder - turns sensor notification payloads into persisted records.

Each payload is decoded into a Reading, optionally stamped with the receive
time, appended to the log file as one JSON line, and kept as the latest
reading for display.
"""

import json
import time
from collections import deque
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from logging_setup import get_logger

logger = get_logger(__name__)

READING_FIELDS = ("distance", "flux", "temperature")
TIMESTAMP_FIELD = "timeStamp"
HISTORY_SIZE = 100


class ReadingDecodeError(ValueError):
    """Raised when a payload is not a valid sensor reading."""


def _is_int(value: Any) -> bool:
    # JSON true/false decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Reading:
    """A single sensor reading."""

    distance: int
    flux: int
    temperature: int
    timestamp: Optional[int] = None
    # Any other fields the sensor sent, kept in arrival order
    extras: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def from_json(cls, text: str) -> "Reading":
        """
        Decode a JSON payload into a Reading.

        Raises:
            ReadingDecodeError: If the text is not a JSON object carrying
                integer distance, flux and temperature fields
        """
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ReadingDecodeError(f"invalid JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise ReadingDecodeError(f"expected a JSON object, got {type(parsed).__name__}")

        for name in READING_FIELDS:
            if name not in parsed:
                raise ReadingDecodeError(f"missing field '{name}'")
            if not _is_int(parsed[name]):
                raise ReadingDecodeError(f"field '{name}' is not an integer: {parsed[name]!r}")

        timestamp = parsed.get(TIMESTAMP_FIELD)
        if timestamp is not None and not _is_int(timestamp):
            raise ReadingDecodeError(f"field '{TIMESTAMP_FIELD}' is not an integer: {timestamp!r}")

        extras = tuple(
            (key, value) for key, value in parsed.items()
            if key not in READING_FIELDS and key != TIMESTAMP_FIELD
        )
        return cls(
            distance=parsed["distance"],
            flux=parsed["flux"],
            temperature=parsed["temperature"],
            timestamp=timestamp,
            extras=extras,
        )

    def stamped(self, timestamp_ms: int) -> "Reading":
        return replace(self, timestamp=timestamp_ms)

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in READING_FIELDS}
        data.update(self.extras)
        if self.timestamp is not None:
            data[TIMESTAMP_FIELD] = self.timestamp
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


def append_line(path: Union[str, Path], line: str) -> None:
    """
    Append one line to the log file, creating it if needed.

    The line and its newline go out in a single unbuffered write so a
    concurrent reader never sees half a record.

    Raises:
        OSError: If the file cannot be opened or the write is short
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = (line + "\n").encode("utf-8")
    with open(path, "ab", buffering=0) as f:
        written = f.write(data)
    if written != len(data):
        raise OSError(f"short write to {path}: {written} of {len(data)} bytes")


def load_log_entries(path: Union[str, Path], limit: Optional[int] = None) -> List[str]:
    """Read persisted lines back, oldest first. Returns [] if the file is missing."""
    path = Path(path)
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as f:
        lines = [line.rstrip("\n") for line in f if line.strip()]
    if limit is not None:
        return lines[-limit:] if limit > 0 else []
    return lines


class ReadingRecorder:
    """Persists incoming payloads and tracks the latest reading."""

    def __init__(
        self,
        log_path: Union[str, Path],
        timestamping: bool = True,
        gate_on_recording: bool = False,
        clock: Callable[[], int] = now_ms,
    ):
        self.log_path = Path(log_path)
        self.timestamping = timestamping
        self.gate_on_recording = gate_on_recording
        self._clock = clock
        self._recording = False
        self._latest: Optional[Reading] = None
        self._latest_payload: Optional[str] = None
        self._history = deque(maxlen=HISTORY_SIZE)
        self._listeners: List[Callable[[Reading], None]] = []

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def latest_reading(self) -> Optional[Reading]:
        return self._latest

    @property
    def latest_payload(self) -> Optional[str]:
        """The text of the last persisted-or-displayed record."""
        return self._latest_payload

    def start_recording(self):
        self._recording = True
        logger.info("[RECORDER] Recording started")

    def stop_recording(self):
        self._recording = False
        logger.info("[RECORDER] Recording stopped")

    def subscribe(self, listener: Callable[[Reading], None]):
        """Register a callback invoked with every new latest reading."""
        self._listeners.append(listener)

    def on_payload(self, text: str) -> Optional[Reading]:
        """
        Handle one notification payload.

        Args:
            text: UTF-8 decoded payload from the connector

        Returns:
            The decoded (and possibly stamped) Reading, or None if the
            payload was dropped
        """
        try:
            reading = Reading.from_json(text)
        except ReadingDecodeError as e:
            logger.error("[RECORDER] Dropping payload %r: %s", text, e)
            return None

        if self.timestamping:
            reading = reading.stamped(self._clock())
            line = reading.to_json()
        elif "\n" in text or "\r" in text:
            line = reading.to_json()
        else:
            line = text

        if self.gate_on_recording and not self._recording:
            logger.debug("[RECORDER] Not recording, skipping persist")
        else:
            try:
                append_line(self.log_path, line)
            except OSError as e:
                logger.error("[RECORDER] Failed to write %s: %s", self.log_path, e)

        self._latest = reading
        self._latest_payload = line
        self._history.append(reading)
        logger.debug("[RECORDER] distance=%d flux=%d temperature=%d",
                     reading.distance, reading.flux, reading.temperature)

        for listener in self._listeners:
            try:
                listener(reading)
            except Exception:
                logger.exception("[RECORDER] Reading listener failed")
        return reading

    def get_history(self, limit: int = 10) -> List[Reading]:
        """Most recent readings, oldest first."""
        if limit <= 0:
            return []
        history = list(self._history)
        return history[-limit:]
