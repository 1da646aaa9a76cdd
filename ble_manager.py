"""
BLE Manager - wires the sensor connector to the reading recorder.

Notifications are queued by the connector and drained by a single consumer
task, so the recorder sees payloads one at a time in arrival order.
"""

import asyncio
from typing import Optional

from ble_device import SensorLink
from ble_utils import SensorConnector
from config import SensorConfig
from logging_setup import get_logger
from notification_handler import ReadingRecorder

logger = get_logger(__name__)

STATUS_CONNECTED = "Connected to Sensor"
STATUS_SCANNING = "Scanning for Sensor..."
STATUS_WAITING = "Waiting for data..."


class SensorPipeline:
    """Owns the connector, the recorder and the delivery queue between them."""

    def __init__(self, config: Optional[SensorConfig] = None, recorder: Optional[ReadingRecorder] = None,
                 **connector_kwargs):
        """
        Args:
            config: Runtime configuration (defaults if None)
            recorder: Pre-built recorder; built from config when None
            **connector_kwargs: Passed to SensorConnector (scanner/client_factory for tests)
        """
        self.config = config or SensorConfig()
        self.recorder = recorder or ReadingRecorder(
            self.config.log_path,
            timestamping=self.config.timestamping,
            gate_on_recording=self.config.gate_on_recording,
        )
        self._payloads: asyncio.Queue = asyncio.Queue()
        self.connector = SensorConnector(
            on_payload=self._payloads.put_nowait,
            service_uuid=self.config.service_uuid,
            characteristic_uuid=self.config.characteristic_uuid,
            scan_timeout=self.config.scan_timeout,
            **connector_kwargs,
        )

    @property
    def link(self) -> SensorLink:
        return self.connector.link

    async def _pump(self):
        while True:
            text = await self._payloads.get()
            try:
                self.recorder.on_payload(text)
            except Exception:
                logger.exception("[RECORDER] Failed to handle payload %r", text)
            finally:
                self._payloads.task_done()

    async def run(self):
        """Run until the sensor disconnects or stop() is called."""
        pump = asyncio.create_task(self._pump())
        try:
            await self.connector.run()
            await self._payloads.join()
        finally:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        logger.info("[BLE] Pipeline stopped")

    def stop(self):
        self.connector.stop()

    def status(self) -> dict:
        """Read-only projection for whatever displays the sensor state."""
        link = self.connector.link
        latest = self.recorder.latest_reading
        return {
            **link.to_dict(),
            "status_text": STATUS_CONNECTED if link.connected else STATUS_SCANNING,
            "recording": self.recorder.recording,
            "latest": latest.to_dict() if latest else None,
            "log_path": str(self.recorder.log_path),
        }
