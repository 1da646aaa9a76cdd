"""
Device Connector - finds the sensor, connects, and subscribes to its data
characteristic. Each notification is handed to a payload callback as text.
"""

import asyncio
from typing import Callable, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ble_device import LinkEvent, LinkPhase, SensorLink, advance
from config import SENSOR_DATA_CHAR_UUID, SENSOR_SERVICE_UUID
from logging_setup import get_logger

logger = get_logger(__name__)


def advertises_service(service_uuid: str, adv_data) -> bool:
    """Check whether an advertisement lists the given service UUID."""
    wanted = service_uuid.lower()
    return any(uuid.lower() == wanted for uuid in (adv_data.service_uuids or []))


async def discover_sensors(timeout: float = 5.0, service_uuid: str = SENSOR_SERVICE_UUID,
                           scanner=BleakScanner) -> List[dict]:
    """
    Scan once and list every device advertising the sensor service.

    Args:
        timeout: Scan duration in seconds
        service_uuid: Service UUID to filter on
        scanner: Scanner class (BleakScanner unless testing)

    Returns:
        List of {"address", "name", "rssi"} dicts
    """
    logger.info("[BLE] Scanning for sensors (%.1fs)...", timeout)
    found = await scanner.discover(timeout=timeout, return_adv=True)

    sensors = []
    for device, adv_data in found.values():
        if advertises_service(service_uuid, adv_data):
            sensors.append({
                "address": device.address,
                "name": device.name or "Unknown",
                "rssi": adv_data.rssi,
            })
    logger.info("[BLE] Found %d sensor(s)", len(sensors))
    return sensors


class SensorConnector:
    """
    Maintains a connection to exactly one sensor peripheral.

    Connect or subscription errors are logged and the connector stalls in
    its current phase until it is disconnected or stopped; it never retries.
    While Bluetooth is off it idles, re-checking every scan_timeout seconds.
    """

    def __init__(
        self,
        on_payload: Callable[[str], None],
        service_uuid: str = SENSOR_SERVICE_UUID,
        characteristic_uuid: str = SENSOR_DATA_CHAR_UUID,
        scan_timeout: float = 10.0,
        on_state_change: Optional[Callable[[SensorLink], None]] = None,
        scanner=BleakScanner,
        client_factory=BleakClient,
    ):
        """
        Args:
            on_payload: Called with each notification payload, in arrival order
            service_uuid: Service the sensor advertises
            characteristic_uuid: Notifying characteristic carrying readings
            scan_timeout: Length of each scan sweep in seconds
            on_state_change: Called with every new SensorLink
            scanner: Object providing find_device_by_filter (BleakScanner)
            client_factory: Callable building a GATT client (BleakClient)
        """
        self.on_payload = on_payload
        self.service_uuid = service_uuid.lower()
        self.characteristic_uuid = characteristic_uuid.lower()
        self.scan_timeout = scan_timeout
        self.on_state_change = on_state_change
        self._scanner = scanner
        self._client_factory = client_factory
        self._link = SensorLink()
        self.client = None
        self._released: Optional[asyncio.Event] = None
        self._stopping = False

    @property
    def link(self) -> SensorLink:
        return self._link

    def _apply(self, event: LinkEvent, handle=None):
        self._link = advance(self._link, event, handle)
        logger.debug("[BLE] %s -> %s", event.value, self._link.phase.value)
        if self.on_state_change:
            self.on_state_change(self._link)

    def _release(self):
        if self._released is not None:
            self._released.set()

    def _matches(self, device, adv_data) -> bool:
        return advertises_service(self.service_uuid, adv_data)

    async def run(self):
        """
        Scan, connect and subscribe, then deliver notifications until the
        peripheral disconnects or stop() is called.
        """
        self._released = asyncio.Event()
        self._stopping = False
        try:
            device = await self._scan()
            if device is None:
                return
            if await self._subscribe(device):
                logger.info("[BLE] Subscribed to %s on %s", self.characteristic_uuid, device.address)
            await self._released.wait()
        finally:
            await self._teardown()

    def stop(self):
        """Release a running or stalled connector."""
        self._stopping = True
        self._release()

    async def _wait_released(self, timeout: float) -> bool:
        """Sleep up to timeout; True if stop() or a disconnect came first."""
        try:
            await asyncio.wait_for(self._released.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _sweep(self):
        """One scan sweep, cut short by stop(). Raises BleakError if Bluetooth is off."""
        sweep = asyncio.ensure_future(self._scanner.find_device_by_filter(
            self._matches,
            timeout=self.scan_timeout,
            service_uuids=[self.service_uuid],
        ))
        released = asyncio.ensure_future(self._released.wait())
        done, _ = await asyncio.wait({sweep, released}, return_when=asyncio.FIRST_COMPLETED)
        if sweep not in done:
            sweep.cancel()
            await asyncio.wait({sweep})
            return None
        released.cancel()
        return sweep.result()

    async def _scan(self):
        self._apply(LinkEvent.ADAPTER_READY)
        logger.info("[BLE] Scanning for service %s...", self.service_uuid)
        while not self._stopping:
            try:
                device = await self._sweep()
            except BleakError as e:
                # Stay idle until a sweep succeeds, i.e. Bluetooth is back
                if self._link.phase is not LinkPhase.IDLE:
                    logger.warning("[BLE] Bluetooth not available: %s", e)
                    self._apply(LinkEvent.ADAPTER_UNAVAILABLE)
                await self._wait_released(self.scan_timeout)
                continue
            if self._link.phase is LinkPhase.IDLE:
                logger.info("[BLE] Bluetooth available, scanning for service %s...", self.service_uuid)
                self._apply(LinkEvent.ADAPTER_READY)
            if device is not None:
                logger.info("[BLE] Found sensor %s (%s)", device.name or "Unknown", device.address)
                return device
        return None

    async def _subscribe(self, device) -> bool:
        """Walk connect -> service -> characteristic -> notify. False means stalled."""
        self._apply(LinkEvent.PERIPHERAL_FOUND, device)
        self.client = self._client_factory(
            device,
            disconnected_callback=self._handle_disconnect,
            services=[self.service_uuid],
        )

        try:
            await self.client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error("[BLE] Connect to %s failed: %r", device.address, e)
            return False
        # A disconnect during an await has already dropped the link to IDLE
        if self._link.phase is not LinkPhase.CONNECTING:
            return False
        self._apply(LinkEvent.CONNECTED)
        logger.info("[BLE] Connected to %s", device.address)

        service = self.client.services.get_service(self.service_uuid)
        if service is None:
            logger.error("[BLE] Service %s not found on %s", self.service_uuid, device.address)
            return False
        self._apply(LinkEvent.SERVICE_FOUND)

        characteristic = service.get_characteristic(self.characteristic_uuid)
        if characteristic is None:
            logger.error("[BLE] Characteristic %s not found", self.characteristic_uuid)
            return False

        try:
            await self.client.start_notify(characteristic, self._handle_notification)
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error("[BLE] Enabling notifications failed: %r", e)
            return False
        if self._link.phase is not LinkPhase.DISCOVERING_CHARACTERISTICS:
            return False
        self._apply(LinkEvent.CHARACTERISTIC_FOUND, characteristic)
        return True

    def _handle_notification(self, sender, data: bytearray):
        try:
            text = bytes(data).rstrip(b"\x00").decode("utf-8").strip()
        except UnicodeDecodeError:
            logger.warning("[BLE] Dropping non-UTF-8 notification: %s", bytes(data).hex())
            return
        # bleak may deliver before start_notify() returns
        if self._link.phase is LinkPhase.SUBSCRIBED:
            self._apply(LinkEvent.NOTIFICATION)
        self.on_payload(text)

    def _handle_disconnect(self, client):
        logger.info("[BLE] Sensor disconnected")
        self._apply(LinkEvent.DISCONNECTED)
        self._release()

    async def _teardown(self):
        await disconnect_device(self.client)
        self.client = None
        if self._link.phase is not LinkPhase.IDLE:
            self._apply(LinkEvent.DISCONNECTED)


async def disconnect_device(client):
    """
    Safely disconnect a GATT client.

    Args:
        client: BleakClient instance (or None)
    """
    if client is None:
        return
    try:
        if client.is_connected:
            await client.disconnect()
            logger.info("[BLE] Disconnected")
    except EOFError:
        # D-Bus connection already closed
        pass
    except BleakError as e:
        logger.warning("[BLE] Disconnect error: %s", e)
