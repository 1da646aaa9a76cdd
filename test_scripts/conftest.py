"""In-memory stand-ins for the bleak scanner and client."""

import asyncio
from types import SimpleNamespace

import pytest
from bleak.exc import BleakError

from config import SENSOR_DATA_CHAR_UUID, SENSOR_SERVICE_UUID


def make_device(address="AA:BB:CC:DD:EE:FF", name="DistanceSensor"):
    return SimpleNamespace(address=address, name=name)


def make_adv(*service_uuids, rssi=-60):
    return SimpleNamespace(service_uuids=list(service_uuids), rssi=rssi)


class FakeScanner:
    """Replays a fixed list of (device, advertisement) pairs."""

    def __init__(self, devices=(), error=None, failing_sweeps=None):
        self.devices = list(devices)
        self.error = error
        # raise error on this many sweeps, then scan normally; None = always
        self.failing_sweeps = failing_sweeps
        self.sweeps = 0

    async def find_device_by_filter(self, filterfunc, timeout=10.0, **kwargs):
        self.sweeps += 1
        await asyncio.sleep(0)
        if self.error and (self.failing_sweeps is None or self.sweeps <= self.failing_sweeps):
            raise self.error
        for device, adv in self.devices:
            if filterfunc(device, adv):
                return device
        return None

    async def discover(self, timeout=5.0, return_adv=False, **kwargs):
        if self.error:
            raise self.error
        return {device.address: (device, adv) for device, adv in self.devices}


class FakeService:
    def __init__(self, uuid, characteristics):
        self.uuid = uuid
        self.characteristics = characteristics

    def get_characteristic(self, uuid):
        for char in self.characteristics:
            if char.uuid == uuid.lower():
                return char
        return None


class FakeServices:
    def __init__(self, services):
        self.services = services

    def get_service(self, uuid):
        for service in self.services:
            if service.uuid == uuid.lower():
                return service
        return None


class FakeClient:
    """GATT client exposing the sensor service unless told otherwise."""

    def __init__(self, device, disconnected_callback=None, services=None,
                 connect_error=None, notify_error=None, disconnect_on_notify=False,
                 has_service=True, has_characteristic=True, **kwargs):
        self.device = device
        self.disconnected_callback = disconnected_callback
        self.connect_error = connect_error
        self.notify_error = notify_error
        self.disconnect_on_notify = disconnect_on_notify
        self.is_connected = False
        self.notify_callback = None
        self.characteristic = SimpleNamespace(uuid=SENSOR_DATA_CHAR_UUID)
        chars = [self.characteristic] if has_characteristic else []
        self.services = FakeServices([FakeService(SENSOR_SERVICE_UUID, chars)] if has_service else [])

    async def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.is_connected = True

    async def start_notify(self, characteristic, callback):
        if self.notify_error:
            raise self.notify_error
        if self.disconnect_on_notify:
            # peripheral drops the link while the CCCD write is in flight
            await self.disconnect()
        self.notify_callback = callback

    async def disconnect(self):
        self.is_connected = False
        if self.disconnected_callback:
            self.disconnected_callback(self)

    def push(self, data: bytes):
        self.notify_callback(self.characteristic, bytearray(data))


class ClientFactory:
    """Records every client the connector builds."""

    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.clients = []

    def __call__(self, device, **kwargs):
        client = FakeClient(device, **kwargs, **self.client_kwargs)
        self.clients.append(client)
        return client


async def wait_for(predicate, rounds=200, delay=0):
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition never became true")


@pytest.fixture
def sensor():
    return make_device(), make_adv(SENSOR_SERVICE_UUID)


@pytest.fixture
def unavailable_scanner():
    return FakeScanner(error=BleakError("Bluetooth device is turned off"))
