"""BleakTransport against stand-in bleak scanner and client objects."""

import asyncio
from types import SimpleNamespace

import pytest
from bleak.exc import BleakError

from wifi_provisioner import ble_transport
from wifi_provisioner.ble_transport import BleakTransport
from wifi_provisioner.config import TransportConfig
from wifi_provisioner.constants import (
    SERVICE_UUID,
    STATUS_CHAR_UUID,
    COMMAND_CHAR_UUID,
    RESPONSE_CHAR_UUID,
)
from wifi_provisioner.errors import TransportError
from wifi_provisioner.models import TransportState

from wifi_provisioner._tests.conftest import settle

ALL_CHARACTERISTICS = {STATUS_CHAR_UUID, COMMAND_CHAR_UUID, RESPONSE_CHAR_UUID}


class FakeScanner:
    fail_with = None

    def __init__(self, detection_callback=None):
        self.detection_callback = detection_callback
        self.stopped = False

    async def start(self):
        if FakeScanner.fail_with is not None:
            raise FakeScanner.fail_with

    async def stop(self):
        self.stopped = True


class FakeService:
    def __init__(self, characteristics):
        self.characteristics = characteristics

    def get_characteristic(self, uuid):
        return object() if uuid in self.characteristics else None


class FakeClient:
    characteristics = ALL_CHARACTERISTICS
    last = None

    def __init__(self, target, disconnected_callback=None, timeout=10.0):
        self.target = target
        self.disconnected_callback = disconnected_callback
        self.timeout = timeout
        self.mtu_size = 247
        self.notify = {}
        self.writes = []
        self.write_times = []
        self.disconnected = False
        service = FakeService(self.characteristics)
        self.services = SimpleNamespace(get_service=lambda uuid: service if uuid == SERVICE_UUID else None)
        FakeClient.last = self

    async def connect(self):
        pass

    async def disconnect(self):
        self.disconnected = True

    async def start_notify(self, uuid, callback):
        self.notify[uuid] = callback

    async def write_gatt_char(self, uuid, data, response=False):
        self.writes.append((uuid, bytes(data), response))
        self.write_times.append(asyncio.get_running_loop().time())


@pytest.fixture(autouse=True)
def fake_bleak(monkeypatch):
    FakeScanner.fail_with = None
    FakeClient.characteristics = ALL_CHARACTERISTICS
    FakeClient.last = None
    monkeypatch.setattr(ble_transport, 'BleakScanner', FakeScanner)
    monkeypatch.setattr(ble_transport, 'BleakClient', FakeClient)


@pytest.fixture
async def ble():
    t = BleakTransport(TransportConfig(scan_timeout=0.1, gatt_settle=0.05))
    yield t
    await t.shutdown()


def advert(address, name, rssi=-50):
    return SimpleNamespace(address=address, name=name), SimpleNamespace(local_name=None, rssi=rssi)


async def test_scan_reports_matching_devices_once(ble):
    found = []

    def on_device(device):
        found.append(device)

    ble.device_discovered.connect(on_device)
    await ble.start_scan()
    assert ble.connection_state is TransportState.SCANNING

    ble._on_detection(*advert('AA', 'ESP32-WiFi-A1B2C3', -40))
    ble._on_detection(*advert('AA', 'ESP32-WiFi-A1B2C3', -38))
    ble._on_detection(*advert('BB', 'Headphones'))
    ble._on_detection(SimpleNamespace(address='CC', name=None), SimpleNamespace(local_name='ESP32-WiFi-0001', rssi=None))
    await settle()

    assert [(d.id, d.name, d.rssi) for d in found] == [
        ('AA', 'ESP32-WiFi-A1B2C3', -40),
        ('CC', 'ESP32-WiFi-0001', 0),
    ]


async def test_scan_stops_itself(ble):
    stopped = []

    def on_stopped():
        stopped.append(True)

    ble.scan_stopped.connect(on_stopped)
    await ble.start_scan()
    await asyncio.sleep(0.2)

    assert ble.connection_state is TransportState.DISCONNECTED
    assert stopped == [True]


async def test_scan_without_adapter(ble):
    FakeScanner.fail_with = BleakError('No Bluetooth adapters found')
    errors = []

    def on_error(error):
        errors.append(error)

    ble.transport_error.connect(on_error)
    with pytest.raises(TransportError, match='No Bluetooth adapters found'):
        await ble.start_scan()

    assert ble.connection_state is TransportState.DISCONNECTED
    assert len(errors) == 1


async def test_connect_subscribes_and_reassembles(ble):
    responses = []

    def on_response(text):
        responses.append(text)

    ble.response_received.connect(on_response)
    device = await ble.connect('AA:BB')

    assert device.id == 'AA:BB'
    assert device.mtu == 247
    assert ble.is_connected
    client = FakeClient.last
    assert set(client.notify) == {RESPONSE_CHAR_UUID, STATUS_CHAR_UUID}

    client.notify[RESPONSE_CHAR_UUID](None, bytearray(b'{"status":'))
    client.notify[RESPONSE_CHAR_UUID](None, bytearray(b'"ok"}'))
    await settle()

    assert responses == ['{"status":"ok"}']


async def test_connect_rejects_wrong_firmware(ble):
    FakeClient.characteristics = {STATUS_CHAR_UUID}

    with pytest.raises(TransportError, match='Command, Response'):
        await ble.connect('AA:BB')

    assert ble.connection_state is TransportState.DISCONNECTED
    assert ble.connected_device is None
    assert FakeClient.last.disconnected


async def test_write_requires_connection(ble):
    with pytest.raises(TransportError):
        await ble.write_frame(b'{"cmd":"get_status"}')


async def test_writes_are_spaced(ble):
    await ble.connect('AA:BB')
    await ble.write_frame(b'{"cmd":"get_status"}')
    await ble.write_frame(b'{"cmd":"scan"}')

    client = FakeClient.last
    assert [w[0] for w in client.writes] == [COMMAND_CHAR_UUID, COMMAND_CHAR_UUID]
    assert all(w[2] for w in client.writes)
    assert client.write_times[1] - client.write_times[0] >= 0.04


async def test_unexpected_disconnect(ble):
    states = []

    def on_state(state):
        states.append(state)

    await ble.connect('AA:BB')
    ble.connection_state_changed.connect(on_state)

    FakeClient.last.disconnected_callback(FakeClient.last)
    await settle()

    assert states == [TransportState.DISCONNECTED]
    assert ble.connected_device is None


async def test_own_disconnect_is_not_reported_twice(ble):
    states = []

    def on_state(state):
        states.append(state)

    await ble.connect('AA:BB')
    ble.connection_state_changed.connect(on_state)
    client = FakeClient.last

    await ble.disconnect()
    client.disconnected_callback(client)
    await settle()

    assert states == [TransportState.DISCONNECTED]
