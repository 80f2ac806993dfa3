"""Shared fixtures: an in-memory transport with scripted device replies."""

import asyncio
import json

import pytest

from wifi_provisioner.config import ProvisioningConfig, ProtocolConfig, TransportConfig
from wifi_provisioner.constants import RESPONSE_CHANNEL
from wifi_provisioner.errors import TransportError
from wifi_provisioner.models import TransportState, DiscoveredDevice, ConnectedDevice
from wifi_provisioner.poller import ConnectionPoller
from wifi_provisioner.protocol import CommandChannel
from wifi_provisioner.services import ProvisioningServices
from wifi_provisioner.transport import FramedTransport


def ok(data=None) -> str:
    envelope = {'status': 'ok'}
    if data is not None:
        envelope['data'] = data
    return json.dumps(envelope)


def error(message: str) -> str:
    return json.dumps({'status': 'error', 'error': message})


def status(state: str, **extra) -> str:
    return ok(dict(state=state, **extra))


class FakeTransport(FramedTransport):
    """FramedTransport that answers commands from a reply script.

    Replies are queued per command name. Each write pops the next one;
    the last one keeps being reused. A reply of None means the device
    never answers. Replies are split into small chunks to exercise the
    framer, the way a real link delivers them.
    """

    def __init__(self, devices=(), chunk_size=20):
        super().__init__()
        self.devices = list(devices)
        self.chunk_size = chunk_size
        self.writes = []
        self.scripts = {}
        self.fail_writes = None
        self.connect_error = None
        self.disconnect_calls = 0

    # Scripting -------------------------------------------------------------

    def script(self, command, *replies):
        self.scripts[command] = list(replies)

    @property
    def commands(self):
        return [w['cmd'] for w in self.writes]

    # FramedTransport -------------------------------------------------------

    async def start_scan(self):
        self._set_connection_state(TransportState.SCANNING)
        for device in self.devices:
            self.device_discovered.emit(device)

    def stop_scan(self):
        if self.connection_state is TransportState.SCANNING:
            self._set_connection_state(TransportState.DISCONNECTED)
            self.scan_stopped.emit()

    async def connect(self, device_id):
        if self.connect_error is not None:
            raise self.connect_error
        self._set_connection_state(TransportState.CONNECTING)
        name = next((d.name for d in self.devices if d.id == device_id), device_id)
        self._connected_device = ConnectedDevice(id=device_id, name=name, mtu=247)
        self._set_connection_state(TransportState.CONNECTED)
        return self._connected_device

    async def disconnect(self):
        self.disconnect_calls += 1
        self._connected_device = None
        self.framer.clear()
        self._set_connection_state(TransportState.DISCONNECTED)

    async def write_frame(self, data):
        if self.fail_writes is not None:
            raise self.fail_writes
        envelope = json.loads(data.decode('utf-8'))
        self.writes.append(envelope)

        replies = self.scripts.get(envelope['cmd'])
        if not replies:
            return
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if reply is not None:
            asyncio.get_running_loop().call_soon(self.deliver, reply)

    def deliver(self, text, channel=RESPONSE_CHANNEL):
        raw = text.encode('utf-8')
        for i in range(0, len(raw), self.chunk_size):
            self.handle_notification(channel, raw[i:i + self.chunk_size])

    def drop_link(self):
        """Simulate the device going away."""
        self._connected_device = None
        self._set_connection_state(TransportState.DISCONNECTED)


async def settle(delay=0.0):
    """Let scheduled callbacks and spawned tasks run."""
    for _ in range(5):
        await asyncio.sleep(delay)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


DEVICE = DiscoveredDevice(id='AA:BB:CC:DD:EE:FF', name='ESP32-WiFi-A1B2C3', rssi=-48)


@pytest.fixture
async def transport():
    t = FakeTransport(devices=[DEVICE])
    yield t
    await t.shutdown()


@pytest.fixture
async def channel(transport):
    c = CommandChannel(transport, ProtocolConfig(default_timeout=0.3))
    yield c
    c.shutdown()


@pytest.fixture
async def poller(channel):
    p = ConnectionPoller(channel)
    yield p
    p.shutdown()


@pytest.fixture
def config():
    return ProvisioningConfig(
        transport=TransportConfig(),
        protocol=ProtocolConfig(default_timeout=0.3, command_timeouts={'scan': 0.3}),
        poll_interval=0.05,
        poll_timeout=0.6,
        disconnect_settle=0.0,
    )


@pytest.fixture
async def services(transport, config):
    s = ProvisioningServices(config, transport=transport)
    yield s
    await s.shutdown()
