"""BLE transport built on bleak.

Talks to the Wi-Fi manager GATT service: commands are written to the
command characteristic, responses and status updates arrive as
notifications that are reassembled by the inherited MessageFramer.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .config import TransportConfig
from .constants import (
    SERVICE_UUID,
    STATUS_CHAR_UUID,
    COMMAND_CHAR_UUID,
    RESPONSE_CHAR_UUID,
    RESPONSE_CHANNEL,
    STATUS_CHANNEL,
)
from .errors import TransportError
from .models import TransportState, DiscoveredDevice, ConnectedDevice
from .transport import FramedTransport

logger = logging.getLogger(__name__)


class BleakTransport(FramedTransport):
    """FramedTransport over a bleak client.

    Bleak may invoke notification and disconnect callbacks outside the
    event loop, so both are marshalled with call_soon_threadsafe before
    touching any state.
    """

    def __init__(self, config: Optional[TransportConfig] = None):
        super().__init__()
        self.config = config or TransportConfig()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scanner: Optional[BleakScanner] = None
        self._scan_timer: Optional[asyncio.TimerHandle] = None
        self._client: Optional[BleakClient] = None
        self._discovered: Dict[str, BLEDevice] = {}
        self._last_write = 0.0
        self._closing = False  # Set while we tear the link down ourselves
        self._tasks = set()
        logger.info(f"BleakTransport created (prefix={self.config.device_name_prefix!r})")

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    async def start_scan(self) -> None:
        if self._connection_state is TransportState.SCANNING:
            logger.warning("Scan already in progress")
            return
        if self._connection_state in (TransportState.CONNECTED, TransportState.CONNECTING):
            logger.warning("Cannot scan while connected or connecting")
            return

        self._loop = asyncio.get_running_loop()
        self._discovered.clear()
        self._scanner = BleakScanner(detection_callback=self._on_detection)

        logger.info(f"Starting BLE scan (prefix={self.config.device_name_prefix!r})")
        try:
            await self._scanner.start()
        except (BleakError, OSError) as e:
            self._scanner = None
            self._set_connection_state(TransportState.DISCONNECTED)
            self.scan_stopped.emit()
            error = TransportError(f"Bluetooth adapter unavailable: {e}")
            self.transport_error.emit(error)
            raise error from e

        self._set_connection_state(TransportState.SCANNING)
        self._scan_timer = self._loop.call_later(self.config.scan_timeout, self._on_scan_timeout)

    def stop_scan(self) -> None:
        if self._connection_state is not TransportState.SCANNING:
            return
        self._stop_scanner()
        self._set_connection_state(TransportState.DISCONNECTED)
        self.scan_stopped.emit()
        logger.info("Scan stopped")

    def _on_scan_timeout(self) -> None:
        self._scan_timer = None
        logger.info("Scan timeout reached")
        self.stop_scan()

    def _stop_scanner(self) -> None:
        if self._scan_timer is not None:
            self._scan_timer.cancel()
            self._scan_timer = None
        if self._scanner is not None:
            scanner, self._scanner = self._scanner, None
            self._spawn(scanner.stop())

    def _on_detection(self, device: BLEDevice, advertisement) -> None:
        name = device.name or advertisement.local_name
        if not name or not name.startswith(self.config.device_name_prefix):
            return
        # Only report each device once per scan session
        if device.address in self._discovered:
            return
        self._discovered[device.address] = device

        discovered = DiscoveredDevice(
            id=device.address,
            name=name,
            rssi=advertisement.rssi if advertisement.rssi is not None else 0,
        )
        logger.debug(f"Device discovered: {discovered}")
        self._loop.call_soon_threadsafe(self.device_discovered.emit, discovered)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    async def connect(self, device_id: str) -> ConnectedDevice:
        logger.info(f"Connecting to device: {device_id}")
        self._loop = asyncio.get_running_loop()

        if self._connection_state is TransportState.SCANNING:
            self._stop_scanner()
            self.scan_stopped.emit()

        self._set_connection_state(TransportState.CONNECTING)
        target = self._discovered.get(device_id, device_id)
        self._client = BleakClient(
            target,
            disconnected_callback=self._on_disconnect,
            timeout=self.config.connection_timeout,
        )
        self._closing = False

        try:
            await self._client.connect()
            self._validate_characteristics()

            self.framer.clear()
            await self._client.start_notify(RESPONSE_CHAR_UUID, self._on_response_notification)
            await self._client.start_notify(STATUS_CHAR_UUID, self._on_status_notification)
        except (BleakError, TransportError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Connection failed: {e}")
            await self._drop_client()
            self._connected_device = None
            self._set_connection_state(TransportState.DISCONNECTED)
            if isinstance(e, TransportError):
                self.transport_error.emit(e)
                raise
            error = TransportError(f"Connection failed: {e}")
            self.transport_error.emit(error)
            raise error from e

        name = getattr(target, 'name', None) or device_id
        self._connected_device = ConnectedDevice(
            id=device_id,
            name=name,
            mtu=getattr(self._client, 'mtu_size', None),
        )
        self._last_write = 0.0
        self._set_connection_state(TransportState.CONNECTED)
        logger.info(f"Connected successfully: {self._connected_device}")
        return self._connected_device

    def _validate_characteristics(self) -> None:
        service = self._client.services.get_service(SERVICE_UUID)
        missing = []
        for label, uuid in (
            ('Status', STATUS_CHAR_UUID),
            ('Command', COMMAND_CHAR_UUID),
            ('Response', RESPONSE_CHAR_UUID),
        ):
            if service is None or service.get_characteristic(uuid) is None:
                missing.append(label)
        if missing:
            raise TransportError(
                f"Missing required characteristics: {', '.join(missing)}. "
                "Ensure the firmware exposes the Wi-Fi manager BLE service."
            )

    async def disconnect(self) -> None:
        logger.info("Disconnect requested")
        if self._connection_state is TransportState.SCANNING:
            self._stop_scanner()
            self.scan_stopped.emit()
        await self._drop_client()
        self._connected_device = None
        self.framer.clear()
        self._last_write = 0.0
        self._set_connection_state(TransportState.DISCONNECTED)

    async def _drop_client(self) -> None:
        """Disconnect the bleak client without raising."""
        client, self._client = self._client, None
        if client is None:
            return
        self._closing = True
        try:
            await asyncio.wait_for(client.disconnect(), timeout=self.config.connection_timeout)
            logger.debug("Device connection cancelled")
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            # The device may already be gone
            logger.debug(f"Ignoring disconnect error: {e}")

    def _on_disconnect(self, client) -> None:
        if self._closing or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._handle_unexpected_disconnect)

    def _handle_unexpected_disconnect(self) -> None:
        if self._closing or self._connection_state is TransportState.DISCONNECTED:
            return
        logger.warning("Device disconnected unexpectedly")
        self._client = None
        self._connected_device = None
        self.framer.clear()
        self._last_write = 0.0
        self._set_connection_state(TransportState.DISCONNECTED)

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    async def write_frame(self, data: bytes) -> None:
        if self._client is None or self._connection_state is not TransportState.CONNECTED:
            raise TransportError("Cannot write command: not connected")

        # Back-to-back GATT writes fail with "operation in progress"
        wait = self.config.gatt_settle - (time.monotonic() - self._last_write)
        if wait > 0:
            logger.debug(f"GATT settle delay: {wait:.3f}s")
            await asyncio.sleep(wait)

        logger.debug(f"Writing command: {len(data)} bytes")
        try:
            await self._client.write_gatt_char(COMMAND_CHAR_UUID, data, response=True)
        except (BleakError, OSError) as e:
            logger.error(f"Write command failed: {e}")
            error = TransportError(f"Write failed: {e}")
            self.transport_error.emit(error)
            raise error from e
        self._last_write = time.monotonic()

    def _on_response_notification(self, sender, data: bytearray) -> None:
        self._loop.call_soon_threadsafe(self.handle_notification, RESPONSE_CHANNEL, bytes(data))

    def _on_status_notification(self, sender, data: bytearray) -> None:
        self._loop.call_soon_threadsafe(self.handle_notification, STATUS_CHANNEL, bytes(data))

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
