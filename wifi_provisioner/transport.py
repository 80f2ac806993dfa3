"""Base class for framed transports.

A framed transport moves command frames to the device and turns
notification chunks from the device into complete JSON messages.
Concrete transports inherit from FramedTransport and implement the
radio-specific methods.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pynnex import with_emitters, emitter

from .constants import RESPONSE_CHANNEL, STATUS_CHANNEL
from .framer import MessageFramer
from .models import TransportState, ConnectedDevice

logger = logging.getLogger(__name__)


@with_emitters
class FramedTransport(ABC):
    """Abstract base class for transports to the provisioning firmware.

    Subclasses must implement:
        - start_scan(): Begin device discovery
        - stop_scan(): End device discovery
        - connect(): Open the link to one device
        - disconnect(): Close the link
        - write_frame(): Deliver one serialized command envelope

    Subclasses deliver raw notification chunks through
    handle_notification() and report link changes through
    _set_connection_state().
    """

    @emitter
    def response_received(self):
        """Emitted with the text of each complete response message."""
        pass

    @emitter
    def status_received(self):
        """Emitted with the text of each complete status message."""
        pass

    @emitter
    def connection_state_changed(self):
        pass

    @emitter
    def device_discovered(self):
        pass

    @emitter
    def scan_stopped(self):
        pass

    @emitter
    def transport_error(self):
        pass

    def __init__(self):
        self.framer = MessageFramer((RESPONSE_CHANNEL, STATUS_CHANNEL))
        self._connection_state = TransportState.DISCONNECTED
        self._connected_device: Optional[ConnectedDevice] = None

    @property
    def connection_state(self) -> TransportState:
        return self._connection_state

    @property
    def is_connected(self) -> bool:
        return self._connection_state is TransportState.CONNECTED

    @property
    def connected_device(self) -> Optional[ConnectedDevice]:
        return self._connected_device

    @abstractmethod
    async def start_scan(self) -> None:
        """Start discovering devices; results arrive via device_discovered."""
        pass

    @abstractmethod
    def stop_scan(self) -> None:
        pass

    @abstractmethod
    async def connect(self, device_id: str) -> ConnectedDevice:
        """Connect to a discovered device.

        Args:
            device_id: Identifier from a DiscoveredDevice

        Returns:
            ConnectedDevice describing the open link

        Raises:
            TransportError: If the link could not be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def write_frame(self, data: bytes) -> None:
        """Write one serialized command.

        Raises:
            TransportError: If not connected or the write fails
        """
        pass

    async def shutdown(self) -> None:
        """Close the link and drop all listeners."""
        logger.info("Shutting down transport")
        await self.disconnect()
        for signal in (
            self.response_received,
            self.status_received,
            self.connection_state_changed,
            self.device_discovered,
            self.scan_stopped,
            self.transport_error,
        ):
            signal.disconnect()

    def handle_notification(self, channel: str, chunk: bytes) -> None:
        """Feed a notification chunk and emit the message once complete."""
        message = self.framer.feed(channel, chunk)
        if message is None:
            return
        if channel == RESPONSE_CHANNEL:
            self.response_received.emit(message)
        else:
            self.status_received.emit(message)

    def _set_connection_state(self, state: TransportState) -> None:
        if self._connection_state is state:
            return
        previous = self._connection_state
        self._connection_state = state
        logger.info(f"Connection state: {previous.value} -> {state.value}")
        self.connection_state_changed.emit(state)
