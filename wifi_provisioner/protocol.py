"""JSON command/response channel over a framed transport.

The CommandChannel sends command envelopes to the device and resolves
the caller once the matching response arrives. Only one command may be
in flight at a time; a second send() while busy fails immediately.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List

from pynnex import with_emitters, emitter

from .config import ProtocolConfig
from .constants import (
    COMMAND_TIMEOUTS,
    CMD_GET_STATUS,
    CMD_SCAN,
    CMD_LIST_NETWORKS,
    CMD_ADD_NETWORK,
    CMD_DEL_NETWORK,
    CMD_CONNECT,
    CMD_DISCONNECT,
    CMD_GET_AP_STATUS,
    CMD_START_AP,
    CMD_STOP_AP,
    CMD_GET_VAR,
    CMD_SET_VAR,
    CMD_FACTORY_RESET,
)
from .errors import (
    CommandError,
    ChannelBusy,
    ChannelClosed,
    CommandTimeout,
    InvalidResponse,
    DeviceError,
    TransportWriteFailed,
)
from .models import WifiSnapshot, ScannedNetwork, SavedNetwork, ApStatus, DeviceVariable
from .transport import FramedTransport

logger = logging.getLogger(__name__)

OK_STATUSES = ('ok', 'success')


class ChannelState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


@dataclass
class InFlight:
    """The single pending command slot."""

    command: str
    generation: int
    future: asyncio.Future
    timeout: float
    timer: Optional[asyncio.TimerHandle] = None


def build_envelope(command: str, params: Optional[dict] = None) -> dict:
    """Build an outgoing command envelope.

    ``params`` is left out entirely when None so the device can tell
    "no arguments" from an empty object.
    """
    envelope = {'cmd': command}
    if params is not None:
        envelope['params'] = params
    return envelope


def parse_response(text: str):
    """Parse a response envelope.

    Args:
        text: Complete JSON text from the response channel

    Returns:
        The ``data`` member of an ok envelope ({} when absent)

    Raises:
        InvalidResponse: If the text is not a JSON object
        DeviceError: If the envelope reports an error
    """
    try:
        response = json.loads(text)
    except ValueError:
        raise InvalidResponse(text)
    if not isinstance(response, dict):
        raise InvalidResponse(text)

    if response.get('status') in OK_STATUSES:
        data = response.get('data')
        return {} if data is None else data

    raise DeviceError(response.get('error') or response.get('message') or 'Command failed')


@with_emitters
class CommandChannel:
    """Single-flight command channel.

    Every completion path (response, device error, timeout, write
    failure) bumps the generation counter, cancels the timer, clears
    the pending slot and flips busy state before the caller resumes.
    Late write failures and timers carry the generation they were
    armed with and are ignored once it is no longer live.
    """

    @emitter
    def busy_changed(self):
        pass

    @emitter
    def command_error(self):
        """Emitted with (error, command) whenever a command fails."""
        pass

    def __init__(self, transport: FramedTransport, config: Optional[ProtocolConfig] = None):
        self.transport = transport
        self.config = config or ProtocolConfig()
        self._in_flight: Optional[InFlight] = None
        self._generation = 0
        self._busy = False
        self._closed = False
        self._last_command_time = 0.0
        self._tasks = set()

        self.transport.response_received.connect(self._on_response)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        return ChannelState.IDLE if self._in_flight is None else ChannelState.IN_FLIGHT

    @property
    def is_busy(self) -> bool:
        return self._in_flight is not None

    @property
    def pending_command(self) -> Optional[str]:
        return self._in_flight.command if self._in_flight else None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_command_time(self) -> float:
        """Wall-clock time of the last completed command (0 if none)."""
        return self._last_command_time

    def resolve_timeout(self, command: str, explicit: Optional[float] = None) -> float:
        """Effective timeout for a command.

        Priority: explicit argument > configured per-command override >
        built-in per-command default > configured global default.
        """
        if explicit is not None:
            return explicit
        if command in self.config.command_timeouts:
            return self.config.command_timeouts[command]
        if command in COMMAND_TIMEOUTS:
            return COMMAND_TIMEOUTS[command]
        return self.config.default_timeout

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, command: str, params: Optional[dict] = None, timeout: Optional[float] = None):
        """Send a command and wait for its response.

        Args:
            command: Wire command name
            params: Command parameters, or None for none at all
            timeout: Override for the resolved per-command timeout

        Returns:
            The response ``data`` payload

        Raises:
            ChannelBusy: Another command is still pending
            ChannelClosed: The channel was shut down
            CommandTimeout, InvalidResponse, DeviceError, TransportWriteFailed
        """
        if self._closed:
            raise ChannelClosed()
        if self._in_flight is not None:
            raise ChannelBusy(self._in_flight.command)

        loop = asyncio.get_running_loop()
        frame = json.dumps(build_envelope(command, params)).encode('utf-8')
        duration = self.resolve_timeout(command, timeout)

        in_flight = InFlight(
            command=command,
            generation=self._generation,
            future=loop.create_future(),
            timeout=duration,
        )
        self._in_flight = in_flight
        self._set_busy(True)

        # Armed before the write so a slow write is covered too
        in_flight.timer = loop.call_later(duration, self._on_timeout, in_flight.generation)

        logger.debug(f"send {command} {params if params is not None else ''}")
        self._spawn(self._write(frame, in_flight.generation))
        return await in_flight.future

    async def _write(self, frame: bytes, generation: int) -> None:
        try:
            await self.transport.write_frame(frame)
        except Exception as e:
            if not self._is_live(generation):
                logger.debug("Ignoring stale write error (generation mismatch)")
                return
            logger.error(f"write_frame failed: {e}")
            self._settle(error=TransportWriteFailed(e))

    def _on_timeout(self, generation: int) -> None:
        if not self._is_live(generation):
            return
        in_flight = self._in_flight
        in_flight.timer = None
        error = CommandTimeout(in_flight.command, in_flight.timeout)
        logger.warning(str(error))
        self._settle(error=error)

    def _on_response(self, text: str) -> None:
        if self._closed:
            return
        if self._in_flight is None:
            logger.warning(f"Received stray response with no pending command: {text[:80]}")
            return
        try:
            data = parse_response(text)
        except CommandError as e:
            self._settle(error=e)
        else:
            self._settle(data=data)

    def _settle(self, data=None, error: Optional[CommandError] = None) -> None:
        in_flight = self._in_flight

        # Clear the slot first so the caller may send again as soon as it resumes
        self._generation += 1
        if in_flight.timer is not None:
            in_flight.timer.cancel()
            in_flight.timer = None
        self._in_flight = None
        self._last_command_time = time.time()
        self._set_busy(False)

        if error is not None:
            logger.error(f"Command failed: {in_flight.command}: {error}")
            self.command_error.emit(error, in_flight.command)
            if not in_flight.future.done():
                in_flight.future.set_exception(error)
        else:
            logger.debug(f"Command succeeded: {in_flight.command}")
            if not in_flight.future.done():
                in_flight.future.set_result(data)

    def _is_live(self, generation: int) -> bool:
        return self._in_flight is not None and self._in_flight.generation == generation

    def _set_busy(self, busy: bool) -> None:
        if self._busy != busy:
            self._busy = busy
            self.busy_changed.emit(busy)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        """Tear down the channel.

        A pending command is abandoned: its caller is never resumed,
        neither with a result nor an error. Safe to call repeatedly.
        """
        if self._closed:
            return
        self._closed = True
        logger.debug("CommandChannel shutdown")

        in_flight = self._in_flight
        if in_flight is not None:
            logger.debug(f"Abandoning pending command during shutdown: {in_flight.command}")
            if in_flight.timer is not None:
                in_flight.timer.cancel()
        self._generation += 1
        self._in_flight = None
        self._busy = False

        self.busy_changed.disconnect()
        self.command_error.disconnect()

    # -------------------------------------------------------------------------
    # Typed command helpers
    # -------------------------------------------------------------------------

    async def get_status(self) -> WifiSnapshot:
        data = await self.send(CMD_GET_STATUS)
        return WifiSnapshot.from_dict(data)

    async def scan_networks(self) -> List[ScannedNetwork]:
        """Ask the device for a Wi-Fi scan (uses the extended scan timeout)."""
        data = await self.send(CMD_SCAN)
        return [ScannedNetwork.from_dict(n) for n in data.get('networks') or []]

    async def list_saved_networks(self) -> List[SavedNetwork]:
        data = await self.send(CMD_LIST_NETWORKS)
        return [SavedNetwork.from_dict(n) for n in data.get('networks') or []]

    async def add_network(self, ssid: str, password: Optional[str] = None, priority: Optional[int] = None) -> None:
        params = {'ssid': ssid}
        if password is not None:
            params['password'] = password
        if priority is not None:
            params['priority'] = priority
        await self.send(CMD_ADD_NETWORK, params)

    async def delete_network(self, ssid: str) -> None:
        await self.send(CMD_DEL_NETWORK, {'ssid': ssid})

    async def connect_network(self, ssid: Optional[str] = None) -> None:
        """Join a saved network, or the best saved one when ssid is None."""
        await self.send(CMD_CONNECT, {'ssid': ssid} if ssid else None)

    async def disconnect_network(self) -> None:
        await self.send(CMD_DISCONNECT)

    async def get_ap_status(self) -> ApStatus:
        data = await self.send(CMD_GET_AP_STATUS)
        return ApStatus.from_dict(data)

    async def start_ap(self, ssid: Optional[str] = None, password: Optional[str] = None) -> None:
        params = {}
        if ssid is not None:
            params['ssid'] = ssid
        if password is not None:
            params['password'] = password
        await self.send(CMD_START_AP, params or None)

    async def stop_ap(self) -> None:
        await self.send(CMD_STOP_AP)

    async def get_variable(self, key: str) -> DeviceVariable:
        data = await self.send(CMD_GET_VAR, {'key': key})
        return DeviceVariable(key=data.get('key', key), value=data.get('value', ''))

    async def set_variable(self, key: str, value: str) -> None:
        await self.send(CMD_SET_VAR, {'key': key, 'value': value})

    async def factory_reset(self) -> None:
        await self.send(CMD_FACTORY_RESET)
