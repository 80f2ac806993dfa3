"""Connection progress poller.

Polls get_status on an interval after credentials are committed and
turns the stream of snapshots into terminal events: succeeded, failed
or timed out.
"""

import asyncio
import logging
from typing import Optional

from pynnex import with_emitters, emitter

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_POLL_TIMEOUT
from .models import WifiConnectionState, WifiSnapshot, PollerState

logger = logging.getLogger(__name__)


@with_emitters
class ConnectionPoller:
    """Tracks Wi-Fi connection progress on the device.

    Two independent timer handles drive polling: a repeating interval
    tick and a single absolute timeout. Both are cancelled on every exit
    path (success, failure, timeout, stop, reset). A terminal event is
    emitted only after the timers are cancelled.

    Each start_polling() opens a new session; ticks still in flight
    when their session ends are discarded without emitting anything.
    """

    @emitter
    def wifi_state_changed(self):
        pass

    @emitter
    def connection_succeeded(self):
        pass

    @emitter
    def connection_failed(self):
        pass

    @emitter
    def connection_timed_out(self):
        pass

    @emitter
    def poll_error(self):
        """Emitted with the exception of a failed status query. Polling continues."""
        pass

    def __init__(self, channel):
        """Initialize the poller.

        Args:
            channel: Anything with an async get_status() -> WifiSnapshot,
                normally a CommandChannel
        """
        self.channel = channel
        self._state = PollerState()
        self._polling = False
        self._session = 0
        self._interval = DEFAULT_POLL_INTERVAL
        self._interval_timer: Optional[asyncio.TimerHandle] = None
        self._timeout_timer: Optional[asyncio.TimerHandle] = None
        self._tasks = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._polling

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def snapshot(self) -> WifiSnapshot:
        return self._state.snapshot

    @property
    def saw_connecting(self) -> bool:
        return self._state.saw_connecting

    @property
    def has_connection_failed(self) -> bool:
        return self._state.failed

    @property
    def last_error(self) -> Optional[str]:
        return self._state.last_error

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def start_polling(self, timeout: float = DEFAULT_POLL_TIMEOUT, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Begin polling get_status.

        No-op while already polling. Issues the first query right away.

        Args:
            timeout: Seconds before giving up and emitting connection_timed_out
            interval: Seconds between status queries
        """
        if self._polling:
            logger.debug("start_polling called while already polling, ignoring")
            return

        logger.info(f"Starting connection polling (interval={interval}s, timeout={timeout}s)")
        loop = asyncio.get_running_loop()

        self._polling = True
        self._session += 1
        self._state.saw_connecting = False
        self._state.failed = False
        self._state.last_error = None

        self._interval = interval
        self._interval_timer = loop.call_later(interval, self._on_tick)
        self._timeout_timer = loop.call_later(timeout, self._on_timeout)

        self._spawn(self._poll(self._session))

    def stop_polling(self) -> None:
        """Cancel both timers. Snapshot and failure flags are kept."""
        if self._interval_timer is not None:
            self._interval_timer.cancel()
            self._interval_timer = None
        if self._timeout_timer is not None:
            self._timeout_timer.cancel()
            self._timeout_timer = None
        if self._polling:
            self._polling = False
            self._session += 1
            logger.debug("Polling stopped")

    async def poll_once(self) -> WifiSnapshot:
        """Run a single status query outside the polling loop.

        Errors propagate to the caller.
        """
        snapshot = await self.channel.get_status()
        self._state.snapshot = snapshot
        self.wifi_state_changed.emit(snapshot)
        return snapshot

    def reset(self) -> None:
        """Stop polling and return all tracked state to defaults."""
        self.stop_polling()
        self._state = PollerState()
        logger.debug("State reset to defaults")

    def shutdown(self) -> None:
        self.stop_polling()
        for task in list(self._tasks):
            task.cancel()
        for signal in (
            self.wifi_state_changed,
            self.connection_succeeded,
            self.connection_failed,
            self.connection_timed_out,
            self.poll_error,
        ):
            signal.disconnect()
        logger.debug("ConnectionPoller shut down")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _on_tick(self) -> None:
        loop = asyncio.get_running_loop()
        self._interval_timer = loop.call_later(self._interval, self._on_tick)
        self._spawn(self._poll(self._session))

    def _on_timeout(self) -> None:
        self._timeout_timer = None
        logger.warning("Connection polling timed out")
        self.stop_polling()
        self.connection_timed_out.emit()

    def _is_current(self, session: int) -> bool:
        return self._polling and session == self._session

    async def _poll(self, session: int) -> None:
        try:
            snapshot = await self.channel.get_status()
        except Exception as e:
            if not self._is_current(session):
                return
            self._state.last_error = str(e)
            logger.warning(f"Poll error (will retry): {e}")
            self.poll_error.emit(e)
            return

        if not self._is_current(session):
            logger.debug("Discarding status from a finished polling session")
            return

        self._state.snapshot = snapshot
        self.wifi_state_changed.emit(snapshot)

        if snapshot.state is WifiConnectionState.CONNECTING:
            self._state.saw_connecting = True

        if snapshot.state is WifiConnectionState.CONNECTED:
            logger.info(f"Wi-Fi connected: ssid={snapshot.ssid} ip={snapshot.ip}")
            self.stop_polling()
            self.connection_succeeded.emit(snapshot)
            return

        if self._state.saw_connecting and snapshot.state is WifiConnectionState.DISCONNECTED:
            logger.warning("Connection failed: saw connecting then disconnected")
            self._state.failed = True
            self.stop_polling()
            self.connection_failed.emit()

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
