"""Provisioning wizard orchestration.

The ProvisioningOrchestrator drives the provisioning wizard by composing
the transport, the command channel and the connection poller. It never
touches a user interface; views follow along through its emitters.
"""

import asyncio
import logging
from typing import Optional, List

from pynnex import with_emitters, emitter

from .config import ProvisioningConfig
from .models import (
    Step,
    TransportState,
    ScannedNetwork,
    WifiSnapshot,
    WizardState,
    ProvisioningResult,
)
from .poller import ConnectionPoller
from .protocol import CommandChannel
from .transport import FramedTransport

logger = logging.getLogger(__name__)

NO_NETWORK_SELECTED = 'No network selected'
CONNECTION_LOST = 'Bluetooth connection lost'
WIFI_FAILED = 'WiFi connection failed. You can retry or go back.'
WIFI_TIMED_OUT = 'WiFi connection timed out. You can retry or go back.'


@with_emitters
class ProvisioningOrchestrator:
    """Wizard state machine for provisioning a device onto Wi-Fi.

    Steps run WELCOME -> CONNECT -> NETWORKS -> CREDENTIALS -> CONNECTING
    -> SUCCESS, with MANAGE reachable after success. Failures never raise
    out of the wizard actions: they are stored as the current error
    (``last_error``) and announced on ``error_changed``. Each new user
    action clears the current error first.
    """

    @emitter
    def step_changed(self):
        pass

    @emitter
    def error_changed(self):
        """Emitted with the new error message, or None when cleared."""
        pass

    @emitter
    def scanned_networks_updated(self):
        pass

    @emitter
    def selected_network_changed(self):
        pass

    @emitter
    def provisioning_complete(self):
        pass

    @emitter
    def provisioning_reset(self):
        pass

    @emitter
    def status_updated(self):
        pass

    def __init__(
        self,
        transport: FramedTransport,
        channel: CommandChannel,
        poller: ConnectionPoller,
        config: Optional[ProvisioningConfig] = None,
    ):
        self.transport = transport
        self.channel = channel
        self.poller = poller
        self.config = config or ProvisioningConfig()
        self._state = WizardState()
        self._attached = True
        self._tasks = set()

        self.transport.connection_state_changed.connect(self._on_connection_state)
        self.poller.connection_succeeded.connect(self._on_connection_succeeded)
        self.poller.connection_failed.connect(self._on_connection_failed)
        self.poller.connection_timed_out.connect(self._on_connection_timed_out)
        self.poller.wifi_state_changed.connect(self._on_wifi_state)

        logger.info(f"ProvisioningOrchestrator created: {self.config}")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def step(self) -> Step:
        return self._state.step

    @property
    def selected_network(self) -> Optional[ScannedNetwork]:
        return self._state.selected_network

    @property
    def scanned_networks(self) -> List[ScannedNetwork]:
        return list(self._state.scanned_networks)

    @property
    def last_error(self) -> Optional[str]:
        return self._state.last_error

    # -------------------------------------------------------------------------
    # Wizard actions
    # -------------------------------------------------------------------------

    async def scan_for_devices(self) -> None:
        """Start device discovery, dropping any current link first."""
        logger.info("scan_for_devices")
        self._clear_error()

        # WELCOME before disconnecting, as in reset()
        self._set_step(Step.WELCOME)

        try:
            if self.transport.is_connected:
                logger.debug("Disconnecting before scan")
                await self.transport.disconnect()
                await asyncio.sleep(self.config.disconnect_settle)

            await self.transport.start_scan()
        except Exception as e:
            logger.error(f"scan_for_devices failed: {e}")
            self._set_error(str(e))

    async def connect_to_device(self, device_id: str) -> None:
        """Connect to a device, then fetch its Wi-Fi scan results."""
        logger.info(f"connect_to_device: {device_id}")
        self._clear_error()

        try:
            self.transport.stop_scan()
            self._set_step(Step.CONNECT)
            await self.transport.connect(device_id)
        except Exception as e:
            logger.error(f"connect_to_device failed: {e}")
            self._set_error(str(e))
            self._set_step(Step.WELCOME)
            return

        try:
            await self.scan_wifi_networks()
        except Exception as e:
            # scan_wifi_networks has set the error and moved to NETWORKS for a retry
            logger.error(f"Post-connect Wi-Fi scan failed: {e}")

    async def scan_wifi_networks(self) -> None:
        """Run a Wi-Fi scan on the device and store results strongest first.

        The step moves to NETWORKS whether or not the scan succeeds.

        Raises:
            CommandError: If the scan command fails (after surfacing the error);
                a malformed reply is surfaced and re-raised the same way
        """
        logger.info("scan_wifi_networks")
        self._clear_error()

        try:
            networks = await self.channel.scan_networks()
            networks = sorted(networks, key=lambda n: n.rssi, reverse=True)
            self._state.scanned_networks = networks
            self.scanned_networks_updated.emit(list(networks))
        except Exception as e:
            logger.error(f"scan_wifi_networks failed: {e}")
            self._set_error(str(e))
            self._set_step(Step.NETWORKS)
            raise

        self._set_step(Step.NETWORKS)
        logger.info(f"Found {len(networks)} Wi-Fi networks")

    def select_network(self, network: ScannedNetwork) -> None:
        """Pick a network and move to credential entry."""
        logger.info(f"select_network: {network.ssid}")
        self._state.selected_network = network
        self.selected_network_changed.emit(network)
        self._set_step(Step.CREDENTIALS)

    async def choose_network(self, network: ScannedNetwork) -> None:
        """Select a network, submitting empty credentials right away for
        open networks when auto_connect_open_networks is enabled."""
        self.select_network(network)
        if network.is_open and self.config.auto_connect_open_networks:
            logger.info(f"{network.ssid} is open, skipping credential entry")
            await self.submit_credentials('')

    async def submit_credentials(self, password: str) -> None:
        """Save the selected network on the device and start joining it."""
        network = self._state.selected_network
        logger.info(f"submit_credentials for: {network.ssid if network else None}")
        self._clear_error()

        if network is None:
            self._set_error(NO_NETWORK_SELECTED)
            return

        try:
            await self.channel.add_network(
                network.ssid,
                password=password,
                priority=self.config.default_network_priority,
            )
            await self.channel.connect_network(network.ssid)
        except Exception as e:
            logger.error(f"submit_credentials failed: {e}")
            self._set_error(str(e))
            return

        self._set_step(Step.CONNECTING)
        self.poller.start_polling(self.config.poll_timeout, self.config.poll_interval)

    async def retry_connection(self) -> None:
        """Ask the device to join the selected network again and resume polling."""
        network = self._state.selected_network
        logger.info(f"retry_connection for: {network.ssid if network else None}")
        self._clear_error()

        if network is None:
            self._set_error(NO_NETWORK_SELECTED)
            return

        try:
            self.poller.reset()
            await self.channel.connect_network(network.ssid)
        except Exception as e:
            logger.error(f"retry_connection failed: {e}")
            self._set_error(str(e))
            return

        self.poller.start_polling(self.config.poll_timeout, self.config.poll_interval)

    async def delete_network_and_return(self) -> None:
        """Forget the selected network and go back to a fresh scan."""
        logger.info("delete_network_and_return")
        self.poller.reset()

        network = self._state.selected_network
        if network is not None:
            try:
                await self.channel.delete_network(network.ssid)
            except Exception as e:
                logger.warning(f"del_network failed (continuing anyway): {e}")

        self._state.selected_network = None
        self.selected_network_changed.emit(None)

        try:
            await self.scan_wifi_networks()
        except Exception as e:
            logger.error(f"Post-delete Wi-Fi scan failed: {e}")

    def go_to_networks(self) -> None:
        """Abandon credential entry and return to the network list."""
        logger.info("go_to_networks")
        self._state.selected_network = None
        self.selected_network_changed.emit(None)
        self._set_step(Step.NETWORKS)

    def go_to_manage(self) -> None:
        logger.info("go_to_manage")
        self._set_step(Step.MANAGE)

    async def reset(self) -> None:
        """Return to WELCOME and drop the device link.

        The step is set before disconnecting so the resulting
        DISCONNECTED transition is not taken for a lost connection.
        """
        logger.info("reset")
        self._state.step = Step.WELCOME
        self._state.selected_network = None
        self._state.scanned_networks = []

        self.poller.reset()

        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.warning(f"Disconnect during reset failed (ignoring): {e}")

        self.provisioning_reset.emit()
        self.step_changed.emit(Step.WELCOME)
        self.selected_network_changed.emit(None)
        self.scanned_networks_updated.emit([])

    async def shutdown(self) -> None:
        """Reset, detach from the services and drop all listeners."""
        if not self._attached:
            return
        logger.info("shutdown")
        await self.reset()
        self._attached = False
        for signal in (
            self.step_changed,
            self.error_changed,
            self.scanned_networks_updated,
            self.selected_network_changed,
            self.provisioning_complete,
            self.provisioning_reset,
            self.status_updated,
        ):
            signal.disconnect()
        logger.info("ProvisioningOrchestrator shut down")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_step(self, step: Step) -> None:
        if self._state.step is step:
            return
        previous = self._state.step
        self._state.step = step
        logger.info(f"Step: {previous.value} -> {step.value}")
        self.step_changed.emit(step)

    def _set_error(self, message: str) -> None:
        logger.error(f"Error: {message}")
        self._state.last_error = message
        self.error_changed.emit(message)

    def _clear_error(self) -> None:
        self._state.last_error = None
        self.error_changed.emit(None)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Service events
    # -------------------------------------------------------------------------

    def _on_connection_state(self, state: TransportState) -> None:
        if not self._attached:
            return
        if state is TransportState.DISCONNECTED and self._state.step not in (Step.WELCOME, Step.CONNECT):
            logger.warning(f"Bluetooth connection lost during provisioning (step: {self._state.step.value})")
            self._set_error(CONNECTION_LOST)
            self._spawn(self.reset())

    def _on_connection_succeeded(self, snapshot: WifiSnapshot) -> None:
        if not self._attached:
            return
        logger.info(f"Connection succeeded: {snapshot.ssid} {snapshot.ip}")
        self._set_step(Step.SUCCESS)

        device = self.transport.connected_device
        result = ProvisioningResult(
            success=True,
            ssid=snapshot.ssid,
            ip=snapshot.ip,
            device_name=device.name if device else None,
            device_id=device.id if device else None,
        )
        self.provisioning_complete.emit(result)

    def _on_connection_failed(self) -> None:
        if not self._attached:
            return
        logger.warning("Wi-Fi connection failed")
        # Stay on CONNECTING so the user can retry or go back
        self._set_error(WIFI_FAILED)

    def _on_connection_timed_out(self) -> None:
        if not self._attached:
            return
        logger.warning("Wi-Fi connection timed out")
        self._set_error(WIFI_TIMED_OUT)

    def _on_wifi_state(self, snapshot: WifiSnapshot) -> None:
        if not self._attached:
            return
        self.status_updated.emit(snapshot)
