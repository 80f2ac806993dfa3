"""Post-provisioning device management.

DeviceManager wraps the management commands used once a device is
provisioned: saved networks, the soft access point, device variables
and factory reset.
"""

import logging
from typing import Optional, List

from pynnex import with_emitters, emitter

from .models import SavedNetwork, ApStatus, DeviceVariable
from .protocol import CommandChannel

logger = logging.getLogger(__name__)


@with_emitters
class DeviceManager:
    """Management actions for a connected device.

    Like the orchestrator, failures are kept as the current error
    (``last_error``) instead of being raised; each action clears it
    first and returns None/False when it fails.
    """

    @emitter
    def saved_networks_updated(self):
        pass

    @emitter
    def ap_status_updated(self):
        pass

    @emitter
    def error_changed(self):
        pass

    def __init__(self, channel: CommandChannel):
        self.channel = channel
        self.saved_networks: List[SavedNetwork] = []
        self.ap_status: Optional[ApStatus] = None
        self.last_error: Optional[str] = None

    async def refresh_saved_networks(self) -> Optional[List[SavedNetwork]]:
        self._clear_error()
        try:
            networks = await self.channel.list_saved_networks()
        except Exception as e:
            self._set_error(e)
            return None
        self.saved_networks = networks
        self.saved_networks_updated.emit(list(networks))
        return networks

    async def forget_network(self, ssid: str) -> bool:
        """Delete a saved network and reload the list."""
        logger.info(f"forget_network: {ssid}")
        self._clear_error()
        try:
            await self.channel.delete_network(ssid)
        except Exception as e:
            self._set_error(e)
            return False
        return await self.refresh_saved_networks() is not None

    async def refresh_ap_status(self) -> Optional[ApStatus]:
        self._clear_error()
        try:
            status = await self.channel.get_ap_status()
        except Exception as e:
            self._set_error(e)
            return None
        self.ap_status = status
        self.ap_status_updated.emit(status)
        return status

    async def start_access_point(self, ssid: Optional[str] = None, password: Optional[str] = None) -> bool:
        logger.info(f"start_access_point: {ssid}")
        self._clear_error()
        try:
            await self.channel.start_ap(ssid=ssid, password=password)
        except Exception as e:
            self._set_error(e)
            return False
        return await self.refresh_ap_status() is not None

    async def stop_access_point(self) -> bool:
        logger.info("stop_access_point")
        self._clear_error()
        try:
            await self.channel.stop_ap()
        except Exception as e:
            self._set_error(e)
            return False
        return await self.refresh_ap_status() is not None

    async def read_variable(self, key: str) -> Optional[DeviceVariable]:
        self._clear_error()
        try:
            return await self.channel.get_variable(key)
        except Exception as e:
            self._set_error(e)
            return None

    async def write_variable(self, key: str, value: str) -> bool:
        self._clear_error()
        try:
            await self.channel.set_variable(key, value)
        except Exception as e:
            self._set_error(e)
            return False
        return True

    async def factory_reset(self) -> bool:
        """Wipe saved networks and variables on the device."""
        logger.warning("factory_reset requested")
        self._clear_error()
        try:
            await self.channel.factory_reset()
        except Exception as e:
            self._set_error(e)
            return False
        self.saved_networks = []
        self.saved_networks_updated.emit([])
        return True

    def shutdown(self) -> None:
        self.saved_networks_updated.disconnect()
        self.ap_status_updated.disconnect()
        self.error_changed.disconnect()

    def _set_error(self, error: Exception) -> None:
        logger.error(f"Device management error: {error}")
        self.last_error = str(error)
        self.error_changed.emit(self.last_error)

    def _clear_error(self) -> None:
        if self.last_error is not None:
            self.last_error = None
            self.error_changed.emit(None)
