"""Service graph construction and teardown.

ProvisioningServices builds the four layers in dependency order
(transport -> channel -> poller -> orchestrator, plus the device
manager) and shuts them down in reverse order.
"""

import logging
from typing import Optional

from .config import ProvisioningConfig
from .manage import DeviceManager
from .orchestrator import ProvisioningOrchestrator
from .poller import ConnectionPoller
from .protocol import CommandChannel
from .transport import FramedTransport

logger = logging.getLogger(__name__)


class ProvisioningServices:
    """Owns one complete provisioning service graph.

    Any layer can be passed in (e.g., a fake transport in tests);
    missing layers are created from the config. By default the
    transport is a BleakTransport.
    """

    def __init__(
        self,
        config: Optional[ProvisioningConfig] = None,
        transport: Optional[FramedTransport] = None,
        channel: Optional[CommandChannel] = None,
        poller: Optional[ConnectionPoller] = None,
    ):
        self.config = config or ProvisioningConfig()

        if transport is None:
            from .ble_transport import BleakTransport
            transport = BleakTransport(self.config.transport)
        self.transport = transport
        self.channel = channel or CommandChannel(self.transport, self.config.protocol)
        self.poller = poller or ConnectionPoller(self.channel)
        self.orchestrator = ProvisioningOrchestrator(
            self.transport, self.channel, self.poller, self.config
        )
        self.manager = DeviceManager(self.channel)

        self._shut_down = False
        logger.info("Provisioning services initialized")

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    async def shutdown(self) -> None:
        """Tear down all services in reverse dependency order. Idempotent."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down provisioning services")

        await self.orchestrator.shutdown()
        self.manager.shutdown()
        self.poller.shutdown()
        self.channel.shutdown()
        await self.transport.shutdown()

        logger.info("Provisioning services shut down")

    async def __aenter__(self) -> 'ProvisioningServices':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
