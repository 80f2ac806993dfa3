"""Wi-Fi provisioning package for ESP32 Wi-Fi manager devices.

This package provisions devices onto a Wi-Fi network over a BLE
GATT link carrying a JSON command protocol.

Key components:
- FramedTransport: Abstract radio link with notification reassembly
- BleakTransport: BLE implementation of FramedTransport
- MessageFramer: Reassembles notification chunks into JSON messages
- CommandChannel: Single-flight command/response channel
- ConnectionPoller: Tracks Wi-Fi join progress after credentials are sent
- ProvisioningOrchestrator: Wizard state machine tying the layers together
- DeviceManager: Saved networks, access point and variable management
- ProvisioningServices: Builds and tears down the service graph
"""

from .config import TransportConfig, ProtocolConfig, ProvisioningConfig
from .errors import (
    ProvisionerError,
    TransportError,
    CommandError,
    ChannelBusy,
    ChannelClosed,
    CommandTimeout,
    InvalidResponse,
    DeviceError,
    TransportWriteFailed,
)
from .framer import MessageFramer
from .manage import DeviceManager
from .models import (
    WifiConnectionState,
    TransportState,
    WifiAuthType,
    Step,
    STEP_ORDER,
    TOTAL_WIZARD_STEPS,
    step_number,
    WifiSnapshot,
    ScannedNetwork,
    SavedNetwork,
    ApStatus,
    DeviceVariable,
    DiscoveredDevice,
    ConnectedDevice,
    ProvisioningResult,
)
from .orchestrator import ProvisioningOrchestrator
from .poller import ConnectionPoller
from .protocol import CommandChannel
from .services import ProvisioningServices
from .transport import FramedTransport

__all__ = [
    'FramedTransport',
    'MessageFramer',
    'CommandChannel',
    'ConnectionPoller',
    'ProvisioningOrchestrator',
    'DeviceManager',
    'ProvisioningServices',
    'TransportConfig',
    'ProtocolConfig',
    'ProvisioningConfig',
    'ProvisionerError',
    'TransportError',
    'CommandError',
    'ChannelBusy',
    'ChannelClosed',
    'CommandTimeout',
    'InvalidResponse',
    'DeviceError',
    'TransportWriteFailed',
    'WifiConnectionState',
    'TransportState',
    'WifiAuthType',
    'Step',
    'STEP_ORDER',
    'TOTAL_WIZARD_STEPS',
    'step_number',
    'WifiSnapshot',
    'ScannedNetwork',
    'SavedNetwork',
    'ApStatus',
    'DeviceVariable',
    'DiscoveredDevice',
    'ConnectedDevice',
    'ProvisioningResult',
]
