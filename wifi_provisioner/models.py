"""Data models for device payloads and provisioning state.

This module consolidates the value types exchanged with the device and
the state tracked by the service layers:
- State enums (WifiConnectionState, TransportState, WifiAuthType, Step)
- Device payloads (WifiSnapshot, ScannedNetwork, SavedNetwork, ApStatus, DeviceVariable)
- Radio peers (DiscoveredDevice, ConnectedDevice)
- Service state (PollerState, WizardState, ProvisioningResult)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List

import logging

from .constants import TOTAL_WIZARD_STEPS

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class WifiConnectionState(Enum):
    """Station connection state reported by the device."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

    @classmethod
    def parse(cls, value) -> 'WifiConnectionState':
        """Map a wire value to a state, treating unknown values as disconnected."""
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown Wi-Fi state {value!r}, treating as disconnected")
            return cls.DISCONNECTED


class TransportState(Enum):
    """Connection state of the radio link to the device."""
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class WifiAuthType(Enum):
    OPEN = "OPEN"
    WEP = "WEP"
    WPA = "WPA"
    WPA2 = "WPA2"
    WPA_WPA2 = "WPA/WPA2"
    WPA3 = "WPA3"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value) -> 'WifiAuthType':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Step(Enum):
    """Provisioning wizard steps."""
    WELCOME = "welcome"
    CONNECT = "connect"
    NETWORKS = "networks"
    CREDENTIALS = "credentials"
    CONNECTING = "connecting"
    SUCCESS = "success"
    MANAGE = "manage"


# Linear wizard order; MANAGE sits outside it
STEP_ORDER = [
    Step.WELCOME,
    Step.CONNECT,
    Step.NETWORKS,
    Step.CREDENTIALS,
    Step.CONNECTING,
    Step.SUCCESS,
]


def step_number(step: Step) -> Optional[int]:
    """Return the 1-based wizard position of a step (out of
    TOTAL_WIZARD_STEPS), or None for MANAGE."""
    if step in STEP_ORDER:
        return STEP_ORDER.index(step) + 1
    return None


# =============================================================================
# Device payloads
# =============================================================================

@dataclass(frozen=True)
class WifiSnapshot:
    """One status poll result. Immutable per poll."""

    state: WifiConnectionState = WifiConnectionState.DISCONNECTED
    ssid: str = ''
    ip: str = ''
    rssi: int = 0  # Signal strength in dBm
    quality: int = 0  # Signal quality in percent

    # Extra fields reported by get_status
    channel: int = 0
    netmask: str = ''
    gateway: str = ''
    dns: str = ''
    mac: str = ''
    hostname: str = ''
    uptime_ms: int = 0
    ap_active: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> 'WifiSnapshot':
        """Build a snapshot from a get_status payload.

        The firmware reports the state under ``state`` or ``wifi_state``;
        both are accepted and missing values fall back to defaults.
        """
        raw_state = data.get('state') or data.get('wifi_state') or 'disconnected'
        return cls(
            state=WifiConnectionState.parse(raw_state),
            ssid=data.get('ssid') or '',
            ip=data.get('ip') or '',
            rssi=data.get('rssi') or 0,
            quality=data.get('quality') or 0,
            channel=data.get('channel') or 0,
            netmask=data.get('netmask') or '',
            gateway=data.get('gateway') or '',
            dns=data.get('dns') or '',
            mac=data.get('mac') or '',
            hostname=data.get('hostname') or '',
            uptime_ms=data.get('uptime_ms') or 0,
            ap_active=bool(data.get('ap_active', False)),
        )


@dataclass(frozen=True)
class ScannedNetwork:
    """An access point seen by the device's Wi-Fi scan."""

    ssid: str
    rssi: int = 0
    auth: WifiAuthType = WifiAuthType.UNKNOWN

    @property
    def is_open(self) -> bool:
        return self.auth is WifiAuthType.OPEN

    @classmethod
    def from_dict(cls, data: dict) -> 'ScannedNetwork':
        return cls(
            ssid=data.get('ssid', ''),
            rssi=data.get('rssi', 0),
            auth=WifiAuthType.parse(data.get('auth', 'UNKNOWN')),
        )


@dataclass(frozen=True)
class SavedNetwork:
    ssid: str
    priority: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'SavedNetwork':
        return cls(ssid=data.get('ssid', ''), priority=data.get('priority', 0))


@dataclass(frozen=True)
class ApStatus:
    """Soft access point status."""

    active: bool = False
    ssid: str = ''
    ip: str = ''
    sta_count: int = 0  # Stations attached to the AP

    @classmethod
    def from_dict(cls, data: dict) -> 'ApStatus':
        return cls(
            active=bool(data.get('active', False)),
            ssid=data.get('ssid', ''),
            ip=data.get('ip', ''),
            sta_count=data.get('sta_count', 0),
        )


@dataclass(frozen=True)
class DeviceVariable:
    key: str
    value: str

    @classmethod
    def from_dict(cls, data: dict) -> 'DeviceVariable':
        return cls(key=data.get('key', ''), value=data.get('value', ''))


# =============================================================================
# Radio peers
# =============================================================================

@dataclass(frozen=True)
class DiscoveredDevice:
    """A device seen during discovery."""

    id: str  # Platform address (MAC on Linux/Windows, UUID on macOS)
    name: str  # Advertised name, e.g. "ESP32-WiFi-A1B2C3"
    rssi: int = 0


@dataclass(frozen=True)
class ConnectedDevice:
    id: str
    name: str
    mtu: Optional[int] = None  # Negotiated MTU, if known


# =============================================================================
# Service state
# =============================================================================

@dataclass
class PollerState:
    """State tracked by the connection poller between resets."""

    saw_connecting: bool = False
    failed: bool = False
    last_error: Optional[str] = None
    snapshot: WifiSnapshot = field(default_factory=WifiSnapshot)


@dataclass
class WizardState:
    """State of the provisioning wizard."""

    step: Step = Step.WELCOME
    selected_network: Optional[ScannedNetwork] = None
    scanned_networks: List[ScannedNetwork] = field(default_factory=list)
    last_error: Optional[str] = None


@dataclass
class ProvisioningResult:
    """Outcome reported when the device joins the network."""

    success: bool
    ssid: Optional[str] = None
    ip: Optional[str] = None
    device_name: Optional[str] = None
    device_id: Optional[str] = None
