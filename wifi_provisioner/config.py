"""Configuration dataclasses for the provisioning services.

Each layer takes its own config object; ProvisioningConfig bundles them
and round-trips through plain dictionaries (e.g., from a settings file).
All durations are in seconds.
"""

from dataclasses import dataclass, field
from typing import Dict

from .constants import (
    DEVICE_NAME_PREFIX,
    DEFAULT_SCAN_TIMEOUT,
    GATT_SETTLE,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_NETWORK_PRIORITY,
    DISCONNECT_SETTLE,
)


@dataclass
class TransportConfig:
    device_name_prefix: str = DEVICE_NAME_PREFIX  # Only devices with this name prefix are reported
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT
    gatt_settle: float = GATT_SETTLE
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict) -> 'TransportConfig':
        return cls(
            device_name_prefix=data.get('device_name_prefix', DEVICE_NAME_PREFIX),
            scan_timeout=float(data.get('scan_timeout', DEFAULT_SCAN_TIMEOUT)),
            gatt_settle=float(data.get('gatt_settle', GATT_SETTLE)),
            connection_timeout=float(data.get('connection_timeout', DEFAULT_CONNECTION_TIMEOUT)),
        )


@dataclass
class ProtocolConfig:
    default_timeout: float = DEFAULT_COMMAND_TIMEOUT
    # Per-command overrides, keyed by wire command name
    command_timeouts: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> 'ProtocolConfig':
        return cls(
            default_timeout=float(data.get('default_timeout', DEFAULT_COMMAND_TIMEOUT)),
            command_timeouts={
                name: float(value)
                for name, value in (data.get('command_timeouts') or {}).items()
            },
        )


@dataclass
class ProvisioningConfig:
    """Complete configuration for a provisioning service graph."""

    transport: TransportConfig = field(default_factory=TransportConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)

    # Connection polling after credentials are committed
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_POLL_TIMEOUT

    default_network_priority: int = DEFAULT_NETWORK_PRIORITY
    disconnect_settle: float = DISCONNECT_SETTLE  # Pause after dropping the link before rescanning
    auto_connect_open_networks: bool = True  # Skip credential entry for OPEN networks

    @classmethod
    def from_dict(cls, data: dict) -> 'ProvisioningConfig':
        """Create a ProvisioningConfig from a dictionary.

        Args:
            data: Dictionary with 'transport' and 'protocol' sections plus
                top-level provisioning keys; missing keys use defaults

        Returns:
            ProvisioningConfig instance
        """
        return cls(
            transport=TransportConfig.from_dict(data.get('transport') or {}),
            protocol=ProtocolConfig.from_dict(data.get('protocol') or {}),
            poll_interval=float(data.get('poll_interval', DEFAULT_POLL_INTERVAL)),
            poll_timeout=float(data.get('poll_timeout', DEFAULT_POLL_TIMEOUT)),
            default_network_priority=int(data.get('default_network_priority', DEFAULT_NETWORK_PRIORITY)),
            disconnect_settle=float(data.get('disconnect_settle', DISCONNECT_SETTLE)),
            auto_connect_open_networks=bool(data.get('auto_connect_open_networks', True)),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'transport': dict(self.transport.__dict__),
            'protocol': {
                'default_timeout': self.protocol.default_timeout,
                'command_timeouts': dict(self.protocol.command_timeouts),
            },
            'poll_interval': self.poll_interval,
            'poll_timeout': self.poll_timeout,
            'default_network_priority': self.default_network_priority,
            'disconnect_settle': self.disconnect_settle,
            'auto_connect_open_networks': self.auto_connect_open_networks,
        }
