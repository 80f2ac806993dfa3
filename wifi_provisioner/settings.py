"""Settings management for the provisioning tools."""
import json
import logging
import os

from .config import ProvisioningConfig

log = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = os.path.join(os.path.expanduser('~'), '.wifi_provisioner.json')


class Settings:
    """Handles loading and saving provisioning settings."""

    def __init__(self, settings_file=None):
        if settings_file is None:
            settings_file = DEFAULT_SETTINGS_FILE
        self.settings_file = settings_file
        self.data = self._load_settings()

    def _load_settings(self):
        """Load settings from file, layered over the defaults."""
        data = self._default_settings()
        if os.path.exists(self.settings_file):
            try:
                with open(self.settings_file, 'r') as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ValueError(f"expected a JSON object, got {type(loaded).__name__}")
                data.update(loaded)
                log.info(f"[Settings] Loaded settings from {self.settings_file}")
            except (OSError, ValueError) as e:
                log.warning(f"[Settings] Error loading settings: {e}")
        return data

    def _default_settings(self):
        """Return default settings."""
        return ProvisioningConfig().to_dict()

    def get(self, key, default=None):
        """Get a setting value."""
        return self.data.get(key, default)

    def set(self, key, value):
        """Set a setting value and save to file."""
        self.data[key] = value
        self._save_settings()

    def set_multiple(self, updates):
        """Set multiple settings at once and save."""
        self.data.update(updates)
        self._save_settings()

    def _save_settings(self):
        """Save settings to file."""
        try:
            with open(self.settings_file, 'w') as f:
                json.dump(self.data, f, indent=2)
            log.info(f"[Settings] Saved settings to {self.settings_file}")
        except OSError as e:
            log.warning(f"[Settings] Error saving settings: {e}")

    def get_all(self):
        """Get all settings."""
        return self.data.copy()

    def to_config(self) -> ProvisioningConfig:
        """Build the service configuration from the current settings."""
        return ProvisioningConfig.from_dict(self.data)
