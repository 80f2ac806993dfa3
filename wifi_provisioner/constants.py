"""Protocol and radio constants for the ESP32 Wi-Fi manager firmware.

All durations are in seconds.
"""

# GATT layout exposed by the Wi-Fi manager firmware
SERVICE_UUID = '0000ffe0-0000-1000-8000-00805f9b34fb'
STATUS_CHAR_UUID = '0000ffe1-0000-1000-8000-00805f9b34fb'  # Read, Notify
COMMAND_CHAR_UUID = '0000ffe2-0000-1000-8000-00805f9b34fb'  # Write
RESPONSE_CHAR_UUID = '0000ffe3-0000-1000-8000-00805f9b34fb'  # Read, Notify

DEVICE_NAME_PREFIX = 'ESP32-WiFi-'

# Radio timing
GATT_SETTLE = 0.12  # Minimum gap between GATT writes
DEFAULT_SCAN_TIMEOUT = 15.0
DEFAULT_CONNECTION_TIMEOUT = 10.0

# Command channel
DEFAULT_COMMAND_TIMEOUT = 8.0
COMMAND_TIMEOUTS = {
    'scan': 15.0,  # Wi-Fi scan blocks 3-5s on the device
}

# Provisioning flow
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_POLL_TIMEOUT = 30.0
DEFAULT_NETWORK_PRIORITY = 10
DISCONNECT_SETTLE = 0.5
TOTAL_WIZARD_STEPS = 6

# Framer channel names
RESPONSE_CHANNEL = 'response'
STATUS_CHANNEL = 'status'

# Wire command names
CMD_GET_STATUS = 'get_status'
CMD_SCAN = 'scan'
CMD_LIST_NETWORKS = 'list_networks'
CMD_ADD_NETWORK = 'add_network'
CMD_DEL_NETWORK = 'del_network'
CMD_CONNECT = 'connect'
CMD_DISCONNECT = 'disconnect'
CMD_GET_AP_STATUS = 'get_ap_status'
CMD_START_AP = 'start_ap'
CMD_STOP_AP = 'stop_ap'
CMD_GET_VAR = 'get_var'
CMD_SET_VAR = 'set_var'
CMD_FACTORY_RESET = 'factory_reset'
