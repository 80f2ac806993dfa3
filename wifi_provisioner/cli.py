"""Command-line harness for provisioning devices without a UI.

Useful for:
- Checking that devices advertise and accept connections
- Reading a device's Wi-Fi status
- Provisioning a device end to end from a terminal

Usage:
    wifi-provisioner discover --timeout 10
    wifi-provisioner status --device AA:BB:CC:DD:EE:FF
    wifi-provisioner provision --device AA:BB:CC:DD:EE:FF --ssid MyWiFi --password secret

Options:
    --settings FILE     JSON settings file (default: ~/.wifi_provisioner.json)
    --verbose           Echo debug logging to the console
"""

import argparse
import asyncio
import logging
import sys

from .logger import setup_logging, get_logger
from .models import Step, ScannedNetwork, TOTAL_WIZARD_STEPS, step_number
from .services import ProvisioningServices
from .settings import Settings


async def run_discover(services: ProvisioningServices, timeout: float) -> int:
    """Scan for devices and print each one as it is found."""
    found = []

    def on_device(device):
        found.append(device)
        print(f"  {device.name:<24} {device.id:<40} {device.rssi} dBm")

    services.transport.device_discovered.connect(on_device)
    print(f"Scanning for {timeout:g}s...")
    await services.orchestrator.scan_for_devices()
    if services.orchestrator.last_error:
        print(f"Scan failed: {services.orchestrator.last_error}")
        return 1

    await asyncio.sleep(timeout)
    services.transport.stop_scan()
    print(f"{len(found)} device(s) found")
    return 0


async def run_status(services: ProvisioningServices, device_id: str) -> int:
    """Connect to a device and print one status snapshot."""
    try:
        await services.transport.connect(device_id)
        snapshot = await services.poller.poll_once()
    except Exception as e:
        print(f"Status query failed: {e}")
        return 1

    print(f"State:    {snapshot.state.value}")
    print(f"SSID:     {snapshot.ssid or '-'}")
    print(f"IP:       {snapshot.ip or '-'}")
    print(f"Signal:   {snapshot.rssi} dBm ({snapshot.quality}%)")
    print(f"Hostname: {snapshot.hostname or '-'}")
    print(f"AP:       {'active' if snapshot.ap_active else 'inactive'}")
    return 0


async def run_provision(services: ProvisioningServices, device_id: str, ssid: str, password: str) -> int:
    """Drive the full wizard against one device."""
    orchestrator = services.orchestrator
    finished = asyncio.Event()
    outcome = {}

    def on_complete(result):
        outcome['result'] = result
        finished.set()

    def on_error(message):
        if message:
            print(f"  ! {message}")
            if orchestrator.step is Step.CONNECTING:
                outcome['error'] = message
                finished.set()

    def on_step(step):
        number = step_number(step)
        if number is None:
            print(f"[{step.value}]")
        else:
            print(f"[{number}/{TOTAL_WIZARD_STEPS}] {step.value}")

    orchestrator.provisioning_complete.connect(on_complete)
    orchestrator.error_changed.connect(on_error)
    orchestrator.step_changed.connect(on_step)

    await orchestrator.connect_to_device(device_id)
    if orchestrator.step is not Step.NETWORKS or orchestrator.last_error:
        return 1

    network = next((n for n in orchestrator.scanned_networks if n.ssid == ssid), None)
    if network is None:
        get_logger(__name__).info(f"{ssid} not in scan results, provisioning it as a hidden network")
        network = ScannedNetwork(ssid=ssid)

    orchestrator.select_network(network)
    await orchestrator.submit_credentials(password)
    if orchestrator.step is not Step.CONNECTING:
        return 1

    # The poller always finishes within poll_timeout
    await asyncio.wait_for(finished.wait(), timeout=services.config.poll_timeout + 5.0)

    if 'result' not in outcome:
        return 1
    result = outcome['result']
    print(f"Provisioned {result.device_name} onto {result.ssid} ({result.ip})")
    return 0


async def run(args) -> int:
    settings = Settings(args.settings)
    async with ProvisioningServices(settings.to_config()) as services:
        if args.command == 'discover':
            return await run_discover(services, args.timeout)
        if args.command == 'status':
            return await run_status(services, args.device)
        return await run_provision(services, args.device, args.ssid, args.password)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wifi-provisioner',
        description='Provision ESP32 Wi-Fi manager devices over BLE',
    )
    parser.add_argument('--settings', help='JSON settings file')
    parser.add_argument('--verbose', action='store_true', help='Echo debug logging to the console')

    sub = parser.add_subparsers(dest='command', required=True)

    discover = sub.add_parser('discover', help='List advertising devices')
    discover.add_argument('--timeout', type=float, default=10.0, help='Scan duration in seconds')

    status = sub.add_parser('status', help='Read Wi-Fi status from a device')
    status.add_argument('--device', required=True, help='Device address')

    provision = sub.add_parser('provision', help='Join a device to a Wi-Fi network')
    provision.add_argument('--device', required=True, help='Device address')
    provision.add_argument('--ssid', required=True)
    provision.add_argument('--password', default='')

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nCancelled")
        return 130
    except asyncio.TimeoutError:
        print("Timed out waiting for the device")
        return 1


if __name__ == '__main__':
    sys.exit(main())
