import pytest

from wifi_provisioner.models import (
    Step,
    STEP_ORDER,
    TOTAL_WIZARD_STEPS,
    WifiAuthType,
    WifiConnectionState,
    WifiSnapshot,
    step_number,
)


def test_snapshot_accepts_either_state_key():
    assert WifiSnapshot.from_dict({'state': 'connecting'}).state is WifiConnectionState.CONNECTING
    assert WifiSnapshot.from_dict({'wifi_state': 'connected'}).state is WifiConnectionState.CONNECTED


def test_snapshot_defaults():
    snapshot = WifiSnapshot.from_dict({})
    assert snapshot == WifiSnapshot()
    assert snapshot.state is WifiConnectionState.DISCONNECTED


def test_unknown_wifi_state_is_disconnected():
    assert WifiSnapshot.from_dict({'state': 'sleeping'}).state is WifiConnectionState.DISCONNECTED


@pytest.mark.parametrize('raw, expected', [
    ('OPEN', WifiAuthType.OPEN),
    ('WPA/WPA2', WifiAuthType.WPA_WPA2),
    ('WPA3', WifiAuthType.WPA3),
    ('WPA2-ENTERPRISE', WifiAuthType.UNKNOWN),
])
def test_auth_parse(raw, expected):
    assert WifiAuthType.parse(raw) is expected


def test_step_numbers():
    assert len(STEP_ORDER) == TOTAL_WIZARD_STEPS == 6
    assert step_number(Step.WELCOME) == 1
    assert step_number(Step.SUCCESS) == TOTAL_WIZARD_STEPS
    assert step_number(Step.MANAGE) is None
