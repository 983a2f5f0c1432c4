from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from fake_transport import FakeTransport, characteristic, service

from bellctl.core.decoder import HomeEvent, JoystickState, Unrecognized
from bellctl.core.errors import ConnectFailureError, DeviceSelectionError, ServiceNotFoundError
from bellctl.core.link import LinkOutcome
from bellctl.core.model import DetectedDevice
from bellctl.core.service import BellService
from bellctl.core.thermal import ThermalSample
from bellctl.core.uuid_match import full_uuid

BELL = DetectedDevice(mac="10:38:C1:00:00:0C", name="bell_Controller")
BELL_2 = DetectedDevice(mac="10:38:C1:30:7B:03", name="bell_Controller")
MMC = DetectedDevice(mac="00:81:F9:DF:B0:40", name="")
SPEAKER = DetectedDevice(mac="AA:BB:CC:00:11:22", name="Speaker")
JOYSTICK = bytes([0, 0, 0, 0, 0, 0, 0x01, 0x04, 0x01, 0])


@pytest.fixture(autouse=True)
def _isolated_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def _service(transport: FakeTransport) -> BellService:
    bell_service = BellService(transport=transport)
    bell_service.profiles = {
        key: replace(profile, link=replace(profile.link, settle_delay_s=0.0))
        for key, profile in bell_service.profiles.items()
    }
    return bell_service


def test_list_profiles_sorted() -> None:
    bell_service = _service(FakeTransport())
    assert [p.id for p in bell_service.list_profiles()] == ["bell", "mmc"]


def test_resolve_target_matches_bell_by_name() -> None:
    transport = FakeTransport(devices=[SPEAKER, BELL])
    target = _service(transport).resolve_target()
    assert target.device == BELL
    assert target.profile.id == "bell"


def test_resolve_target_matches_mmc_by_mac_prefix() -> None:
    transport = FakeTransport(devices=[MMC, SPEAKER])
    target = _service(transport).resolve_target(profile_id="mmc")
    assert target.device == MMC
    assert transport.calls[0] == ("scan", 5.0)


def test_multiple_candidates_requires_device() -> None:
    bell_service = _service(FakeTransport(devices=[BELL, BELL_2]))
    with pytest.raises(DeviceSelectionError) as exc:
        bell_service.resolve_target(profile_id="bell")
    assert "--device" in str(exc.value)


def test_device_hint_picks_one_candidate() -> None:
    bell_service = _service(FakeTransport(devices=[BELL, BELL_2]))
    target = bell_service.resolve_target(profile_id="bell", device_hint="7b:03")
    assert target.device == BELL_2


def test_unknown_profile() -> None:
    with pytest.raises(DeviceSelectionError):
        _service(FakeTransport(devices=[BELL])).resolve_target(profile_id="gamepad")


def test_no_devices() -> None:
    with pytest.raises(DeviceSelectionError):
        _service(FakeTransport()).resolve_target()


def test_listen_streams_decoded_events_until_loss() -> None:
    transport = FakeTransport(devices=[BELL], payloads=[JOYSTICK, bytes([8, 0, 0])], lose_connection=True)
    received = []
    targets = []

    outcome = _service(transport).listen(received.append, on_target=targets.append)

    assert outcome is LinkOutcome.CONNECTION_LOST
    assert isinstance(received[0], JoystickState)
    assert received[1] == HomeEvent(held=True)
    assert targets[0].device == BELL


def test_listen_stops_after_max_events_and_disconnects() -> None:
    transport = FakeTransport(devices=[BELL], payloads=[JOYSTICK, JOYSTICK, JOYSTICK])
    received = []

    outcome = _service(transport).listen(received.append, max_events=2, send_command=True)

    assert outcome is LinkOutcome.CLOSED
    assert len(received) == 2
    assert transport.writes == [(full_uuid(0x885A), b"\x01\x00", True)]
    assert transport.names().count("disconnect") == 1


def test_listen_reports_missing_service() -> None:
    transport = FakeTransport(devices=[MMC], services=[service(0x180F, characteristic(0x2A19))])
    with pytest.raises(ServiceNotFoundError):
        _service(transport).listen(lambda event: None, profile_id="mmc")
    assert transport.names().count("disconnect") == 1


def test_listen_reports_connect_failure() -> None:
    transport = FakeTransport(devices=[BELL], connect_failures={BELL.mac})
    with pytest.raises(ConnectFailureError):
        _service(transport).listen(lambda event: None)
    assert transport.names().count("connect") == 1


def test_listen_to_mmc_thermal_samples() -> None:
    transport = FakeTransport(
        devices=[MMC],
        services=[service(0x1809, characteristic(0x2A1E))],
        payloads=[bytes([0x00, 0x2C, 0x01, 0x64, 0x00, 0x00])],
        lose_connection=True,
    )
    received = []

    _service(transport).listen(received.append, profile_id="mmc")

    assert received[0].smoothed == 5.0
    assert isinstance(received[0], ThermalSample)


def test_explore_returns_tree() -> None:
    transport = FakeTransport(devices=[BELL])
    result = _service(transport).explore(device_hint="bell")
    assert result.target.profile.id == "bell"
    assert [s.short_uuid for s in result.services] == [0x1800, 0x8850]
    assert transport.names()[-1] == "disconnect"


def test_decode_with_profile_decoder() -> None:
    bell_service = _service(FakeTransport())
    assert bell_service.decode(bytes([8, 0, 0])) == HomeEvent(held=True)
    bell_service.profiles["raw"] = replace(bell_service.profiles["bell"], id="raw", decoder="raw")
    assert bell_service.decode(bytes([8, 0, 0]), profile_id="raw") == Unrecognized(payload=bytes([8, 0, 0]))


def test_list_devices_filters_by_profile() -> None:
    transport = FakeTransport(devices=[SPEAKER, BELL, MMC])
    bell_service = _service(transport)
    assert bell_service.list_devices() == [SPEAKER, BELL, MMC]
    assert bell_service.list_devices(profile_id="mmc", timeout_s=1.0) == [MMC]
    assert transport.calls[-1] == ("scan", 1.0)
