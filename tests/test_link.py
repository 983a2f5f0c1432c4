from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import pytest
from fake_transport import FakeTransport, characteristic, service

from bellctl.core import link as link_module
from bellctl.core.decoder import HomeEvent, JoystickState, Unrecognized
from bellctl.core.errors import (
    CharacteristicNotFoundError,
    ConnectFailureError,
    LinkStateError,
    PairFailureError,
    ServiceNotFoundError,
    TransportConnectError,
)
from bellctl.core.link import LinkManager, LinkOutcome, LinkState, PeripheralLink
from bellctl.core.model import CommandSpec, DetectedDevice, LinkSettings, MatchRules, Profile
from bellctl.core.uuid_match import full_uuid
from bellctl.transports.base import NotificationStream

BELL = DetectedDevice(mac="10:38:C1:00:00:0C", name="bell_Controller")
JOYSTICK = bytes([0, 0, 0, 0, 0, 0, 0x01, 0x04, 0x01, 0])


def _profile(**overrides) -> Profile:
    profile = Profile(
        id="bell",
        name="Bell Controller",
        match=MatchRules(name_contains=("bell",)),
        service_uuid=0x8850,
        characteristic_uuid=0x885A,
        command=CommandSpec(characteristic_uuid=0x885A, payload=b"\x01\x00"),
        link=LinkSettings(scan_timeout_s=3.0, connect_timeout_s=7.0, settle_delay_s=0.0, pair=True),
    )
    return replace(profile, **overrides)


async def _collect(link: PeripheralLink) -> list:
    return [event async for event in link.events()]


def test_establish_and_stream_until_connection_lost() -> None:
    transport = FakeTransport(payloads=[JOYSTICK, bytes([8, 0, 0]), b"\x01"], lose_connection=True)
    link = PeripheralLink(transport, BELL, _profile())

    async def _run():
        await link.establish()
        assert link.state is LinkState.SUBSCRIBED
        assert link.outcome is LinkOutcome.SUBSCRIBED
        return await _collect(link)

    events = asyncio.run(_run())
    assert isinstance(events[0], JoystickState)
    assert events[1] == HomeEvent(held=True)
    assert events[2] == Unrecognized(payload=b"\x01")
    assert link.state is LinkState.DISCONNECTED
    assert link.outcome is LinkOutcome.CONNECTION_LOST
    assert ("subscribe", full_uuid(0x885A)) in transport.calls


def test_pairs_when_not_paired() -> None:
    transport = FakeTransport(paired=False)
    asyncio.run(PeripheralLink(transport, BELL, _profile()).connect())
    assert transport.names()[:2] == ["pair", "connect"]


def test_skips_pairing_when_already_paired() -> None:
    transport = FakeTransport(paired=True)
    asyncio.run(PeripheralLink(transport, BELL, _profile()).connect())
    assert "pair" not in transport.names()


def test_skips_pairing_when_profile_disables_it() -> None:
    transport = FakeTransport(paired=False)
    profile = _profile(link=LinkSettings(settle_delay_s=0.0, pair=False))
    asyncio.run(PeripheralLink(transport, BELL, profile).connect())
    assert "pair" not in transport.names()


def test_pair_failure_is_logged_and_connect_continues(caplog: pytest.LogCaptureFixture) -> None:
    transport = FakeTransport(pair_error=PairFailureError("rejected"))
    link = PeripheralLink(transport, BELL, _profile())

    with caplog.at_level(logging.WARNING, logger="bellctl.core.link"):
        asyncio.run(link.connect())

    assert link.state is LinkState.CONNECTED
    assert "connect" in transport.names()
    assert "rejected" in caplog.text


def test_connect_failure_is_terminal_and_not_retried() -> None:
    transport = FakeTransport(connect_error=TransportConnectError("out of range"))
    link = PeripheralLink(transport, BELL, _profile())

    with pytest.raises(ConnectFailureError):
        asyncio.run(link.establish())

    assert link.state is LinkState.DISCONNECTED
    assert link.outcome is LinkOutcome.CONNECT_FAILED
    assert transport.names().count("connect") == 1
    assert "list_services" not in transport.names()


def test_connect_uses_profile_timeout() -> None:
    transport = FakeTransport(paired=True)
    asyncio.run(PeripheralLink(transport, BELL, _profile()).connect())
    assert ("connect", BELL.mac, 7.0) in transport.calls


def test_settle_delay_happens_before_service_query(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(paired=True)

    async def fake_sleep(delay: float) -> None:
        transport.calls.append(("sleep", delay))

    monkeypatch.setattr(link_module.asyncio, "sleep", fake_sleep)
    profile = _profile(link=LinkSettings(settle_delay_s=2.0, pair=False))
    link = PeripheralLink(transport, BELL, profile)

    async def _run():
        await link.connect()
        await link.resolve()

    asyncio.run(_run())
    assert transport.names() == ["connect", "sleep", "list_services"]
    assert ("sleep", 2.0) in transport.calls


def test_missing_service_disconnects() -> None:
    transport = FakeTransport(services=[service(0x1800, characteristic(0x2A00))])
    link = PeripheralLink(transport, BELL, _profile())

    with pytest.raises(ServiceNotFoundError):
        asyncio.run(link.establish())

    assert link.state is LinkState.DISCONNECTED
    assert link.outcome is LinkOutcome.SERVICE_NOT_FOUND
    assert transport.names().count("disconnect") == 1


def test_missing_characteristic_disconnects() -> None:
    transport = FakeTransport(services=[service(0x8850, characteristic(0x8851))])
    link = PeripheralLink(transport, BELL, _profile())

    with pytest.raises(CharacteristicNotFoundError):
        asyncio.run(link.establish())

    assert link.outcome is LinkOutcome.CHARACTERISTIC_NOT_FOUND
    assert "subscribe" not in transport.names()
    assert transport.names().count("disconnect") == 1


def test_disconnect_is_idempotent() -> None:
    transport = FakeTransport()
    link = PeripheralLink(transport, BELL, _profile())

    async def _run():
        await link.establish()
        await link.disconnect()
        await link.disconnect()

    asyncio.run(_run())
    assert link.state is LinkState.DISCONNECTED
    assert link.outcome is LinkOutcome.CLOSED
    assert transport.names().count("disconnect") == 1


def test_disconnect_before_connect_touches_nothing() -> None:
    transport = FakeTransport()
    link = PeripheralLink(transport, BELL, _profile())
    asyncio.run(link.disconnect())
    assert link.state is LinkState.DISCONNECTED
    assert transport.calls == []


def test_context_manager_disconnects_and_ends_stream() -> None:
    transport = FakeTransport(payloads=[JOYSTICK])

    async def _run():
        async with PeripheralLink(transport, BELL, _profile()) as link:
            await link.establish()
            async for event in link.events():
                assert isinstance(event, JoystickState)
                break
        return link

    link = asyncio.run(_run())
    assert link.outcome is LinkOutcome.CLOSED
    assert transport.streams[0].closed


def test_send_command_writes_fixed_bytes() -> None:
    transport = FakeTransport()
    link = PeripheralLink(transport, BELL, _profile())

    async def _run():
        await link.establish()
        return await link.send_command()

    assert asyncio.run(_run()) == b"\x01\x00"
    assert transport.writes == [(full_uuid(0x885A), b"\x01\x00", True)]


def test_send_command_to_sibling_characteristic() -> None:
    transport = FakeTransport()
    profile = _profile(command=CommandSpec(characteristic_uuid=0x8851, payload=b"\x01\x00", write_with_response=False))
    link = PeripheralLink(transport, BELL, profile)

    async def _run():
        await link.establish()
        await link.send_command()

    asyncio.run(_run())
    assert transport.writes == [(full_uuid(0x8851), b"\x01\x00", False)]


def test_send_command_without_command_is_rejected() -> None:
    transport = FakeTransport()
    link = PeripheralLink(transport, BELL, _profile(command=None))

    async def _run():
        await link.establish()
        await link.send_command()

    with pytest.raises(LinkStateError):
        asyncio.run(_run())


def test_out_of_order_calls_are_rejected() -> None:
    link = PeripheralLink(FakeTransport(), BELL, _profile())
    with pytest.raises(LinkStateError):
        asyncio.run(link.resolve())
    with pytest.raises(LinkStateError):
        asyncio.run(link.subscribe())


def test_manager_scan_keeps_only_named_candidates() -> None:
    devices = [
        BELL,
        DetectedDevice(mac="AA:BB:CC:00:11:22", name="Living Room Speaker"),
        DetectedDevice(mac="10:38:C1:30:7B:03", name="Bell_Controller"),
        DetectedDevice(mac="00:62:79:D9:16:A1", name=""),
    ]
    transport = FakeTransport(devices=devices)
    manager = LinkManager(transport, _profile())
    assert manager.state is LinkState.IDLE

    found = asyncio.run(manager.scan())

    assert [d.mac for d in found] == ["10:38:C1:00:00:0C", "10:38:C1:30:7B:03"]
    assert manager.state is LinkState.DISCOVERED
    assert transport.calls[0] == ("scan", 3.0)


def test_manager_scan_without_candidates_returns_to_idle() -> None:
    transport = FakeTransport(devices=[DetectedDevice(mac="AA:BB:CC:00:11:22", name="Living Room Speaker")])
    manager = LinkManager(transport, _profile())

    found = asyncio.run(manager.scan())

    assert found == []
    assert manager.state is LinkState.IDLE


def test_open_all_processes_candidates_independently() -> None:
    second = DetectedDevice(mac="10:38:C1:30:7B:03", name="bell_Controller")
    transport = FakeTransport(devices=[BELL, second], connect_failures={BELL.mac})
    manager = LinkManager(transport, _profile())

    async def _run():
        await manager.scan()
        return await manager.open_all()

    results = asyncio.run(_run())
    assert [r.device.mac for r in results] == [BELL.mac, second.mac]
    assert isinstance(results[0].error, ConnectFailureError)
    assert not results[0].ok
    assert results[0].link.outcome is LinkOutcome.CONNECT_FAILED
    assert results[1].ok
    assert results[1].link.state is LinkState.SUBSCRIBED


def test_notification_stream_drops_pushes_after_close() -> None:
    async def _run():
        stream = NotificationStream()
        stream.push(b"\x01")
        stream.push(bytearray(b"\x02"))
        stream.close(lost=True)
        stream.push(b"\x03")
        return [item async for item in stream], stream

    items, stream = asyncio.run(_run())
    assert items == [b"\x01", b"\x02"]
    assert stream.lost is True
