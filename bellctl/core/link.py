"""Connection lifecycle for profile-described BLE peripherals.

A ``LinkManager`` scans and filters candidates for one profile; every accepted
candidate gets its own ``PeripheralLink``, which walks::

    DISCOVERED -> (PAIRING) -> CONNECTING -> CONNECTED
               -> SERVICES_RESOLVED -> SUBSCRIBED

and can drop to ``DISCONNECTED`` from anywhere. Connect failures and missing
attributes are not retried; the caller starts a new pipeline instead.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

from bellctl.core.decoder import NotificationEvent, get_decoder
from bellctl.core.device_match import accepts
from bellctl.core.errors import (
    BellctlError,
    CharacteristicNotFoundError,
    ConnectFailureError,
    LinkStateError,
    PairFailureError,
    ServiceNotFoundError,
    TransportError,
)
from bellctl.core.model import DetectedDevice, Profile
from bellctl.core.resolver import find_characteristic, find_service
from bellctl.transports.base import NotificationStream, Transport

LOGGER = logging.getLogger(__name__)


class LinkState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DISCOVERED = "discovered"
    PAIRING = "pairing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SERVICES_RESOLVED = "services_resolved"
    SUBSCRIBED = "subscribed"
    DISCONNECTED = "disconnected"


class LinkOutcome(enum.Enum):
    SUBSCRIBED = "subscribed"
    CONNECT_FAILED = "connect_failed"
    SERVICE_NOT_FOUND = "service_not_found"
    CHARACTERISTIC_NOT_FOUND = "characteristic_not_found"
    CONNECTION_LOST = "connection_lost"
    CLOSED = "closed"


class PeripheralLink:
    """One peripheral's pipeline from discovery to a live notification stream.

    All GATT handles obtained here belong to the transport connection and are
    dropped on ``disconnect()``.
    """

    def __init__(self, transport: Transport, device: DetectedDevice, profile: Profile) -> None:
        self.transport = transport
        self.device = device
        self.profile = profile
        self.state = LinkState.DISCOVERED
        self.outcome: LinkOutcome | None = None

        self._decode = get_decoder(profile.decoder)
        self._connection: Any = None
        self._service: Any = None
        self._characteristic: Any = None
        self._stream: NotificationStream | None = None

    def __repr__(self) -> str:
        return f"PeripheralLink({self.device.mac!r}, profile={self.profile.id!r}, state={self.state.name})"

    def _enter(self, state: LinkState) -> None:
        LOGGER.debug("%s: %s -> %s", self.device.mac, self.state.name, state.name)
        self.state = state

    def _require(self, *states: LinkState) -> None:
        if self.state not in states:
            expected = ", ".join(s.name for s in states)
            raise LinkStateError(
                f"{self.device.mac} is {self.state.name}; expected one of: {expected}"
            )

    async def connect(self) -> None:
        """Pair if needed, connect, then wait for the attribute cache to settle."""
        self._require(LinkState.DISCOVERED)
        settings = self.profile.link

        if settings.pair and not await self.transport.is_paired(self.device):
            self._enter(LinkState.PAIRING)
            try:
                await self.transport.pair(self.device)
            except PairFailureError as exc:
                LOGGER.warning("Pairing %s failed, connecting anyway: %s", self.device.mac, exc)

        self._enter(LinkState.CONNECTING)
        try:
            self._connection = await self.transport.connect(
                self.device, timeout_s=settings.connect_timeout_s
            )
        except TransportError as exc:
            self.outcome = LinkOutcome.CONNECT_FAILED
            self._enter(LinkState.DISCONNECTED)
            raise ConnectFailureError(f"Could not connect to {self.device.mac}: {exc}") from exc

        self._enter(LinkState.CONNECTED)
        if settings.settle_delay_s > 0:
            await asyncio.sleep(settings.settle_delay_s)

    @property
    def connection(self) -> Any:
        return self._connection

    async def resolve(self) -> None:
        self._require(LinkState.CONNECTED)
        service = find_service(self.transport, self._connection, self.profile.service_uuid)
        if service is None:
            await self._fail(LinkOutcome.SERVICE_NOT_FOUND)
            raise ServiceNotFoundError(
                f"Service {self.profile.service_uuid:04x} not found on {self.device.mac}"
            )

        characteristic = find_characteristic(self.transport, service, self.profile.characteristic_uuid)
        if characteristic is None:
            await self._fail(LinkOutcome.CHARACTERISTIC_NOT_FOUND)
            raise CharacteristicNotFoundError(
                f"Characteristic {self.profile.characteristic_uuid:04x} not found in service "
                f"{self.profile.service_uuid:04x} on {self.device.mac}"
            )

        self._service = service
        self._characteristic = characteristic
        self._enter(LinkState.SERVICES_RESOLVED)

    async def subscribe(self) -> None:
        self._require(LinkState.SERVICES_RESOLVED)
        self._stream = await self.transport.subscribe(self._connection, self._characteristic)
        self.outcome = LinkOutcome.SUBSCRIBED
        self._enter(LinkState.SUBSCRIBED)

    async def establish(self) -> PeripheralLink:
        await self.connect()
        try:
            await self.resolve()
            await self.subscribe()
        except BellctlError:
            await self.disconnect()
            raise
        return self

    async def events(self) -> AsyncIterator[NotificationEvent]:
        """Decoded notifications in arrival order until the link goes down."""
        self._require(LinkState.SUBSCRIBED)
        stream = self._stream
        assert stream is not None
        async for payload in stream:
            yield self._decode(payload)
        if stream.lost and self.state is not LinkState.DISCONNECTED:
            LOGGER.warning("Connection to %s lost", self.device.mac)
            self.outcome = LinkOutcome.CONNECTION_LOST
            self._release()
            self._enter(LinkState.DISCONNECTED)

    async def send_command(self) -> bytes:
        """Write the profile's fixed command and return the bytes written."""
        self._require(LinkState.SERVICES_RESOLVED, LinkState.SUBSCRIBED)
        command = self.profile.command
        if command is None:
            raise LinkStateError(f"Profile '{self.profile.id}' defines no command")

        target = self._characteristic
        if command.characteristic_uuid != self.profile.characteristic_uuid:
            target = find_characteristic(self.transport, self._service, command.characteristic_uuid)
            if target is None:
                raise CharacteristicNotFoundError(
                    f"Command characteristic {command.characteristic_uuid:04x} not found on {self.device.mac}"
                )
        await self.transport.write(
            self._connection,
            target,
            command.payload,
            response=command.write_with_response,
        )
        return command.payload

    async def _fail(self, outcome: LinkOutcome) -> None:
        self.outcome = outcome
        await self.disconnect()

    def _release(self) -> None:
        if self._stream is not None:
            self._stream.close()
        self._connection = None
        self._service = None
        self._characteristic = None
        self._stream = None

    async def disconnect(self) -> None:
        """Tear the link down. Repeated calls are no-ops."""
        if self.state is LinkState.DISCONNECTED:
            return
        connection = self._connection
        self._release()
        if self.outcome in (None, LinkOutcome.SUBSCRIBED):
            self.outcome = LinkOutcome.CLOSED
        self._enter(LinkState.DISCONNECTED)
        if connection is not None:
            try:
                await self.transport.disconnect(connection)
            except TransportError as exc:
                LOGGER.warning("Disconnect from %s reported an error: %s", self.device.mac, exc)

    async def __aenter__(self) -> PeripheralLink:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()


@dataclass(frozen=True)
class LinkResult:
    device: DetectedDevice
    link: PeripheralLink | None
    error: BellctlError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.link is not None


class LinkManager:
    """Scan for a profile's peripherals and open a link to each candidate."""

    def __init__(self, transport: Transport, profile: Profile) -> None:
        self.transport = transport
        self.profile = profile
        self.state = LinkState.IDLE
        self.candidates: list[DetectedDevice] = []

    async def scan(self, timeout_s: float | None = None) -> list[DetectedDevice]:
        timeout = self.profile.link.scan_timeout_s if timeout_s is None else timeout_s
        self.state = LinkState.SCANNING
        LOGGER.debug("Scanning %.1fs for profile %s", timeout, self.profile.id)
        try:
            seen = await self.transport.scan(timeout)
        except BellctlError:
            self.state = LinkState.IDLE
            raise

        self.candidates = [device for device in seen if accepts(device, self.profile)]
        for device in seen:
            if device not in self.candidates:
                LOGGER.debug("Ignoring %s (%s)", device.mac, device.name or "<no name>")
        self.state = LinkState.DISCOVERED if self.candidates else LinkState.IDLE
        return list(self.candidates)

    async def open(self, device: DetectedDevice) -> PeripheralLink:
        link = PeripheralLink(self.transport, device, self.profile)
        await link.establish()
        return link

    async def open_all(self, devices: Sequence[DetectedDevice] | None = None) -> list[LinkResult]:
        """Run the connect/resolve/subscribe pipeline for every candidate.

        A failure ends the pipeline for that candidate only and is reported in
        its ``LinkResult``.
        """
        results: list[LinkResult] = []
        for device in self.candidates if devices is None else devices:
            link = PeripheralLink(self.transport, device, self.profile)
            try:
                await link.establish()
            except BellctlError as exc:
                LOGGER.warning("%s: %s", device.mac, exc)
                results.append(LinkResult(device=device, link=link, error=exc))
                continue
            results.append(LinkResult(device=device, link=link))
        return results
