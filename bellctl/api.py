"""Stable public API for building tooling on top of bellctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.

Synchronous callers use ``Client``. Async callers that want to drive the link
state machine themselves use ``LinkManager`` and ``PeripheralLink`` with any
``Transport`` implementation, ``BLEGATTTransport`` being the bleak one.
"""

from __future__ import annotations

from bellctl.core.decoder import (
    HomeEvent,
    JoystickState,
    NotificationEvent,
    TriggerState,
    Unrecognized,
    decode,
)
from bellctl.core.errors import (
    AdapterUnavailableError,
    AttributeNotFoundError,
    BellctlError,
    CharacteristicNotFoundError,
    ConnectFailureError,
    DeviceDiscoveryError,
    DeviceSelectionError,
    LinkStateError,
    PairFailureError,
    ProfileLoadError,
    ProfileValidationError,
    ServiceNotFoundError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from bellctl.core.link import LinkManager, LinkOutcome, LinkResult, LinkState, PeripheralLink
from bellctl.core.model import (
    CommandSpec,
    DetectedDevice,
    ExploreResult,
    LinkSettings,
    MatchRules,
    Profile,
    ResolvedTarget,
)
from bellctl.core.resolver import find_characteristic, find_service
from bellctl.core.service import BellService, EventCallback
from bellctl.core.thermal import ThermalSample, calibrate
from bellctl.core.uuid_match import full_uuid, short_uuid
from bellctl.transports.base import NotificationStream, Transport
from bellctl.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "AdapterUnavailableError",
    "AttributeNotFoundError",
    "BellctlError",
    "CharacteristicNotFoundError",
    "ConnectFailureError",
    "DeviceDiscoveryError",
    "DeviceSelectionError",
    "LinkStateError",
    "PairFailureError",
    "ProfileLoadError",
    "ProfileValidationError",
    "ServiceNotFoundError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "CommandSpec",
    "DetectedDevice",
    "ExploreResult",
    "LinkSettings",
    "MatchRules",
    "Profile",
    "ResolvedTarget",
    "HomeEvent",
    "JoystickState",
    "NotificationEvent",
    "ThermalSample",
    "TriggerState",
    "Unrecognized",
    "calibrate",
    "decode",
    "full_uuid",
    "short_uuid",
    "find_characteristic",
    "find_service",
    "LinkManager",
    "LinkOutcome",
    "LinkResult",
    "LinkState",
    "PeripheralLink",
    "NotificationStream",
    "Transport",
    "BLEGATTTransport",
    "Client",
]


class Client:
    """Public client for interacting with bellctl core capabilities.

    A `Client` instance wraps profile loading, BLE discovery/matching, and the
    connect/subscribe/decode pipeline behind a stable API intended for
    third-party tools (GUI/TUI/services/scripts).
    """

    def __init__(self, *, transport: Transport | None = None) -> None:
        self._service = BellService(transport=transport)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[Profile]:
        return self._service.list_profiles()

    def list_devices(
        self,
        *,
        profile_id: str | None = None,
        timeout_s: float | None = None,
    ) -> list[DetectedDevice]:
        return self._service.list_devices(profile_id=profile_id, timeout_s=timeout_s)

    def resolve_target(
        self,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
    ) -> ResolvedTarget:
        return self._service.resolve_target(
            profile_id=profile_id,
            device_hint=device_hint,
            timeout_s=timeout_s,
        )

    def explore(
        self,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
    ) -> ExploreResult:
        return self._service.explore(profile_id=profile_id, device_hint=device_hint, timeout_s=timeout_s)

    def listen(
        self,
        on_event: EventCallback,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
        max_events: int | None = None,
        send_command: bool = False,
    ) -> LinkOutcome | None:
        return self._service.listen(
            on_event,
            profile_id=profile_id,
            device_hint=device_hint,
            timeout_s=timeout_s,
            max_events=max_events,
            send_command=send_command,
        )

    def decode(self, payload: bytes, *, profile_id: str | None = None) -> NotificationEvent:
        return self._service.decode(payload, profile_id=profile_id)
