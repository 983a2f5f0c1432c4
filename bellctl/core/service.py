"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from bellctl.core.decoder import NotificationEvent, get_decoder
from bellctl.core.device_match import match_candidates
from bellctl.core.errors import DeviceSelectionError
from bellctl.core.explorer import explore
from bellctl.core.link import LinkManager, LinkOutcome, PeripheralLink
from bellctl.core.model import DetectedDevice, ExploreResult, Profile, ResolvedTarget
from bellctl.core.profile_loader import load_profiles
from bellctl.transports.base import Transport
from bellctl.transports.ble_gatt import BLEGATTTransport

DEFAULT_SCAN_TIMEOUT_S = 5.0

EventCallback = Callable[[NotificationEvent], None]


class BellService:
    def __init__(self, *, transport: Transport | None = None) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.transport = transport or BLEGATTTransport()

    def list_profiles(self) -> list[Profile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def get_profile(self, profile_id: str) -> Profile:
        profile = self.profiles.get(profile_id)
        if profile is None:
            raise DeviceSelectionError(
                f"Unknown profile '{profile_id}'. Use 'bellctl profiles' to inspect available profiles."
            )
        return profile

    def _scan_timeout(self, profile: Profile | None, timeout_s: float | None) -> float:
        if timeout_s is not None:
            return timeout_s
        if profile is not None:
            return profile.link.scan_timeout_s
        return max((p.link.scan_timeout_s for p in self.profiles.values()), default=DEFAULT_SCAN_TIMEOUT_S)

    def list_devices(self, profile_id: str | None = None, timeout_s: float | None = None) -> list[DetectedDevice]:
        """Every advertising device, or only those a profile accepts."""
        if profile_id is None:
            return asyncio.run(self.transport.scan(self._scan_timeout(None, timeout_s)))
        profile = self.get_profile(profile_id)
        manager = LinkManager(self.transport, profile)
        return asyncio.run(manager.scan(self._scan_timeout(profile, timeout_s)))

    async def _resolve_target(
        self,
        profile_id: str | None,
        device_hint: str | None,
        timeout_s: float | None,
    ) -> ResolvedTarget:
        profile_override = self.get_profile(profile_id) if profile_id else None

        candidates: list[ResolvedTarget] = []
        if profile_override is not None:
            manager = LinkManager(self.transport, profile_override)
            devices = await manager.scan(self._scan_timeout(profile_override, timeout_s))
            candidates = [ResolvedTarget(device=d, profile=profile_override) for d in devices]
        else:
            devices = await self.transport.scan(self._scan_timeout(None, timeout_s))
            if not devices:
                raise DeviceSelectionError("No Bluetooth devices found. Ensure the controller is advertising.")
            candidates = match_candidates(devices, self.profiles)

        if device_hint:
            hint = device_hint.lower()
            hinted = [
                c
                for c in candidates
                if c.device.mac.lower() == hint
                or hint in c.device.mac.lower()
                or hint in c.device.name.lower()
                or hint in c.profile.id.lower()
            ]
            if not hinted:
                raise DeviceSelectionError(f"No device found matching '{device_hint}'")
            candidates = hinted

        if not candidates:
            if profile_id:
                raise DeviceSelectionError(f"No advertising device matched profile '{profile_id}'.")
            raise DeviceSelectionError(
                "No advertising device matched any profile. Use --profile to target explicitly or add a profile."
            )

        if len(candidates) > 1:
            candidate_desc = ", ".join(f"{c.device.mac} ({c.device.name})" for c in candidates)
            raise DeviceSelectionError(
                f"Multiple candidate devices found: {candidate_desc}. Use --device to choose one."
            )

        return candidates[0]

    def resolve_target(
        self,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
    ) -> ResolvedTarget:
        return asyncio.run(self._resolve_target(profile_id, device_hint, timeout_s))

    def explore(
        self,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
    ) -> ExploreResult:
        async def _run() -> ExploreResult:
            target = await self._resolve_target(profile_id, device_hint, timeout_s)
            async with PeripheralLink(self.transport, target.device, target.profile) as link:
                await link.connect()
                services = await explore(self.transport, link.connection)
            return ExploreResult(target=target, services=services)

        return asyncio.run(_run())

    def listen(
        self,
        on_event: EventCallback,
        *,
        profile_id: str | None = None,
        device_hint: str | None = None,
        timeout_s: float | None = None,
        max_events: int | None = None,
        send_command: bool = False,
        on_target: Callable[[ResolvedTarget], None] | None = None,
    ) -> LinkOutcome | None:
        """Stream decoded notifications from the resolved target to ``on_event``.

        Returns the link outcome once the stream ends: ``CLOSED`` after
        ``max_events`` events, ``CONNECTION_LOST`` if the peripheral went away.
        """

        async def _run() -> LinkOutcome | None:
            target = await self._resolve_target(profile_id, device_hint, timeout_s)
            if on_target is not None:
                on_target(target)
            link = PeripheralLink(self.transport, target.device, target.profile)
            async with link:
                await link.establish()
                if send_command:
                    await link.send_command()
                received = 0
                async for event in link.events():
                    on_event(event)
                    received += 1
                    if max_events is not None and received >= max_events:
                        break
            return link.outcome

        return asyncio.run(_run())

    def decode(self, payload: bytes, profile_id: str | None = None) -> NotificationEvent:
        decoder = get_decoder(self.get_profile(profile_id).decoder) if profile_id else get_decoder("auto")
        return decoder(payload)
