"""Core data models used across loader, link manager, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MatchRules:
    name_contains: tuple[str, ...]
    mac_prefix: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommandSpec:
    characteristic_uuid: int
    payload: bytes
    write_with_response: bool = True


@dataclass(frozen=True)
class LinkSettings:
    scan_timeout_s: float = 5.0
    connect_timeout_s: float = 10.0
    settle_delay_s: float = 2.0
    pair: bool = True


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    match: MatchRules
    service_uuid: int
    characteristic_uuid: int
    decoder: str = "auto"
    command: CommandSpec | None = None
    link: LinkSettings = field(default_factory=LinkSettings)


@dataclass(frozen=True)
class DetectedDevice:
    mac: str
    name: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ResolvedTarget:
    device: DetectedDevice
    profile: Profile


@dataclass(frozen=True)
class DescriptorInfo:
    uuid: str
    short_uuid: int | None
    value: str | None
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicInfo:
    uuid: str
    short_uuid: int | None
    properties: tuple[str, ...]
    descriptors: tuple[DescriptorInfo, ...]


@dataclass(frozen=True)
class ServiceInfo:
    uuid: str
    short_uuid: int | None
    characteristics: tuple[CharacteristicInfo, ...]


@dataclass(frozen=True)
class ExploreResult:
    target: ResolvedTarget
    services: tuple[ServiceInfo, ...]
