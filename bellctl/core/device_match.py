"""Score advertising devices against profile match rules.

A MAC prefix hit outranks a name hit and a device hitting both ranks highest.
A device hitting neither is not a candidate for the profile.
"""

from __future__ import annotations

from collections.abc import Iterable

from bellctl.core.model import DetectedDevice, Profile, ResolvedTarget

MAC_PREFIX_WEIGHT = 2
NAME_WEIGHT = 1


def _normalized_mac(mac: str) -> str:
    return mac.upper().replace("-", ":")


def match_score(device: DetectedDevice, profile: Profile) -> int:
    rules = profile.match
    mac = _normalized_mac(device.mac)
    name = device.name.lower()

    score = 0
    if any(mac.startswith(_normalized_mac(prefix)) for prefix in rules.mac_prefix):
        score += MAC_PREFIX_WEIGHT
    if name and any(token.lower() in name for token in rules.name_contains):
        score += NAME_WEIGHT
    return score


def accepts(device: DetectedDevice, profile: Profile) -> bool:
    return match_score(device, profile) > 0


def best_profile_for_device(device: DetectedDevice, profiles: dict[str, Profile]) -> Profile | None:
    """Highest scoring profile for ``device``; ties go to the first profile loaded."""
    score, profile = max(
        ((match_score(device, p), p) for p in profiles.values()),
        key=lambda scored: scored[0],
        default=(0, None),
    )
    return profile if score > 0 else None


def match_candidates(devices: Iterable[DetectedDevice], profiles: dict[str, Profile]) -> list[ResolvedTarget]:
    """Pair every matching device with its best profile, keeping scan order."""
    targets: list[ResolvedTarget] = []
    for device in devices:
        profile = best_profile_for_device(device, profiles)
        if profile is not None:
            targets.append(ResolvedTarget(device=device, profile=profile))
    return targets
