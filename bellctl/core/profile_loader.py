"""Profile loading and validation for YAML-based bellctl device profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from bellctl.core.decoder import DECODERS
from bellctl.core.errors import ProfileLoadError, ProfileValidationError
from bellctl.core.model import CommandSpec, LinkSettings, MatchRules, Profile
from bellctl.core.uuid_match import short_uuid

_HEX_RE = re.compile(r"^[0-9a-f]+$")
_SHORT_UUID_RE = re.compile(r"^(0x)?[0-9a-f]{4}$")
_MAX_PAYLOAD_BYTES = 20
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, Profile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("bellctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "bellctl/profiles", xdg_data / "bellctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if len(normalized) == 0:
        raise ProfileValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise ProfileValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise ProfileValidationError(f"{context} must contain only [0-9a-f]")
    payload = bytes.fromhex(normalized)
    if len(payload) > _MAX_PAYLOAD_BYTES:
        raise ProfileValidationError(
            f"{context} exceeds max payload size {_MAX_PAYLOAD_BYTES} bytes"
        )
    return payload


def _normalize_mac_prefix(prefix: str) -> str:
    return prefix.strip().upper()


def parse_short_uuid(value: Any, *, context: str) -> int:
    """Accept ``"885a"``, ``"0x885a"`` or a full 128-bit UUID string."""
    if isinstance(value, str):
        normalized = value.strip().lower()
        if _SHORT_UUID_RE.match(normalized):
            return int(normalized.removeprefix("0x"), 16)
        parsed = short_uuid(normalized)
        if parsed is not None:
            return parsed
    raise ProfileValidationError(
        f"{context} must be a 16-bit short UUID or a 128-bit UUID string"
    )


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> Profile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    profile_id = doc["id"]
    decoder = doc.get("decoder", "auto")
    if decoder not in DECODERS:
        raise ProfileValidationError(f"Unknown decoder '{decoder}' in {source}")

    gatt = doc["gatt"]
    service_uuid = parse_short_uuid(gatt["service"], context=f"{profile_id}.gatt.service")
    characteristic_uuid = parse_short_uuid(
        gatt["characteristic"], context=f"{profile_id}.gatt.characteristic"
    )

    command: CommandSpec | None = None
    if "command" in doc:
        command_doc = doc["command"]
        command = CommandSpec(
            characteristic_uuid=parse_short_uuid(
                command_doc.get("characteristic", gatt["characteristic"]),
                context=f"{profile_id}.command.characteristic",
            ),
            payload=_normalize_hex(command_doc["payload"], context=f"{profile_id}.command.payload"),
            write_with_response=bool(command_doc.get("write_with_response", True)),
        )

    link_doc = doc.get("link", {})
    defaults = LinkSettings()
    link = LinkSettings(
        scan_timeout_s=float(link_doc.get("scan_timeout_s", defaults.scan_timeout_s)),
        connect_timeout_s=float(link_doc.get("connect_timeout_s", defaults.connect_timeout_s)),
        settle_delay_s=float(link_doc.get("settle_delay_s", defaults.settle_delay_s)),
        pair=bool(link_doc.get("pair", defaults.pair)),
    )

    return Profile(
        id=profile_id,
        name=doc["name"],
        match=MatchRules(
            name_contains=tuple(doc["match"].get("name_contains", [])),
            mac_prefix=tuple(_normalize_mac_prefix(p) for p in doc["match"].get("mac_prefix", [])),
        ),
        service_uuid=service_uuid,
        characteristic_uuid=characteristic_uuid,
        decoder=decoder,
        command=command,
        link=link,
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("bellctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, Profile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
