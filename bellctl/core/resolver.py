"""First-match lookup of GATT services and characteristics by short UUID."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

from bellctl.core.uuid_match import matches
from bellctl.transports.base import Transport

T = TypeVar("T")


def find_attribute(attributes: Iterable[T], target: int) -> T | None:
    """Return the first attribute whose ``uuid`` has the short form ``target``.

    Attributes with malformed UUIDs never match. When several attributes share
    a short UUID the first one in enumeration order wins.
    """
    for attribute in attributes:
        if matches(getattr(attribute, "uuid", None), target):
            return attribute
    return None


def find_service(transport: Transport, connection: Any, target: int) -> Any | None:
    return find_attribute(transport.list_services(connection), target)


def find_characteristic(transport: Transport, service: Any, target: int) -> Any | None:
    return find_attribute(transport.list_characteristics(service), target)
