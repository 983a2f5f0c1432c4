"""Dump of a connected peripheral's services, characteristics and descriptors."""

from __future__ import annotations

from typing import Any

from bellctl.core.errors import TransportError
from bellctl.core.model import CharacteristicInfo, DescriptorInfo, ServiceInfo
from bellctl.core.uuid_match import short_uuid
from bellctl.transports.base import Transport

USER_DESCRIPTION_UUID = 0x2901


def _render_descriptor_value(short: int | None, value: bytes) -> str:
    if short == USER_DESCRIPTION_UUID:
        return value.decode("utf-8", errors="replace")
    return value.hex()


async def _describe_descriptor(transport: Transport, connection: Any, descriptor: Any) -> DescriptorInfo:
    uuid = str(descriptor.uuid)
    short = short_uuid(uuid)
    try:
        value = await transport.read_descriptor(connection, descriptor)
    except TransportError as exc:
        return DescriptorInfo(uuid=uuid, short_uuid=short, value=None, error=str(exc))
    return DescriptorInfo(uuid=uuid, short_uuid=short, value=_render_descriptor_value(short, value))


async def explore(transport: Transport, connection: Any) -> tuple[ServiceInfo, ...]:
    services: list[ServiceInfo] = []
    for service in transport.list_services(connection):
        characteristics: list[CharacteristicInfo] = []
        for characteristic in transport.list_characteristics(service):
            descriptors = [
                await _describe_descriptor(transport, connection, descriptor)
                for descriptor in transport.list_descriptors(characteristic)
            ]
            characteristics.append(
                CharacteristicInfo(
                    uuid=str(characteristic.uuid),
                    short_uuid=short_uuid(str(characteristic.uuid)),
                    properties=tuple(getattr(characteristic, "properties", ()) or ()),
                    descriptors=tuple(descriptors),
                )
            )
        services.append(
            ServiceInfo(
                uuid=str(service.uuid),
                short_uuid=short_uuid(str(service.uuid)),
                characteristics=tuple(characteristics),
            )
        )
    return tuple(services)
