"""BLE GATT transport implementation on top of bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from bellctl.core.errors import (
    AdapterUnavailableError,
    DeviceDiscoveryError,
    PairFailureError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from bellctl.core.model import DetectedDevice
from bellctl.transports.base import NotificationStream

LOGGER = logging.getLogger(__name__)

PAIR_TIMEOUT_S = 10.0


def _import_bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise AdapterUnavailableError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


@dataclass
class BleakConnection:
    device: DetectedDevice
    client: Any
    streams: list[NotificationStream] = field(default_factory=list)

    def connection_lost(self) -> None:
        for stream in self.streams:
            stream.close(lost=True)


class BLEGATTTransport:
    """Transport backed by ``bleak.BleakScanner`` and ``bleak.BleakClient``."""

    def __init__(self) -> None:
        self._paired: set[str] = set()
        self._clients: dict[str, Any] = {}
        self._connections: dict[str, BleakConnection] = {}

    async def scan(self, timeout_s: float) -> list[DetectedDevice]:
        bleak = _import_bleak()
        try:
            found = await bleak.BleakScanner.discover(timeout=timeout_s, return_adv=True)
        except bleak.exc.BleakError as exc:
            if "adapter" in str(exc).lower():
                raise AdapterUnavailableError(f"No usable Bluetooth adapter: {exc}") from exc
            raise DeviceDiscoveryError(f"BLE scan failed: {exc}") from exc
        except OSError as exc:
            raise AdapterUnavailableError(f"No usable Bluetooth adapter: {exc}") from exc

        devices: list[DetectedDevice] = []
        for ble_device, adv in found.values():
            name = adv.local_name or ble_device.name or ""
            devices.append(DetectedDevice(mac=ble_device.address.upper(), name=name, handle=ble_device))
        return devices

    def _new_client(self, device: DetectedDevice, timeout_s: float) -> Any:
        bleak = _import_bleak()

        def _on_disconnect(client: Any) -> None:
            LOGGER.debug("Transport reported disconnect of %s", device.mac)
            if self._clients.get(device.mac) is client:
                del self._clients[device.mac]
            connection = self._connections.pop(device.mac, None)
            if connection is not None:
                connection.connection_lost()

        client = bleak.BleakClient(
            device.handle if device.handle is not None else device.mac,
            disconnected_callback=_on_disconnect,
            timeout=timeout_s,
        )
        self._clients[device.mac] = client
        return client

    async def is_paired(self, device: DetectedDevice) -> bool:
        return device.mac in self._paired

    async def pair(self, device: DetectedDevice) -> None:
        """Pair through a short-lived client; it is kept only if pairing left it connected."""
        bleak = _import_bleak()
        client = self._new_client(device, PAIR_TIMEOUT_S)
        try:
            paired = await client.pair()
        except (bleak.exc.BleakError, NotImplementedError, asyncio.TimeoutError) as exc:
            self._clients.pop(device.mac, None)
            raise PairFailureError(f"Pairing with {device.mac} failed: {exc}") from exc
        if not client.is_connected:
            self._clients.pop(device.mac, None)
        if paired is False:
            raise PairFailureError(f"Pairing with {device.mac} was rejected")
        self._paired.add(device.mac)

    async def connect(self, device: DetectedDevice, *, timeout_s: float) -> BleakConnection:
        bleak = _import_bleak()
        client = self._clients.get(device.mac)
        if client is None or not client.is_connected:
            client = self._new_client(device, timeout_s)
        try:
            if not client.is_connected:
                await client.connect()
        except asyncio.TimeoutError as exc:
            self._clients.pop(device.mac, None)
            raise TransportTimeoutError(f"BLE connect to {device.mac} timed out after {timeout_s}s") from exc
        except bleak.exc.BleakError as exc:
            self._clients.pop(device.mac, None)
            raise TransportConnectError(f"BLE connect failed for {device.mac}: {exc}") from exc

        if not client.is_connected:
            self._clients.pop(device.mac, None)
            raise TransportConnectError(f"BLE connect failed for {device.mac}")
        connection = BleakConnection(device=device, client=client)
        self._connections[device.mac] = connection
        return connection

    def list_services(self, connection: BleakConnection) -> Sequence[Any]:
        return list(connection.client.services)

    def list_characteristics(self, service: Any) -> Sequence[Any]:
        return list(service.characteristics)

    def list_descriptors(self, characteristic: Any) -> Sequence[Any]:
        return list(characteristic.descriptors)

    async def read_descriptor(self, connection: BleakConnection, descriptor: Any) -> bytes:
        bleak = _import_bleak()
        try:
            return bytes(await connection.client.read_gatt_descriptor(descriptor.handle))
        except bleak.exc.BleakError as exc:
            raise TransportSendError(f"Reading descriptor {descriptor.uuid} failed: {exc}") from exc

    async def subscribe(self, connection: BleakConnection, characteristic: Any) -> NotificationStream:
        bleak = _import_bleak()
        stream = NotificationStream()

        def _notify_handler(_: Any, data: bytearray) -> None:
            stream.push(data)

        try:
            await connection.client.start_notify(characteristic, _notify_handler)
        except bleak.exc.BleakError as exc:
            raise TransportSendError(
                f"Subscribing to {characteristic.uuid} failed: {exc}"
            ) from exc
        connection.streams.append(stream)
        return stream

    async def write(
        self,
        connection: BleakConnection,
        characteristic: Any,
        payload: bytes,
        *,
        response: bool = True,
    ) -> None:
        bleak = _import_bleak()
        try:
            await connection.client.write_gatt_char(characteristic, payload, response=response)
        except bleak.exc.BleakError as exc:
            raise TransportSendError(f"BLE GATT write failed: {exc}") from exc

    async def disconnect(self, connection: BleakConnection) -> None:
        bleak = _import_bleak()
        self._connections.pop(connection.device.mac, None)
        self._clients.pop(connection.device.mac, None)
        for stream in connection.streams:
            stream.close()
        try:
            await connection.client.disconnect()
        except bleak.exc.BleakError as exc:
            raise TransportSendError(f"BLE disconnect of {connection.device.mac} failed: {exc}") from exc
