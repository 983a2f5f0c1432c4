"""Transport interfaces."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol

from bellctl.core.model import DetectedDevice


class NotificationStream:
    """Ordered queue of notification payloads for one subscribed characteristic.

    The transport pushes payloads from its notify callback and closes the
    stream when the peripheral goes away. Payloads queued before the close are
    still delivered; anything pushed after it is dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False
        self.lost = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, data: bytes | bytearray) -> None:
        if not self._closed:
            self._queue.put_nowait(bytes(data))

    def close(self, *, lost: bool = False) -> None:
        if self._closed:
            return
        self._closed = True
        self.lost = lost
        self._queue.put_nowait(None)

    def __aiter__(self) -> NotificationStream:
        return self

    async def __anext__(self) -> bytes:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class Transport(Protocol):
    async def scan(self, timeout_s: float) -> list[DetectedDevice]:
        """Collect every advertising peripheral seen within ``timeout_s``."""

    async def is_paired(self, device: DetectedDevice) -> bool:
        ...

    async def pair(self, device: DetectedDevice) -> None:
        ...

    async def connect(self, device: DetectedDevice, *, timeout_s: float) -> Any:
        """Connect and return a connection handle owning all GATT attributes."""

    def list_services(self, connection: Any) -> Sequence[Any]:
        ...

    def list_characteristics(self, service: Any) -> Sequence[Any]:
        ...

    def list_descriptors(self, characteristic: Any) -> Sequence[Any]:
        ...

    async def read_descriptor(self, connection: Any, descriptor: Any) -> bytes:
        ...

    async def subscribe(self, connection: Any, characteristic: Any) -> NotificationStream:
        ...

    async def write(
        self,
        connection: Any,
        characteristic: Any,
        payload: bytes,
        *,
        response: bool = True,
    ) -> None:
        ...

    async def disconnect(self, connection: Any) -> None:
        ...
