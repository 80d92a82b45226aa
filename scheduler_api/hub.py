from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .schemas import SetInterviewEvent

logger = logging.getLogger(__name__)

PONG = "pong"

CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013


class TextSocket(Protocol):
    async def send_text(self, data: str) -> None:
        ...

    async def close(self, code: int = 1000) -> None:
        ...


class Connection:
    """One live viewer: its socket plus a bounded outbound queue."""

    def __init__(self, websocket: TextSocket, queue_size: int = 100) -> None:
        self.websocket = websocket
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.sender: asyncio.Task | None = None

    def enqueue(self, message: str) -> bool:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True


class NotificationHub:
    """Fans booking changes out to every registered connection.

    Each connection gets a sender task that drains its queue, so a slow or
    broken socket never holds up the caller of ``broadcast`` or the other
    viewers. A connection is dropped the first time a send fails or its
    queue overflows.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._connections: set[Connection] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def create_connection(self, websocket: TextSocket) -> Connection:
        return Connection(websocket, self.queue_size)

    async def register(self, connection: Connection) -> None:
        async with self._lock:
            self._connections.add(connection)
            connection.sender = asyncio.create_task(self._drain(connection))
        logger.info("Viewer connected (%d live)", self.connection_count)

    async def unregister(self, connection: Connection) -> None:
        async with self._lock:
            if connection not in self._connections:
                return
            self._connections.discard(connection)
        sender = connection.sender
        if sender is not None and sender is not asyncio.current_task():
            sender.cancel()
        logger.info("Viewer disconnected (%d live)", self.connection_count)

    async def drop(self, connection: Connection, code: int) -> None:
        """Unregister a viewer and close its socket so the client reconnects."""
        await self.unregister(connection)
        try:
            await connection.websocket.close(code=code)
        except Exception as exc:
            logger.debug("Ignoring error while closing viewer socket: %s", exc)

    async def broadcast(self, event: SetInterviewEvent) -> None:
        message = event.model_dump_json()
        async with self._lock:
            live = list(self._connections)
        stale = [connection for connection in live if not connection.enqueue(message)]
        for connection in stale:
            logger.warning("Dropping viewer with a full outbound queue")
            await self.drop(connection, CLOSE_TRY_AGAIN_LATER)

    async def handle_ping(self, connection: Connection) -> None:
        if not connection.enqueue(PONG):
            logger.warning("Dropping viewer with a full outbound queue")
            await self.drop(connection, CLOSE_TRY_AGAIN_LATER)

    async def close(self) -> None:
        async with self._lock:
            connections = list(self._connections)
        for connection in connections:
            await self.drop(connection, CLOSE_GOING_AWAY)

    async def _drain(self, connection: Connection) -> None:
        while True:
            message = await connection.queue.get()
            try:
                await connection.websocket.send_text(message)
            except Exception as exc:
                logger.warning("Send to viewer failed, dropping it: %s", exc)
                await self.drop(connection, CLOSE_INTERNAL_ERROR)
                return
