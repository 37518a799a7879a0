"""
Connection lookup table and per-connection outbound delivery.
"""

import asyncio
from typing import Dict, Optional, Any, Callable, Awaitable
from datetime import datetime, timezone
from dataclasses import dataclass, field

from ..core.error_handlers import TransportFailure
from ..core.logging_config import get_logger
from .events import CollaborationEvent

logger = get_logger(__name__)

# Coroutine that pushes one event to the client: sender(event_name, data)
Sender = Callable[[str, Dict[str, Any]], Awaitable[None]]


@dataclass
class Connection:
    """A live client connection and its outbound queue."""
    connection_id: str
    sender: Sender
    connected_at: datetime
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer: Optional[asyncio.Task] = None
    messages_sent: int = 0
    failures: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConnectionManager:
    """
    Maps connection ids to send functions.

    ``send`` only enqueues and returns, so it is safe to call while the
    coordinator holds its lock. A writer task per connection drains the queue
    in FIFO order, which keeps the order in which events were accepted.
    """

    def __init__(self):
        self.connections: Dict[str, Connection] = {}

        # Statistics
        self.connection_stats = {
            "total_connections": 0,
            "disconnections": 0,
            "messages_queued": 0,
            "messages_sent": 0,
            "delivery_failures": 0
        }

    async def connect(
        self,
        connection_id: str,
        sender: Sender,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Connection:
        """Register a connection and start its writer task."""
        if connection_id in self.connections:
            await self.disconnect(connection_id, reason="replaced")

        connection = Connection(
            connection_id=connection_id,
            sender=sender,
            connected_at=datetime.now(timezone.utc),
            metadata=metadata or {}
        )
        connection.writer = asyncio.create_task(self._writer(connection))
        self.connections[connection_id] = connection
        self.connection_stats["total_connections"] += 1

        logger.bind(connection_id=connection_id).info("Connection registered")
        return connection

    async def disconnect(self, connection_id: str, reason: str = "disconnect") -> bool:
        """
        Unregister a connection. Events still queued for it are dropped.

        Returns:
            bool: True if the connection was registered
        """
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return False

        dropped = connection.queue.qsize()
        if connection.writer:
            connection.writer.cancel()
            try:
                await connection.writer
            except asyncio.CancelledError:
                pass

        self.connection_stats["disconnections"] += 1
        logger.bind(connection_id=connection_id).info(
            f"Connection unregistered ({reason}), "
            f"{connection.messages_sent} sent, {dropped} dropped"
        )
        return True

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.connections

    def send(self, connection_id: str, event: CollaborationEvent) -> bool:
        """
        Hand an event off for delivery to one connection.

        Returns:
            bool: True if the event was queued
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            failure = TransportFailure(connection_id, event.name, "connection not registered")
            self.connection_stats["delivery_failures"] += 1
            logger.bind(connection_id=connection_id).warning(failure.message)
            return False

        connection.queue.put_nowait(event)
        self.connection_stats["messages_queued"] += 1
        return True

    async def _writer(self, connection: Connection):
        """Deliver queued events for one connection, in order."""
        while True:
            event = await connection.queue.get()
            try:
                await connection.sender(event.name, event.data)
                connection.messages_sent += 1
                self.connection_stats["messages_sent"] += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # A failed send must not stop later events or other connections
                failure = TransportFailure(connection.connection_id, event.name, str(e))
                connection.failures += 1
                self.connection_stats["delivery_failures"] += 1
                logger.bind(connection_id=connection.connection_id).warning(failure.message)
            finally:
                connection.queue.task_done()

    async def drain(self, connection_id: Optional[str] = None):
        """Wait until queued events have been handed to the transport."""
        if connection_id is not None:
            connection = self.connections.get(connection_id)
            targets = [connection] if connection else []
        else:
            targets = list(self.connections.values())

        for connection in targets:
            await connection.queue.join()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.connection_stats,
            "active_connections": len(self.connections),
            "pending_messages": sum(c.queue.qsize() for c in self.connections.values())
        }

    async def shutdown(self):
        """Unregister every connection."""
        for connection_id in list(self.connections.keys()):
            await self.disconnect(connection_id, reason="shutdown")
