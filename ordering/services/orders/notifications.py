"""
Notification sources for the order event listener.

A notification source subscribes to a set of channels and yields the
messages published on them. The shipped implementation wraps PostgreSQL
LISTEN/NOTIFY on a dedicated asyncpg connection; any transport that keeps
per-channel order and raises on connection loss fits the same contract.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncGenerator, Awaitable, Callable, Optional, Protocol, Sequence

import asyncpg

from ordering.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    """One message received on a channel; payload is plain text."""

    channel: str
    payload: str


class NotificationSource(Protocol):
    def listen(self, channels: Sequence[str]) -> AsyncGenerator[Notification, None]:
        """Subscribe and yield notifications until the connection drops.

        Raises:
            ConnectionError: The underlying connection was lost
        """
        ...

    async def close(self) -> None:
        ...


_CONNECTION_LOST = object()


class PostgresNotificationSource:
    """
    LISTEN/NOTIFY source owning one asyncpg connection per subscription.

    Every call to ``listen`` opens a fresh connection, so reconnecting is
    just calling ``listen`` again.
    """

    def __init__(
        self,
        dsn: str,
        connect: Callable[..., Awaitable[asyncpg.Connection]] = asyncpg.connect,
        close_timeout: float = 5.0,
    ):
        self._dsn = dsn
        self._connect = connect
        self._close_timeout = close_timeout
        self._connection: Optional[asyncpg.Connection] = None

    async def listen(self, channels: Sequence[str]) -> AsyncGenerator[Notification, None]:
        queue: asyncio.Queue = asyncio.Queue()

        def on_notification(connection, pid, channel, payload):
            queue.put_nowait(Notification(channel=channel, payload=payload or ""))

        def on_termination(connection):
            queue.put_nowait(_CONNECTION_LOST)

        connection = await self._connect(self._dsn)
        self._connection = connection
        connection.add_termination_listener(on_termination)

        try:
            for channel in channels:
                await connection.add_listener(channel, on_notification)

            logger.info("Listening for notifications", channels=list(channels))

            while True:
                item = await queue.get()
                if item is _CONNECTION_LOST:
                    raise ConnectionError("Notification connection lost")
                yield item
        finally:
            self._connection = None
            await self._close_connection(connection)

    async def _close_connection(self, connection: asyncpg.Connection) -> None:
        if connection.is_closed():
            return
        try:
            await connection.close(timeout=self._close_timeout)
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
            logger.warning(
                "Graceful close failed, terminating connection",
                error=str(e),
                error_type=type(e).__name__,
            )
            connection.terminate()

    async def close(self) -> None:
        """Close the active subscription connection, if any."""
        connection = self._connection
        self._connection = None
        if connection is not None:
            await self._close_connection(connection)
