"""Tests for the PostgreSQL LISTEN/NOTIFY notification source."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ordering.services.orders.notifications import Notification, PostgresNotificationSource


def make_connection(payloads=()):
    connection = MagicMock()
    connection.is_closed.return_value = False
    connection.close = AsyncMock()

    async def add_listener(channel, callback):
        for payload in payloads:
            callback(connection, 1, channel, payload)

    connection.add_listener = AsyncMock(side_effect=add_listener)
    return connection


class TestPostgresNotificationSource:

    @pytest.mark.asyncio
    async def test_yields_notifications(self) -> None:
        connection = make_connection(["abc"])
        connect = AsyncMock(return_value=connection)
        source = PostgresNotificationSource("postgresql://db/orders", connect=connect)

        stream = source.listen(["pedido-aprobado"])
        item = await stream.__anext__()
        await stream.aclose()

        assert item == Notification(channel="pedido-aprobado", payload="abc")
        connect.assert_awaited_once_with("postgresql://db/orders")
        connection.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_loss_raises(self) -> None:
        connection = make_connection(["abc"])
        source = PostgresNotificationSource("dsn", connect=AsyncMock(return_value=connection))

        stream = source.listen(["pedido-creado"])
        await stream.__anext__()
        on_termination = connection.add_termination_listener.call_args[0][0]
        on_termination(connection)

        with pytest.raises(ConnectionError):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_failed_close_terminates(self) -> None:
        connection = make_connection(["abc"])
        connection.close.side_effect = OSError("broken pipe")
        source = PostgresNotificationSource("dsn", connect=AsyncMock(return_value=connection))

        stream = source.listen(["pedido-creado"])
        await stream.__anext__()
        await stream.aclose()

        connection.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_closes_active_connection(self) -> None:
        connection = make_connection(["abc"])
        source = PostgresNotificationSource("dsn", connect=AsyncMock(return_value=connection))

        stream = source.listen(["pedido-creado"])
        await stream.__anext__()
        await source.close()

        connection.close.assert_awaited_once()
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_empty_payload_becomes_empty_string(self) -> None:
        connection = make_connection([None])
        source = PostgresNotificationSource("dsn", connect=AsyncMock(return_value=connection))

        stream = source.listen(["pedido-creado"])
        item = await stream.__anext__()
        await stream.aclose()

        assert item.payload == ""
