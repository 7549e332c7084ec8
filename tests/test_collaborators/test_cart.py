"""Tests for the SQL cart reader."""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from ordering.database.models.cart import Cart, CartItem
from ordering.services.collaborators.cart import SqlCartClient


def mock_session_factory(cart=None, rowcount=0):
    """Session factory whose sessions return ``cart`` from any select."""
    session = AsyncMock()
    session.__aenter__.return_value = session
    session.__aexit__.return_value = None

    result = MagicMock()
    result.scalars.return_value.first.return_value = cart
    result.rowcount = rowcount
    session.execute.return_value = result

    return MagicMock(return_value=session), session


def compiled_sql(session) -> str:
    statement = session.execute.call_args[0][0]
    return str(statement.compile(dialect=postgresql.dialect()))


def make_cart_row(owner_id, seller_id=None) -> Cart:
    cart = Cart(id=uuid.uuid4(), owner_id=owner_id, seller_id=seller_id, client_id=uuid.uuid4())
    cart.items = [
        CartItem(
            id=uuid.uuid4(),
            product_id=uuid.uuid4(),
            quantity=Decimal("2"),
            unit_of_measure="UN",
            campaign_id="C-1",
            sku="SKU-1",
            product_name="Arroz",
        )
    ]
    return cart


class TestGetCart:

    @pytest.mark.asyncio
    async def test_self_service_cart(self) -> None:
        owner_id = uuid.uuid4()
        row = make_cart_row(owner_id)
        factory, session = mock_session_factory(row)

        snapshot = await SqlCartClient(factory).get_cart(owner_id)

        assert snapshot.id == row.id
        assert snapshot.client_id == row.client_id
        assert len(snapshot.lines) == 1
        line = snapshot.lines[0]
        assert line.quantity == Decimal("2")
        assert line.campaign_id == "C-1"
        assert line.sku == "SKU-1"

        sql = compiled_sql(session)
        assert "carts.seller_id IS NULL" in sql
        assert "ORDER BY carts.updated_at DESC" in sql
        assert "LIMIT" in sql

    @pytest.mark.asyncio
    async def test_seller_cart(self) -> None:
        owner_id, seller_id = uuid.uuid4(), uuid.uuid4()
        factory, session = mock_session_factory(make_cart_row(owner_id, seller_id))

        snapshot = await SqlCartClient(factory).get_cart(owner_id, seller_id)

        assert snapshot.seller_id == seller_id
        sql = compiled_sql(session)
        assert "carts.seller_id = " in sql
        assert "IS NULL" not in sql

    @pytest.mark.asyncio
    async def test_missing_cart(self) -> None:
        factory, _ = mock_session_factory(None)

        assert await SqlCartClient(factory).get_cart(uuid.uuid4()) is None


class TestClearCart:

    @pytest.mark.asyncio
    async def test_clear_deletes_items_of_cart(self) -> None:
        cart_id = uuid.uuid4()
        factory, session = mock_session_factory(rowcount=3)

        await SqlCartClient(factory).clear_cart_by_id(cart_id)

        sql = compiled_sql(session)
        assert sql.startswith("DELETE FROM cart_items")
        assert "cart_items.cart_id = " in sql
        session.commit.assert_awaited_once()
