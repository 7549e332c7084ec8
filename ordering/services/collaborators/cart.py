"""Cart reader backed by the cart tables of the orders database."""

import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordering.core.logging import get_logger
from ordering.database.models.cart import Cart, CartItem
from ordering.services.collaborators.interfaces import CartLine, CartSnapshot

logger = get_logger(__name__)


def _to_snapshot(cart: Cart) -> CartSnapshot:
    return CartSnapshot(
        id=cart.id,
        owner_id=cart.owner_id,
        seller_id=cart.seller_id,
        client_id=cart.client_id,
        lines=tuple(
            CartLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_of_measure=item.unit_of_measure,
                campaign_id=item.campaign_id,
                sku=item.sku,
                product_name=item.product_name,
            )
            for item in cart.items
        ),
    )


class SqlCartClient:
    """
    Cart collaborator reading the ``carts`` / ``cart_items`` tables.

    Each call opens its own short session so the background cart clear
    never shares a transaction with the order insert.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_cart(
        self,
        owner_id: uuid.UUID,
        seller_id: Optional[uuid.UUID] = None,
    ) -> Optional[CartSnapshot]:
        """
        Load the cart of an owner, optionally scoped to a seller.

        Args:
            owner_id: Cart owner
            seller_id: Seller building the cart; None selects the
                self-service cart

        Returns:
            Immutable cart snapshot, or None when no cart exists
        """
        stmt = select(Cart).where(Cart.owner_id == owner_id)
        if seller_id is None:
            stmt = stmt.where(Cart.seller_id.is_(None))
        else:
            stmt = stmt.where(Cart.seller_id == seller_id)
        # newest cart wins if duplicates exist
        stmt = stmt.order_by(Cart.updated_at.desc()).limit(1)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            cart = result.scalars().first()
            if cart is None:
                return None
            return _to_snapshot(cart)

    async def clear_cart_by_id(self, cart_id: uuid.UUID) -> None:
        """Delete every item of the given cart."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(CartItem).where(CartItem.cart_id == cart_id)
            )
            await session.commit()

        logger.info("Cart cleared", cart_id=str(cart_id), items_removed=result.rowcount)
