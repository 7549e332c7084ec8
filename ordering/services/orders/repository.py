"""
Order data access repository.

This module implements the OrderRepository class. Every row of the order
aggregate (order, lines, applied promotions, status history) is added
explicitly and flushed, so the caller's unit of work decides when the whole
graph commits or rolls back.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ordering.core.logging import get_logger
from ordering.database.models.order import (
    AppliedPromotion,
    Order,
    OrderLine,
    StatusHistory,
)

logger = get_logger(__name__)


class OrderRepository:
    """
    Repository for order aggregate persistence.

    Writes are explicit (one call per row) and never cascade. Reads can lock
    the order row for the duration of the caller's transaction.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session owned by the unit of work
        """
        self.session = session

    async def add_order(self, order: Order) -> Order:
        """
        Insert an order header.

        Args:
            order: Order with its id already assigned

        Returns:
            The flushed order
        """
        self.session.add(order)
        await self.session.flush()

        logger.debug(
            "Order inserted",
            order_id=str(order.id),
            client_id=str(order.client_id),
            status=order.status.value if order.status else None,
        )
        return order

    async def add_line(self, line: OrderLine) -> OrderLine:
        self.session.add(line)
        await self.session.flush()
        return line

    async def add_applied_promotion(self, promotion: AppliedPromotion) -> AppliedPromotion:
        self.session.add(promotion)
        await self.session.flush()
        return promotion

    async def add_status_history(self, entry: StatusHistory) -> StatusHistory:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_order(
        self,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Order]:
        """
        Get an order by id.

        Args:
            order_id: Order identifier
            for_update: Lock the row with SELECT ... FOR UPDATE until the
                surrounding transaction ends

        Returns:
            Order if found, None otherwise
        """
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_reservation_id(self, order_id: uuid.UUID) -> Optional[str]:
        """Return the reservation token stored on an order, if any."""
        result = await self.session.execute(
            select(Order.reservation_id).where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def list_lines(self, order_id: uuid.UUID) -> Sequence[OrderLine]:
        result = await self.session.execute(
            select(OrderLine)
            .where(OrderLine.order_id == order_id)
            .order_by(OrderLine.created_at)
        )
        return result.scalars().all()

    async def list_history(self, order_id: uuid.UUID) -> Sequence[StatusHistory]:
        """
        Get the status history of an order, oldest first.

        Args:
            order_id: Order identifier

        Returns:
            History rows ordered by change time
        """
        result = await self.session.execute(
            select(StatusHistory)
            .where(StatusHistory.order_id == order_id)
            .order_by(StatusHistory.changed_at)
        )
        return result.scalars().all()
