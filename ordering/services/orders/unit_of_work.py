"""Transaction boundary for the order aggregate."""

from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordering.services.orders.repository import OrderRepository


class OrderUnitOfWork:
    """
    Async context manager owning one session and its transaction.

    Leaving the block without ``commit()`` rolls back, so a failed saga step
    never leaves a partial order behind.

    Example:
        async with OrderUnitOfWork(session_factory) as uow:
            await uow.orders.add_order(order)
            await uow.commit()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None
        self.orders: Optional[OrderRepository] = None
        self._committed = False

    async def __aenter__(self) -> "OrderUnitOfWork":
        self.session = self._session_factory()
        self.orders = OrderRepository(self.session)
        self._committed = False
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if not self._committed:
                await self.session.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        await self.session.rollback()


UnitOfWorkFactory = Callable[[], OrderUnitOfWork]


def unit_of_work_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> UnitOfWorkFactory:
    """Bind a session factory into a zero-argument unit-of-work factory."""
    return lambda: OrderUnitOfWork(session_factory)
