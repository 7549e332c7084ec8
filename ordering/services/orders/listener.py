"""
Order event listener.

This module implements the OrderEventListener, a supervised background task
that consumes order and picking notifications and reacts to them:

- order approved: ask the warehouse to confirm the reservation and open a
  picking
- picking completed: move the order to PREPARADO
- order created / delivered: hooks, currently log only

The listener reconnects after any connection loss with a fixed delay and
never lets a handler error stop the loop.
"""

import asyncio
import uuid
from typing import Awaitable, Callable, Dict, Mapping, Optional

from ordering.core.logging import clear_context, get_logger, set_request_id
from ordering.services.collaborators.interfaces import WarehouseClient
from ordering.services.orders.enums import OrderStatus
from ordering.services.orders.notifications import Notification, NotificationSource
from ordering.services.orders.state_machine import OrderStateMachine
from ordering.services.orders.unit_of_work import UnitOfWorkFactory

logger = get_logger(__name__)

Handler = Callable[[str], Awaitable[None]]

DEFAULT_CHANNELS: Dict[str, str] = {
    "order_created": "pedido-creado",
    "order_approved": "pedido-aprobado",
    "order_delivered": "pedido-entregado",
    "picking_completed": "picking-completado",
}

PICKING_COMPLETED_COMMENT = "picking completed"


class OrderEventListener:
    """
    Consumes order lifecycle notifications.

    Attributes:
        channels: Event name to channel name mapping
        reconnect_delay: Seconds to wait before resubscribing after a failure
    """

    def __init__(
        self,
        source: NotificationSource,
        warehouse: WarehouseClient,
        state_machine: OrderStateMachine,
        uow_factory: UnitOfWorkFactory,
        channels: Optional[Mapping[str, str]] = None,
        reconnect_delay: float = 5.0,
    ):
        """
        Initialize the listener.

        Args:
            source: Notification source owned by this listener
            warehouse: Warehouse collaborator
            state_machine: State machine used for picking-driven transitions
            uow_factory: Unit of work factory for reservation lookups
            channels: Event name to channel name mapping
            reconnect_delay: Fixed delay between reconnect attempts
        """
        self._source = source
        self._warehouse = warehouse
        self._state_machine = state_machine
        self._uow_factory = uow_factory
        self.channels = {**DEFAULT_CHANNELS, **(channels or {})}
        self.reconnect_delay = reconnect_delay
        self._handlers: Dict[str, Handler] = self._initialize_handlers()
        self._task: Optional[asyncio.Task] = None

    def _initialize_handlers(self) -> Dict[str, Handler]:
        """Build the channel to handler dispatch table."""
        return {
            self.channels["order_created"]: self._on_order_created,
            self.channels["order_approved"]: self._on_order_approved,
            self.channels["order_delivered"]: self._on_order_delivered,
            self.channels["picking_completed"]: self._on_picking_completed,
        }

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the listener task. Calling it twice keeps one task."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="order-event-listener")
        logger.info("Order event listener started", channels=sorted(self._handlers))

    async def stop(self) -> None:
        """Cancel the listener task and close the notification source."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._source.close()
        logger.info("Order event listener stopped")

    async def _run(self) -> None:
        channels = list(self._handlers)
        while True:
            try:
                stream = self._source.listen(channels)
                try:
                    async for notification in stream:
                        await self.dispatch(notification)
                finally:
                    await stream.aclose()
                logger.warning("Notification stream ended")
            except Exception as e:
                logger.error(
                    "Notification connection failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    reconnect_delay=self.reconnect_delay,
                )
            await asyncio.sleep(self.reconnect_delay)
            logger.info("Reconnecting notification listener")

    async def dispatch(self, notification: Notification) -> None:
        """Route one notification to its handler; handler errors are logged.

        Each notification is handled under a fresh correlation id.
        """
        handler = self._handlers.get(notification.channel)
        if handler is None:
            logger.debug("Notification on unhandled channel", channel=notification.channel)
            return

        set_request_id()
        logger.debug(
            "Notification received",
            channel=notification.channel,
            payload=notification.payload,
        )
        try:
            await handler(notification.payload)
        except Exception as e:
            logger.error(
                "Notification handler failed",
                channel=notification.channel,
                payload=notification.payload,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            clear_context()

    @staticmethod
    def _parse_order_id(payload: str, channel: str) -> Optional[uuid.UUID]:
        try:
            return uuid.UUID(payload.strip())
        except (ValueError, AttributeError):
            logger.warning("Notification payload is not an order id", channel=channel, payload=payload)
            return None

    async def _on_order_created(self, payload: str) -> None:
        logger.info("Order created", order_id=payload)

    async def _on_order_delivered(self, payload: str) -> None:
        logger.info("Order delivered", order_id=payload)

    async def _lookup_reservation(self, order_id: uuid.UUID) -> Optional[str]:
        try:
            async with self._uow_factory() as uow:
                return await uow.orders.get_reservation_id(order_id)
        except Exception as e:
            logger.warning(
                "Reservation lookup failed",
                order_id=str(order_id),
                error=str(e),
            )
            return None

    async def _on_order_approved(self, payload: str) -> None:
        order_id = self._parse_order_id(payload, self.channels["order_approved"])
        if order_id is None:
            return

        reservation_id = await self._lookup_reservation(order_id)
        try:
            await self._warehouse.confirm_picking(order_id, reservation_id)
        except Exception as e:
            logger.error(
                "Warehouse picking confirmation failed",
                order_id=str(order_id),
                reservation_id=reservation_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _on_picking_completed(self, payload: str) -> None:
        picking_id = (payload or "").strip()
        if not picking_id:
            logger.warning("Picking notification without id")
            return

        picking = await self._warehouse.get_picking(picking_id)
        if picking is None or picking.order_id is None:
            logger.warning("Picking has no order, ignoring", picking_id=picking_id)
            return

        await self._state_machine.change_status(
            picking.order_id,
            OrderStatus.PREPARADO,
            None,
            PICKING_COMPLETED_COMMENT,
        )
        logger.info(
            "Order prepared after picking",
            order_id=str(picking.order_id),
            picking_id=picking_id,
        )
