"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class, the single writer of
order status. Each transition locks the order row, validates the move
against the status graph, writes the new status together with one history
row, and runs post-commit side effects (reservation release for the
cancelling statuses).
"""

import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Sequence, Set

from ordering.core.logging import get_logger
from ordering.database.models.order import Order, StatusHistory
from ordering.services.orders.compensation import ReservationCompensator
from ordering.services.orders.enums import (
    CANCELLABLE_STATUSES,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from ordering.services.orders.exceptions import (
    IllegalTransitionError,
    NotCancellableError,
    OrderNotFoundError,
)
from ordering.services.orders.unit_of_work import UnitOfWorkFactory

logger = get_logger(__name__)

SideEffect = Callable[[Order], Awaitable[None]]


class OrderStateMachine:
    """State machine for managing order lifecycle transitions.

    Transitions on one order serialize at the database through
    ``SELECT ... FOR UPDATE``. Side effects run only after the status change
    has committed and never undo it.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        compensator: ReservationCompensator,
    ):
        """Initialize state machine.

        Args:
            uow_factory: Zero-argument factory returning a unit of work
            compensator: Releases reservations of cancelled orders
        """
        self._uow_factory = uow_factory
        self._compensator = compensator
        self._side_effects: Dict[OrderStatus, SideEffect] = self._initialize_side_effects()

    def _initialize_side_effects(self) -> Dict[OrderStatus, SideEffect]:
        """Initialize post-commit side effects keyed by target status.

        Returns:
            Dictionary mapping target states to side effect coroutines
        """
        return {
            OrderStatus.ANULADO: self._effect_release_reservation,
            OrderStatus.RECHAZADO: self._effect_release_reservation,
        }

    async def change_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID] = None,
        comment: Optional[str] = None,
    ) -> Order:
        """Move an order to a new status.

        Re-entering the current status is a no-op: nothing is written and no
        side effect runs. EN_RUTA is the exception and is rejected unless
        the order is PREPARADO.

        Args:
            order_id: Order to transition
            new_status: Target status
            actor_id: User performing the change (None for system events)
            comment: History comment; defaults to "transition from X to Y"

        Returns:
            The order after the transition

        Raises:
            OrderNotFoundError: Order does not exist
            IllegalTransitionError: Target not reachable from current status
        """
        return await self._apply_transition(order_id, OrderStatus(new_status), actor_id, comment)

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> Order:
        """Cancel an order that has not been prepared yet.

        The cancellable check runs on the locked row, in the same
        transaction as the status write.

        Args:
            order_id: Order to cancel
            actor_id: User cancelling the order
            reason: Optional cancellation reason stored as history comment

        Returns:
            The order in status ANULADO

        Raises:
            OrderNotFoundError: Order does not exist
            NotCancellableError: Order is past APROBADO or already closed
        """
        return await self._apply_transition(
            order_id,
            OrderStatus.ANULADO,
            actor_id,
            reason,
            allowed_sources=CANCELLABLE_STATUSES,
        )

    async def _apply_transition(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID],
        comment: Optional[str],
        allowed_sources: Optional[FrozenSet[OrderStatus]] = None,
    ) -> Order:
        async with self._uow_factory() as uow:
            order = await uow.orders.get_order(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundError(order_id)

            current_status = order.status
            if allowed_sources is not None and current_status not in allowed_sources:
                raise NotCancellableError(current_status, allowed_sources, order_id=order_id)

            self._validate_transition(order, new_status)

            if current_status == new_status:
                logger.info(
                    "Status unchanged, skipping transition",
                    order_id=str(order_id),
                    status=current_status.value,
                )
                return order

            order.status = new_status
            await uow.orders.add_status_history(
                StatusHistory(
                    id=uuid.uuid4(),
                    order_id=order.id,
                    previous_status=current_status,
                    new_status=new_status,
                    changed_by=actor_id,
                    comment=comment or f"transition from {current_status.value} to {new_status.value}",
                    changed_at=datetime.now(timezone.utc),
                )
            )
            await uow.commit()

        logger.info(
            "State transition applied",
            order_id=str(order_id),
            transition=f"{current_status.value}->{new_status.value}",
            actor_id=str(actor_id) if actor_id else None,
        )

        side_effect = self._side_effects.get(new_status)
        if side_effect is not None:
            await side_effect(order)

        return order

    def get_allowed_transitions(self, status: OrderStatus) -> Set[OrderStatus]:
        """Get allowed target statuses from a status."""
        return get_allowed_order_transitions(OrderStatus(status))

    async def get_history(self, order_id: uuid.UUID) -> Sequence[StatusHistory]:
        """Return the status history of an order, oldest first.

        Raises:
            OrderNotFoundError: Order does not exist
        """
        async with self._uow_factory() as uow:
            if await uow.orders.get_order(order_id) is None:
                raise OrderNotFoundError(order_id)
            return await uow.orders.list_history(order_id)

    def _validate_transition(self, order: Order, target_status: OrderStatus) -> None:
        current_status = order.status

        logger.debug(
            "Validating state transition",
            order_id=str(order.id),
            current_status=current_status.value,
            target_status=target_status.value,
        )

        if not validate_order_status_transition(current_status, target_status):
            raise IllegalTransitionError(
                current_status,
                target_status,
                allowed=get_allowed_order_transitions(current_status),
                order_id=order.id,
            )

    # Side effects

    async def _effect_release_reservation(self, order: Order) -> None:
        """Release the stock held for a cancelled or rejected order."""
        released = await self._compensator.release(order.reservation_id)
        logger.info(
            "Reservation release after cancellation",
            order_id=str(order.id),
            reservation_id=order.reservation_id,
            released=released,
        )
