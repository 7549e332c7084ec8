"""Order status and actor role enums for the order lifecycle.

This module defines the closed set of order status codes together with the
transition graph enforced by the state machine, plus the actor roles that
drive client/seller resolution during order creation.
"""

from enum import Enum
from typing import Dict, FrozenSet, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Forward chain:
    - PENDIENTE -> APROBADO -> PREPARADO -> EN_RUTA -> ENTREGADO

    Cancellation (from any non-terminal status):
    - ANULADO, RECHAZADO

    ENTREGADO, ANULADO and RECHAZADO are terminal.
    """

    PENDIENTE = "PENDIENTE"
    APROBADO = "APROBADO"
    PREPARADO = "PREPARADO"
    EN_RUTA = "EN_RUTA"
    ENTREGADO = "ENTREGADO"
    ANULADO = "ANULADO"
    RECHAZADO = "RECHAZADO"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status (case-insensitive)

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status is a terminal state."""
        return self in TERMINAL_STATUSES

    def can_cancel(self) -> bool:
        """Check if the order can be cancelled by a user from this status."""
        return self in CANCELLABLE_STATUSES

    def releases_reservation(self) -> bool:
        """Check if entering this status must release the stock reservation."""
        return self in RELEASING_STATUSES

    @property
    def display_name(self) -> str:
        """Human-readable display name for status."""
        return self.value.replace("_", " ").title()


class ActorRole(str, Enum):
    """Role of the user creating an order from a cart."""

    CLIENT = "cliente"
    SELLER = "vendedor"
    ADMIN = "admin"

    @classmethod
    def from_string(cls, value: str) -> "ActorRole":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid actor role: {value}")


FORWARD_CHAIN: tuple[OrderStatus, ...] = (
    OrderStatus.PENDIENTE,
    OrderStatus.APROBADO,
    OrderStatus.PREPARADO,
    OrderStatus.EN_RUTA,
    OrderStatus.ENTREGADO,
)

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.ENTREGADO, OrderStatus.ANULADO, OrderStatus.RECHAZADO}
)

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDIENTE, OrderStatus.APROBADO}
)

RELEASING_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.ANULADO, OrderStatus.RECHAZADO}
)

# EN_RUTA may only be entered from this exact status
DISPATCH_SOURCE_STATUS = OrderStatus.PREPARADO


def _build_transition_map() -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    transitions: Dict[OrderStatus, FrozenSet[OrderStatus]] = {}
    for status in OrderStatus:
        if status.is_terminal():
            transitions[status] = frozenset()
            continue

        rank = FORWARD_CHAIN.index(status)
        targets = set(FORWARD_CHAIN[rank + 1:]) | set(RELEASING_STATUSES)
        if status != DISPATCH_SOURCE_STATUS:
            targets.discard(OrderStatus.EN_RUTA)
        transitions[status] = frozenset(targets)
    return transitions


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = (
    _build_transition_map()
)


def validate_order_status_transition(
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> bool:
    """Validate an order status transition.

    Re-entering the current status is accepted here, and the state machine
    treats it as a no-op, except for EN_RUTA, which is only reachable from
    PREPARADO.

    Args:
        current_status: Current order status
        target_status: Desired target status

    Returns:
        True if transition is valid, False otherwise
    """
    if target_status == OrderStatus.EN_RUTA and current_status != DISPATCH_SOURCE_STATUS:
        return False
    if current_status == target_status:
        return True
    return target_status in ORDER_STATUS_TRANSITIONS.get(current_status, frozenset())


def get_allowed_order_transitions(current_status: OrderStatus) -> Set[OrderStatus]:
    """Get allowed target statuses from current order status."""
    return set(ORDER_STATUS_TRANSITIONS.get(current_status, frozenset()))
