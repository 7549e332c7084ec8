"""Typed errors raised by the order saga and the status state machine.

Every error carries a stable ``code`` that callers map to a user-facing
message, plus keyword context that ends up in structured logs.
"""

from typing import Any, Iterable, Optional

from ordering.services.orders.enums import OrderStatus


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    code = "ORDER_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class EmptyCartError(OrderServiceError):
    """Raised when the cart to convert has no lines."""

    code = "EMPTY_CART"

    def __init__(self, owner_id: Any, seller_id: Any = None):
        super().__init__(
            "Cart is empty",
            owner_id=str(owner_id),
            seller_id=str(seller_id) if seller_id else None,
        )


class InsufficientStockError(OrderServiceError):
    """Raised when the stock reservation cannot be obtained."""

    code = "INSUFFICIENT_STOCK"


class PricingUnavailableError(OrderServiceError):
    """Raised when no promotion nor active price exists for a product."""

    code = "PRICING_UNAVAILABLE"

    def __init__(self, product_id: Any, **context: Any):
        super().__init__(
            f"No price available for product {product_id}",
            product_id=str(product_id),
            **context,
        )
        self.product_id = product_id


class ExpiredPromotionError(OrderServiceError):
    """Raised when a line's promotion is no longer valid."""

    code = "PROMOTION_EXPIRED"

    def __init__(self, campaign_id: str, product_id: Any):
        super().__init__(
            f"Promotion {campaign_id} is no longer valid for product {product_id}",
            campaign_id=campaign_id,
            product_id=str(product_id),
        )
        self.campaign_id = campaign_id
        self.product_id = product_id


class OrderPersistenceError(OrderServiceError):
    """Raised when the order graph cannot be written or committed."""

    code = "ORDER_PERSISTENCE_FAILED"


class OrderNotFoundError(OrderServiceError):
    """Raised when an order does not exist."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        super().__init__("Order not found", order_id=str(order_id))


class IllegalTransitionError(OrderServiceError):
    """Raised when a status transition is not allowed from the current status."""

    code = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        current_status: OrderStatus,
        target_status: OrderStatus,
        allowed: Iterable[OrderStatus] = (),
        order_id: Optional[Any] = None,
    ):
        allowed_values = sorted(s.value for s in allowed)
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}",
            order_id=str(order_id) if order_id else None,
            current_status=current_status.value,
            target_status=target_status.value,
            allowed_transitions=allowed_values,
        )
        self.current_status = current_status
        self.target_status = target_status
        self.allowed = allowed_values


class NotCancellableError(OrderServiceError):
    """Raised when an order cannot be cancelled from its current status."""

    code = "NOT_CANCELLABLE"

    def __init__(
        self,
        current_status: OrderStatus,
        allowed: Iterable[OrderStatus],
        order_id: Optional[Any] = None,
    ):
        allowed_values = sorted(s.value for s in allowed)
        super().__init__(
            f"Order in status {current_status.value} cannot be cancelled; "
            f"allowed statuses: {', '.join(allowed_values)}",
            order_id=str(order_id) if order_id else None,
            current_status=current_status.value,
            allowed_statuses=allowed_values,
        )
        self.current_status = current_status
        self.allowed = allowed_values
