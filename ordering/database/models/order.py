"""
Order store models: orders, lines, applied promotions and status history.

This module defines the Order aggregate tables. Rows are written explicitly
by ``OrderRepository`` inside one unit of work; no ORM cascades are declared,
so the transaction boundary stays visible in the service code. Lines,
applied promotions and history rows are insert-only.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Identity,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ordering.database.base import Base, BaseModel, UUIDMixin
from ordering.services.orders.enums import OrderStatus

MONEY = Numeric(12, 2)


def _status_column_type() -> SQLEnum:
    return SQLEnum(
        OrderStatus,
        name="order_status",
        native_enum=False,
        length=30,
        values_callable=lambda enum_cls: [member.value for member in enum_cls],
        validate_strings=True,
    )


class Order(BaseModel):
    """
    One customer purchase.

    Attributes:
        id: Unique order identifier (UUID)
        visual_code: Sequential human-readable order number
        client_id: Customer the order is billed to
        seller_id: Seller assigned to the order (null for self-service orders)
        branch_id: Client branch the order ships to (nullable)
        status: Current status code
        subtotal: Sum of final price x quantity over all lines
        discount_total: Realized line discounts plus order-level discount
        tax_total: Tax over (subtotal - discount_total)
        grand_total: subtotal - discount_total + tax_total, fixed at creation
        payment_method: Requested payment condition
        requested_delivery_date: Requested delivery date (nullable)
        origin: Channel the order came from (nullable)
        delivery_latitude: Delivery point latitude (nullable)
        delivery_longitude: Delivery point longitude (nullable)
        notes: Free-text delivery notes
        reservation_id: Opaque stock reservation token (nullable)
    """

    __tablename__ = "orders"

    visual_code: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        Identity(always=False),
        unique=True,
        nullable=False,
        comment="Sequential human-readable order number",
    )

    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Customer the order belongs to",
    )

    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
        comment="Assigned seller, null for self-service client orders",
    )

    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Client branch receiving the order",
    )

    status: Mapped[OrderStatus] = mapped_column(
        _status_column_type(),
        nullable=False,
        default=OrderStatus.PENDIENTE,
        server_default=OrderStatus.PENDIENTE.value,
        index=True,
        comment="Current order status code",
    )

    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    discount_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    tax_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    grand_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))

    payment_method: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    requested_delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    origin: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Order origin tag (client app, seller app, ...)",
    )

    delivery_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)
    delivery_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    reservation_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Opaque reservation token owned by the inventory service",
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("tax_total >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint(
            "grand_total = subtotal - discount_total + tax_total",
            name="ck_orders_grand_total",
        ),
        Index("ix_orders_client_created", "client_id", "created_at"),
        {"comment": "Customer orders"},
    )

    @property
    def has_delivery_location(self) -> bool:
        return self.delivery_latitude is not None and self.delivery_longitude is not None


class OrderLine(BaseModel):
    """
    One product line within an order, snapshotted at creation.

    Attributes:
        order_id: Owning order
        product_id: Ordered product
        sku: SKU snapshot (nullable)
        product_name: Product name snapshot (nullable)
        quantity: Ordered quantity, strictly positive
        unit_of_measure: Unit the quantity is expressed in
        list_price: List price snapshot
        final_price: Post-discount price snapshot
        campaign_id: Promotion applied to the line (nullable)
        discount_reason: Human-readable discount reason (nullable)
    """

    __tablename__ = "order_lines"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_of_measure: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    list_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    final_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    discount_reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        CheckConstraint(
            "campaign_id IS NULL OR final_price <= list_price",
            name="ck_order_lines_promotion_price",
        ),
        {"comment": "Order line snapshots"},
    )

    @property
    def line_total(self) -> Decimal:
        return self.final_price * self.quantity

    @property
    def line_discount(self) -> Decimal:
        return max(Decimal("0"), self.list_price - self.final_price) * self.quantity


class AppliedPromotion(Base, UUIDMixin):
    """
    Audit record of a discount actually applied to an order line.

    Attributes:
        order_id: Owning order
        order_line_id: Discounted line
        campaign_id: Promotion campaign identifier
        discount_type: Kind of discount reported by the catalog
        discount_value: Discount value as configured on the campaign
        applied_amount: Realized discount, (list - final) x quantity
    """

    __tablename__ = "applied_promotions"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    order_line_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("order_lines.id", ondelete="CASCADE"),
        nullable=False,
    )

    campaign_id: Mapped[str] = mapped_column(String(64), nullable=False)
    discount_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    discount_value: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    applied_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("applied_amount >= 0", name="ck_applied_promotions_amount"),
        {"comment": "Discounts applied to order lines"},
    )


class StatusHistory(Base, UUIDMixin):
    """
    Append-only audit trail of order status transitions.

    Attributes:
        order_id: Order whose status changed
        previous_status: Status before the transition
        new_status: Status after the transition
        changed_by: Acting user, null for system-driven transitions
        comment: Free-text comment
        changed_at: When the transition was committed
    """

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    previous_status: Mapped[Optional[OrderStatus]] = mapped_column(
        _status_column_type(),
        nullable=True,
    )

    new_status: Mapped[OrderStatus] = mapped_column(
        _status_column_type(),
        nullable=False,
    )

    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_order_status_history_order_changed", "order_id", "changed_at"),
        {"comment": "Order status transition audit trail"},
    )
