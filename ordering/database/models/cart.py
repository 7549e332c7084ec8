"""
Shopping cart database models.

The cart tables live in the orders database but are owned by the cart CRUD
endpoints; the order saga only reads a cart and clears it by id once an
order has been committed. A cart is keyed by its owner (the customer's user
id) and, when a seller builds it on the customer's behalf, by that seller.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.database.base import BaseModel


class Cart(BaseModel):
    """
    Cart header.

    Attributes:
        owner_id: User id of the customer who owns the cart
        seller_id: Seller building the cart for the customer (nullable)
        client_id: Catalog client record resolved for the owner (nullable)
    """

    __tablename__ = "carts"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="User id of the cart owner",
    )

    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Seller acting for the owner, null for self-service carts",
    )

    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Catalog client record of the owner",
    )

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    __table_args__ = (
        Index("ix_carts_owner_seller", "owner_id", "seller_id", unique=True),
        # NULL seller ids are distinct for the index above
        Index(
            "ix_carts_owner_self_service",
            "owner_id",
            unique=True,
            postgresql_where=text("seller_id IS NULL"),
        ),
        {"comment": "Shopping carts per owner and seller"},
    )


class CartItem(BaseModel):
    """
    Cart line item.

    Attributes:
        cart_id: Owning cart
        product_id: Product in the cart
        quantity: Requested quantity
        unit_of_measure: Unit of the quantity (nullable)
        unit_price_ref: Price shown when the item was added (informational)
        campaign_id: Promotion the item was added under (nullable)
        sku: SKU snapshot (nullable)
        product_name: Product name snapshot (nullable)
    """

    __tablename__ = "cart_items"

    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_of_measure: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    unit_price_ref: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        Index("ix_cart_items_cart_product", "cart_id", "product_id", unique=True),
        {"comment": "Shopping cart line items"},
    )
