"""
Database models package initialization.

This module exports all database models so they are registered with the Base
metadata for Alembic and for relationship resolution.
"""

from ordering.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from ordering.database.models.cart import Cart, CartItem
from ordering.database.models.order import (
    AppliedPromotion,
    Order,
    OrderLine,
    StatusHistory,
)

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Cart",
    "CartItem",
    "Order",
    "OrderLine",
    "AppliedPromotion",
    "StatusHistory",
]
