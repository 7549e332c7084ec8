"""Contracts of the external collaborators consumed by the order core.

The saga, the state machine and the listener depend only on these protocols,
so tests substitute fakes and the HTTP/SQL implementations stay swappable.
Value objects are frozen dataclasses; monetary values are ``Decimal``.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class GeoPoint:
    """WGS84 coordinates."""

    lat: Decimal
    lng: Decimal


@dataclass(frozen=True)
class ReservationItem:
    """Product quantity to hold in the inventory service."""

    product_id: uuid.UUID
    quantity: Decimal


@dataclass(frozen=True)
class PromotionQuote:
    """Best eligible promotion for a product and client."""

    list_price: Decimal
    final_price: Decimal
    campaign_id: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class CartLine:
    """One line of a cart as seen by the order saga."""

    product_id: uuid.UUID
    quantity: Decimal
    unit_of_measure: Optional[str] = None
    campaign_id: Optional[str] = None
    sku: Optional[str] = None
    product_name: Optional[str] = None


@dataclass(frozen=True)
class CartSnapshot:
    """Read-only view of a cart at the moment the order is built."""

    id: uuid.UUID
    owner_id: uuid.UUID
    seller_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    lines: Sequence[CartLine] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return len(self.lines) == 0


@dataclass(frozen=True)
class Picking:
    """Warehouse picking record."""

    id: str
    order_id: Optional[uuid.UUID] = None
    status: Optional[str] = None


@runtime_checkable
class InventoryClient(Protocol):
    async def reserve(
        self,
        items: Sequence[ReservationItem],
        idempotency_key: str,
    ) -> str:
        """Create a reservation and return its id."""
        ...

    async def release(self, reservation_id: str) -> None:
        """Delete a reservation."""
        ...


@runtime_checkable
class CatalogClient(Protocol):
    async def best_promotion(
        self,
        product_id: uuid.UUID,
        client_id: Optional[uuid.UUID],
    ) -> Optional[PromotionQuote]:
        ...

    async def all_prices(self, product_id: uuid.UUID) -> list[Decimal]:
        ...

    async def revalidate_promotion(self, campaign_id: str, product_id: uuid.UUID) -> bool:
        ...

    async def branch_location(self, branch_id: uuid.UUID) -> Optional[GeoPoint]:
        ...

    async def client_location(self, client_id: uuid.UUID) -> Optional[GeoPoint]:
        ...

    async def assigned_seller(self, client_id: uuid.UUID) -> Optional[uuid.UUID]:
        ...


@runtime_checkable
class CartClient(Protocol):
    async def get_cart(
        self,
        owner_id: uuid.UUID,
        seller_id: Optional[uuid.UUID] = None,
    ) -> Optional[CartSnapshot]:
        ...

    async def clear_cart_by_id(self, cart_id: uuid.UUID) -> None:
        ...


@runtime_checkable
class WarehouseClient(Protocol):
    async def confirm_picking(
        self,
        order_id: uuid.UUID,
        reservation_id: Optional[str] = None,
    ) -> None:
        ...

    async def get_picking(self, picking_id: str) -> Optional[Picking]:
        ...
