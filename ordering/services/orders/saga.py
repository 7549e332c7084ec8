"""
Order-from-cart saga.

This module implements the OrderSagaOrchestrator, which turns a cart into a
persisted order. The run spans local storage and three collaborators
(cart, inventory, catalog) without a distributed transaction: a stock
reservation is taken first, and any later failure rolls back the local
transaction and releases that reservation exactly once.
"""

import asyncio
import uuid
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from ordering.core.logging import get_logger, log_performance, set_actor_id
from ordering.database.models.order import AppliedPromotion, Order, OrderLine
from ordering.services.collaborators.interfaces import (
    CartClient,
    CartSnapshot,
    CatalogClient,
    GeoPoint,
    InventoryClient,
    ReservationItem,
)
from ordering.services.orders.compensation import ReservationCompensator
from ordering.services.orders.enums import ActorRole, OrderStatus
from ordering.services.orders.exceptions import (
    EmptyCartError,
    ExpiredPromotionError,
    InsufficientStockError,
    OrderPersistenceError,
)
from ordering.services.orders.pricing import (
    DEFAULT_TAX_RATE,
    ZERO,
    PriceResolver,
    ResolvedLine,
    calculate_totals,
    quantize_money,
)
from ordering.services.orders.unit_of_work import UnitOfWorkFactory

logger = get_logger(__name__)


class OrderSagaOrchestrator:
    """
    Creates orders from carts with reservation compensation.

    Collaborators are injected through the constructor as protocol
    implementations; tests pass in-memory fakes.
    """

    def __init__(
        self,
        cart: CartClient,
        inventory: InventoryClient,
        catalog: CatalogClient,
        uow_factory: UnitOfWorkFactory,
        compensator: Optional[ReservationCompensator] = None,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
    ):
        """
        Initialize the orchestrator.

        Args:
            cart: Cart read/clear collaborator
            inventory: Stock reservation collaborator
            catalog: Prices, promotions, locations and seller assignment
            uow_factory: Zero-argument factory returning a unit of work
            compensator: Reservation compensator (built from inventory if None)
            tax_rate: Tax rate applied to the discounted subtotal
        """
        self._cart = cart
        self._inventory = inventory
        self._catalog = catalog
        self._uow_factory = uow_factory
        self._compensator = compensator or ReservationCompensator(inventory)
        self._prices = PriceResolver(catalog)
        self._tax_rate = tax_rate
        self._background_tasks: set[asyncio.Task] = set()

    async def create_from_cart(
        self,
        actor_id: uuid.UUID,
        owner_id: uuid.UUID,
        actor_role: Union[ActorRole, str],
        branch_id: Optional[uuid.UUID] = None,
        payment_method: Optional[str] = None,
        seller_id: Optional[uuid.UUID] = None,
        *,
        requested_delivery_date: Optional[date] = None,
        origin: Optional[str] = None,
        notes: Optional[str] = None,
        location: Optional[GeoPoint] = None,
        order_discount: Decimal = ZERO,
    ) -> Order:
        """
        Create an order from the cart of ``owner_id``.

        Args:
            actor_id: User performing the checkout
            owner_id: Owner of the cart
            actor_role: Role of the actor (client, seller or admin)
            branch_id: Client branch the order is delivered to
            payment_method: Payment method label stored on the order
            seller_id: Seller the cart belongs to, if any
            requested_delivery_date: Delivery date requested by the client
            origin: Channel the order came from
            notes: Free-form notes
            location: Explicit delivery coordinates
            order_discount: Order-level discount amount

        Returns:
            The committed Order in status PENDIENTE

        Raises:
            EmptyCartError: No cart or a cart without lines
            InsufficientStockError: Reservation refused or failed
            PricingUnavailableError: A line has neither promotion nor price
            ExpiredPromotionError: A line's campaign is confirmed invalid
            OrderPersistenceError: The order could not be written
        """
        role = actor_role if isinstance(actor_role, ActorRole) else ActorRole.from_string(actor_role)
        set_actor_id(str(actor_id))
        cart_seller_id = seller_id
        if cart_seller_id is None and role is ActorRole.SELLER:
            cart_seller_id = actor_id

        with log_performance(
            logger,
            "create_order_from_cart",
            owner_id=str(owner_id),
            actor_id=str(actor_id),
            role=role.value,
        ):
            cart = await self._cart.get_cart(owner_id, cart_seller_id)
            if cart is None or cart.is_empty:
                raise EmptyCartError(owner_id, cart_seller_id)

            client_id, order_seller_id = await self._resolve_parties(
                cart, role, actor_id, owner_id, seller_id
            )

            reservation_id = await self._reserve(cart)

            try:
                order = await self._price_and_persist(
                    cart=cart,
                    client_id=client_id,
                    seller_id=order_seller_id,
                    branch_id=branch_id,
                    reservation_id=reservation_id,
                    payment_method=payment_method,
                    requested_delivery_date=requested_delivery_date,
                    origin=origin,
                    notes=notes,
                    location=location,
                    order_discount=order_discount,
                )
            except (Exception, asyncio.CancelledError) as e:
                logger.warning(
                    "Order saga failed, releasing reservation",
                    owner_id=str(owner_id),
                    reservation_id=reservation_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._compensator.release(reservation_id)
                raise

            self._schedule_cart_clear(cart.id)

        logger.info(
            "Order created from cart",
            order_id=str(order.id),
            client_id=str(client_id),
            seller_id=str(order_seller_id) if order_seller_id else None,
            reservation_id=reservation_id,
            grand_total=str(order.grand_total),
        )
        return order

    async def _resolve_parties(
        self,
        cart: CartSnapshot,
        role: ActorRole,
        actor_id: uuid.UUID,
        owner_id: uuid.UUID,
        seller_id: Optional[uuid.UUID],
    ) -> tuple[uuid.UUID, Optional[uuid.UUID]]:
        """Return (client_id, seller_id) for the order."""
        client_id = cart.client_id or owner_id

        if role is ActorRole.SELLER:
            return client_id, actor_id

        if role is ActorRole.CLIENT and seller_id is None:
            try:
                assigned = await self._catalog.assigned_seller(client_id)
            except Exception as e:
                logger.warning(
                    "Assigned seller lookup failed",
                    client_id=str(client_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                assigned = None
            return client_id, assigned

        return client_id, seller_id

    async def _reserve(self, cart: CartSnapshot) -> str:
        quantities: "OrderedDict[uuid.UUID, Decimal]" = OrderedDict()
        for line in cart.lines:
            quantities[line.product_id] = quantities.get(line.product_id, ZERO) + line.quantity

        items = [ReservationItem(product_id=pid, quantity=qty) for pid, qty in quantities.items()]
        idempotency_key = str(uuid.uuid4())

        try:
            return await self._inventory.reserve(items, idempotency_key)
        except Exception as e:
            raise InsufficientStockError(
                "Stock reservation failed",
                cart_id=str(cart.id),
                idempotency_key=idempotency_key,
                error=str(e),
                error_type=type(e).__name__,
            ) from e

    async def _resolve_location(
        self,
        location: Optional[GeoPoint],
        branch_id: Optional[uuid.UUID],
        client_id: uuid.UUID,
    ) -> Optional[GeoPoint]:
        if location is not None:
            return location

        if branch_id is not None:
            try:
                point = await self._catalog.branch_location(branch_id)
            except Exception as e:
                logger.warning(
                    "Branch location lookup failed",
                    branch_id=str(branch_id),
                    error=str(e),
                )
                point = None
            if point is not None:
                return point

        try:
            return await self._catalog.client_location(client_id)
        except Exception as e:
            logger.warning(
                "Client location lookup failed",
                client_id=str(client_id),
                error=str(e),
            )
            return None

    async def _price_and_persist(
        self,
        *,
        cart: CartSnapshot,
        client_id: uuid.UUID,
        seller_id: Optional[uuid.UUID],
        branch_id: Optional[uuid.UUID],
        reservation_id: str,
        payment_method: Optional[str],
        requested_delivery_date: Optional[date],
        origin: Optional[str],
        notes: Optional[str],
        location: Optional[GeoPoint],
        order_discount: Decimal,
    ) -> Order:
        # One catalog round trip per line, in cart order
        resolved = [await self._prices.resolve(line, client_id) for line in cart.lines]
        totals = calculate_totals(resolved, order_discount, self._tax_rate)
        point = await self._resolve_location(location, branch_id, client_id)

        order = Order(
            id=uuid.uuid4(),
            client_id=client_id,
            seller_id=seller_id,
            branch_id=branch_id,
            status=OrderStatus.PENDIENTE,
            subtotal=totals.subtotal,
            discount_total=totals.discount_total,
            tax_total=totals.tax_total,
            grand_total=totals.grand_total,
            payment_method=payment_method,
            requested_delivery_date=requested_delivery_date,
            origin=origin,
            notes=notes,
            delivery_latitude=point.lat if point else None,
            delivery_longitude=point.lng if point else None,
            reservation_id=reservation_id,
        )

        try:
            async with self._uow_factory() as uow:
                await uow.orders.add_order(order)
                for item in resolved:
                    await self._persist_line(uow, order, item)
                await uow.commit()
        except SQLAlchemyError as e:
            raise OrderPersistenceError(
                "Failed to persist order",
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
            ) from e

        return order

    async def _persist_line(self, uow, order: Order, item: ResolvedLine) -> None:
        line = OrderLine(
            id=uuid.uuid4(),
            order_id=order.id,
            product_id=item.line.product_id,
            sku=item.line.sku,
            product_name=item.line.product_name,
            quantity=item.line.quantity,
            unit_of_measure=item.line.unit_of_measure,
            list_price=item.list_price,
            final_price=item.final_price,
            campaign_id=item.campaign_id,
            discount_reason=item.discount_reason,
        )
        await uow.orders.add_line(line)

        if not item.campaign_id:
            return

        if not item.has_discount:
            await self._revalidate_campaign(item)

        await uow.orders.add_applied_promotion(
            AppliedPromotion(
                id=uuid.uuid4(),
                order_id=order.id,
                order_line_id=line.id,
                campaign_id=item.campaign_id,
                discount_type=item.discount_type,
                discount_value=item.discount_value,
                applied_amount=quantize_money(item.line_discount),
            )
        )

    async def _revalidate_campaign(self, item: ResolvedLine) -> None:
        """Raise ExpiredPromotionError only when the catalog confirms it."""
        try:
            valid = await self._catalog.revalidate_promotion(
                item.campaign_id, item.line.product_id
            )
        except Exception as e:
            logger.warning(
                "Promotion revalidation failed, keeping campaign",
                campaign_id=item.campaign_id,
                product_id=str(item.line.product_id),
                error=str(e),
            )
            return

        if not valid:
            raise ExpiredPromotionError(item.campaign_id, item.line.product_id)

    def _schedule_cart_clear(self, cart_id: uuid.UUID) -> None:
        task = asyncio.create_task(self._clear_cart(cart_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _clear_cart(self, cart_id: uuid.UUID) -> None:
        try:
            await self._cart.clear_cart_by_id(cart_id)
        except Exception as e:
            logger.warning(
                "Failed to clear cart after order creation",
                cart_id=str(cart_id),
                error=str(e),
                error_type=type(e).__name__,
            )

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending post-commit work (cart clears)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
