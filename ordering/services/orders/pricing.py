"""
Line pricing and order totals.

This module resolves the price of every cart line against the catalog
(best promotion first, lowest active price as fallback) and computes the
order totals with Decimal arithmetic rounded half-up to cents.
"""

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ordering.core.logging import get_logger
from ordering.services.collaborators.interfaces import CartLine, CatalogClient
from ordering.services.orders.exceptions import PricingUnavailableError

logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_TAX_RATE = Decimal("0.12")


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount half-up to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ResolvedLine:
    """A cart line with its list and final price settled."""

    line: CartLine
    list_price: Decimal
    final_price: Decimal
    campaign_id: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    discount_reason: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.final_price * self.line.quantity

    @property
    def line_discount(self) -> Decimal:
        """Discount inferred from the snapshot prices."""
        return max(ZERO, self.list_price - self.final_price) * self.line.quantity

    @property
    def has_discount(self) -> bool:
        return self.final_price < self.list_price


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    grand_total: Decimal


class PriceResolver:
    """
    Resolves line prices through the catalog collaborator.

    A failing promotion lookup is not fatal: the resolver falls back to the
    lowest active price. Only when that also fails or yields nothing is the
    line unpriceable.
    """

    def __init__(self, catalog: CatalogClient):
        self._catalog = catalog

    async def resolve(
        self,
        line: CartLine,
        client_id: Optional[uuid.UUID],
    ) -> ResolvedLine:
        """
        Resolve the price of one cart line.

        Args:
            line: Cart line to price
            client_id: Client the promotion eligibility is evaluated for

        Returns:
            ResolvedLine with list and final price

        Raises:
            PricingUnavailableError: No promotion and no active price
        """
        try:
            quote = await self._catalog.best_promotion(line.product_id, client_id)
        except Exception as e:
            logger.warning(
                "Promotion lookup failed, falling back to active prices",
                product_id=str(line.product_id),
                client_id=str(client_id) if client_id else None,
                error=str(e),
                error_type=type(e).__name__,
            )
            quote = None

        if quote is not None and quote.final_price > quote.list_price:
            # campaign lines must satisfy final <= list
            logger.warning(
                "Promotion quote above list price, dropping campaign",
                product_id=str(line.product_id),
                campaign_id=quote.campaign_id,
                list_price=str(quote.list_price),
                final_price=str(quote.final_price),
            )
            return ResolvedLine(
                line=line,
                list_price=quantize_money(quote.list_price),
                final_price=quantize_money(quote.final_price),
            )

        if quote is not None:
            return ResolvedLine(
                line=line,
                list_price=quantize_money(quote.list_price),
                final_price=quantize_money(quote.final_price),
                campaign_id=quote.campaign_id or line.campaign_id,
                discount_type=quote.discount_type,
                discount_value=quote.discount_value,
                discount_reason=quote.reason,
            )

        try:
            prices = await self._catalog.all_prices(line.product_id)
        except Exception as e:
            raise PricingUnavailableError(
                line.product_id,
                error=str(e),
                error_type=type(e).__name__,
            ) from e

        if not prices:
            raise PricingUnavailableError(line.product_id, reason="no active prices")

        price = quantize_money(min(prices))
        logger.debug(
            "Line priced from active prices",
            product_id=str(line.product_id),
            price=str(price),
            candidates=len(prices),
        )
        return ResolvedLine(
            line=line,
            list_price=price,
            final_price=price,
            campaign_id=line.campaign_id,
        )


def calculate_totals(
    lines: Iterable[ResolvedLine],
    order_discount: Decimal = ZERO,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> OrderTotals:
    """
    Compute order totals.

    subtotal = sum(final x qty)
    discount = sum(max(0, list - final) x qty) + order_discount, capped at
               the subtotal
    tax      = round((subtotal - discount) x tax_rate, 2)
    grand    = subtotal - discount + tax

    Args:
        lines: Resolved lines
        order_discount: Order-level discount amount (negative values ignored)
        tax_rate: Tax rate applied to the discounted subtotal

    Returns:
        OrderTotals rounded to cents
    """
    lines = list(lines)
    subtotal = quantize_money(sum((line.line_total for line in lines), ZERO))
    discount = sum((line.line_discount for line in lines), ZERO)
    discount += max(ZERO, Decimal(order_discount or ZERO))
    discount = quantize_money(discount)
    if discount > subtotal:
        logger.warning(
            "Discount exceeds subtotal, capping",
            discount=str(discount),
            subtotal=str(subtotal),
        )
        discount = subtotal

    tax = quantize_money((subtotal - discount) * Decimal(tax_rate))
    grand = subtotal - discount + tax

    return OrderTotals(
        subtotal=subtotal,
        discount_total=discount,
        tax_total=tax,
        grand_total=grand,
    )
