"""Tests for line price resolution and order totals."""

import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest

from ordering.services.collaborators.interfaces import CartLine, PromotionQuote
from ordering.services.orders.exceptions import PricingUnavailableError
from ordering.services.orders.pricing import (
    PriceResolver,
    ResolvedLine,
    calculate_totals,
    quantize_money,
)


def resolved(list_price: str, final_price: str, quantity: str) -> ResolvedLine:
    return ResolvedLine(
        line=CartLine(product_id=uuid.uuid4(), quantity=Decimal(quantity)),
        list_price=Decimal(list_price),
        final_price=Decimal(final_price),
    )


class TestCalculateTotals:

    def test_tax_rounds_half_up(self) -> None:
        # 0.30 x 0.15 = 0.045
        totals = calculate_totals([resolved("0.30", "0.30", "1")], tax_rate=Decimal("0.15"))
        assert totals.tax_total == Decimal("0.05")
        assert totals.grand_total == Decimal("0.35")

    def test_mixed_lines(self) -> None:
        totals = calculate_totals(
            [resolved("10", "10", "2"), resolved("10", "8", "3")],
        )
        assert totals.subtotal == Decimal("44.00")
        assert totals.discount_total == Decimal("6.00")
        assert totals.tax_total == Decimal("4.56")
        assert totals.grand_total == Decimal("42.56")

    def test_discount_capped_at_subtotal(self) -> None:
        totals = calculate_totals([resolved("10", "10", "1")], order_discount=Decimal("50"))
        assert totals.discount_total == Decimal("10.00")
        assert totals.tax_total == Decimal("0.00")
        assert totals.grand_total == Decimal("0.00")

    def test_negative_order_discount_ignored(self) -> None:
        totals = calculate_totals([resolved("10", "10", "1")], order_discount=Decimal("-3"))
        assert totals.discount_total == Decimal("0.00")

    def test_custom_tax_rate(self) -> None:
        totals = calculate_totals([resolved("100", "100", "1")], tax_rate=Decimal("0.15"))
        assert totals.tax_total == Decimal("15.00")

    def test_quantize_money(self) -> None:
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")


class TestPriceResolver:

    @pytest.mark.asyncio
    async def test_quote_campaign_falls_back_to_cart_line(self, catalog, product_id) -> None:
        catalog.promotions[product_id] = PromotionQuote(
            list_price=Decimal("10"), final_price=Decimal("9")
        )
        line = CartLine(product_id=product_id, quantity=Decimal("1"), campaign_id="CART-CAMP")

        result = await PriceResolver(catalog).resolve(line, None)

        assert result.campaign_id == "CART-CAMP"
        assert result.has_discount

    @pytest.mark.asyncio
    async def test_price_lookup_error_chains_cause(self, catalog, product_id, cart_line) -> None:
        catalog.price_errors[product_id] = TimeoutError("catalog timeout")

        with pytest.raises(PricingUnavailableError) as exc_info:
            await PriceResolver(catalog).resolve(cart_line, uuid.uuid4())

        assert exc_info.value.product_id == product_id
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_quote_above_list_price_drops_campaign(self, catalog, product_id) -> None:
        catalog.promotions[product_id] = PromotionQuote(
            list_price=Decimal("10"),
            final_price=Decimal("12"),
            campaign_id="c-1",
            discount_type="PORCENTAJE",
        )
        line = CartLine(product_id=product_id, quantity=Decimal("1"), campaign_id="CART-CAMP")

        result = await PriceResolver(catalog).resolve(line, None)

        assert result.final_price == Decimal("12.00")
        assert result.campaign_id is None
        assert result.discount_type is None
        assert result.line_discount == Decimal("0")


class TestDiscountCap:

    def test_cap_is_logged(self) -> None:
        # 60% promotion: line discount 6 exceeds the 4.00 subtotal
        with patch("ordering.services.orders.pricing.logger") as mock_logger:
            totals = calculate_totals([resolved("10", "4", "1")])

        assert totals.discount_total == Decimal("4.00")
        assert totals.grand_total == Decimal("0.00")
        mock_logger.warning.assert_called_once()
        _, kwargs = mock_logger.warning.call_args
        assert kwargs["discount"] == "6.00"
        assert kwargs["subtotal"] == "4.00"

    def test_no_warning_within_subtotal(self) -> None:
        with patch("ordering.services.orders.pricing.logger") as mock_logger:
            calculate_totals([resolved("10", "8", "1")])

        mock_logger.warning.assert_not_called()
