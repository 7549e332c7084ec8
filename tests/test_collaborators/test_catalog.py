"""Tests for the catalog HTTP client and location parsing."""

import uuid
from decimal import Decimal

import httpx
import pytest

from ordering.services.collaborators.catalog import HttpCatalogClient, parse_geo_point
from ordering.services.collaborators.http import ServiceHttpClient
from ordering.services.collaborators.interfaces import GeoPoint


def make_catalog(routes: dict) -> tuple[HttpCatalogClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, json=body)

    http = ServiceHttpClient(
        "catalog-service",
        "http://catalog.local",
        transport=httpx.MockTransport(handler),
        initial_backoff=0,
    )
    return HttpCatalogClient(http), seen


class TestParseGeoPoint:

    def test_lat_lng(self) -> None:
        assert parse_geo_point({"lat": -0.18, "lng": -78.47}) == GeoPoint(
            lat=Decimal("-0.18"), lng=Decimal("-78.47")
        )

    def test_spanish_keys(self) -> None:
        point = parse_geo_point({"latitud": "-2.19", "longitud": "-79.88"})
        assert point == GeoPoint(lat=Decimal("-2.19"), lng=Decimal("-79.88"))

    def test_geojson_point_is_lng_lat(self) -> None:
        point = parse_geo_point({"type": "Point", "coordinates": [-78.5, -0.2]})
        assert point == GeoPoint(lat=Decimal("-0.2"), lng=Decimal("-78.5"))

    @pytest.mark.parametrize(
        "value",
        [None, "POINT(1 2)", {}, {"lat": 1}, {"type": "Point", "coordinates": [1]}],
    )
    def test_unusable_payloads(self, value) -> None:
        assert parse_geo_point(value) is None


class TestPromotions:

    @pytest.mark.asyncio
    async def test_best_promotion(self) -> None:
        product_id, client_id = uuid.uuid4(), uuid.uuid4()
        catalog, seen = make_catalog({
            f"/promociones/internal/validar/producto/{product_id}": {
                "best": {
                    "precio_lista": "10.00",
                    "precio_final": "8.00",
                    "campania_id": 42,
                    "tipo_descuento": "PORCENTAJE",
                    "valor_descuento": "20",
                    "nombre": "Promo verano",
                }
            }
        })

        quote = await catalog.best_promotion(product_id, client_id)

        assert quote.list_price == Decimal("10.00")
        assert quote.final_price == Decimal("8.00")
        assert quote.campaign_id == "42"
        assert quote.discount_value == Decimal("20")
        assert quote.reason == "Promo verano"
        assert seen[0].url.params["cliente_id"] == str(client_id)

    @pytest.mark.asyncio
    async def test_promotion_without_prices_is_ignored(self) -> None:
        product_id = uuid.uuid4()
        catalog, _ = make_catalog({
            f"/promociones/internal/validar/producto/{product_id}": {"best": {"precio_lista": 10}}
        })

        assert await catalog.best_promotion(product_id, None) is None

    @pytest.mark.asyncio
    async def test_no_promotion(self) -> None:
        catalog, _ = make_catalog({})

        assert await catalog.best_promotion(uuid.uuid4(), None) is None

    @pytest.mark.asyncio
    async def test_revalidate_explicit_invalid(self) -> None:
        product_id = uuid.uuid4()
        catalog, seen = make_catalog({
            f"/promociones/internal/validar/producto/{product_id}": {"valid": False}
        })

        assert await catalog.revalidate_promotion("C1", product_id) is False
        assert seen[0].url.params["campania_id"] == "C1"

    @pytest.mark.asyncio
    async def test_revalidate_without_verdict_is_valid(self) -> None:
        product_id = uuid.uuid4()
        catalog, _ = make_catalog({
            f"/promociones/internal/validar/producto/{product_id}": {"best": None}
        })

        assert await catalog.revalidate_promotion("C1", product_id) is True


class TestPrices:

    @pytest.mark.asyncio
    async def test_price_list_shapes(self) -> None:
        product_id = uuid.uuid4()
        catalog, _ = make_catalog({
            f"/precios/internal/producto/{product_id}": {
                "precios": [{"precio": "12.50"}, {"valor": 11}, {"otro": 1}]
            }
        })

        assert await catalog.all_prices(product_id) == [Decimal("12.50"), Decimal("11")]

    @pytest.mark.asyncio
    async def test_unknown_product_has_no_prices(self) -> None:
        catalog, _ = make_catalog({})

        assert await catalog.all_prices(uuid.uuid4()) == []


class TestClients:

    @pytest.mark.asyncio
    async def test_branch_location_nested(self) -> None:
        branch_id = uuid.uuid4()
        catalog, _ = make_catalog({
            f"/sucursales/{branch_id}": {
                "nombre": "Norte",
                "ubicacion_gps": {"type": "Point", "coordinates": [-78.4, -0.1]},
            }
        })

        assert await catalog.branch_location(branch_id) == GeoPoint(
            lat=Decimal("-0.1"), lng=Decimal("-78.4")
        )

    @pytest.mark.asyncio
    async def test_client_location_flat(self) -> None:
        client_id = uuid.uuid4()
        catalog, _ = make_catalog({f"/internal/clients/{client_id}": {"lat": 1, "lng": 2}})

        assert await catalog.client_location(client_id) == GeoPoint(lat=Decimal("1"), lng=Decimal("2"))

    @pytest.mark.asyncio
    async def test_assigned_seller(self) -> None:
        client_id, seller_id = uuid.uuid4(), uuid.uuid4()
        catalog, _ = make_catalog({
            f"/internal/clients/{client_id}": {"vendedor_asignado_id": str(seller_id)}
        })

        assert await catalog.assigned_seller(client_id) == seller_id

    @pytest.mark.asyncio
    async def test_malformed_assigned_seller(self) -> None:
        client_id = uuid.uuid4()
        catalog, _ = make_catalog({
            f"/internal/clients/{client_id}": {"vendedor_asignado_id": "V-001"}
        })

        assert await catalog.assigned_seller(client_id) is None
