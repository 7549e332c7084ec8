"""
HTTP client for the catalog service.

The catalog owns prices, promotions, client records and branch records. This
module maps its internal endpoints onto the ``CatalogClient`` contract and
normalizes the several location encodings the catalog emits.
"""

import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ordering.core.logging import get_logger
from ordering.services.collaborators.http import ServiceHttpClient
from ordering.services.collaborators.interfaces import GeoPoint, PromotionQuote

logger = get_logger(__name__)

LOCATION_KEYS = ("ubicacion_gps", "ubicacion", "location", "coordenadas")
LIST_PRICE_KEYS = ("precio_lista", "precio_original", "list_price", "precio_base")
FINAL_PRICE_KEYS = ("precio_final", "precio_oferta", "final_price", "precio")
PRICE_KEYS = ("precio", "precio_final", "valor", "price")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _first_decimal(data: dict[str, Any], keys: tuple[str, ...]) -> Optional[Decimal]:
    for key in keys:
        value = _to_decimal(data.get(key))
        if value is not None:
            return value
    return None


def parse_geo_point(value: Any) -> Optional[GeoPoint]:
    """
    Normalize a location payload into a GeoPoint.

    Accepted shapes:
        {"lat": .., "lng": ..}
        {"latitud": .., "longitud": ..}
        {"type": "Point", "coordinates": [lng, lat]}  (GeoJSON / PostGIS)

    Args:
        value: Raw payload

    Returns:
        GeoPoint, or None when the payload carries no usable coordinates
    """
    if not isinstance(value, dict):
        return None

    if value.get("type") == "Point":
        coordinates = value.get("coordinates")
        if isinstance(coordinates, (list, tuple)) and len(coordinates) >= 2:
            lng = _to_decimal(coordinates[0])
            lat = _to_decimal(coordinates[1])
            if lat is not None and lng is not None:
                return GeoPoint(lat=lat, lng=lng)
        return None

    for lat_key, lng_key in (("lat", "lng"), ("latitud", "longitud")):
        lat = _to_decimal(value.get(lat_key))
        lng = _to_decimal(value.get(lng_key))
        if lat is not None and lng is not None:
            return GeoPoint(lat=lat, lng=lng)

    return None


def _extract_location(record: Any) -> Optional[GeoPoint]:
    if not isinstance(record, dict):
        return None
    for key in LOCATION_KEYS:
        point = parse_geo_point(record.get(key))
        if point is not None:
            return point
    return parse_geo_point(record)


class HttpCatalogClient:
    """Catalog collaborator backed by the catalog service internal API."""

    def __init__(self, http: ServiceHttpClient):
        self._http = http

    async def _validate(
        self,
        product_id: uuid.UUID,
        client_id: Optional[uuid.UUID] = None,
        campaign_id: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        data = await self._http.get(
            f"/promociones/internal/validar/producto/{product_id}",
            params={
                "cliente_id": str(client_id) if client_id else None,
                "campania_id": campaign_id,
            },
            allow_not_found=True,
        )
        return data if isinstance(data, dict) else None

    async def best_promotion(
        self,
        product_id: uuid.UUID,
        client_id: Optional[uuid.UUID],
    ) -> Optional[PromotionQuote]:
        """
        Fetch the best eligible promotion for a product and client.

        Returns:
            PromotionQuote, or None when no promotion applies or the catalog
            answered without both prices
        """
        data = await self._validate(product_id, client_id=client_id)
        best = data.get("best") if data else None
        if not isinstance(best, dict) or not best:
            return None

        list_price = _first_decimal(best, LIST_PRICE_KEYS)
        final_price = _first_decimal(best, FINAL_PRICE_KEYS)
        if list_price is None or final_price is None:
            logger.debug(
                "Promotion without usable prices",
                product_id=str(product_id),
                keys=sorted(best.keys()),
            )
            return None

        campaign_id = best.get("campania_id") or best.get("campaign_id")
        return PromotionQuote(
            list_price=list_price,
            final_price=final_price,
            campaign_id=str(campaign_id) if campaign_id is not None else None,
            discount_type=best.get("tipo_descuento") or best.get("discount_type"),
            discount_value=_first_decimal(best, ("valor_descuento", "discount_value")),
            reason=best.get("nombre") or best.get("motivo") or best.get("reason"),
        )

    async def all_prices(self, product_id: uuid.UUID) -> list[Decimal]:
        """Return every active price of a product across price lists."""
        data = await self._http.get(
            f"/precios/internal/producto/{product_id}",
            allow_not_found=True,
        )
        if isinstance(data, dict):
            data = data.get("precios") or data.get("items") or [data]
        if not isinstance(data, list):
            return []

        prices = []
        for entry in data:
            if isinstance(entry, dict):
                price = _first_decimal(entry, PRICE_KEYS)
            else:
                price = _to_decimal(entry)
            if price is not None:
                prices.append(price)
        return prices

    async def revalidate_promotion(self, campaign_id: str, product_id: uuid.UUID) -> bool:
        """
        Ask the catalog whether a campaign still applies to a product.

        Returns:
            False only when the catalog explicitly reports the campaign invalid
        """
        data = await self._validate(product_id, campaign_id=campaign_id)
        if data is None or "valid" not in data:
            return True
        return bool(data["valid"])

    async def branch_location(self, branch_id: uuid.UUID) -> Optional[GeoPoint]:
        record = await self._http.get(f"/sucursales/{branch_id}", allow_not_found=True)
        return _extract_location(record)

    async def _client_record(self, client_id: uuid.UUID) -> Optional[dict[str, Any]]:
        record = await self._http.get(f"/internal/clients/{client_id}", allow_not_found=True)
        return record if isinstance(record, dict) else None

    async def client_location(self, client_id: uuid.UUID) -> Optional[GeoPoint]:
        return _extract_location(await self._client_record(client_id))

    async def assigned_seller(self, client_id: uuid.UUID) -> Optional[uuid.UUID]:
        record = await self._client_record(client_id)
        if not record:
            return None
        seller = record.get("vendedor_asignado_id") or record.get("assigned_seller_id")
        if not seller:
            return None
        try:
            return uuid.UUID(str(seller))
        except ValueError:
            logger.warning(
                "Assigned seller id is not a UUID",
                client_id=str(client_id),
                seller=str(seller),
            )
            return None
