"""HTTP client for the inventory reservation service."""

from typing import Sequence

from ordering.core.logging import get_logger
from ordering.services.collaborators.exceptions import CollaboratorRejectedError
from ordering.services.collaborators.http import ServiceHttpClient
from ordering.services.collaborators.interfaces import ReservationItem

logger = get_logger(__name__)


class HttpInventoryClient:
    """
    Inventory collaborator backed by the inventory service REST API.

    Reservations are created with an ``Idempotency-Key`` header so that a
    retried POST never holds stock twice.
    """

    def __init__(self, http: ServiceHttpClient):
        self._http = http

    async def reserve(
        self,
        items: Sequence[ReservationItem],
        idempotency_key: str,
    ) -> str:
        """
        Reserve stock for the given items.

        Args:
            items: Product quantities to hold
            idempotency_key: Caller-generated token, stable across retries

        Returns:
            Reservation id assigned by the inventory service

        Raises:
            CollaboratorUnavailableError: Inventory unreachable
            CollaboratorRejectedError: Stock rejected or malformed response
        """
        payload = {
            "items": [
                {"product_id": str(item.product_id), "quantity": str(item.quantity)}
                for item in items
            ]
        }

        data = await self._http.post(
            "/reservations",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )

        reservation_id = None
        if isinstance(data, dict):
            reservation_id = data.get("reservation_id") or data.get("id")

        if not reservation_id:
            raise CollaboratorRejectedError(
                "Inventory returned no reservation id",
                service=self._http.service,
                idempotency_key=idempotency_key,
            )

        logger.info(
            "Stock reserved",
            reservation_id=str(reservation_id),
            idempotency_key=idempotency_key,
            product_count=len(items),
        )
        return str(reservation_id)

    async def release(self, reservation_id: str) -> None:
        """Delete a reservation. An unknown reservation counts as released."""
        await self._http.delete(
            f"/reservations/{reservation_id}",
            allow_not_found=True,
        )
        logger.info("Reservation released", reservation_id=reservation_id)
