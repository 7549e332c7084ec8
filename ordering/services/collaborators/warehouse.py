"""HTTP client for the warehouse (picking) service."""

import uuid
from typing import Any, Optional

from ordering.core.logging import get_logger
from ordering.services.collaborators.exceptions import CollaboratorRejectedError
from ordering.services.collaborators.http import ServiceHttpClient
from ordering.services.collaborators.interfaces import Picking

logger = get_logger(__name__)

CONFIRM_PATH = "/picking/confirm"
CONFIRM_OPEN_PATH = "/picking/internal/confirm-open"


class HttpWarehouseClient:
    """Warehouse collaborator backed by the picking REST API."""

    def __init__(self, http: ServiceHttpClient):
        self._http = http

    async def confirm_picking(
        self,
        order_id: uuid.UUID,
        reservation_id: Optional[str] = None,
    ) -> None:
        """
        Ask the warehouse to confirm the reservation and open a picking.

        When the authenticated endpoint answers 401 the call is retried once,
        without the service token, against the warehouse's internal
        confirm-open endpoint.

        Args:
            order_id: Approved order
            reservation_id: Inventory reservation held for the order, if known

        Raises:
            CollaboratorUnavailableError: Warehouse unreachable
            CollaboratorRejectedError: Warehouse rejected both attempts
        """
        body: dict[str, Any] = {"pedido_id": str(order_id)}
        if reservation_id:
            body["reservation_id"] = reservation_id

        try:
            await self._http.post(CONFIRM_PATH, json=body)
        except CollaboratorRejectedError as e:
            if e.status_code != 401:
                raise
            logger.warning(
                "Picking confirm unauthorized, retrying internal endpoint",
                order_id=str(order_id),
            )
            await self._http.post(CONFIRM_OPEN_PATH, json=body, authenticated=False)

        logger.info(
            "Picking confirmed",
            order_id=str(order_id),
            reservation_id=reservation_id,
        )

    async def get_picking(self, picking_id: str) -> Optional[Picking]:
        """Fetch a picking; None when the warehouse does not know it."""
        data = await self._http.get(f"/picking/{picking_id}", allow_not_found=True)
        if not isinstance(data, dict):
            return None

        raw_order_id = data.get("pedido_id") or data.get("pedidoId") or data.get("order_id")
        order_id = None
        if raw_order_id:
            try:
                order_id = uuid.UUID(str(raw_order_id))
            except ValueError:
                logger.warning(
                    "Picking references a non-UUID order",
                    picking_id=picking_id,
                    order_id=str(raw_order_id),
                )

        return Picking(
            id=str(data.get("id", picking_id)),
            order_id=order_id,
            status=data.get("estado") or data.get("status"),
        )
