"""Best-effort release of inventory reservations."""

from typing import Optional

from ordering.core.logging import get_logger
from ordering.services.collaborators.interfaces import InventoryClient

logger = get_logger(__name__)

STRANDED_RESERVATION_ALERT = "stranded_reservation"


class ReservationCompensator:
    """
    Releases a reservation and never raises.

    A failed release leaves stock held in the inventory service until the
    reservation expires; it is reported at error level with an alert flag so
    operators can release it by hand.
    """

    def __init__(self, inventory: InventoryClient):
        self._inventory = inventory

    async def release(self, reservation_id: Optional[str]) -> bool:
        """
        Release a reservation.

        Args:
            reservation_id: Reservation token, None when nothing was reserved

        Returns:
            True if the inventory service acknowledged the release
        """
        if not reservation_id:
            logger.info("No reservation to release")
            return False

        try:
            await self._inventory.release(reservation_id)
        except Exception as e:
            logger.error(
                "Failed to release reservation",
                reservation_id=reservation_id,
                alert=STRANDED_RESERVATION_ALERT,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("Reservation compensated", reservation_id=reservation_id)
        return True
