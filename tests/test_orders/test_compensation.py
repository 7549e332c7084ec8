"""Tests for ReservationCompensator."""

from unittest.mock import AsyncMock, patch

import pytest

from ordering.services.collaborators.exceptions import CollaboratorUnavailableError
from ordering.services.orders.compensation import (
    STRANDED_RESERVATION_ALERT,
    ReservationCompensator,
)


class TestReservationCompensator:

    @pytest.mark.asyncio
    async def test_release_calls_inventory(self, compensator, inventory) -> None:
        assert await compensator.release("res-42") is True
        assert inventory.released == ["res-42"]

    @pytest.mark.asyncio
    async def test_missing_token_is_a_no_op(self, compensator, inventory) -> None:
        assert await compensator.release(None) is False
        assert inventory.released == []

    @pytest.mark.asyncio
    async def test_failure_is_logged_with_alert_and_not_raised(self, inventory) -> None:
        inventory.release_error = CollaboratorUnavailableError("down", service="inventory-service")
        compensator = ReservationCompensator(inventory)

        with patch("ordering.services.orders.compensation.logger") as mock_logger:
            released = await compensator.release("res-1")

        assert released is False
        mock_logger.error.assert_called_once()
        _, kwargs = mock_logger.error.call_args
        assert kwargs["alert"] == STRANDED_RESERVATION_ALERT
        assert kwargs["reservation_id"] == "res-1"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self) -> None:
        inventory = AsyncMock()
        inventory.release.side_effect = ValueError("bad response")

        assert await ReservationCompensator(inventory).release("res-1") is False
        inventory.release.assert_awaited_once_with("res-1")
