"""Tests for order status enums and the transition graph."""

import pytest

from ordering.services.orders.enums import (
    ActorRole,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)


class TestOrderStatus:

    def test_from_string_is_case_insensitive(self) -> None:
        assert OrderStatus.from_string(" en_ruta ") == OrderStatus.EN_RUTA

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("SHIPPED")

    @pytest.mark.parametrize(
        "status",
        [OrderStatus.ENTREGADO, OrderStatus.ANULADO, OrderStatus.RECHAZADO],
    )
    def test_terminal_statuses_have_no_transitions(self, status: OrderStatus) -> None:
        assert status.is_terminal()
        assert get_allowed_order_transitions(status) == set()

    def test_only_pending_and_approved_can_cancel(self) -> None:
        assert {s for s in OrderStatus if s.can_cancel()} == {
            OrderStatus.PENDIENTE,
            OrderStatus.APROBADO,
        }

    def test_display_name(self) -> None:
        assert OrderStatus.EN_RUTA.display_name == "En Ruta"


class TestTransitionGraph:

    @pytest.mark.parametrize(
        "source",
        [OrderStatus.PENDIENTE, OrderStatus.APROBADO, OrderStatus.PREPARADO, OrderStatus.EN_RUTA],
    )
    def test_cancelling_statuses_reachable_from_non_terminal(self, source: OrderStatus) -> None:
        assert validate_order_status_transition(source, OrderStatus.ANULADO)
        assert validate_order_status_transition(source, OrderStatus.RECHAZADO)

    @pytest.mark.parametrize(
        "source",
        [OrderStatus.PENDIENTE, OrderStatus.APROBADO, OrderStatus.EN_RUTA, OrderStatus.ENTREGADO],
    )
    def test_dispatch_only_from_prepared(self, source: OrderStatus) -> None:
        assert not validate_order_status_transition(source, OrderStatus.EN_RUTA)

    def test_prepared_to_dispatch(self) -> None:
        assert validate_order_status_transition(OrderStatus.PREPARADO, OrderStatus.EN_RUTA)

    def test_no_backward_moves(self) -> None:
        assert not validate_order_status_transition(OrderStatus.EN_RUTA, OrderStatus.PREPARADO)
        assert not validate_order_status_transition(OrderStatus.APROBADO, OrderStatus.PENDIENTE)

    def test_same_status_is_accepted(self) -> None:
        assert validate_order_status_transition(OrderStatus.PREPARADO, OrderStatus.PREPARADO)


class TestActorRole:

    def test_from_string(self) -> None:
        assert ActorRole.from_string("Vendedor") is ActorRole.SELLER

    def test_unknown_role(self) -> None:
        with pytest.raises(ValueError):
            ActorRole.from_string("bodeguero")
