"""
Test suite for OrderEventListener.

Tests cover notification routing, the approved and picking-completed
reactions, handler error isolation and reconnection after a dropped
connection.
"""

import asyncio
import uuid

import pytest

from ordering.core.logging import get_request_id
from ordering.services.collaborators.exceptions import CollaboratorUnavailableError
from ordering.services.collaborators.interfaces import Picking
from ordering.services.orders.enums import OrderStatus
from ordering.services.orders.listener import PICKING_COMPLETED_COMMENT, OrderEventListener
from tests.fakes import FakeNotificationSource, FakeWarehouseClient, make_order, notification


def build_listener(store, warehouse, state_machine, source=None, **kwargs) -> OrderEventListener:
    return OrderEventListener(
        source=source or FakeNotificationSource(),
        warehouse=warehouse,
        state_machine=state_machine,
        uow_factory=store.uow,
        reconnect_delay=kwargs.pop("reconnect_delay", 0),
        **kwargs,
    )


class TestOrderApproved:

    @pytest.mark.asyncio
    async def test_confirms_picking_with_reservation(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.APROBADO, reservation_id="res-7"))
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("pedido-aprobado", order.id))

        assert warehouse.confirmations == [(order.id, "res-7")]

    @pytest.mark.asyncio
    async def test_unknown_order_confirms_without_reservation(
        self, store, warehouse, state_machine
    ) -> None:
        order_id = uuid.uuid4()
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("pedido-aprobado", order_id))

        assert warehouse.confirmations == [(order_id, None)]

    @pytest.mark.asyncio
    async def test_warehouse_failure_is_contained(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.APROBADO))
        warehouse.confirm_error = CollaboratorUnavailableError("down", service="warehouse-service")
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("pedido-aprobado", order.id))

        assert order.status == OrderStatus.APROBADO

    @pytest.mark.asyncio
    async def test_invalid_payload_is_skipped(self, store, warehouse, state_machine) -> None:
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("pedido-aprobado", "not-a-uuid"))

        assert warehouse.confirmations == []


class TestPickingCompleted:

    @pytest.mark.asyncio
    async def test_moves_order_to_prepared(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.APROBADO))
        warehouse.pickings["pk-1"] = Picking(id="pk-1", order_id=order.id, status="COMPLETADO")
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("picking-completado", " pk-1 "))

        assert order.status == OrderStatus.PREPARADO
        history = store.history_for(order.id)
        assert len(history) == 1
        assert history[0].comment == PICKING_COMPLETED_COMMENT
        assert history[0].changed_by is None

    @pytest.mark.asyncio
    async def test_redelivery_does_not_duplicate_history(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.APROBADO))
        warehouse.pickings["pk-1"] = Picking(id="pk-1", order_id=order.id)
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("picking-completado", "pk-1"))
        await listener.dispatch(notification("picking-completado", "pk-1"))

        assert len(store.history_for(order.id)) == 1

    @pytest.mark.asyncio
    async def test_picking_without_order_is_ignored(self, store, warehouse, state_machine) -> None:
        warehouse.pickings["pk-2"] = Picking(id="pk-2", order_id=None)
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("picking-completado", "pk-2"))
        await listener.dispatch(notification("picking-completado", "pk-missing"))

        assert store.history == []

    @pytest.mark.asyncio
    async def test_illegal_transition_does_not_escape(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.ANULADO))
        warehouse.pickings["pk-3"] = Picking(id="pk-3", order_id=order.id)
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("picking-completado", "pk-3"))

        assert order.status == OrderStatus.ANULADO
        assert store.history == []


class TestRouting:

    @pytest.mark.asyncio
    async def test_unhandled_channel_is_ignored(self, store, warehouse, state_machine) -> None:
        listener = build_listener(store, warehouse, state_machine)

        await listener.dispatch(notification("otro-canal", "x"))

        assert warehouse.confirmations == []

    @pytest.mark.asyncio
    async def test_custom_channel_names(self, store, warehouse, state_machine) -> None:
        order = store.add(make_order(OrderStatus.APROBADO))
        listener = build_listener(
            store, warehouse, state_machine, channels={"order_approved": "orders.approved"}
        )

        await listener.dispatch(notification("pedido-aprobado", order.id))
        await listener.dispatch(notification("orders.approved", order.id))

        assert listener.channels["picking_completed"] == "picking-completado"
        assert warehouse.confirmations == [(order.id, "res-1")]


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_processes_stream_and_reconnects(self, store, warehouse, state_machine) -> None:
        """A dropped connection is followed by a fresh subscription."""
        order = store.add(make_order(OrderStatus.APROBADO))
        source = FakeNotificationSource(
            [[notification("pedido-aprobado", order.id), ConnectionError("connection lost")]]
        )
        listener = build_listener(store, warehouse, state_machine, source=source)

        listener.start()
        await asyncio.wait_for(source.exhausted.wait(), timeout=2)

        assert listener.is_running
        assert len(source.subscriptions) == 2
        assert set(source.subscriptions[0]) == {
            "pedido-creado",
            "pedido-aprobado",
            "pedido-entregado",
            "picking-completado",
        }
        assert warehouse.confirmations == [(order.id, "res-1")]

        await listener.stop()

        assert not listener.is_running
        assert source.closed

    @pytest.mark.asyncio
    async def test_reconnects_after_clean_stream_end(self, store, warehouse, state_machine) -> None:
        source = FakeNotificationSource([[]])
        listener = build_listener(store, warehouse, state_machine, source=source)

        listener.start()
        await asyncio.wait_for(source.exhausted.wait(), timeout=2)
        await listener.stop()

        assert len(source.subscriptions) == 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store, warehouse, state_machine) -> None:
        source = FakeNotificationSource()
        listener = build_listener(store, warehouse, state_machine, source=source)

        listener.start()
        listener.start()
        await asyncio.wait_for(source.exhausted.wait(), timeout=2)
        await listener.stop()

        assert len(source.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_stop_without_start_closes_source(self, store, warehouse, state_machine) -> None:
        source = FakeNotificationSource()
        listener = build_listener(store, warehouse, state_machine, source=source)

        await listener.stop()

        assert source.closed


class CorrelationRecordingWarehouse(FakeWarehouseClient):
    """Records the correlation id active while each confirmation runs."""

    def __init__(self) -> None:
        super().__init__()
        self.correlation_ids: list[str] = []

    async def confirm_picking(self, order_id, reservation_id=None) -> None:
        self.correlation_ids.append(get_request_id())
        await super().confirm_picking(order_id, reservation_id)


class TestCorrelation:

    @pytest.mark.asyncio
    async def test_each_notification_gets_its_own_correlation_id(self, store, state_machine) -> None:
        warehouse = CorrelationRecordingWarehouse()
        listener = build_listener(store, warehouse, state_machine)
        order_id = uuid.uuid4()

        await listener.dispatch(notification("pedido-aprobado", order_id))
        await listener.dispatch(notification("pedido-aprobado", order_id))

        first, second = warehouse.correlation_ids
        assert first and second
        assert first != second
        assert get_request_id() == ""
