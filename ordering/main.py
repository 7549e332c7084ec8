"""
FastAPI application entry point with health endpoints and service wiring.

This module builds the orders service: it wires the collaborator clients,
the order saga, the status state machine and the event listener, starts the
listener on startup and tears everything down on shutdown. The HTTP surface
is limited to health and readiness endpoints.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ordering.core.config import Settings, get_settings
from ordering.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from ordering.database.connection import (
    check_database_health,
    close_database_connections,
    convert_database_url_to_dsn,
    get_session_factory,
)
from ordering.services.collaborators.cart import SqlCartClient
from ordering.services.collaborators.catalog import HttpCatalogClient
from ordering.services.collaborators.http import ServiceHttpClient
from ordering.services.collaborators.inventory import HttpInventoryClient
from ordering.services.collaborators.warehouse import HttpWarehouseClient
from ordering.services.orders.compensation import ReservationCompensator
from ordering.services.orders.exceptions import OrderServiceError
from ordering.services.orders.listener import OrderEventListener
from ordering.services.orders.notifications import PostgresNotificationSource
from ordering.services.orders.saga import OrderSagaOrchestrator
from ordering.services.orders.state_machine import OrderStateMachine
from ordering.services.orders.unit_of_work import unit_of_work_factory

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    "EMPTY_CART": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_STOCK": status.HTTP_409_CONFLICT,
    "PRICING_UNAVAILABLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PROMOTION_EXPIRED": status.HTTP_409_CONFLICT,
    "ORDER_PERSISTENCE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ILLEGAL_TRANSITION": status.HTTP_409_CONFLICT,
    "NOT_CANCELLABLE": status.HTTP_409_CONFLICT,
}


@dataclass
class OrderServices:
    """Long-lived service objects shared by the application."""

    orchestrator: OrderSagaOrchestrator
    state_machine: OrderStateMachine
    listener: Optional[OrderEventListener]
    http_clients: list[ServiceHttpClient]

    async def aclose(self) -> None:
        if self.listener is not None:
            await self.listener.stop()
        await self.orchestrator.wait_for_background_tasks()
        for client in self.http_clients:
            await client.aclose()


def _http_client(settings: Settings, service: str, base_url: str) -> ServiceHttpClient:
    return ServiceHttpClient(
        service=service,
        base_url=base_url,
        token=settings.service_token,
        timeout=settings.collaborator_timeout_seconds,
        max_retries=settings.collaborator_max_retries,
        initial_backoff=settings.collaborator_initial_backoff,
    )


def build_order_services(settings: Settings) -> OrderServices:
    """
    Wire collaborators, saga, state machine and listener from settings.

    Args:
        settings: Application settings

    Returns:
        OrderServices bundle; the listener is not started yet
    """
    session_factory = get_session_factory()
    uow_factory = unit_of_work_factory(session_factory)

    catalog_http = _http_client(settings, "catalog-service", settings.catalog_service_url)
    inventory_http = _http_client(settings, "inventory-service", settings.inventory_service_url)
    warehouse_http = _http_client(settings, "warehouse-service", settings.warehouse_service_url)

    inventory = HttpInventoryClient(inventory_http)
    compensator = ReservationCompensator(inventory)
    state_machine = OrderStateMachine(uow_factory, compensator)

    orchestrator = OrderSagaOrchestrator(
        cart=SqlCartClient(session_factory),
        inventory=inventory,
        catalog=HttpCatalogClient(catalog_http),
        uow_factory=uow_factory,
        compensator=compensator,
        tax_rate=settings.tax_rate,
    )

    listener = None
    if settings.listener_enabled:
        listener = OrderEventListener(
            source=PostgresNotificationSource(convert_database_url_to_dsn(settings.database_url)),
            warehouse=HttpWarehouseClient(warehouse_http),
            state_machine=state_machine,
            uow_factory=uow_factory,
            channels=settings.listener_channels,
            reconnect_delay=settings.listener_reconnect_delay_seconds,
        )

    return OrderServices(
        orchestrator=orchestrator,
        state_machine=state_machine,
        listener=listener,
        http_clients=[catalog_http, inventory_http, warehouse_http],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        services = build_order_services(settings)
        app.state.order_services = services
        if services.listener is not None:
            services.listener.start()

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await services.aclose()
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Orders service: order creation saga and status lifecycle",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Args:
        request: Incoming HTTP request
        call_next: Next middleware or route handler

    Returns:
        HTTP response with X-Request-ID header
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        clear_context()


@app.exception_handler(OrderServiceError)
async def order_service_exception_handler(
    request: Request, exc: OrderServiceError
) -> JSONResponse:
    """Map order errors to their HTTP status with a stable error code."""
    status_code = ERROR_STATUS_CODES.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.warning(
        "Order request failed",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={**exc.to_dict(), "request_id": get_request_id()},
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> dict[str, str]:
    """
    Basic health check endpoint.

    Always returns 200 OK if the application is running.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    tags=["Health"],
    summary="Readiness check endpoint",
)
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check endpoint.

    Ready when the database answers and, if enabled, the event listener task
    is alive.
    """
    database_ready = await check_database_health(max_retries=1)

    services: Optional[OrderServices] = getattr(request.app.state, "order_services", None)
    listener_ready = True
    if services is not None and services.listener is not None:
        listener_ready = services.listener.is_running

    ready = database_ready and listener_ready
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": {
                "database": "healthy" if database_ready else "unhealthy",
                "event_listener": "running" if listener_ready else "stopped",
            },
        },
    )
