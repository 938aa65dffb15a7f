"""
FastAPI application.

    app = create_app(Settings.from_env())

The lifespan opens the database and the collaborator clients, starts the
cleanup sweeper, and on shutdown drains executions that outlived their
callers before the clients close.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from convergent import idempotency as I
from convergent.api._routes import router
from convergent.api._schemas import ErrorBody
from convergent.config import Settings
from convergent.db import IdempotencyKeyTable, create_database
from convergent.log import get_logger
from convergent.orders import (
    HttpInventoryClient,
    HttpPaymentClient,
    OrderSaga,
    OrderService,
    SQLAlchemyOrderRepository,
)

log = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Components
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Components:
    """What the routes and the sweeper need from the outside world."""

    service: OrderService
    store: I.Store


type ComponentsFactory = Callable[[Settings], AbstractAsyncContextManager[Components]]


def policy_from(settings: Settings) -> I.Policy:
    return (
        I.Policy()
        .with_ttl(hours=settings.idempotency_ttl_hours)
        .with_retry_after(seconds=settings.retry_after_seconds)
        .with_store_timeout(seconds=settings.store_timeout_seconds)
    )


@asynccontextmanager
async def build_components(settings: Settings) -> AsyncIterator[Components]:
    """Production wiring: SQLAlchemy stores and httpx collaborators."""
    session_factory, engine = await create_database(settings.database_url)
    timeout = httpx.Timeout(settings.collaborator_timeout_seconds)
    try:
        async with (
            httpx.AsyncClient(base_url=settings.inventory_base_url, timeout=timeout) as inventory_http,
            httpx.AsyncClient(base_url=settings.payment_base_url, timeout=timeout) as payment_http,
        ):
            repository = SQLAlchemyOrderRepository(session_factory)
            store = I.SQLAlchemyStore(session_factory, model=IdempotencyKeyTable)
            saga = OrderSaga(
                inventory=HttpInventoryClient(inventory_http),
                payment=HttpPaymentClient(payment_http, currency=settings.payment_currency),
                repository=repository,
                timeout=settings.collaborator_timeout_seconds,
            )
            service = OrderService(saga, repository, store=store, policy=policy_from(settings))
            yield Components(service=service, store=store)
    finally:
        await engine.dispose()


# ═══════════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════════

async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details[".".join(loc) or "body"] = error.get("msg", "invalid")

    body = ErrorBody(
        status=400,
        error="Bad Request",
        message="Validation failed",
        details=details,
    )
    return JSONResponse(status_code=400, content=body.to_json())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("api.unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    body = ErrorBody(
        status=500,
        error="Internal Server Error",
        message="An unexpected error occurred",
    )
    return JSONResponse(status_code=500, content=body.to_json())


# ═══════════════════════════════════════════════════════════════════════════════
# Application
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Settings | None = None,
    *,
    components: ComponentsFactory = build_components,
) -> FastAPI:
    """
    Build the application.

    components is swappable so tests can run the full HTTP surface over
    in-memory stores and fake collaborators.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("app.starting", database_url=settings.database_url)
        async with components(settings) as parts:
            sweeper = I.CleanupSweeper(parts.store, interval=settings.cleanup_interval_seconds)
            sweeper.start()
            app.state.service = parts.service
            try:
                yield
            finally:
                log.info("app.stopping", in_flight=parts.service.coordinator.in_flight)
                await sweeper.stop()
                await parts.service.drain()

    app = FastAPI(title="convergent", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(router)
    return app


__all__ = (
    "Components",
    "ComponentsFactory",
    "build_components",
    "policy_from",
    "create_app",
)
