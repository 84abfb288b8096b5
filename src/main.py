"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.ft_common.database import build_engine, build_session_factory
from src.ft_common.errors import AppError
from src.ft_common.notifier import LoggingNotifier
from src.ft_common.redis_client import close_redis, create_redis
from src.ft_common.response import error_response
from src.ft_escrow.api.admin_router import router as admin_router
from src.ft_gateway.middleware.rate_limit import RateLimitMiddleware
from src.ft_gateway.middleware.request_log import RequestLogMiddleware
from src.ft_order.api.router import router as order_router
from src.ft_payment.api.router import router as payment_router
from src.ft_payment.infrastructure.monime_client import MonimeClient
from src.ft_settlement.application.coordinator import SettlementCoordinator

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: build engine, Redis, provider client, coordinator. Shutdown: dispose."""
    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    redis = create_redis(settings.REDIS_URL)
    monime = MonimeClient(
        base_url=settings.MONIME_BASE_URL,
        api_key=settings.MONIME_API_KEY,
        secret_key=settings.MONIME_SECRET_KEY,
        space_id=settings.MONIME_SPACE_ID,
        environment=settings.MONIME_ENVIRONMENT,
        public_base_url=settings.PUBLIC_BASE_URL,
        timeout=settings.MONIME_TIMEOUT_SECONDS,
    )

    app.state.session_factory = build_session_factory(engine)
    app.state.redis = redis
    app.state.coordinator = SettlementCoordinator(
        provider=monime,
        notifier=LoggingNotifier(),
        auto_release_days=settings.ESCROW_AUTO_RELEASE_DAYS,
        pending_sweep_minutes=settings.PENDING_PAYMENT_SWEEP_MINUTES,
    )
    yield
    await monime.aclose()
    await close_redis(redis)
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(
    RateLimitMiddleware,
    orders_per_minute=settings.RATE_LIMIT_ORDERS_PER_MINUTE,
    payments_per_minute=settings.RATE_LIMIT_PAYMENTS_PER_MINUTE,
)
app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
        headers=headers,
    )


app.include_router(order_router, prefix="/api/v1")
app.include_router(payment_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
