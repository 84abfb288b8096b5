"""Rate limiting middleware: Redis fixed-window counters.

Rules:
  - Order creation:          RATE_LIMIT_ORDERS_PER_MINUTE per user/IP
  - Payment initialise/verify: RATE_LIMIT_PAYMENTS_PER_MINUTE per user/IP
  - Provider webhooks are never limited (the provider retries on 429).

Key pattern: "ratelimit:{user_id_or_ip}:{group}:{window}".
The Redis pool is read from app.state.redis; when it is absent (tests,
local runs without Redis) requests pass through.
"""

import logging
import time

from jose import JWTError, jwt
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from src.ft_common.errors import RateLimitError
from src.ft_common.response import error_response

logger = logging.getLogger("ft.ratelimit")

_WINDOW_SECONDS = 60


def endpoint_group(method: str, path: str) -> str | None:
    """Map a request onto a rate-limit group, or None when unlimited."""
    if method == "POST" and path.rstrip("/") == "/api/v1/orders":
        return "orders"
    if path.startswith("/api/v1/payments/initialize") or path.startswith(
        "/api/v1/payments/verify"
    ):
        return "payments"
    return None


def client_identity(request: Request) -> str:
    """Caller identity: JWT subject when present, else the real client IP."""
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        try:
            # Signature is verified later by the route dependency; the
            # subject is only used as a bucket name here.
            sub = jwt.get_unverified_claims(auth[7:]).get("sub")
        except JWTError:
            sub = None
        if sub:
            return f"user:{sub}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, orders_per_minute: int, payments_per_minute: int) -> None:
        super().__init__(app)
        self._limits = {"orders": orders_per_minute, "payments": payments_per_minute}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        group = endpoint_group(request.method, request.url.path)
        redis = getattr(request.app.state, "redis", None)
        if group is None or redis is None:
            return await call_next(request)

        window = int(time.time()) // _WINDOW_SECONDS
        key = f"ratelimit:{client_identity(request)}:{group}:{window}"
        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, _WINDOW_SECONDS)
        except RedisError:
            logger.warning("Rate limiter unavailable, allowing request: key=%s", key)
            return await call_next(request)

        if count > self._limits[group]:
            err = RateLimitError(retry_after=_WINDOW_SECONDS - int(time.time()) % _WINDOW_SECONDS)
            logger.info("Rate limit hit: key=%s count=%d", key, count)
            return JSONResponse(
                status_code=err.http_status,
                content=error_response(err.code, err.message).model_dump(),
                headers={"Retry-After": str(err.retry_after)},
            )
        return await call_next(request)
