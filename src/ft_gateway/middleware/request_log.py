"""Request logging middleware.

One line per request, tagged with the order id or payment reference it
touched when the path or query names one. The request_id is put on
request.state for ApiResponse and echoed back in the X-Request-ID header.

Log format:
    INFO [POST] /api/v1/payments/release/ord_42 → 200 (31ms) order=ord_42 req_a1b2c3d4e5f6
    WARNING [GET] /api/v1/payments/verify → 404 (4ms) ref=FT_ord_42_1 req_0f9e8d7c6b5a
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("ft.request")

_ORDER_PATH = re.compile(
    r"/(?:orders|payments/release|payments/refund|admin/disputes)/(?P<order_id>[^/]+)"
)


def payment_context(request: Request) -> str:
    """'order=<id>' and/or 'ref=<reference>' for the request, '' when neither applies."""
    parts = []
    match = _ORDER_PATH.search(request.url.path)
    if match:
        parts.append(f"order={match.group('order_id')}")
    reference = request.query_params.get("reference")
    if reference:
        parts.append(f"ref={reference}")
    return " ".join(parts)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = f"req_{uuid.uuid4().hex[:12]}"

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        context = payment_context(request)
        logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            "[%s] %s → %d (%.0fms) %s%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            f"{context} " if context else "",
            request.state.request_id,
        )
        response.headers["X-Request-ID"] = request.state.request_id
        return response
