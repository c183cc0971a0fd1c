"""Request context middleware: request id and learner wallet bound to structlog."""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Query parameters that identify the learner across the progress/identity/certification routes
_WALLET_PARAMS = ("userAddress", "walletAddress")


def wallet_from_request(request: Request) -> str | None:
    """Return the lower-cased wallet address carried in the query string, if any."""
    for name in _WALLET_PARAMS:
        value = request.query_params.get(name)
        if value:
            return value.lower()
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Ensure every request has an X-Request-Id and bind the learner wallet to the log context."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        wallet = wallet_from_request(request)
        if wallet:
            structlog.contextvars.bind_contextvars(wallet=wallet)
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response
