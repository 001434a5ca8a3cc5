import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with an X-Request-Id (client supplied or generated)."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = request_id
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error. request_id={request_id} {request.method} {request.url.path}")
            raise
        response.headers["X-Request-Id"] = request_id
        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} request_id={request_id}")
        return response


def add_request_id_middleware(app):
    """Register RequestIdMiddleware on a FastAPI app"""
    app.add_middleware(RequestIdMiddleware)
