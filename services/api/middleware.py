"""FastAPI middleware for correlation ID handling and request timing."""

import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from shared.logging_config import set_correlation_id, get_correlation_id, set_session_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Handles correlation ID extraction/generation for request tracking"""

    async def dispatch(self, request: Request, call_next):
        set_correlation_id(request.headers.get('X-Correlation-ID', str(uuid.uuid4())))
        set_session_id('')
        started = time.perf_counter()

        logging.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "user_id": request.headers.get('X-User-ID'),
                "client": request.client.host if request.client else "unknown"
            }
        )

        response = await call_next(request)
        response.headers['X-Correlation-ID'] = get_correlation_id()

        logging.info(
            "Outgoing response",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2)
            }
        )

        return response
