"""Correlation ID middleware.

The id is taken from ``x-correlation-id`` (or generated), echoed on the
response, stored on ``request.state`` and kept in a context variable so log
records and audit entry metadata written during the request carry it.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def current_correlation_id() -> Optional[str]:
    return _correlation_id.get()


class CorrelationIdLogFilter(logging.Filter):
    """Stamps ``record.correlation_id`` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or "-"
        return True


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Add correlation ID to requests and responses."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = _correlation_id.set(correlation_id)
        try:
            response: Response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
