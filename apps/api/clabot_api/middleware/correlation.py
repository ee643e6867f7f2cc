"""Correlation ID middleware."""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id, reusing GitHub's delivery id for webhooks."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = (
            request.headers.get("x-correlation-id")
            or request.headers.get("x-github-delivery")
            or str(uuid.uuid4())
        )
        request.state.correlation_id = correlation_id

        response: Response = await call_next(request)
        response.headers["x-correlation-id"] = correlation_id
        return response
