"""
API Key Usage Tracking Middleware

Schedules one usage event per request made with a valid key. The event is
written after the response has been sent, so telemetry never delays or
fails the request.
"""

import time

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.services.usage import UsageEvent


class UsageTrackingMiddleware(BaseHTTPMiddleware):
    """Reads the pending usage left on request.state by authenticate_api_key."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()
        response = await call_next(request)

        pending = getattr(request.state, "api_key_usage", None)
        if pending is None:
            return response

        event = UsageEvent(
            endpoint=request.url.path,
            method=request.method,
            status_code=response.status_code,
            response_time_ms=int((time.monotonic() - start) * 1000),
            ip_address=pending.client_ip,
            user_agent=request.headers.get("user-agent"),
            origin=pending.origin,
        )
        task = BackgroundTask(pending.recorder.record, pending.api_key_id, event)

        if response.background is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[response.background, task])
        return response
