"""
Audit Logging Middleware

Logs every API request.
Records: API key, key type, owning user, method, path, status, IP, latency.
"""

import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.middleware.api_key_auth import get_client_ip

logger = logging.getLogger("audit")

# Paths to skip (health checks, static assets)
SKIP_PATHS = {"/health", "/health/ready", "/favicon.ico"}


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    Logs every API request with timing, key context, and response status.

    The secret itself is never logged; only the key's id once authenticated.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if path in SKIP_PATHS:
            return await call_next(request)

        start = time.monotonic()
        response: Response | None = None
        error: str | None = None

        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            error = str(exc)
            raise
        finally:
            latency_ms = (time.monotonic() - start) * 1000
            status_code = response.status_code if response else 500

            # Set by authenticate_api_key
            api_key_id = getattr(request.state, "api_key_id", None)
            api_key_type = getattr(request.state, "api_key_type", None)
            user_id = getattr(request.state, "user_id", None)

            log_data = {
                "method": request.method,
                "path": path,
                "status": status_code,
                "latency_ms": round(latency_ms, 2),
                "client_ip": get_client_ip(request),
                "api_key_id": str(api_key_id) if api_key_id else None,
                "api_key_type": api_key_type,
                "user_id": str(user_id) if user_id else None,
                "user_agent": request.headers.get("user-agent", ""),
            }

            if error:
                log_data["error"] = error

            if status_code >= 500:
                logger.error("api_request", extra=log_data)
            elif status_code >= 400:
                logger.warning("api_request", extra=log_data)
            else:
                logger.info("api_request", extra=log_data)
