"""
API Key Service Exceptions

Failure kinds raised by the key services. Routers and the authentication
dependencies translate them to HTTP responses; the services never build
HTTP errors themselves.

Authentication failure is deliberately absent: the validator returns None
for unknown, inactive, revoked and expired keys alike.
"""

from typing import Any


class ApiKeyError(Exception):
    """Base exception for API key operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ApiKeyError):
    """Creation-time or update-time invariant violation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class NotFoundError(ApiKeyError):
    """Referenced key, site or grant does not exist."""

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} not found",
            {"resource": resource, "id": str(resource_id)},
        )
        self.resource = resource
        self.resource_id = resource_id


class AuthorizationFailure(ApiKeyError):
    """Valid identity lacking scope or site entitlement."""

    SCOPE = "scope"
    SITE = "site"

    def __init__(self, message: str, reason: str):
        super().__init__(message, {"reason": reason})
        self.reason = reason


class NetworkRestrictionFailure(ApiKeyError):
    """Client IP or origin is not on the key's allow-list."""

    IP = "ip"
    ORIGIN = "origin"

    def __init__(self, message: str, reason: str):
        super().__init__(message, {"reason": reason})
        self.reason = reason
