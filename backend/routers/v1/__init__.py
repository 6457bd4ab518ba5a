"""API v1 Route modules."""

from backend.routers.v1 import api_keys

__all__ = ["api_keys"]
