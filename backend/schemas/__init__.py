"""Pydantic API Schemas for Quillpress."""

from backend.schemas.api_key import (
    AccessCheckResponse,
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyDetail,
    ApiKeyRevokeRequest,
    ApiKeySummary,
    ApiKeyUpdateRequest,
    SiteAccessGrantRequest,
    SiteAccessResponse,
    TopEndpoint,
    UsageStatsResponse,
)

__all__ = [
    "ApiKeyCreateRequest",
    "ApiKeyUpdateRequest",
    "ApiKeyRevokeRequest",
    "ApiKeySummary",
    "ApiKeyDetail",
    "ApiKeyCreatedResponse",
    "SiteAccessGrantRequest",
    "SiteAccessResponse",
    "TopEndpoint",
    "UsageStatsResponse",
    "AccessCheckResponse",
]
