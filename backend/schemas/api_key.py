"""
API Key Pydantic Schemas

Request/response models for the key management endpoints.
No schema here carries key_hash; the raw key appears only in
ApiKeyCreatedResponse, once.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ApiKeyCreateRequest(BaseModel):
    """Schema for creating an API key."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    key_type: str = Field(default="user", description="user, site or admin")
    user_id: UUID | None = None
    site_id: UUID | None = None
    scopes: list[str] | None = Field(default=None, description="Defaults to ['read']")
    rate_limit_per_minute: int | None = None
    rate_limit_per_day: int | None = None
    expires_at: datetime | None = None
    allowed_ips: list[str] | None = None
    allowed_origins: list[str] | None = None
    metadata: dict[str, Any] | None = None


class ApiKeyUpdateRequest(BaseModel):
    """
    Schema for updating an API key.

    Unknown fields are kept so the service can reject attempts to change
    immutable ones (key_type, user_id, site_id, scopes) with a clear message.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    rate_limit_per_minute: int | None = None
    rate_limit_per_day: int | None = None
    allowed_ips: list[str] | None = None
    allowed_origins: list[str] | None = None
    metadata: dict[str, Any] | None = None


class ApiKeyRevokeRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class SiteAccessGrantRequest(BaseModel):
    site_id: UUID
    scopes: list[str] = Field(..., min_length=1)


class SiteAccessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    site_id: UUID
    scopes: list[str]
    created_at: datetime


class ApiKeySummary(BaseModel):
    """Listing view of a key."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    key_prefix: str
    key_type: str
    user_id: UUID | None = None
    site_id: UUID | None = None
    scopes: list[str]
    rate_limit_per_minute: int
    rate_limit_per_day: int
    is_active: bool
    usage_count: int = 0
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    revoked_at: datetime | None = None
    created_at: datetime


class ApiKeyDetail(ApiKeySummary):
    """Full view of a key including restrictions and grants."""

    revoked_by: UUID | None = None
    revoke_reason: str | None = None
    allowed_ips: list[str] = Field(default_factory=list)
    allowed_origins: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("key_metadata", "metadata"),
    )
    updated_at: datetime
    site_access: list[SiteAccessResponse] = Field(default_factory=list)


class ApiKeyCreatedResponse(BaseModel):
    """Response when creating a key - includes the full key (shown only once)."""

    id: UUID
    key: str
    key_prefix: str
    name: str
    key_type: str
    message: str = "Save this API key securely - it will not be shown again"


class TopEndpoint(BaseModel):
    endpoint: str
    count: int


class UsageStatsResponse(BaseModel):
    total_requests: int
    successful_requests: int
    failed_requests: int
    avg_response_time: float
    top_endpoints: list[TopEndpoint]


class AccessCheckResponse(BaseModel):
    site_id: UUID
    scope: str
    allowed: bool
