"""
API Key Routes

Key management for key holders. Every route is itself authenticated with an
API key:

- admin keys manage every key on the platform
- user and site keys manage the keys owned by their user
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.session import get_db
from backend.middleware.api_key_auth import AuthContext, authenticate_api_key, require_scope
from backend.models.api_key import ApiKeyScope, KeyType
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
    UsageStatsResponse,
)
from backend.services.access import AccessResolver
from backend.services.api_keys import ApiKeyCreate, ApiKeyService
from backend.services.exceptions import ApiKeyError, NotFoundError
from backend.services.key_store import KeyStore
from backend.services.usage import get_usage_stats

router = APIRouter()


def _is_admin(auth: AuthContext) -> bool:
    return auth.identity.key_type == KeyType.ADMIN


def _http_error(e: ApiKeyError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)


async def _get_visible_key(service: ApiKeyService, key_id: UUID, auth: AuthContext) -> ApiKeyDetail:
    """Load a key the caller may manage; other users' keys look nonexistent."""
    try:
        detail = await service.get(key_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="API key not found")
    if not _is_admin(auth) and (
        auth.identity.user_id is None or detail.user_id != auth.identity.user_id
    ):
        raise HTTPException(status_code=404, detail="API key not found")
    return detail


@router.get("", response_model=list[ApiKeySummary])
async def list_api_keys(
    user_id: UUID | None = Query(default=None),
    key_type: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    auth: AuthContext = Depends(require_scope(ApiKeyScope.READ)),
    db: AsyncSession = Depends(get_db),
):
    """
    List API keys.

    Admin keys see every key and may filter; other keys see their owner's
    keys, newest first.
    """
    service = ApiKeyService(db)
    if _is_admin(auth):
        try:
            return await service.list_keys(user_id=user_id, key_type=key_type, is_active=is_active)
        except ApiKeyError as e:
            raise _http_error(e)

    if auth.identity.user_id is None:
        return []
    return await service.list_by_owner(auth.identity.user_id)


@router.post("", response_model=ApiKeyCreatedResponse, status_code=201)
async def create_api_key(
    request: ApiKeyCreateRequest,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.WRITE)),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new API key.

    The full key is returned only once in the response.
    """
    user_id = request.user_id
    if not _is_admin(auth):
        if request.key_type == KeyType.ADMIN.value:
            raise HTTPException(status_code=403, detail="Only admin keys can create admin keys")
        if user_id is not None and user_id != auth.identity.user_id:
            raise HTTPException(status_code=403, detail="Cannot create keys for another user")
        user_id = auth.identity.user_id

        if request.key_type == KeyType.SITE.value and request.site_id is not None:
            owner_id = await KeyStore(db).get_site_owner_id(request.site_id)
            if owner_id is None:
                raise HTTPException(status_code=404, detail="Site not found")
            if owner_id != user_id:
                raise HTTPException(
                    status_code=403, detail="Site keys can only be created by the site owner"
                )

    options = ApiKeyCreate(
        name=request.name,
        description=request.description,
        key_type=request.key_type,
        user_id=user_id,
        site_id=request.site_id,
        scopes=request.scopes,
        rate_limit_per_minute=request.rate_limit_per_minute,
        rate_limit_per_day=request.rate_limit_per_day,
        expires_at=request.expires_at,
        allowed_ips=request.allowed_ips or [],
        allowed_origins=request.allowed_origins or [],
        metadata=request.metadata or {},
    )
    try:
        created = await ApiKeyService(db).create(options)
    except ApiKeyError as e:
        raise _http_error(e)

    return ApiKeyCreatedResponse(
        id=created.id,
        key=created.secret,
        key_prefix=created.key_prefix,
        name=options.name.strip(),
        key_type=options.key_type,
    )


@router.get("/sites/{site_id}/access-check", response_model=AccessCheckResponse)
async def check_site_access(
    site_id: UUID,
    scope: str = Query(default=ApiKeyScope.READ.value),
    auth: AuthContext = Depends(authenticate_api_key),
    db: AsyncSession = Depends(get_db),
):
    """Report whether the calling key may act on a site with a scope."""
    try:
        required = ApiKeyScope(scope)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid scope: {scope}")

    allowed = await AccessResolver(db).has_access_to_site(auth.identity, site_id, required)
    return AccessCheckResponse(site_id=site_id, scope=required.value, allowed=allowed)


@router.get("/{key_id}", response_model=ApiKeyDetail)
async def get_api_key(
    key_id: UUID,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.READ)),
    db: AsyncSession = Depends(get_db),
):
    """Get a key with its site grants."""
    return await _get_visible_key(ApiKeyService(db), key_id, auth)


@router.patch("/{key_id}", response_model=ApiKeyDetail)
async def update_api_key(
    key_id: UUID,
    request: ApiKeyUpdateRequest,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.WRITE)),
    db: AsyncSession = Depends(get_db),
):
    """Update a key's name, description, limits, allow-lists or metadata."""
    service = ApiKeyService(db)
    await _get_visible_key(service, key_id, auth)

    patch = request.model_dump(exclude_unset=True)
    patch.update(request.model_extra or {})
    try:
        await service.update(key_id, patch)
    except ApiKeyError as e:
        raise _http_error(e)
    return await service.get(key_id)


@router.post("/{key_id}/revoke", response_model=ApiKeyDetail)
async def revoke_api_key(
    key_id: UUID,
    request: ApiKeyRevokeRequest | None = None,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.WRITE)),
    db: AsyncSession = Depends(get_db),
):
    """Revoke a key. Revoked keys stop authenticating immediately."""
    service = ApiKeyService(db)
    await _get_visible_key(service, key_id, auth)

    await service.revoke(
        key_id,
        revoked_by=auth.identity.user_id,
        reason=request.reason if request else None,
    )
    return await service.get(key_id)


@router.get("/{key_id}/usage", response_model=UsageStatsResponse)
async def get_api_key_usage(
    key_id: UUID,
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    auth: AuthContext = Depends(require_scope(ApiKeyScope.READ)),
    db: AsyncSession = Depends(get_db),
):
    """Usage statistics for a key over an optional date range."""
    await _get_visible_key(ApiKeyService(db), key_id, auth)
    return await get_usage_stats(db, key_id, start_date, end_date)


@router.post("/{key_id}/site-access", response_model=SiteAccessResponse, status_code=201)
async def grant_site_access(
    key_id: UUID,
    request: SiteAccessGrantRequest,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.WRITE)),
    db: AsyncSession = Depends(get_db),
):
    """
    Grant a user key access to a site.

    Non-admin callers must own or be a member of the site. Granting again
    replaces the scopes.
    """
    service = ApiKeyService(db)
    await _get_visible_key(service, key_id, auth)

    if not _is_admin(auth):
        store = KeyStore(db)
        owner_id = await store.get_site_owner_id(request.site_id)
        if owner_id is None:
            raise HTTPException(status_code=404, detail="Site not found")
        if owner_id != auth.identity.user_id and (
            auth.identity.user_id not in await store.get_site_member_ids(request.site_id)
        ):
            raise HTTPException(status_code=403, detail="Not a member of this site")

    try:
        grant = await service.grant_site_access(key_id, request.site_id, request.scopes)
    except ApiKeyError as e:
        raise _http_error(e)
    return SiteAccessResponse.model_validate(grant)


@router.delete("/{key_id}/site-access/{site_id}", status_code=204)
async def revoke_site_access(
    key_id: UUID,
    site_id: UUID,
    auth: AuthContext = Depends(require_scope(ApiKeyScope.WRITE)),
    db: AsyncSession = Depends(get_db),
):
    """Remove a key's explicit grant on a site."""
    service = ApiKeyService(db)
    await _get_visible_key(service, key_id, auth)

    try:
        await service.revoke_site_access(key_id, site_id)
    except ApiKeyError as e:
        raise _http_error(e)
    return Response(status_code=204)
