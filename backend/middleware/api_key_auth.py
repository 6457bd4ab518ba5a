"""
API Key Authentication Dependencies

Extracts the presented key, validates it, applies IP/origin allow-lists and
hands the resolved identity to route handlers as a dependency value.

Supports:
- Bearer token (Authorization: Bearer <key>), preferred
- API key header (X-API-Key: <key>)

Error kinds (response detail "error" field):
- unauthenticated      401  missing, unknown, inactive, revoked or expired key
- forbidden_network    403  IP or origin not on the key's allow-list
- forbidden_scope      403  key lacks the required scope
- forbidden_site       403  key not entitled to the target site
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.session import get_db, get_session_factory
from backend.models.api_key import ApiKeyScope, KeyType
from backend.services.access import AccessResolver, check_network, has_scope
from backend.services.exceptions import AuthorizationFailure, NetworkRestrictionFailure
from backend.services.key_codec import display_prefix
from backend.services.key_validator import KeyValidator, ValidatedIdentity
from backend.services.usage import UsageRecorder

logger = logging.getLogger(__name__)


class AuthContext(BaseModel):
    """Authenticated API key context."""

    model_config = ConfigDict(frozen=True)

    identity: ValidatedIdentity
    client_ip: str
    origin: str | None = None


@dataclass(frozen=True)
class PendingUsage:
    """What the usage tracking middleware needs to record this request."""

    recorder: UsageRecorder
    api_key_id: UUID
    client_ip: str
    origin: str | None


def auth_error(status_code: int, kind: str, message: str) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return HTTPException(
        status_code=status_code,
        detail={"error": kind, "message": message},
        headers=headers,
    )


def extract_api_key(request: Request) -> str | None:
    """Bearer header wins over X-API-Key when both are present."""
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token

    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key.strip() or None
    return None


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For entry, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def authenticate_api_key(
    request: Request,
    db: AsyncSession = Depends(get_db),
    session_factory=Depends(get_session_factory),
) -> AuthContext:
    """
    Resolve the request's API key.

    The same 401 is returned for every authentication failure so callers
    probing keys learn nothing about why one was rejected.
    """
    raw_key = extract_api_key(request)
    if not raw_key:
        raise auth_error(401, "unauthenticated", "API key is required")

    identity = await KeyValidator(db).validate(raw_key)
    if identity is None:
        logger.warning(
            "Invalid API key attempt",
            extra={"api_key_prefix": display_prefix(raw_key)},
        )
        raise auth_error(401, "unauthenticated", "Invalid or expired API key")

    client_ip = get_client_ip(request)
    origin = request.headers.get("origin")
    try:
        check_network(identity, client_ip, origin)
    except NetworkRestrictionFailure as e:
        logger.warning(
            "API key network restriction",
            extra={
                "api_key_id": str(identity.id),
                "reason": e.reason,
                "client_ip": client_ip,
                "origin": origin,
            },
        )
        raise auth_error(403, "forbidden_network", e.message)

    # Read by the audit log and usage tracking middleware
    request.state.api_key_id = identity.id
    request.state.api_key_type = identity.key_type.value
    request.state.user_id = identity.user_id
    request.state.api_key_usage = PendingUsage(
        recorder=UsageRecorder(session_factory),
        api_key_id=identity.id,
        client_ip=client_ip,
        origin=origin,
    )

    return AuthContext(identity=identity, client_ip=client_ip, origin=origin)


def require_scope(*scopes: ApiKeyScope):
    """Dependency that requires any one of the given scopes."""

    async def check(auth: AuthContext = Depends(authenticate_api_key)) -> AuthContext:
        if not any(has_scope(auth.identity, scope) for scope in scopes):
            raise auth_error(
                403,
                "forbidden_scope",
                f"Required scope: {' or '.join(s.value for s in scopes)}",
            )
        return auth

    return check


def require_site_access(scope: ApiKeyScope, site_id_param: str = "site_id"):
    """Dependency that verifies the key may act on the site in the path."""

    async def check(
        request: Request,
        auth: AuthContext = Depends(authenticate_api_key),
        db: AsyncSession = Depends(get_db),
    ) -> AuthContext:
        raw_site_id = request.path_params.get(site_id_param)
        if not raw_site_id:
            raise HTTPException(status_code=400, detail="Site ID is required")
        try:
            site_id = UUID(str(raw_site_id))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid site ID")

        try:
            await AccessResolver(db).check_site_access(auth.identity, site_id, scope)
        except AuthorizationFailure as e:
            kind = "forbidden_scope" if e.reason == AuthorizationFailure.SCOPE else "forbidden_site"
            raise auth_error(403, kind, e.message)
        return auth

    return check


async def require_admin_key(
    auth: AuthContext = Depends(authenticate_api_key),
) -> AuthContext:
    """Dependency that requires an admin-type key."""
    if auth.identity.key_type != KeyType.ADMIN:
        raise auth_error(403, "forbidden_scope", "Admin access required")
    return auth
