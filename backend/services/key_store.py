"""
API Key Store

Persistence gateway for the key services: typed reads and writes over keys,
site grants, usage events and the site ownership/membership rows maintained
by site management. All queries are single indexed lookups or aggregates;
nothing here scans and compares key material.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.api_key import ApiKey
from backend.models.api_key_site_access import ApiKeySiteAccess
from backend.models.api_key_usage import ApiKeyUsage
from backend.models.site import Site, SiteMember


class KeyStore:
    """Thin query layer over one AsyncSession. The caller owns the transaction."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # --- Keys ---

    async def add_key(self, api_key: ApiKey) -> ApiKey:
        self.db.add(api_key)
        await self.db.flush()
        return api_key

    async def get_key(self, key_id: UUID) -> ApiKey | None:
        return await self.db.get(ApiKey, key_id)

    async def get_key_by_hash(self, key_hash: str) -> ApiKey | None:
        result = await self.db.execute(
            select(ApiKey).where(ApiKey.key_hash == key_hash)
        )
        return result.scalar_one_or_none()

    async def list_keys(
        self,
        user_id: UUID | None = None,
        key_type: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[ApiKey]:
        query = select(ApiKey)
        if user_id is not None:
            query = query.where(ApiKey.user_id == user_id)
        if key_type is not None:
            query = query.where(ApiKey.key_type == key_type)
        if is_active is not None:
            query = query.where(ApiKey.is_active == is_active)
        result = await self.db.execute(
            query.order_by(ApiKey.created_at.desc(), ApiKey.id)
        )
        return result.scalars().all()

    async def flush(self) -> None:
        await self.db.flush()

    # --- Site grants ---

    async def get_site_access(self, key_id: UUID, site_id: UUID) -> ApiKeySiteAccess | None:
        result = await self.db.execute(
            select(ApiKeySiteAccess).where(
                ApiKeySiteAccess.api_key_id == key_id,
                ApiKeySiteAccess.site_id == site_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_site_access(self, key_id: UUID) -> Sequence[ApiKeySiteAccess]:
        result = await self.db.execute(
            select(ApiKeySiteAccess)
            .where(ApiKeySiteAccess.api_key_id == key_id)
            .order_by(ApiKeySiteAccess.created_at)
        )
        return result.scalars().all()

    async def upsert_site_access(
        self, key_id: UUID, site_id: UUID, scopes: list[str]
    ) -> ApiKeySiteAccess:
        """
        Insert or replace the grant's scopes in one statement.

        ON CONFLICT keeps concurrent grants for the same pair from racing
        into the unique constraint; the last write wins.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        statement = insert(ApiKeySiteAccess).values(
            api_key_id=key_id, site_id=site_id, scopes=list(scopes)
        )
        await self.db.execute(
            statement.on_conflict_do_update(
                index_elements=["api_key_id", "site_id"],
                set_={"scopes": statement.excluded.scopes},
            )
        )
        result = await self.db.execute(
            select(ApiKeySiteAccess)
            .where(
                ApiKeySiteAccess.api_key_id == key_id,
                ApiKeySiteAccess.site_id == site_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def delete_site_access(self, key_id: UUID, site_id: UUID) -> bool:
        result = await self.db.execute(
            delete(ApiKeySiteAccess).where(
                ApiKeySiteAccess.api_key_id == key_id,
                ApiKeySiteAccess.site_id == site_id,
            )
        )
        return result.rowcount > 0

    # --- Usage ---

    async def add_usage(self, event: ApiKeyUsage) -> None:
        self.db.add(event)
        await self.db.flush()

    async def increment_usage(self, key_id: UUID, used_at: datetime) -> None:
        """Atomic counter bump in SQL; no read-modify-write in Python."""
        await self.db.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(
                usage_count=ApiKey.usage_count + 1,
                last_used_at=used_at,
            )
        )

    def _usage_filters(
        self,
        key_id: UUID,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> list[Any]:
        filters: list[Any] = [ApiKeyUsage.api_key_id == key_id]
        if start_date is not None:
            filters.append(ApiKeyUsage.created_at >= start_date)
        if end_date is not None:
            filters.append(ApiKeyUsage.created_at <= end_date)
        return filters

    async def usage_totals(
        self,
        key_id: UUID,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> tuple[int, int, int, float | None]:
        """(total, successful, failed, average response time) over the range."""
        status = ApiKeyUsage.status_code
        result = await self.db.execute(
            select(
                func.count(ApiKeyUsage.id),
                func.coalesce(
                    func.sum(case(((status >= 200) & (status < 400), 1), else_=0)), 0
                ),
                func.coalesce(func.sum(case((status >= 400, 1), else_=0)), 0),
                func.avg(ApiKeyUsage.response_time_ms),
            ).where(*self._usage_filters(key_id, start_date, end_date))
        )
        total, successful, failed, avg_ms = result.one()
        return (
            int(total),
            int(successful),
            int(failed),
            float(avg_ms) if avg_ms is not None else None,
        )

    async def top_endpoints(
        self,
        key_id: UUID,
        limit: int,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[tuple[str, int]]:
        """Endpoints by request count descending, ties by endpoint ascending."""
        count = func.count(ApiKeyUsage.id).label("count")
        result = await self.db.execute(
            select(ApiKeyUsage.endpoint, count)
            .where(*self._usage_filters(key_id, start_date, end_date))
            .group_by(ApiKeyUsage.endpoint)
            .order_by(count.desc(), ApiKeyUsage.endpoint.asc())
            .limit(limit)
        )
        return [(endpoint, int(n)) for endpoint, n in result.all()]

    async def delete_usage_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(ApiKeyUsage).where(ApiKeyUsage.created_at < cutoff)
        )
        return result.rowcount or 0

    async def deactivate_expired(self, now: datetime) -> int:
        result = await self.db.execute(
            update(ApiKey)
            .where(
                ApiKey.is_active.is_(True),
                ApiKey.expires_at.is_not(None),
                ApiKey.expires_at <= now,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # --- Sites (read-only, owned by site management) ---

    async def site_exists(self, site_id: UUID) -> bool:
        result = await self.db.execute(select(Site.id).where(Site.id == site_id))
        return result.scalar_one_or_none() is not None

    async def get_site_owner_id(self, site_id: UUID) -> UUID | None:
        result = await self.db.execute(select(Site.owner_id).where(Site.id == site_id))
        return result.scalar_one_or_none()

    async def get_site_member_ids(self, site_id: UUID) -> set[UUID]:
        result = await self.db.execute(
            select(SiteMember.user_id).where(SiteMember.site_id == site_id)
        )
        return set(result.scalars().all())
