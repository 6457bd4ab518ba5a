"""
Usage Maintenance Tasks

Periodic cleanup for API key telemetry and expired keys. Neither task
touches revocation fields.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import utcnow
from backend.services.key_store import KeyStore
from workers.celery_app import app

logger = logging.getLogger(__name__)


@app.task
def purge_usage_events():
    """Delete usage events older than the retention window."""
    logger.info("Starting usage event purge")
    return asyncio.run(_async_purge_usage_events())


@app.task
def deactivate_expired_keys():
    """
    Mark keys past their expiry as inactive.

    Validation already rejects them; this keeps listings accurate.
    """
    return asyncio.run(_async_deactivate_expired_keys())


async def purge_old_usage(
    db: AsyncSession,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> int:
    days = retention_days or get_settings().usage_retention_days
    cutoff = (now or utcnow()) - timedelta(days=days)
    deleted = await KeyStore(db).delete_usage_before(cutoff)
    logger.info(
        "usage_events_purged",
        extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
    )
    return deleted


async def deactivate_expired(db: AsyncSession, now: datetime | None = None) -> int:
    count = await KeyStore(db).deactivate_expired(now or utcnow())
    if count:
        logger.info("api_keys_expired", extra={"deactivated": count})
    return count


async def _async_purge_usage_events() -> int:
    from backend.db.session import get_async_session

    async with get_async_session() as db:
        return await purge_old_usage(db)


async def _async_deactivate_expired_keys() -> int:
    from backend.db.session import get_async_session

    async with get_async_session() as db:
        return await deactivate_expired(db)
