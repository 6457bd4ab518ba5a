"""
API Key Usage Recorder

Best-effort request telemetry per key, plus aggregate statistics.

record() runs after the response has been sent (a Starlette background
task). It opens its own session, and any failure is logged and swallowed so
telemetry can never fail the request it describes.
"""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.api_key_usage import ApiKeyUsage
from backend.models.base import as_utc, utcnow
from backend.schemas.api_key import TopEndpoint, UsageStatsResponse
from backend.services.key_store import KeyStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class UsageEvent(BaseModel):
    """One request made with a key."""

    endpoint: str
    method: str
    status_code: int | None = None
    response_time_ms: int | None = Field(default=None, ge=0)
    ip_address: str | None = None
    user_agent: str | None = None
    origin: str | None = None
    resource_type: str | None = None
    resource_id: UUID | None = None


class UsageRecorder:
    """Appends usage events and bumps the key's counters in one transaction."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def record(self, key_id: UUID, event: UsageEvent) -> None:
        """Never raises; failures go to the log."""
        try:
            async with self.session_factory() as session:
                store = KeyStore(session)
                now = utcnow()
                await store.add_usage(
                    ApiKeyUsage(api_key_id=key_id, created_at=now, **event.model_dump())
                )
                await store.increment_usage(key_id, now)
                await session.commit()
        except Exception:
            logger.exception(
                "api_key_usage_record_failed",
                extra={"api_key_id": str(key_id), "endpoint": event.endpoint},
            )


async def get_usage_stats(
    db_session: AsyncSession,
    key_id: UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    top_n: int | None = None,
) -> UsageStatsResponse:
    """
    Aggregate a key's usage over an optional date range.

    Successful means 200 <= status < 400, failed means status >= 400.
    Events without a status code count toward the total only.
    """
    store = KeyStore(db_session)
    start_date, end_date = as_utc(start_date), as_utc(end_date)
    total, successful, failed, avg_ms = await store.usage_totals(key_id, start_date, end_date)
    top = await store.top_endpoints(
        key_id,
        top_n or get_settings().usage_top_endpoints,
        start_date,
        end_date,
    )
    return UsageStatsResponse(
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        avg_response_time=avg_ms or 0.0,
        top_endpoints=[TopEndpoint(endpoint=e, count=n) for e, n in top],
    )
