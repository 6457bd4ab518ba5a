"""
Unit Tests for the API Key Usage Recorder

Recording, counter increments, statistics and failure isolation.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.models.api_key_usage import ApiKeyUsage
from backend.models.base import utcnow
from backend.services.usage import UsageEvent, UsageRecorder, get_usage_stats
from tests.factories import make_usage

ON_SQLITE = os.getenv("TEST_DATABASE_URL", "sqlite").startswith("sqlite")


@pytest.mark.asyncio
async def test_record_appends_event_and_bumps_counter(db_session, session_factory, user_key):
    key, _ = user_key
    recorder = UsageRecorder(session_factory)

    await recorder.record(
        key.id,
        UsageEvent(
            endpoint="/api/v1/posts",
            method="GET",
            status_code=200,
            response_time_ms=12,
            ip_address="203.0.113.7",
            user_agent="pytest",
        ),
    )

    await db_session.refresh(key)
    assert key.usage_count == 1
    assert key.last_used_at is not None

    count = await db_session.scalar(
        select(func.count()).select_from(ApiKeyUsage).where(ApiKeyUsage.api_key_id == key.id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_counter_counts_every_record(db_session, session_factory, user_key):
    key, _ = user_key
    recorder = UsageRecorder(session_factory)
    for _ in range(3):
        await recorder.record(key.id, UsageEvent(endpoint="/api/v1/posts", method="GET"))

    await db_session.refresh(key)
    assert key.usage_count == 3


@pytest.mark.asyncio
@pytest.mark.skipif(
    ON_SQLITE,
    reason="in-memory SQLite shares one connection, so recordings cannot overlap",
)
async def test_concurrent_records_all_persist(db_session, user_key):
    key, _ = user_key
    await db_session.commit()

    # Separate sessions so each recording runs in its own transaction
    recorder = UsageRecorder(
        async_sessionmaker(db_session.bind, class_=AsyncSession, expire_on_commit=False)
    )
    await asyncio.gather(
        *(
            recorder.record(key.id, UsageEvent(endpoint="/api/v1/posts", method="GET"))
            for _ in range(5)
        )
    )

    await db_session.refresh(key)
    assert key.usage_count == 5
    count = await db_session.scalar(
        select(func.count()).select_from(ApiKeyUsage).where(ApiKeyUsage.api_key_id == key.id)
    )
    assert count == 5


@pytest.mark.asyncio
async def test_record_failure_is_swallowed(caplog):
    @asynccontextmanager
    async def broken_factory():
        raise RuntimeError("database unavailable")
        yield  # pragma: no cover

    recorder = UsageRecorder(broken_factory)
    await recorder.record(uuid4(), UsageEvent(endpoint="/api/v1/posts", method="GET"))

    assert "api_key_usage_record_failed" in caplog.text


def test_negative_response_time_rejected():
    with pytest.raises(ValueError):
        UsageEvent(endpoint="/", method="GET", response_time_ms=-1)


@pytest.mark.asyncio
async def test_stats_totals_and_mean(db_session, user_key):
    key, _ = user_key
    db_session.add_all([
        make_usage(key.id, status_code=200, response_time_ms=10),
        make_usage(key.id, status_code=201, response_time_ms=20),
        make_usage(key.id, status_code=404, response_time_ms=30),
    ])
    await db_session.flush()

    stats = await get_usage_stats(db_session, key.id)
    assert stats.total_requests == 3
    assert stats.successful_requests == 2
    assert stats.failed_requests == 1
    assert stats.avg_response_time == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_stats_without_events(db_session, user_key):
    key, _ = user_key
    stats = await get_usage_stats(db_session, key.id)
    assert stats.total_requests == 0
    assert stats.successful_requests == 0
    assert stats.failed_requests == 0
    assert stats.avg_response_time == 0.0
    assert stats.top_endpoints == []


@pytest.mark.asyncio
async def test_missing_status_counts_toward_total_only(db_session, user_key):
    key, _ = user_key
    db_session.add_all([
        make_usage(key.id, status_code=None),
        make_usage(key.id, status_code=302),
        make_usage(key.id, status_code=500),
    ])
    await db_session.flush()

    stats = await get_usage_stats(db_session, key.id)
    assert stats.total_requests == 3
    assert stats.successful_requests == 1
    assert stats.failed_requests == 1


@pytest.mark.asyncio
async def test_stats_respect_date_range(db_session, user_key):
    key, _ = user_key
    now = utcnow()
    db_session.add_all([
        make_usage(key.id, created_at=now - timedelta(days=10)),
        make_usage(key.id, created_at=now - timedelta(days=2)),
        make_usage(key.id, created_at=now - timedelta(hours=1)),
    ])
    await db_session.flush()

    stats = await get_usage_stats(
        db_session, key.id, start_date=now - timedelta(days=3), end_date=now
    )
    assert stats.total_requests == 2

    stats = await get_usage_stats(db_session, key.id, end_date=now - timedelta(days=5))
    assert stats.total_requests == 1


@pytest.mark.asyncio
async def test_stats_scoped_to_one_key(db_session, user_key, admin_key):
    key, _ = user_key
    other, _ = admin_key
    db_session.add_all([make_usage(key.id), make_usage(other.id), make_usage(other.id)])
    await db_session.flush()

    assert (await get_usage_stats(db_session, key.id)).total_requests == 1


@pytest.mark.asyncio
async def test_top_endpoints_ordering(db_session, user_key):
    key, _ = user_key
    events = (
        [make_usage(key.id, endpoint="/posts") for _ in range(3)]
        + [make_usage(key.id, endpoint="/tags") for _ in range(2)]
        + [make_usage(key.id, endpoint="/categories") for _ in range(2)]
        + [make_usage(key.id, endpoint=f"/misc/{i}") for i in range(4)]
    )
    db_session.add_all(events)
    await db_session.flush()

    stats = await get_usage_stats(db_session, key.id)
    ranked = [(e.endpoint, e.count) for e in stats.top_endpoints]
    assert len(ranked) == 5
    # Ties broken alphabetically
    assert ranked[:3] == [("/posts", 3), ("/categories", 2), ("/tags", 2)]
    assert ranked[3:] == [("/misc/0", 1), ("/misc/1", 1)]


@pytest.mark.asyncio
async def test_top_n_override(db_session, user_key):
    key, _ = user_key
    db_session.add_all([make_usage(key.id, endpoint=f"/e/{i}") for i in range(4)])
    await db_session.flush()

    stats = await get_usage_stats(db_session, key.id, top_n=2)
    assert len(stats.top_endpoints) == 2
