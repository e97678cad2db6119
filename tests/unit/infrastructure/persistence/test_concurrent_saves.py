"""Concurrent writes for the same job against a file-backed SQLite store.

Every save opens its own session here, unlike the shared in-memory
connection of the other repository tests.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services import JobPersistenceService
from payeebatch.infrastructure.persistence.sqlalchemy import SQLAlchemyUnitOfWork, create_tables
from tests.shared.fixtures.factories import TestJobFactory, TestRecordFactory, TestUploadFactory
from tests.shared.fixtures.fakes import InMemoryBlobStore, InMemoryLocalCache


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def local_cache() -> InMemoryLocalCache:
    return InMemoryLocalCache()


@pytest.fixture
def persistence(file_session_maker, local_cache) -> JobPersistenceService:
    return JobPersistenceService(
        SQLAlchemyUnitOfWork(file_session_maker),
        InMemoryBlobStore(),
        local_cache,
        retry_policy=RetryPolicy(max_attempts=1, base_delay=0),
    )


class TestConcurrentSaves:
    @pytest.mark.asyncio
    async def test_parallel_result_saves_store_each_row_once(self, persistence, local_cache):
        rows = TestRecordFactory.expanded_vendor_rows()

        results = await asyncio.gather(
            persistence.save_classifications(TestJobFactory.JOB_ID, rows),
            persistence.save_classifications(TestJobFactory.JOB_ID, rows),
        )

        assert [stats.cached for stats in results] == [False, False]
        assert local_cache.entries == {}
        assert await persistence.count_rows(TestJobFactory.JOB_ID) == 3
        assert await persistence.find_rows(TestJobFactory.JOB_ID) == rows

    @pytest.mark.asyncio
    async def test_parallel_job_saves_leave_one_row(self, persistence, local_cache):
        job = TestJobFactory.in_progress()
        data = TestUploadFactory.mapping()

        results = await asyncio.gather(
            persistence.save_job(job, data),
            persistence.save_job(job, data),
            persistence.save_job(job),
        )

        assert [result.persisted for result in results] == [True, True, True]
        assert local_cache.entries == {}
        assert await persistence.load_jobs() == [job]
        assert await persistence.load_payee_row_data(job.id) == data
