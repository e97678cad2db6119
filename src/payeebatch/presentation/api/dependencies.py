"""FastAPI dependency injection for the payeebatch API.

Provides dependencies for:
- The shared async engine and session maker
- The service container (one per process) holding the working set
- Service instances for the routers
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from payeebatch.application.retry import RetryPolicy
from payeebatch.application.services import (
    BatchJobService,
    ExportService,
    JobPersistenceService,
    JobStatusSyncEngine,
    RecoveryService,
    ResultPipeline,
)
from payeebatch.application.state import ApplicationState
from payeebatch.domain.batch.health import JobHealthPolicy
from payeebatch.domain.batch.ports import BatchClassificationProvider
from payeebatch.domain.batch.state_machine import BatchJobStateMachine
from payeebatch.domain.classification.keyword_exclusion import KeywordExclusionPolicy
from payeebatch.domain.classification.local_classifier import LocalHeuristicClassifier
from payeebatch.domain.classification.reconciler import ClassificationReconciler
from payeebatch.infrastructure.export import CsvReportGenerator, ExcelReportGenerator
from payeebatch.infrastructure.integration import OpenAIBatchProvider, UnconfiguredProvider
from payeebatch.infrastructure.persistence.sqlalchemy import SQLAlchemyUnitOfWork
from payeebatch.infrastructure.storage import FileLocalCache, FilesystemBlobStore
from payeebatch_config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_database_url() -> str:
    """
    Get database URL from application settings.

    Returns
    -------
    Database URL string
    """
    url = get_settings().database_url

    # Ensure data directory exists for SQLite
    if url.startswith("sqlite") and ":memory:" not in url:
        db_path = url.split("///")[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return url


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Shared async engine; disposed by the application lifespan."""
    return create_async_engine(
        get_database_url(),
        echo=False,
        pool_pre_ping=True,
    )


@lru_cache(maxsize=1)
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


def build_provider(settings: Settings) -> BatchClassificationProvider:
    if not settings.provider_enabled:
        logger.warning("OPENAI_API_KEY not set; remote classification disabled")
        return UnconfiguredProvider()
    client = AsyncOpenAI(
        api_key=settings.openai_api_key.get_secret_value(),
        timeout=settings.openai_timeout,
        max_retries=0,  # retries go through RetryPolicy
    )
    return OpenAIBatchProvider(
        client,
        model=settings.openai_model,
        completion_window=settings.openai_completion_window,
    )


@dataclass
class ServiceContainer:
    """Process-wide object graph shared by all requests."""

    settings: Settings
    state: ApplicationState
    persistence: JobPersistenceService
    sync_engine: JobStatusSyncEngine
    job_service: BatchJobService
    recovery_service: RecoveryService
    export_service: ExportService


def build_container(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    provider: BatchClassificationProvider | None = None,
) -> ServiceContainer:
    """Wire every service from settings.

    Parameters
    ----------
    settings
        Application settings.
    session_maker
        Session factory for the relational store.
    provider
        Optional provider override (tests); built from settings otherwise.

    Returns
    -------
    ServiceContainer with all services sharing one ``ApplicationState``.
    """
    provider = provider or build_provider(settings)
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )

    reconciler = ClassificationReconciler(
        KeywordExclusionPolicy(custom_keywords=settings.custom_exclusion_keywords),
    )
    blob_store = FilesystemBlobStore(settings.blob_store_path, base_url=settings.blob_base_url)
    persistence = JobPersistenceService(
        SQLAlchemyUnitOfWork(session_maker),
        blob_store,
        FileLocalCache(settings.local_cache_path),
        retry_policy=retry,
        inline_payload_max_rows=settings.inline_payload_max_rows,
    )

    state = ApplicationState()
    state_machine = BatchJobStateMachine()
    health = JobHealthPolicy(
        queue_timeout=settings.queue_timeout,
        stall_timeout=settings.stall_timeout,
        stall_progress_ratio=settings.stall_progress_ratio,
        auto_cancel_after=settings.auto_cancel_after,
    )
    pipeline = ResultPipeline(
        provider,
        reconciler,
        persistence,
        retry_policy=retry,
        chunk_size=settings.expansion_chunk_size,
    )
    sync_engine = JobStatusSyncEngine(
        provider,
        state_machine,
        state,
        persistence,
        poll_interval=settings.poll_interval_seconds,
        retry_policy=retry,
    )
    job_service = BatchJobService(
        provider,
        state_machine,
        state,
        persistence,
        pipeline,
        sync_engine,
        LocalHeuristicClassifier(reconciler),
        health,
        retry_policy=retry,
        cancel_max_retries=settings.cancel_max_retries,
    )
    sync_engine.set_completion_handler(job_service.handle_completed)

    recovery_service = RecoveryService(
        provider,
        state,
        persistence,
        pipeline,
        job_service,
        sync_engine,
        health,
        terminal_retention=settings.terminal_job_retention,
    )
    export_service = ExportService(
        state,
        persistence,
        blob_store,
        {"csv": CsvReportGenerator(), "xlsx": ExcelReportGenerator()},
    )

    return ServiceContainer(
        settings=settings,
        state=state,
        persistence=persistence,
        sync_engine=sync_engine,
        job_service=job_service,
        recovery_service=recovery_service,
        export_service=export_service,
    )


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    return build_container(get_settings(), get_session_maker())


# =============================================================================
# Router dependencies
# =============================================================================


def get_state() -> ApplicationState:
    return get_container().state


def get_job_service() -> BatchJobService:
    return get_container().job_service


def get_sync_engine() -> JobStatusSyncEngine:
    return get_container().sync_engine


def get_recovery_service() -> RecoveryService:
    return get_container().recovery_service


def get_export_service() -> ExportService:
    return get_container().export_service


StateDep = Annotated[ApplicationState, Depends(get_state)]
JobServiceDep = Annotated[BatchJobService, Depends(get_job_service)]
SyncEngineDep = Annotated[JobStatusSyncEngine, Depends(get_sync_engine)]
RecoveryServiceDep = Annotated[RecoveryService, Depends(get_recovery_service)]
ExportServiceDep = Annotated[ExportService, Depends(get_export_service)]
