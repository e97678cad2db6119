"""API test client wired to the test service container.

The ASGI transport does not run the application lifespan, so no real
database engine, polling consumer or maintenance loop is started; status
events are applied inline by the push endpoint.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payeebatch.presentation.api.app import create_app
from payeebatch.presentation.api.dependencies import (
    get_export_service,
    get_job_service,
    get_recovery_service,
    get_state,
    get_sync_engine,
)


@pytest_asyncio.fixture
async def api_client(container, test_settings):
    app = create_app(test_settings)
    app.dependency_overrides[get_state] = lambda: container.state
    app.dependency_overrides[get_job_service] = lambda: container.job_service
    app.dependency_overrides[get_sync_engine] = lambda: container.sync_engine
    app.dependency_overrides[get_recovery_service] = lambda: container.recovery_service
    app.dependency_overrides[get_export_service] = lambda: container.export_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
