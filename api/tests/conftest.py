"""API test configuration."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from api.dependencies import get_db
from api.main import create_app
from gateway_fixtures import FakeProcessor, make_settings
from httpx import ASGITransport, AsyncClient
from paygate.services.processor_client import ProcessorClient


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def fake_processor():
    return FakeProcessor()


@pytest.fixture
def app(settings, fake_processor):
    a = create_app(settings)
    a.state.processor = ProcessorClient.from_settings(
        settings, transport=httpx.MockTransport(fake_processor.handle)
    )
    return a


@pytest.fixture
def mock_db():
    """Creates a mock AsyncSession with common patterns pre-configured."""
    session = AsyncMock()
    # AsyncSession.add() is synchronous; use MagicMock to avoid un-awaited coroutine warnings.
    session.add = MagicMock()
    # Default: execute returns empty result set
    empty_result = MagicMock()
    empty_result.scalars.return_value.all.return_value = []
    empty_result.scalars.return_value.first.return_value = None
    empty_result.scalar.return_value = 0
    empty_result.all.return_value = []
    session.execute.return_value = empty_result
    # Default: get returns None
    session.get.return_value = None
    return session


def _build_client(app, mock_db, **transport_kwargs) -> AsyncClient:
    async def _override_db():
        yield mock_db

    app.dependency_overrides[get_db] = _override_db
    transport = ASGITransport(app=app, **transport_kwargs)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
async def client(app, mock_db):
    async with _build_client(app, mock_db) as ac:
        yield ac
    await app.state.dispatcher.drain()


@pytest.fixture
async def lenient_client(app, mock_db):
    """Client that surfaces unhandled app errors as 500 responses instead of raising."""
    async with _build_client(app, mock_db, raise_app_exceptions=False) as ac:
        yield ac
    await app.state.dispatcher.drain()
