"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from transit_search.config import Settings
from transit_search.main import create_app
from transit_search.services.gtfs_static.orchestrator import IngestionOrchestrator
from transit_search.store import InMemoryBackend, StoreAdapter, build_feed_tables

from .fixtures.gtfs_fixture import write_gtfs_dir


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        FEED_URLS=[],
        feed_staging_dir=str(tmp_path / "staging"),
        write_retry_backoff_base=0,
    )


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def store(memory_backend: InMemoryBackend) -> StoreAdapter:
    return StoreAdapter(memory_backend, build_feed_tables())


@pytest.fixture
async def seeded_store(store: StoreAdapter, tmp_path: Path) -> StoreAdapter:
    """Store loaded with the default fixture feed."""
    orchestrator = IngestionOrchestrator(store, retry_backoff_base=0)
    report = await orchestrator.ingest_directory(write_gtfs_dir(tmp_path / "feed"))
    assert report.status == "success"
    store.backend.reset_calls()
    return store


@pytest.fixture
def app(seeded_store: StoreAdapter, settings: Settings) -> FastAPI:
    return create_app(store=seeded_store, settings=settings)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
