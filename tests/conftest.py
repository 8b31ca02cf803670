"""Shared fixtures: in-memory database, deterministic cache clock, service and API client."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from journal.api.deps import get_trade_service
from journal.database import build_engine, create_db_and_tables
from journal.main import app
from journal.services.auth import create_access_token
from journal.services.cache import CacheLayer, MemoryCacheBackend
from journal.services.trade_service import TradeService
from journal.services.trade_store import TradeStore


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_backend(clock):
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(cache_backend):
    return CacheLayer(cache_backend)


@pytest.fixture
def store(engine):
    return TradeStore(engine)


@pytest.fixture
def service(store, cache):
    return TradeService(store, cache)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_trade_service] = lambda: service
    # Not entered as a context manager: the lifespan would touch the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token('user-1')}"}
