# Shared fixtures: SQLite-backed repository and an API client wired to an in-memory store
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from order_service.adapters import InMemoryOrderRepository
from order_service.main import app
from order_service.providers import get_order_repository, get_readiness_probe
from order_service.repository import SqlAlchemyOrderRepository, init_db


@pytest.fixture
def engine():
    """In-memory SQLite engine with the orders schema, one shared connection."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sql_repo(engine):
    return SqlAlchemyOrderRepository(engine)


@pytest.fixture
def memory_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def make_client():
    """Build a TestClient whose routes use the given repository."""

    def _make(repo, ready=True, raise_server_exceptions=True):
        app.dependency_overrides[get_order_repository] = lambda: repo
        app.dependency_overrides[get_readiness_probe] = lambda: (lambda: ready)
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, memory_repo):
    return make_client(memory_repo)
