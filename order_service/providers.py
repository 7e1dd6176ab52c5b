"""Provider helpers for wiring the HTTP layer with a storage backend.

``get_order_repository`` is the FastAPI dependency used by the routes. It
returns a SQLAlchemy-backed repository sharing one process-wide engine, or
the in-memory store when ``USE_IN_MEMORY_STORE`` is enabled. Tests swap
implementations through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from . import config
from .adapters import InMemoryOrderRepository
from .domain import OrderRepository
from .repository import SqlAlchemyOrderRepository, ping


@lru_cache(maxsize=None)
def get_engine() -> Engine:
    """Return the shared engine (and connection pool) for ``DATABASE_URL``."""
    return create_engine(config.DATABASE_URL, pool_pre_ping=True)


@lru_cache(maxsize=None)
def _memory_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


def get_order_repository() -> OrderRepository:
    """Return a configured OrderRepository.

    Returns:
        OrderRepository: The in-memory store when ``USE_IN_MEMORY_STORE`` is
        set, otherwise a ``SqlAlchemyOrderRepository`` on the shared engine.
    """
    if config.USE_IN_MEMORY_STORE:
        return _memory_repository()
    return SqlAlchemyOrderRepository(get_engine())


def get_readiness_probe() -> Callable[[], bool]:
    """Return a callable reporting whether storage is reachable."""
    if config.USE_IN_MEMORY_STORE:
        return lambda: True
    return lambda: ping(get_engine())
