"""In-process adapter for the orders storage port.

``InMemoryOrderRepository`` implements ``OrderRepository`` without a
database. It is intended for unit tests and local development where
deterministic behavior is useful and Postgres is not required.
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from .domain import ErrorKind, Order, OrderError, OrderRepository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryOrderRepository(OrderRepository):
    """Dictionary-backed implementation of ``OrderRepository``.

    Stored orders are copied on the way in and out so callers never share
    an instance with the store. ``get_all`` returns orders in insertion
    order.

    Args:
        clock: Callable returning the "server" time used for created_at.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._orders: dict[uuid.UUID, Order] = {}

    def get_all(self) -> List[Order]:
        with self._lock:
            return [copy.copy(o) for o in self._orders.values()]

    def create(self, order: Order) -> None:
        with self._lock:
            now = self._clock()
            order.id = uuid.uuid4()
            order.created_at = now
            order.updated_at = now
            self._orders[order.id] = copy.copy(order)

    def get_by_id(self, order_id: uuid.UUID) -> Order:
        with self._lock:
            stored = self._orders.get(order_id)
            if stored is None:
                raise OrderError(ErrorKind.NOT_FOUND)
            return copy.copy(stored)

    def update_status(
        self,
        order_id: uuid.UUID,
        next_status,
        now: datetime,
        expected_version: int | None = None,
        reason_code: str | None = None,
        reason_detail: str | None = None,
    ) -> Order:
        with self._lock:
            stored = self._orders.get(order_id)
            if stored is None:
                raise OrderError(ErrorKind.NOT_FOUND)
            if expected_version is not None and expected_version != stored.version:
                raise OrderError(ErrorKind.CONFLICT)
            order = copy.copy(stored)
            order.transition_to(next_status, now, reason_code, reason_detail)
            self._orders[order_id] = copy.copy(order)
            return order
