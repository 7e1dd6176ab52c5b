"""SQLAlchemy repository for persisting orders.

This module maps the domain ``Order`` onto a single ``orders`` table and
implements the ``OrderRepository`` port on top of it. The engine (and with
it the connection pool) is owned by the caller and handed in at
construction time; the repository only opens short-lived sessions.

Identifiers and timestamps are assigned by the storage layer on insert.
Status changes are written with an optimistic ``UPDATE ... WHERE version =``
so concurrent writers cannot silently overwrite each other.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import List

from sqlalchemy import BigInteger, CheckConstraint, DateTime, String, Text, Uuid, func, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

from .domain import INITIAL_VERSION, ErrorKind, Order, OrderError, OrderRepository, OrderStatus

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class OrderRow(Base):
    """SQLAlchemy model for one order.

    Attributes:
        id: UUID primary key, generated on insert.
        status: One of the OrderStatus values (enforced by a CHECK).
        version: Optimistic concurrency counter.
        fail_reason_code: Short failure code, nullable.
        fail_reason_detail: Free-text failure detail, nullable.
        created_at: Insert time from the database clock.
        updated_at: Last change time.
    """

    __tablename__ = "orders"

    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    status = mapped_column(String(16), nullable=False, default=OrderStatus.NEW.value)
    version = mapped_column(BigInteger, nullable=False, default=INITIAL_VERSION)
    fail_reason_code = mapped_column(String(64), nullable=True)
    fail_reason_detail = mapped_column(Text, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('NEW', 'RESERVED', 'CONFIRMED', 'FAILED')",
            name="ck_orders_status",
        ),
    )


def init_db(engine: Engine) -> None:
    """Create the ``orders`` table if it does not exist yet."""
    Base.metadata.create_all(engine)


def ping(engine: Engine) -> bool:
    """Return True when the database answers ``select 1``."""
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
    except SQLAlchemyError:
        logger.warning("database ping failed", exc_info=True)
        return False
    return True


def wait_for_db(engine: Engine, timeout: float) -> None:
    """Block until the database accepts connections or ``timeout`` elapses.

    Raises:
        SQLAlchemyError: The last connection error once the deadline passed.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            return
        except SQLAlchemyError:
            if time.monotonic() > deadline:
                raise
            logger.info("waiting for database")
            time.sleep(1)


def _to_domain(row: OrderRow) -> Order:
    if not OrderStatus.is_valid(row.status):
        raise OrderError(ErrorKind.STORAGE_FAILURE, f"unknown status {row.status!r} in storage")
    return Order(
        id=row.id,
        status=OrderStatus(row.status),
        version=row.version,
        fail_reason_code=row.fail_reason_code,
        fail_reason_detail=row.fail_reason_detail,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemyOrderRepository(OrderRepository):
    """Repository that persists Order domain objects with SQLAlchemy.

    ``get_all`` returns orders by ascending ``created_at``.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    @contextmanager
    def get_session(self):
        """Yield a session bound to the repository's engine."""
        with Session(self._engine) as s:
            yield s

    def get_all(self) -> List[Order]:
        try:
            with self.get_session() as s:
                rows = s.execute(select(OrderRow).order_by(OrderRow.created_at)).scalars().all()
                return [_to_domain(r) for r in rows]
        except SQLAlchemyError as exc:
            raise OrderError(ErrorKind.STORAGE_FAILURE, "list orders") from exc

    def create(self, order: Order) -> None:
        """Insert ``order`` and copy back the generated id and timestamps."""
        try:
            with self.get_session() as s:
                row = OrderRow(
                    status=OrderStatus(order.status).value,
                    version=order.version,
                    fail_reason_code=order.fail_reason_code,
                    fail_reason_detail=order.fail_reason_detail,
                )
                s.add(row)
                s.commit()
                # expired on commit: attribute access reloads server defaults
                order.id = row.id
                order.created_at = row.created_at
                order.updated_at = row.updated_at
        except SQLAlchemyError as exc:
            raise OrderError(ErrorKind.STORAGE_FAILURE, "create order") from exc
        logger.info("order created", extra={"order_id": str(order.id)})

    def get_by_id(self, order_id: uuid.UUID) -> Order:
        try:
            with self.get_session() as s:
                row = s.get(OrderRow, order_id)
                if row is None:
                    raise OrderError(ErrorKind.NOT_FOUND)
                return _to_domain(row)
        except SQLAlchemyError as exc:
            raise OrderError(ErrorKind.STORAGE_FAILURE, "get order by id") from exc

    def update_status(
        self,
        order_id: uuid.UUID,
        next_status,
        now: datetime,
        expected_version: int | None = None,
        reason_code: str | None = None,
        reason_detail: str | None = None,
    ) -> Order:
        """Apply a transition and write it guarded by the loaded version.

        No-op transitions (target equals current status) are not written.

        Raises:
            OrderError: NOT_FOUND, CONFLICT, STORAGE_FAILURE, or any domain
                error raised by ``Order.transition_to``.
        """
        try:
            with self.get_session() as s:
                row = s.execute(
                    select(OrderRow).where(OrderRow.id == order_id).with_for_update()
                ).scalars().first()
                if row is None:
                    raise OrderError(ErrorKind.NOT_FOUND)

                order = _to_domain(row)
                if expected_version is not None and expected_version != order.version:
                    raise OrderError(ErrorKind.CONFLICT)

                loaded_version = order.version
                order.transition_to(next_status, now, reason_code, reason_detail)
                if order.version == loaded_version:
                    return order

                result = s.execute(
                    update(OrderRow)
                    .where(OrderRow.id == order_id, OrderRow.version == loaded_version)
                    .values(
                        status=order.status.value,
                        version=order.version,
                        fail_reason_code=order.fail_reason_code,
                        fail_reason_detail=order.fail_reason_detail,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    s.rollback()
                    raise OrderError(ErrorKind.CONFLICT)
                s.commit()
        except SQLAlchemyError as exc:
            raise OrderError(ErrorKind.STORAGE_FAILURE, "update order status") from exc

        logger.info(
            "order status changed",
            extra={"order_id": str(order_id), "status": order.status.value, "version": order.version},
        )
        return order
