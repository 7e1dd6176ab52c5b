"""Domain model, errors and ports for orders.

This module contains the order entity and its state machine, the error
taxonomy shared by every layer, and the protocol definition (port) for the
storage dependency. Nothing here performs I/O: the current time is always
passed in by the caller.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    CONFIRMED and FAILED are terminal: no transition out of them is accepted.
    """

    NEW = "NEW"
    RESERVED = "RESERVED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @classmethod
    def is_valid(cls, value) -> bool:
        """Return True when ``value`` is one of the defined statuses.

        Accepts enum members as well as their raw string values.
        """
        try:
            cls(value)
        except ValueError:
            return False
        return True


TERMINAL_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.FAILED})

# from-status -> allowed to-statuses
TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NEW: frozenset({OrderStatus.RESERVED, OrderStatus.FAILED}),
    OrderStatus.RESERVED: frozenset({OrderStatus.CONFIRMED, OrderStatus.FAILED}),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}

INITIAL_VERSION = 0


def can_transition(current, target) -> bool:
    """Return True when the transition table allows ``current -> target``."""
    if not (OrderStatus.is_valid(current) and OrderStatus.is_valid(target)):
        return False
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


# ---- Errors ----
class ErrorKind(str, Enum):
    """Kinds of failure raised by the domain and the storage layer."""

    INVALID_STATUS = "INVALID_STATUS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TERMINAL_STATE = "TERMINAL_STATE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    MALFORMED_INPUT = "MALFORMED_INPUT"


_DEFAULT_MESSAGES = {
    ErrorKind.INVALID_STATUS: "invalid order status",
    ErrorKind.INVALID_TRANSITION: "invalid order transition",
    ErrorKind.TERMINAL_STATE: "order is in terminal state",
    ErrorKind.NOT_FOUND: "order not found",
    ErrorKind.CONFLICT: "version conflict",
    ErrorKind.STORAGE_FAILURE: "storage failure",
    ErrorKind.MALFORMED_INPUT: "malformed input",
}


class OrderError(ValueError):
    """Error tagged with an :class:`ErrorKind`.

    Callers branch on ``kind``; ``str(error)`` is a short, human readable
    message.

    Attributes:
        kind: The ErrorKind describing what went wrong.
        message: Message for logs and, for client errors, for responses.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None):
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        super().__init__(self.message)


# ---- Entities ----
@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Identifier of the order; overwritten by storage on insert.
        status: Current OrderStatus.
        version: Counter bumped once per accepted status change.
        fail_reason_code: Short failure code, only set when FAILED.
        fail_reason_detail: Free-text failure detail, only set when FAILED.
        created_at: Insert timestamp assigned by storage, None until saved.
        updated_at: Timestamp of the last accepted change, None until saved.
    """

    id: uuid.UUID | None
    status: OrderStatus = OrderStatus.NEW
    version: int = INITIAL_VERSION
    fail_reason_code: str | None = None
    fail_reason_detail: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def transition_to(
        self,
        next_status,
        now: datetime,
        reason_code: str | None = None,
        reason_detail: str | None = None,
    ) -> None:
        """Move the order to ``next_status``.

        Checks run in a fixed order: terminal state, idempotent no-op,
        status validity, then the transition table. On success the status
        changes, ``version`` grows by exactly one and ``updated_at`` becomes
        ``now``. Failure reasons are recorded only for a FAILED target.

        Args:
            next_status: Target status (OrderStatus or its string value).
            now: Current time, supplied by the caller.
            reason_code: Optional failure code, only allowed for FAILED.
            reason_detail: Optional failure detail, only allowed for FAILED.

        Raises:
            OrderError: TERMINAL_STATE, INVALID_STATUS, INVALID_TRANSITION,
                or MALFORMED_INPUT when reasons accompany a non-FAILED target.
        """
        if self.status in TERMINAL_STATUSES:
            raise OrderError(ErrorKind.TERMINAL_STATE)

        if next_status == self.status:
            return

        if not OrderStatus.is_valid(next_status) or not OrderStatus.is_valid(self.status):
            raise OrderError(ErrorKind.INVALID_STATUS)

        if not can_transition(self.status, next_status):
            raise OrderError(ErrorKind.INVALID_TRANSITION)

        target = OrderStatus(next_status)
        if target != OrderStatus.FAILED and (reason_code or reason_detail):
            raise OrderError(ErrorKind.MALFORMED_INPUT, "fail reason is only allowed for FAILED")

        self.status = target
        self.version += 1
        self.updated_at = now
        if target == OrderStatus.FAILED:
            self.fail_reason_code = reason_code
            self.fail_reason_detail = reason_detail


def new_order() -> Order:
    """Build a fresh NEW order with a generated id and no timestamps."""
    return Order(id=uuid.uuid4())


# ---- Ports (DIP) ----
class OrderRepository(Protocol):
    """Port describing the storage operations used by the HTTP layer.

    Implementations raise :class:`OrderError` with ``NOT_FOUND`` for a
    missing order and ``STORAGE_FAILURE`` for any other persistence error.
    """

    def get_all(self) -> List[Order]:
        """Return every stored order. Ordering is implementation defined."""
        raise NotImplementedError()

    def create(self, order: Order) -> None:
        """Persist a new order.

        Mutates ``order`` in place with the storage-assigned ``id``,
        ``created_at`` and ``updated_at``.
        """
        raise NotImplementedError()

    def get_by_id(self, order_id: uuid.UUID) -> Order:
        """Fetch exactly one order or raise ``NOT_FOUND``."""
        raise NotImplementedError()

    def update_status(
        self,
        order_id: uuid.UUID,
        next_status,
        now: datetime,
        expected_version: int | None = None,
        reason_code: str | None = None,
        reason_detail: str | None = None,
    ) -> Order:
        """Apply a status transition and persist it.

        Raises ``CONFLICT`` when ``expected_version`` is given and does not
        match the stored version, or when another writer bumped the version
        first. Domain errors from :meth:`Order.transition_to` propagate.

        Returns:
            The order as stored after the transition.
        """
        raise NotImplementedError()
