"""Orders service API built with FastAPI.

This module exposes the order lifecycle over HTTP: list, create, fetch and
transition orders, plus liveness and readiness probes. Routes are kept
small: they parse input, call the repository obtained from
``providers.get_order_repository`` and map results to pydantic DTOs.

Every error body has the shape ``{"error": <message>}``, including unknown
routes, unsupported methods and unexpected exceptions. Storage failures
are logged with their traceback and answered with a generic message so no
internal detail reaches the client.
"""

import logging
import uuid
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .domain import ErrorKind, OrderError, OrderRepository, new_order
from .logging_filters import configure_logging
from .middleware import install_middleware
from .providers import get_engine, get_order_repository, get_readiness_probe
from .repository import init_db, wait_for_db
from .schemas import ErrorDTO, OrderReadDTO, TransitionDTO

configure_logging(config.LOG_LEVEL)
logger = logging.getLogger("order_service.api")

app = FastAPI(title="Order Service")
install_middleware(app)

Repo = Annotated[OrderRepository, Depends(get_order_repository)]

_ERROR_RESPONSES = {code: {"model": ErrorDTO} for code in (400, 404, 409, 500)}

# Client-side failures of a status change; anything else is a 500
_TRANSITION_ERROR_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.MALFORMED_INPUT: 400,
    ErrorKind.INVALID_STATUS: 400,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.TERMINAL_STATE: 409,
    ErrorKind.CONFLICT: 409,
}


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _parse_id(oid: str) -> uuid.UUID:
    try:
        return uuid.UUID(oid)
    except ValueError:
        raise OrderError(ErrorKind.MALFORMED_INPUT, "invalid id")


@app.on_event("startup")
def _startup_db():
    if config.USE_IN_MEMORY_STORE:
        logger.info("using in-memory order store")
        return
    engine = get_engine()
    wait_for_db(engine, config.DB_CONNECT_TIMEOUT)
    init_db(engine)


@app.exception_handler(RequestValidationError)
async def _invalid_body(request: Request, exc: RequestValidationError):
    logger.info("request rejected", extra={"path": request.url.path, "error_count": len(exc.errors())})
    return _error(400, "invalid request body")


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    # unknown routes (404) and unsupported methods (405)
    return _error(exc.status_code, HTTPStatus(exc.status_code).phrase.lower(), headers=exc.headers)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.error("unhandled error", exc_info=exc, extra={"path": request.url.path})
    return _error(500, "internal error")


@app.get("/healthz")
def healthz():
    """Liveness probe: the process is up and serving HTTP.

    Storage is not checked here; see ``/readyz``.
    """
    return {"status": "ok"}


@app.get("/readyz", responses={503: {"model": ErrorDTO}})
def readyz(probe: Annotated[Callable[[], bool], Depends(get_readiness_probe)]):
    """Readiness probe: 200 when storage answers, 503 otherwise."""
    if not probe():
        return _error(503, "storage unavailable")
    return {"status": "ok"}


@app.get(
    "/orders",
    response_model=list[OrderReadDTO], response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
def list_orders(repo: Repo):
    """Return every stored order as a JSON array."""
    try:
        orders = repo.get_all()
    except OrderError:
        logger.exception("list orders failed")
        return _error(500, "failed to fetch orders")
    return [OrderReadDTO.model_validate(o) for o in orders]


@app.post(
    "/orders",
    status_code=201, response_model=OrderReadDTO, response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
def create_order(repo: Repo):
    """Create a NEW order.

    The request body is ignored: the order has no client-supplied fields
    yet. Responds 201 with the stored order, including its generated id.
    """
    order = new_order()
    try:
        repo.create(order)
    except OrderError:
        logger.exception("create order failed")
        return _error(500, "failed to create order")
    return OrderReadDTO.model_validate(order)


@app.get(
    "/orders/{oid}",
    response_model=OrderReadDTO, response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
def get_order(oid: str, repo: Repo):
    """Fetch one order.

    Returns:
        200 with the order; 400 ``invalid id`` when ``oid`` is not a UUID;
        404 ``order not found``; 500 on any other storage failure.
    """
    try:
        order_id = _parse_id(oid)
    except OrderError as e:
        return _error(400, e.message)

    try:
        order = repo.get_by_id(order_id)
    except OrderError as e:
        if e.kind == ErrorKind.NOT_FOUND:
            return _error(404, "order not found")
        logger.exception("get order failed", extra={"order_id": str(order_id)})
        return _error(500, "failed to fetch order")
    return OrderReadDTO.model_validate(order)


@app.post(
    "/orders/{oid}/transitions",
    response_model=OrderReadDTO, response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
def transition_order(oid: str, body: TransitionDTO, repo: Repo):
    """Change the status of an order and persist it.

    When ``expected_version`` is sent it must match the stored version.
    A target equal to the current status succeeds without changes.

    Returns:
        200 with the stored order; 400 for a malformed id, an unknown
        status or a misplaced failure reason; 404 when the order does not
        exist; 409 for a forbidden transition, a terminal order or a
        version conflict; 500 on storage failure.
    """
    try:
        order_id = _parse_id(oid)
    except OrderError as e:
        return _error(400, e.message)

    try:
        order = repo.update_status(
            order_id,
            body.status,
            datetime.now(timezone.utc),
            expected_version=body.expected_version,
            reason_code=body.fail_reason_code,
            reason_detail=body.fail_reason_detail,
        )
    except OrderError as e:
        status_code = _TRANSITION_ERROR_STATUS.get(e.kind)
        if status_code is None:
            logger.exception("transition order failed", extra={"order_id": str(order_id)})
            return _error(500, "failed to update order")
        return _error(status_code, e.message)
    return OrderReadDTO.model_validate(order)
