"""Middleware that assigns and propagates a request identifier.

Every incoming HTTP request receives a request identifier. The identifier
is read from the incoming ``X-Request-ID`` header when provided by the
client, or generated server-side (UUID4) otherwise. It is stored on
``request.state`` and in a context variable so code running downstream
(log filters in particular) can access it without passing it explicitly.

Behavior contract:
- If the incoming request contains the ``X-Request-ID`` header, that value
  is reused as the request id.
- Otherwise a new UUIDv4 is generated.
- The response includes the same id in the ``X-Request-ID`` header.
- One ``request handled`` log line is written per request.

CORS is handled by Starlette's ``CORSMiddleware``, installed outside the
request id stage so preflight requests are answered first.
"""

import contextvars
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import config

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger("order_service.access")


async def add_request_id(request: Request, call_next):
    """Set the request id for the duration of the request and log it."""
    rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = rid
    token = REQUEST_ID_CTX.set(rid)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        logger.info(
            "request handled",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        REQUEST_ID_CTX.reset(token)
    response.headers[REQUEST_ID_HEADER] = rid
    return response


def install_middleware(app: FastAPI) -> None:
    """Register the request id stage and, around it, CORS handling."""
    app.middleware("http")(add_request_id)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_methods=config.CORS_ALLOW_METHODS,
        allow_headers=config.CORS_ALLOW_HEADERS,
    )
