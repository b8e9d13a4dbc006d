"""
Structured JSON logging and per-request access logs.

Every record carries ts, level, name and message; records emitted while a
request is being served also carry its request_id.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger.json import JsonFormatter

from review_queue.metrics import record_http_request


request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_ctx.get()


class RequestIdFilter(logging.Filter):
    """Stamp records with the id of the request being served, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_ctx.get()
        if request_id and not hasattr(record, "request_id"):
            record.request_id = request_id
        return True


def build_json_handler(stream=None) -> logging.Handler:
    """Handler writing one JSON object per record, timestamps in ISO-8601 UTC."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level"},
        timestamp="ts",
    ))
    handler.addFilter(RequestIdFilter())
    return handler


def setup_logging(log_level: str = "INFO"):
    """
    Send every log record, uvicorn's included, through a single JSON handler
    on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    handler = build_json_handler()

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False

    # RequestLoggingMiddleware writes the access log
    logging.getLogger("uvicorn.access").disabled = True

    return root


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an X-Request-ID, count it in metrics and write one
    "Request completed" line with method, path, status and latency_ms, plus
    whatever the route attached through log_queue_data.
    """

    access_logger = logging.getLogger("review_queue.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            self._record(request, response.status_code, time.perf_counter() - started)
            return response
        finally:
            request_id_ctx.reset(token)

    def _record(self, request: Request, status_code: int, elapsed: float) -> None:
        path = request.url.path
        # /metrics would count its own scrapes
        if path != "/metrics":
            record_http_request(request.method, path, status_code, elapsed)

        fields = {
            "method": request.method,
            "path": path,
            "status": status_code,
            "latency_ms": round(elapsed * 1000, 2),
            **getattr(request.state, "queue_log_data", {}),
        }
        self.access_logger.log(_level_for(status_code), "Request completed", extra=fields)


def log_queue_data(
    request: Request,
    operation: str,
    result: str,
    pr: Optional[str] = None,
    channel: Optional[str] = None,
):
    """
    Attach queue-specific fields to the request's access log line.

    Args:
        request: FastAPI request object
        operation: enqueue, claim, list, remove, score or admit
        result: Operation outcome (created, duplicate, claimed, none, ...)
        pr: Item identifier involved, if any
        channel: Channel involved, if any
    """
    queue_data = {"operation": operation, "result": result}

    if pr is not None:
        queue_data["pr"] = pr

    if channel is not None:
        queue_data["channel"] = channel

    request.state.queue_log_data = queue_data
