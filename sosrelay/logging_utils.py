"""
Structured JSON logging shared by the command service and the relay.

Every record carries ts, level, service and, inside a request, request_id.
RequestLoggingMiddleware writes one "Request completed" line per HTTP
request; handlers add fields to that line with annotate_request().
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from sosrelay.metrics import record_http_request

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

DEFAULT_SERVICE = "sosrelay"

# Second component of a sosrelay.* logger name -> service label
SERVICE_BY_MODULE = {
    "command": "command",
    "command_main": "command",
    "fanout": "command",
    "resolver": "command",
    "storage": "command",
    "wire": "command",
    "relay": "relay",
    "relay_main": "relay",
    "relay_store": "relay",
    "retry_queue": "relay",
    "forwarder": "relay",
}


def service_for(logger_name: str) -> str:
    """
    Service label for a logger name.

    Both apps can live in one process (tests, a combined dev server), so the
    label comes from the emitting module rather than from whichever app
    configured logging last.
    """
    parts = logger_name.split(".")
    if len(parts) > 1 and parts[0] == "sosrelay":
        return SERVICE_BY_MODULE.get(parts[1], DEFAULT_SERVICE)
    return DEFAULT_SERVICE


def clear_request_id() -> None:
    """Detach the current context from any request, e.g. in a background task."""
    _request_id.set(None)


class ServiceJsonFormatter(jsonlogger.JsonFormatter):

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        # %(ts)s in the format string leaves a None placeholder
        if not log_record.get("ts"):
            log_record["ts"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = record.levelname
        if not log_record.get("service"):
            log_record["service"] = service_for(record.name)
        request_id = _request_id.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Send all logs, uvicorn's included, to stdout as JSON lines."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ServiceJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        uv = logging.getLogger(name)
        uv.handlers = [handler]
        uv.propagate = False
    # Replaced by RequestLoggingMiddleware
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
    Assigns a request id, times the request, records HTTP metrics and logs
    method, path, status and latency_ms plus any fields the handler attached.
    WebSocket connections bypass this middleware.
    """

    def __init__(self, app, service: str):
        super().__init__(app)
        self.service = service
        self.log = logging.getLogger(f"sosrelay.{service}.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
        request.state.log_fields = {}
        token = _request_id.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers["X-Request-ID"] = request_id

            path = request.url.path
            if path != "/metrics":
                record_http_request(self.service, request.method, path, response.status_code, elapsed)

            self.log.log(
                _level_for(response.status_code),
                "Request completed",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "latency_ms": round(elapsed * 1000, 2),
                    **request.state.log_fields,
                },
            )
            return response
        finally:
            _request_id.reset(token)


def annotate_request(request: Request, **fields) -> None:
    """
    Add fields (result, device_id, message_id, ...) to the request's log line.
    None values are skipped.
    """
    log_fields = getattr(request.state, "log_fields", None)
    if log_fields is None:
        log_fields = request.state.log_fields = {}
    log_fields.update({k: v for k, v in fields.items() if v is not None})
