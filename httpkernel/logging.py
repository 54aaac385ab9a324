# FILE: httpkernel/logging.py
"""
Structured JSON logging for the kernel.

Request-scoped fields (req_id, path, method) are bound into a context
variable and merged into every line formatted while they are bound. The
ASGI `RequestLogMiddleware` writes one "http.finish" line per request.
"""
from __future__ import annotations

import contextvars
import datetime as _dt
import json
import logging
import logging.config
import os
import sys
import time
import traceback
from typing import Any, Dict, FrozenSet, Mapping, Optional

_LOG_SCHEMA = os.environ.get("HTTPKERNEL_LOG_SCHEMA", "httpkernel.log.v1")
_LOG_SERVICE = os.environ.get("HTTPKERNEL_SERVICE", "httpkernel")
_LOG_ENV = os.environ.get("HTTPKERNEL_ENV", "dev")

try:
    _MAX_FIELD = max(512, int(os.environ.get("HTTPKERNEL_LOG_MAX_FIELD", "8192")))
except ValueError:
    _MAX_FIELD = 8192

_REDACT_KEYS: FrozenSet[str] = frozenset(
    k.strip().lower() for k in os.environ.get("HTTPKERNEL_LOG_REDACT", "").split(",") if k.strip()
) or frozenset(
    (
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "x-auth-token",
        "x-csrf-token",
    )
)

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS: FrozenSet[str] = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_ENVELOPE_KEYS = ("req_id", "path", "method", "status", "latency_ms", "bytes_in", "bytes_out")

_REQUEST_ID_HEADER = b"x-request-id"


# =============================================================================
# Bound context
# =============================================================================

_fields: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("httpkernel_log_fields", default={})


def bind(**fields: Any) -> None:
    """Bind fields for the current context; None values are ignored."""
    _fields.set({**_fields.get(), **{k: v for k, v in fields.items() if v is not None}})


def unbind(*keys: str) -> None:
    _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


def reset() -> None:
    _fields.set({})


def context() -> Dict[str, Any]:
    return dict(_fields.get())


def scrub_dict(d: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Replace secret-bearing keys (headers, tokens) with "***", recursively."""
    out: Dict[str, Any] = {}
    for k, v in (d or {}).items():
        if str(k).lower() in _REDACT_KEYS:
            out[k] = "***"
        elif isinstance(v, Mapping):
            out[k] = scrub_dict(v)
        else:
            out[k] = v
    return out


def _clip(v: Any) -> Any:
    if isinstance(v, str) and len(v) > _MAX_FIELD:
        return v[:_MAX_FIELD] + "...<truncated>"
    return v


# =============================================================================
# Formatter
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    One compact JSON object per record.

    Envelope: schema, service, env, ts, lvl, logger, msg; then req_id, path,
    method, status, latency_ms, bytes_in and bytes_out when known (the bound
    context wins over the record); exc_type, exc_message and stack when
    exc_info is attached. Other `extra=` attributes go under "meta".
    """

    def __init__(self, *, include_stack: bool = True, env: Optional[str] = None):
        super().__init__()
        self.include_stack = include_stack
        self.env = env or _LOG_ENV

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        bound = context()
        evt: Dict[str, Any] = {
            "schema": _LOG_SCHEMA,
            "service": _LOG_SERVICE,
            "env": self.env,
            "ts": _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": _clip(record.getMessage()),
        }
        for key in _ENVELOPE_KEYS:
            value = bound.get(key, getattr(record, key, None))
            if value is not None:
                evt[key] = _clip(value)

        if record.exc_info and self.include_stack:
            etype, evalue, tb = record.exc_info
            evt["exc_type"] = getattr(etype, "__name__", str(etype))
            evt["exc_message"] = _clip(str(evalue))
            evt["stack"] = "".join(traceback.format_exception(etype, evalue, tb))[:_MAX_FIELD]

        meta = {
            k: _clip(v)
            for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and k not in evt and not k.startswith("_")
        }
        if meta:
            evt["meta"] = meta
        return json.dumps(evt, ensure_ascii=False, separators=(",", ":"), default=str)


def configure_json_logging(
    level: str = "INFO",
    *,
    include_uvicorn: bool = True,
    stream: Any = None,
    include_stack: bool = True,
    env: Optional[str] = None,
) -> logging.Logger:
    """Route the root logger (and uvicorn's loggers) through one JSON handler."""
    lvl = (level or "INFO").upper()
    if not isinstance(logging.getLevelName(lvl), int):
        lvl = "INFO"
    own = {"level": lvl, "handlers": ["json"], "propagate": False}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JSONFormatter, "include_stack": include_stack, "env": env}},
            "handlers": {
                "json": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "level": lvl,
                    "stream": stream or sys.stderr,
                }
            },
            "root": {"level": lvl, "handlers": ["json"]},
            "loggers": {name: dict(own) for name in ("uvicorn", "uvicorn.error", "uvicorn.access")}
            if include_uvicorn
            else {},
        }
    )
    return logging.getLogger()


# =============================================================================
# ASGI access log
# =============================================================================


class RequestLogMiddleware:
    """
    ASGI middleware writing one "http.finish" line per request with req_id,
    method, path, status, latency_ms and bytes_in/out.

    The request id is read back from the `X-Request-Id` response header, since
    the pipeline runs in a worker thread whose bound context is not shared
    with this coroutine. Bodies are never logged, only their sizes; headers
    are logged through `scrub_dict` when `log_headers` is on.
    """

    def __init__(self, app, *, logger_name: str = "httpkernel.http", log_headers: bool = False):
        self.app = app
        self.log = logging.getLogger(logger_name)
        self.log_headers = bool(log_headers)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        bind(path=scope.get("path", ""), method=scope.get("method", ""))
        if self.log_headers:
            headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers") or []}
            self.log.info("http.start", extra={"headers": scrub_dict(headers)})

        seen = {"status": None, "bytes_in": 0, "bytes_out": 0}
        started = time.perf_counter()

        async def receive_counted():
            message = await receive()
            if message["type"] == "http.request":
                seen["bytes_in"] += len(message.get("body") or b"")
            return message

        async def send_counted(message):
            if message["type"] == "http.response.start":
                seen["status"] = message.get("status")
                for name, value in message.get("headers") or []:
                    if name.lower() == _REQUEST_ID_HEADER:
                        bind(req_id=value.decode("latin-1"))
            elif message["type"] == "http.response.body":
                seen["bytes_out"] += len(message.get("body") or b"")
            await send(message)

        try:
            await self.app(scope, receive_counted, send_counted)
        finally:
            self.log.info(
                "http.finish",
                extra={
                    "status": seen["status"],
                    "latency_ms": round((time.perf_counter() - started) * 1000.0, 3),
                    "bytes_in": seen["bytes_in"],
                    "bytes_out": seen["bytes_out"],
                },
            )
            unbind("req_id", "path", "method")


__all__ = [
    "bind",
    "unbind",
    "reset",
    "context",
    "configure_json_logging",
    "JSONFormatter",
    "RequestLogMiddleware",
    "scrub_dict",
]
