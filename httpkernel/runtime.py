# FILE: httpkernel/runtime.py
from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.requests import Request as StarletteRequest

from .config import Settings
from .enums import HttpStatus
from .exceptions import HttpError
from .kernel import Kernel
from .logging import RequestLogMiddleware, configure_json_logging
from .messages import Response, ServerRequest, UploadedFile

_log = logging.getLogger(__name__)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
_FIELD_PATH = re.compile(r"\[([^\]]*)\]")


# -------------------------
# Request building helpers
# -------------------------


def _multi_dict(items: List[Tuple[str, Any]]) -> Dict[str, Any]:
    """Single occurrences stay scalar; repeated keys become lists."""
    out: Dict[str, Any] = {}
    for k, v in items:
        if k in out:
            cur = out[k]
            if isinstance(cur, list):
                cur.append(v)
            else:
                out[k] = [cur, v]
        else:
            out[k] = v
    return out


def _field_path(name: str) -> List[str]:
    """`a[b][]` -> ["a", "b", ""]."""
    head, bracket, _ = name.partition("[")
    if not bracket or not head:
        return [name]
    return [head] + _FIELD_PATH.findall(name[len(head):])


def _nest(target: Dict[str, Any], name: str, value: Any) -> None:
    """Store `value` under a bracketed field name, creating nested containers."""
    keys = _field_path(name)
    cur: Any = target
    for i, key in enumerate(keys):
        last = i == len(keys) - 1
        if isinstance(cur, list):
            if last:
                cur.append(value)
                return
            nxt: Any = [] if keys[i + 1] == "" else {}
            cur.append(nxt)
            cur = nxt
            continue
        if last:
            cur[key] = value
            return
        if key not in cur or not isinstance(cur[key], (dict, list)):
            cur[key] = [] if keys[i + 1] == "" else {}
        cur = cur[key]


def _server_params(request: StarletteRequest) -> Dict[str, Any]:
    scope = request.scope
    server = scope.get("server") or ("localhost", 80)
    query = scope.get("query_string", b"").decode("latin-1")
    uri = request.url.path + (f"?{query}" if query else "")
    params: Dict[str, Any] = {
        "REQUEST_METHOD": request.method,
        "REQUEST_URI": uri,
        "QUERY_STRING": query,
        "SERVER_NAME": server[0],
        "SERVER_PORT": server[1],
        "SERVER_PROTOCOL": f"HTTP/{scope.get('http_version', '1.1')}",
        "REQUEST_TIME": int(time.time()),
        "REMOTE_ADDR": request.client.host if request.client else None,
        "REMOTE_PORT": request.client.port if request.client else None,
    }
    if request.url.scheme == "https":
        params["HTTPS"] = "on"
    return params


async def build_server_request(request: StarletteRequest) -> ServerRequest:
    """Adapt a Starlette request into a transport-level ServerRequest."""
    body = await request.body()
    parsed_body: Optional[Dict[str, Any]] = None
    files: Dict[str, Any] = {}

    content_type = request.headers.get("content-type", "")
    if request.method in ("POST", "PUT", "PATCH", "DELETE") and content_type.startswith(_FORM_TYPES):
        fields: List[Tuple[str, Any]] = []
        async with request.form() as form:
            for name, value in form.multi_items():
                if isinstance(value, UploadFile):
                    content = await value.read()
                    _nest(
                        files,
                        name,
                        UploadedFile(
                            filename=value.filename or "",
                            content=content,
                            content_type=value.content_type or "application/octet-stream",
                        ),
                    )
                else:
                    fields.append((name, value))
        parsed_body = _multi_dict(fields)

    return ServerRequest(
        method=request.method,
        uri=request.url,
        headers=request.headers,
        body=body,
        protocol_version=str(request.scope.get("http_version", "1.1")),
        server_params=_server_params(request),
        query_params=_multi_dict(request.query_params.multi_items()),
        parsed_body=parsed_body,
        uploaded_files=files,
        cookie_params=dict(request.cookies),
    )


def _raw_headers(response: Response) -> List[Tuple[bytes, bytes]]:
    raw = [(k.lower(), v) for k, v in response.header_lines()]
    if not response.has_header("content-length"):
        raw.append((b"content-length", str(len(response.body)).encode("latin-1")))
    return raw


# -------------------------
# ASGI application
# -------------------------


class Runtime:
    """
    ASGI application around a Kernel.

    The request body and form are read on the event loop, then the
    synchronous pipeline runs in Starlette's threadpool. Every header value
    is sent as its own header line.
    """

    def __init__(self, kernel: Kernel):
        self.kernel = kernel

    async def __call__(self, scope, receive, send):
        if scope["type"] == "lifespan":
            return await self._lifespan(receive, send)
        if scope["type"] != "http":
            raise RuntimeError(f"Unsupported ASGI scope type: {scope['type']!r}")

        request = StarletteRequest(scope, receive)
        try:
            server_request = await build_server_request(request)
        except Exception as exc:
            _log.warning("could not read request body: %s %s", request.method, request.url.path, exc_info=True)
            failure = HttpError("Malformed request body.", status=HttpStatus.BAD_REQUEST)
            failure.__cause__ = exc
            bare = ServerRequest(
                method=request.method,
                uri=request.url,
                headers=request.headers,
                server_params=_server_params(request),
            )
            response = await run_in_threadpool(self.kernel.handle_failure, failure, bare)
        else:
            response = await run_in_threadpool(self.kernel.handle, server_request)

        await send(
            {
                "type": "http.response.start",
                "status": response.status_code,
                "headers": _raw_headers(response),
            }
        )
        await send({"type": "http.response.body", "body": response.body})

    @staticmethod
    async def _lifespan(receive, send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return


def create_app(kernel: Kernel, *, log_requests: bool = True):
    app = Runtime(kernel)
    if log_requests:
        return RequestLogMiddleware(app)
    return app


def serve(
    kernel: Kernel,
    settings: Optional[Settings] = None,
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Run the kernel under uvicorn."""
    settings = settings or Settings()
    if settings.log_json:
        configure_json_logging(settings.log_level, env=settings.environment)
    _log.info("serving on %s:%d", host, port)
    uvicorn.run(
        create_app(kernel),
        host=host,
        port=port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
