# FILE: httpkernel/messages.py
from __future__ import annotations

import asyncio
import dataclasses
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from starlette.datastructures import URL, Headers, MutableHeaders
from starlette.responses import FileResponse, StreamingResponse

from .enums import ContentType, HttpStatus
from .negotiation import ContentNegotiator
from .utils import compact_json, merge_mappings, stringify

if TYPE_CHECKING:  # pragma: no cover
    from .routing import RouteMatch


# Namespaced attribute keys shared between stages.
CONTEXT_ATTRIBUTE = "httpkernel.context"
REQUEST_ID_ATTRIBUTE = "httpkernel.request_id"

HeadersInit = Union[Headers, Mapping[str, Any], Iterable[Tuple[str, Any]], None]


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

_NEGOTIATOR = ContentNegotiator()


# -------------------------
# Header helpers
# -------------------------


def make_headers(value: HeadersInit = None) -> Headers:
    """
    Build immutable, case-insensitive headers.

    Mapping values may be lists to express repeated header lines.
    """
    if isinstance(value, Headers):
        return Headers(raw=list(value.raw))
    raw: List[Tuple[bytes, bytes]] = []
    items: Iterable[Tuple[str, Any]]
    if value is None:
        items = ()
    elif isinstance(value, Mapping):
        items = value.items()
    else:
        items = value
    for name, v in items:
        values = v if isinstance(v, (list, tuple)) else [v]
        for one in values:
            raw.append((str(name).lower().encode("latin-1"), str(one).encode("latin-1")))
    return Headers(raw=raw)


def _set_header(headers: Headers, name: str, value: Any) -> Headers:
    mh = MutableHeaders(raw=list(headers.raw))
    values = value if isinstance(value, (list, tuple)) else [value]
    if name in mh:
        del mh[name]
    for v in values:
        mh.append(name, str(v))
    return Headers(raw=list(mh.raw))


def _add_header(headers: Headers, name: str, value: Any) -> Headers:
    mh = MutableHeaders(raw=list(headers.raw))
    values = value if isinstance(value, (list, tuple)) else [value]
    for v in values:
        mh.append(name, str(v))
    return Headers(raw=list(mh.raw))


def _drop_header(headers: Headers, name: str) -> Headers:
    mh = MutableHeaders(raw=list(headers.raw))
    if name in mh:
        del mh[name]
    return Headers(raw=list(mh.raw))


def _freeze(value: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(value, MappingProxyType):
        return value
    return MappingProxyType(dict(value or {}))


async def _drain(iterator: Any, charset: str = "utf-8") -> bytes:
    chunks: List[bytes] = []
    async for chunk in iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else str(chunk).encode(charset))
    return b"".join(chunks)


# -------------------------
# Uploaded files
# -------------------------


@dataclass(frozen=True)
class UploadedFile:
    """A file received in a multipart body. `error` is 0 when the upload is complete."""

    filename: str
    content: bytes = b""
    content_type: str = ContentType.OCTET_STREAM.value
    error: int = 0

    @property
    def size(self) -> int:
        return len(self.content)

    def read(self) -> bytes:
        return self.content

    def save(self, path: str) -> None:
        with open(path, "wb") as f:
            f.write(self.content)


# -------------------------
# Requests
# -------------------------


@dataclass(frozen=True, eq=False)
class ServerRequest:
    """
    Transport-level request as produced by the runtime.

    Every `with_*` returns a new value; mappings are exposed read-only so
    earlier snapshots stay valid for diagnostics.
    """

    method: str = "GET"
    uri: URL = field(default_factory=lambda: URL("/"))
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    protocol_version: str = "1.1"
    server_params: Mapping[str, Any] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    parsed_body: Any = None
    uploaded_files: Mapping[str, Any] = field(default_factory=dict)
    cookie_params: Mapping[str, str] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.uri, URL):
            object.__setattr__(self, "uri", URL(str(self.uri)))
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", make_headers(self.headers))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))
        object.__setattr__(self, "method", str(self.method).upper())
        for name in ("server_params", "query_params", "uploaded_files", "cookie_params", "attributes"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))
        if isinstance(self.parsed_body, Mapping):
            object.__setattr__(self, "parsed_body", _freeze(self.parsed_body))

    # ------- functional updates -------

    def replace(self, **changes: Any):
        return dataclasses.replace(self, **changes)

    def with_method(self, method: str):
        return self.replace(method=method)

    def with_uri(self, uri: Union[str, URL]):
        return self.replace(uri=URL(str(uri)))

    def with_header(self, name: str, value: Any):
        return self.replace(headers=_set_header(self.headers, name, value))

    def with_added_header(self, name: str, value: Any):
        return self.replace(headers=_add_header(self.headers, name, value))

    def without_header(self, name: str):
        return self.replace(headers=_drop_header(self.headers, name))

    def with_body(self, body: Union[bytes, str]):
        return self.replace(body=body)

    def with_protocol_version(self, version: str):
        return self.replace(protocol_version=version)

    def with_query_params(self, query: Mapping[str, Any]):
        return self.replace(query_params=query)

    def with_parsed_body(self, data: Any):
        return self.replace(parsed_body=data)

    def with_uploaded_files(self, files: Mapping[str, Any]):
        return self.replace(uploaded_files=files)

    def with_cookie_params(self, cookies: Mapping[str, str]):
        return self.replace(cookie_params=cookies)

    def with_attribute(self, name: str, value: Any):
        attrs = dict(self.attributes)
        attrs[name] = value
        return self.replace(attributes=attrs)

    def without_attribute(self, name: str):
        attrs = dict(self.attributes)
        attrs.pop(name, None)
        return self.replace(attributes=attrs)

    # ------- accessors -------

    @property
    def path(self) -> str:
        return self.uri.path or "/"

    def get_attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def get_header(self, name: str) -> List[str]:
        return self.headers.getlist(name)

    def get_header_line(self, name: str) -> str:
        return ", ".join(self.headers.getlist(name))


@dataclass(frozen=True, eq=False)
class Request(ServerRequest):
    """
    Pipeline request with ergonomic accessors.

    `route` and `handler_result` are the two facts most stages exchange, so
    they live as fields instead of in the attribute bag.
    """

    route: Optional["RouteMatch"] = None
    handler_result: Any = UNSET

    @classmethod
    def from_server_request(cls, request: ServerRequest) -> "Request":
        if isinstance(request, cls):
            return request
        return cls(
            method=request.method,
            uri=request.uri,
            headers=request.headers,
            body=request.body,
            protocol_version=request.protocol_version,
            server_params=request.server_params,
            query_params=request.query_params,
            parsed_body=request.parsed_body,
            uploaded_files=request.uploaded_files,
            cookie_params=request.cookie_params,
            attributes=request.attributes,
        )

    def with_route(self, route: "RouteMatch") -> "Request":
        return self.replace(route=route)

    def with_handler_result(self, value: Any) -> "Request":
        return self.replace(handler_result=value)

    def has_handler_result(self) -> bool:
        return self.handler_result is not UNSET

    # ------- input helpers -------

    def query(self, key: str, default: Any = None) -> Any:
        return self.query_params.get(key, default)

    def post(self, key: str, default: Any = None) -> Any:
        if not isinstance(self.parsed_body, Mapping):
            return default
        return self.parsed_body.get(key, default)

    def header(self, name: str, default: str = "") -> str:
        values = self.headers.getlist(name)
        return values[0] if values else default

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookie_params.get(name, default)

    def is_json(self) -> bool:
        return "application/json" in self.get_header_line("content-type")

    def json(self) -> Optional[Dict[str, Any]]:
        if not self.is_json():
            return None
        try:
            data = json.loads(self.body.decode("utf-8") or "null")
        except (ValueError, UnicodeDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def all(self) -> Dict[str, Any]:
        return merge_mappings(self.query_params, self.parsed_body, self.json())

    def input(self, key: str, default: Any = None) -> Any:
        return self.all().get(key, default)

    def only(self, keys: Sequence[str]) -> Dict[str, Any]:
        data = self.all()
        return {k: data[k] for k in keys if k in data}

    def file(self, key: str) -> Any:
        return self.uploaded_files.get(key)

    def has_file(self, key: str) -> bool:
        f = self.file(key)
        return isinstance(f, UploadedFile) and f.error == 0

    def files(self) -> Mapping[str, Any]:
        return self.uploaded_files

    # ------- negotiation -------

    def get_preferred_content_type(self) -> ContentType:
        return _NEGOTIATOR.resolve(self)

    def get_preferred_format(self) -> str:
        return _NEGOTIATOR.preferred_format(self)

    def is_api_request(self) -> bool:
        return _NEGOTIATOR.is_api_path(self.path)

    def is_xml_http_request(self) -> bool:
        return _NEGOTIATOR.is_xml_http_request(self)

    # ------- pipeline facts -------

    def context(self) -> Mapping[str, Any]:
        return self.attributes.get(CONTEXT_ATTRIBUTE) or {}

    @property
    def request_id(self) -> Optional[str]:
        return self.attributes.get(REQUEST_ID_ATTRIBUTE)


# -------------------------
# Responses
# -------------------------


@dataclass(frozen=True, eq=False)
class Response:
    """
    Immutable HTTP response.

    The status class is always derived from `status_code`.
    """

    status_code: int = 200
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    protocol_version: str = "1.1"
    reason_phrase: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", make_headers(self.headers))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))
        object.__setattr__(self, "status_code", int(self.status_code))

    @classmethod
    def from_starlette(cls, response: Any) -> "Response":
        """
        Convert a Starlette response, buffering its body.

        FileResponse bodies are read from disk; StreamingResponse iterators
        are drained on a private event loop, so this must not be called from
        a thread that is already running one.
        """
        raw = [(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"]
        if isinstance(response, FileResponse):
            with open(response.path, "rb") as f:
                body = f.read()
        elif isinstance(response, StreamingResponse):
            body = asyncio.run(_drain(response.body_iterator))
        else:
            body = bytes(getattr(response, "body", b"") or b"")
        return cls(status_code=response.status_code, headers=Headers(raw=raw), body=body)

    # ------- functional updates -------

    def replace(self, **changes: Any) -> "Response":
        return dataclasses.replace(self, **changes)

    def with_status(self, code: int, reason_phrase: Optional[str] = None) -> "Response":
        return self.replace(status_code=int(code), reason_phrase=reason_phrase)

    def with_http_status(self, status: HttpStatus) -> "Response":
        status = HttpStatus(status)
        return self.with_status(status.value, status.reason_phrase)

    def with_header(self, name: str, value: Any) -> "Response":
        return self.replace(headers=_set_header(self.headers, name, value))

    def with_added_header(self, name: str, value: Any) -> "Response":
        return self.replace(headers=_add_header(self.headers, name, value))

    def without_header(self, name: str) -> "Response":
        return self.replace(headers=_drop_header(self.headers, name))

    def with_body(self, body: Union[bytes, str]) -> "Response":
        return self.replace(body=body)

    def with_protocol_version(self, version: str) -> "Response":
        return self.replace(protocol_version=version)

    def with_content_type(self, content_type: ContentType) -> "Response":
        return self.with_header("Content-Type", content_type.header_value())

    def as_text(self, data: Any, content_type: ContentType = ContentType.PLAIN) -> "Response":
        return self.with_content_type(content_type).with_body(stringify(data))

    def as_html(self, html: Any) -> "Response":
        return self.as_text(html, ContentType.HTML)

    def as_json(self, data: Any) -> "Response":
        """Raises TypeError/ValueError when `data` cannot be encoded."""
        return self.as_text(compact_json(data), ContentType.JSON)

    def redirect(self, url: str, status: HttpStatus = HttpStatus.FOUND) -> "Response":
        return self.with_header("Location", url).with_http_status(status).with_body(b"")

    # ------- accessors -------

    @property
    def reason(self) -> str:
        if self.reason_phrase:
            return self.reason_phrase
        status = HttpStatus.try_from(self.status_code)
        return status.reason_phrase if status is not None else ""

    @property
    def http_status(self) -> Optional[HttpStatus]:
        return HttpStatus.try_from(self.status_code)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def get_header(self, name: str) -> List[str]:
        return self.headers.getlist(name)

    def get_header_line(self, name: str) -> str:
        return ", ".join(self.headers.getlist(name))

    def header_lines(self) -> List[Tuple[bytes, bytes]]:
        """One (name, value) pair per header line, repeated names kept apart."""
        return list(self.headers.raw)

    def is_informational(self) -> bool:
        return 100 <= self.status_code < 200

    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

    def is_redirection(self) -> bool:
        return 300 <= self.status_code < 400

    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    def is_error(self) -> bool:
        return self.status_code >= 400
