# FILE: httpkernel/exceptions.py
"""
Failure taxonomy of the request pipeline.

Only the kernel boundary translates these into responses; stages raise and
let them propagate.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .enums import HttpStatus


class HttpKernelError(Exception):
    """Base class for pipeline failures."""

    code: Any = 0

    def __init__(self, message: str = "", *, code: Any = 0):
        super().__init__(message)
        self.code = code


class RouteNotFoundError(HttpKernelError):
    """Raised by a router when no route matches a path or route name."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"No route found for {path!r}.")


class DispatchError(HttpKernelError):
    """Raised when a handler descriptor is unsupported or cannot be invoked."""

    pass


class HttpError(HttpKernelError):
    """
    Self-describing HTTP failure.

    The problem factory uses `uri_reference`, `title`, `status` and `context`
    verbatim; `headers` are applied to the final error response.
    """

    uri_reference: str = "about:blank"
    title: Optional[str] = None
    status: HttpStatus = HttpStatus.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[HttpStatus] = None,
        title: Optional[str] = None,
        uri_reference: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, Any]] = None,
        code: Any = 0,
    ):
        super().__init__(message, code=code)
        if status is not None:
            self.status = HttpStatus(status)
        if title is not None:
            self.title = title
        if uri_reference is not None:
            self.uri_reference = uri_reference
        self.context: Dict[str, Any] = dict(context or {})
        self.headers: Dict[str, str] = {str(k): str(v) for k, v in (headers or {}).items()}

    def get_title(self) -> str:
        return self.title if self.title is not None else self.status.reason_phrase


class TooManyRequestsError(HttpError):
    """Rate limit exceeded (RFC 6585, section 4)."""

    uri_reference = "https://tools.ietf.org/html/rfc6585#section-4"
    title = "Too Many Requests"
    status = HttpStatus.TOO_MANY_REQUESTS

    def __init__(
        self,
        message: str = "Too many requests.",
        *,
        headers: Optional[Mapping[str, Any]] = None,
        code: Any = 0,
    ):
        super().__init__(message, headers=headers, code=code)
