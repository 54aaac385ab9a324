# FILE: httpkernel/middleware_throttle.py
from __future__ import annotations

import ipaddress
import logging
from typing import Callable, Dict, Optional, Tuple

from blake3 import blake3

from .exceptions import TooManyRequestsError
from .messages import Response, ServerRequest
from .middleware import RequestHandler
from .ratelimit import RateLimit, RateLimiter

_log = logging.getLogger(__name__)

# Headers carrying the real client address, in order of preference.
_IP_HEADERS: Tuple[str, ...] = (
    "cf-connecting-ip",
    "x-forwarded-for",
    "x-real-ip",
    "x-cluster-client-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
    "client-ip",
)


def is_public_ip(value: str) -> bool:
    try:
        return ipaddress.ip_address(value.strip()).is_global
    except ValueError:
        return False


def _candidates(value: str):
    for part in value.split(","):
        part = part.strip()
        # RFC 7239: `for=1.2.3.4;proto=https`
        for token in part.split(";"):
            token = token.strip()
            if token.lower().startswith("for="):
                token = token[4:].strip('"')
                if token.startswith("["):
                    token = token[1:].split("]", 1)[0]
                yield token
                break
        else:
            yield part


def client_ip(request: ServerRequest) -> str:
    """
    First public address found in the proxy headers, falling back to
    REMOTE_ADDR, then "unknown".
    """
    for name in _IP_HEADERS:
        value = request.get_header_line(name)
        if not value:
            continue
        for ip in _candidates(value):
            if is_public_ip(ip):
                return ip
    remote = request.server_params.get("REMOTE_ADDR")
    return str(remote) if remote else "unknown"


class ThrottleMiddleware:
    """
    Token-bucket throttling keyed by a blake3 hash of the client address.

    Rejected requests raise TooManyRequestsError carrying Retry-After,
    X-RateLimit-Reset, X-RateLimit-Limit and X-RateLimit-Remaining;
    accepted responses get the limit/remaining pair.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        cost: float = 1.0,
        should_process: Optional[Callable[[ServerRequest], bool]] = None,
    ):
        self.rate_limiter = rate_limiter
        self.cost = float(cost)
        self.should_process = should_process

    def identifier(self, request: ServerRequest) -> str:
        return "throttle_" + blake3(client_ip(request).encode("utf-8")).hexdigest()

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        if self.should_process is not None and not self.should_process(request):
            return handler.handle(request)

        limit = self.rate_limiter.consume(self.identifier(request), self.cost)
        self.enforce(limit)

        response = handler.handle(request)
        for name, value in self.headers(limit).items():
            response = response.with_header(name, value)
        return response

    @staticmethod
    def headers(limit: RateLimit) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(limit.limit),
            "X-RateLimit-Remaining": str(limit.remaining),
        }

    def enforce(self, limit: RateLimit) -> None:
        if limit.accepted:
            return
        headers = self.headers(limit)
        headers["Retry-After"] = str(limit.retry_after)
        headers["X-RateLimit-Reset"] = str(limit.reset_at)
        _log.info("request throttled", extra={"retry_after": limit.retry_after})
        raise TooManyRequestsError(headers=headers)
