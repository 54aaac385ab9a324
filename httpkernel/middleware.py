# FILE: httpkernel/middleware.py
from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram
from starlette.responses import Response as StarletteResponse

from .dispatch import Dispatcher
from .logging import bind
from .messages import CONTEXT_ATTRIBUTE, REQUEST_ID_ATTRIBUTE, Request, Response, ServerRequest
from .normalizer import ResponseNormalizer
from .routing import Router
from .utils import stringify


# --------------------------------
# Contracts
# --------------------------------


class RequestHandler(Protocol):
    def handle(self, request: ServerRequest) -> Response:
        ...


class Middleware(Protocol):
    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        ...


# --------------------------------
# Pipeline
# --------------------------------


class DefaultFallbackHandler:
    """
    Runs past the last stage: answers with the stashed handler result, or an
    empty 404 when nothing produced one.
    """

    def handle(self, request: ServerRequest) -> Response:
        if isinstance(request, Request) and request.has_handler_result():
            value = request.handler_result
            if isinstance(value, Response):
                return value
            if isinstance(value, StarletteResponse):
                return Response.from_starlette(value)
            return Response(body=stringify(value))
        return Response(status_code=404)


class _Next:
    """Handler that resumes the pipeline at a given stage."""

    __slots__ = ("_pipeline", "_index")

    def __init__(self, pipeline: "Pipeline", index: int):
        self._pipeline = pipeline
        self._index = index

    def handle(self, request: ServerRequest) -> Response:
        return self._pipeline._run(self._index, request)


class Pipeline:
    """
    Chain of responsibility over middleware stages.

    Stage i receives a handler that continues at stage i+1; past the last
    stage the fallback handler runs. The pipeline never catches failures.
    """

    def __init__(
        self,
        middlewares: Iterable[Middleware] = (),
        fallback: Optional[RequestHandler] = None,
    ):
        self.middlewares: List[Middleware] = list(middlewares)
        self.fallback: RequestHandler = fallback or DefaultFallbackHandler()

    def add(self, middleware: Middleware) -> "Pipeline":
        self.middlewares.append(middleware)
        return self

    def handle(self, request: ServerRequest) -> Response:
        return self._run(0, request)

    def _run(self, index: int, request: ServerRequest) -> Response:
        if index < len(self.middlewares):
            return self.middlewares[index].process(request, _Next(self, index + 1))
        return self.fallback.handle(request)


# --------------------------------
# Request adaptation
# --------------------------------


class RequestFactory:
    """Adapts a transport ServerRequest into a pipeline Request."""

    def create(self, request: ServerRequest, context: Optional[Mapping[str, Any]] = None) -> Request:
        adapted = Request.from_server_request(request)
        if context:
            adapted = adapted.with_attribute(CONTEXT_ATTRIBUTE, MappingProxyType(dict(context)))
        return adapted


class RequestFactoryMiddleware:
    def __init__(self, request_factory: Optional[RequestFactory] = None, context: Optional[Mapping[str, Any]] = None):
        self.request_factory = request_factory or RequestFactory()
        self.context = dict(context or {})

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        return handler.handle(self.request_factory.create(request, self.context))


def _as_request(request: ServerRequest) -> Request:
    return request if isinstance(request, Request) else Request.from_server_request(request)


# --------------------------------
# Request context middleware
# --------------------------------


@dataclass
class RequestContextConfig:
    """
    Request id handling.

    Upstream ids are accepted only when they match `id_format_regex`;
    anything else is replaced by a fresh uuid4 hex id.
    """

    request_id_header: str = "X-Request-Id"
    accept_upstream_request_id: bool = True
    id_format_regex: Optional[str] = r"^[0-9A-Za-z._-]{8,64}$"
    id_length: int = 32
    expose_to_response: bool = True


class RequestContextMiddleware:
    """
    Assigns a request id, stores it under `httpkernel.request_id`, binds it
    into the logging context as `req_id` and echoes it on the response
    without overwriting a value set downstream.
    """

    def __init__(self, config: Optional[RequestContextConfig] = None):
        self._cfg = config or RequestContextConfig()
        self._id_pattern = re.compile(self._cfg.id_format_regex) if self._cfg.id_format_regex else None

    def _upstream_id(self, request: ServerRequest) -> Optional[str]:
        if not self._cfg.accept_upstream_request_id:
            return None
        v = request.get_header_line(self._cfg.request_id_header).strip()
        if not v:
            return None
        if self._id_pattern is not None and not self._id_pattern.fullmatch(v):
            return None
        return v[: self._cfg.id_length]

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        rid = self._upstream_id(request) or uuid.uuid4().hex[: self._cfg.id_length]
        bind(req_id=rid)
        response = handler.handle(request.with_attribute(REQUEST_ID_ATTRIBUTE, rid))
        if self._cfg.expose_to_response and not response.has_header(self._cfg.request_id_header):
            response = response.with_header(self._cfg.request_id_header, rid)
        return response


# --------------------------------
# Routing / dispatch / normalization stages
# --------------------------------


class RouterMiddleware:
    def __init__(self, router: Router):
        self.router = router

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        request = _as_request(request)
        route = self.router.match(request.path)
        return handler.handle(request.with_route(route))


class DispatcherMiddleware:
    """Runs the matched handler and stashes its raw value for later stages."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        request = _as_request(request)
        result = self.dispatcher.dispatch(request.route, request, request.context())
        return handler.handle(request.with_handler_result(result))


class ResponseNormalizerMiddleware:
    """
    Lets the rest of the chain run, then normalizes the stashed handler
    value, or the downstream response when no value was stashed.
    """

    def __init__(self, normalizer: Optional[ResponseNormalizer] = None):
        self.normalizer = normalizer or ResponseNormalizer()

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        response = handler.handle(request)
        if isinstance(request, Request) and request.has_handler_result():
            return self.normalizer.normalize(request, request.handler_result)
        return self.normalizer.normalize(request, response)


# --------------------------------
# Metrics middleware
# --------------------------------


def _status_class(status: int) -> str:
    return f"{status // 100}xx"


class MetricsMiddleware:
    """
    Prometheus counter + histogram around the rest of the pipeline.

    Metrics:
      - Counter:   httpkernel_requests_total{method, status_class}
      - Histogram: httpkernel_request_latency_seconds{method}

    Failures are recorded with status_class="error" and re-raised.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        *,
        namespace: str = "httpkernel",
        buckets: Sequence[float] = Histogram.DEFAULT_BUCKETS,
    ):
        registry = registry if registry is not None else REGISTRY
        self.counter = Counter(
            f"{namespace}_requests_total",
            "Requests handled by the pipeline",
            ["method", "status_class"],
            registry=registry,
        )
        self.hist = Histogram(
            f"{namespace}_request_latency_seconds",
            "Pipeline latency in seconds",
            ["method"],
            buckets=tuple(buckets),
            registry=registry,
        )

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        t0 = time.perf_counter()
        status_class = "error"
        try:
            response = handler.handle(request)
            status_class = _status_class(response.status_code)
            return response
        finally:
            self.hist.labels(method=request.method).observe(time.perf_counter() - t0)
            self.counter.labels(method=request.method, status_class=status_class).inc()
