# FILE: httpkernel/kernel.py
"""
Request kernel.

Builds the canonical pipeline and owns the single failure boundary: any
exception escaping the pipeline is logged, turned into a problem document
and rendered in the format the caller prefers.

    Metrics? -> StaticFiles? -> RequestFactory -> RequestContext
             -> Throttle? -> Router -> Dispatcher -> ResponseNormalizer
"""
from __future__ import annotations

import logging
import os
from typing import Any, List, Mapping, Optional, Sequence

from prometheus_client import CollectorRegistry

from .config import KernelConfig, Settings
from .dispatch import Dispatcher
from .logging import context as log_context
from .logging import unbind
from .messages import Request, Response, ServerRequest
from .middleware import (
    DispatcherMiddleware,
    MetricsMiddleware,
    Middleware,
    Pipeline,
    RequestContextMiddleware,
    RequestFactory,
    RequestFactoryMiddleware,
    ResponseNormalizerMiddleware,
    RouterMiddleware,
)
from .middleware_static import StaticFilesMiddleware
from .middleware_throttle import ThrottleMiddleware
from .normalizer import ResponseNormalizer
from .problem import ProblemFactory
from .problem_handler import ProblemHandler
from .ratelimit import RateLimiter
from .rendering import Jinja2Renderer, Renderer
from .routing import Router
from .throwable import SafeThrowableFactory

_log = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class Kernel:
    """
    Entry point for a transport: `handle(ServerRequest) -> Response`.

    Collaborators default to the reference implementations; pass
    `middlewares` to replace the canonical stage list entirely.
    """

    def __init__(
        self,
        config: KernelConfig,
        router: Router,
        *,
        dispatcher: Optional[Dispatcher] = None,
        renderer: Optional[Renderer] = None,
        middlewares: Optional[Sequence[Middleware]] = None,
        request_factory: Optional[RequestFactory] = None,
        problem_factory: Optional[ProblemFactory] = None,
        problem_handler: Optional[ProblemHandler] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        static_dir: Optional[str] = None,
        static_cache_max_age: int = 86400,
        rate_limiter: Optional[RateLimiter] = None,
        metrics_registry: Optional[CollectorRegistry] = None,
        enable_metrics: bool = False,
    ):
        self.config = config
        self.router = router
        self.renderer = renderer
        self.dispatcher = dispatcher or Dispatcher(renderer, template_dir=config.project_dir)
        self.request_factory = request_factory or RequestFactory()
        self.problem_factory = problem_factory or ProblemFactory(
            config, SafeThrowableFactory(config.project_dir)
        )
        self.problem_handler = problem_handler or ProblemHandler(router, self.dispatcher)
        self.normalizer = normalizer or ResponseNormalizer()

        if middlewares is None:
            stages: List[Middleware] = []
            if enable_metrics:
                stages.append(MetricsMiddleware(metrics_registry))
            if static_dir:
                stages.append(StaticFilesMiddleware(static_dir, static_cache_max_age))
            stages.append(RequestFactoryMiddleware(self.request_factory, config.context()))
            stages.append(RequestContextMiddleware())
            if rate_limiter is not None:
                stages.append(ThrottleMiddleware(rate_limiter))
            stages.append(RouterMiddleware(router))
            stages.append(DispatcherMiddleware(self.dispatcher))
            stages.append(ResponseNormalizerMiddleware(self.normalizer))
            middlewares = stages

        self.pipeline = Pipeline(middlewares)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        router: Router,
        *,
        renderer: Optional[Renderer] = None,
        services: Optional[Mapping[Any, Any]] = None,
        metrics_registry: Optional[CollectorRegistry] = None,
    ) -> "Kernel":
        config = settings.kernel_config()
        renderer = renderer or Jinja2Renderer(globals={"app_name": settings.app_name})
        static_dir = settings.static_dir
        if static_dir and not os.path.isabs(static_dir):
            static_dir = os.path.join(settings.project_dir, static_dir)
        rate_limiter = None
        if settings.throttle_enabled:
            rate_limiter = RateLimiter(settings.throttle_capacity, settings.throttle_refill_per_s)
        return cls(
            config,
            router,
            dispatcher=Dispatcher(renderer, template_dir=settings.project_dir, services=services),
            renderer=renderer,
            static_dir=static_dir,
            static_cache_max_age=settings.static_cache_max_age,
            rate_limiter=rate_limiter,
            metrics_registry=metrics_registry,
            enable_metrics=settings.metrics_enabled,
        )

    def handle(self, request: ServerRequest) -> Response:
        try:
            return self.pipeline.handle(request)
        except Exception as exc:
            _log.error("request failed: %s %s", request.method, request.path, exc_info=True)
            return self.handle_failure(exc, request)
        finally:
            unbind("req_id")

    def handle_failure(self, exc: Exception, request: ServerRequest) -> Response:
        if not isinstance(request, Request):
            request = self.request_factory.create(request, self.config.context())
        document = self.problem_factory.create(exc, request)
        response = self.problem_handler.handle(document)

        rid = log_context().get("req_id")
        if rid and not response.has_header(REQUEST_ID_HEADER):
            response = response.with_header(REQUEST_ID_HEADER, rid)
        return response
