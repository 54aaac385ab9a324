# FILE: httpkernel/__init__.py
"""
httpkernel: a middleware-pipeline HTTP request kernel.

Requests flow through an ordered chain of stages (static files, request
adaptation, request context, throttling, routing, dispatch, normalization);
failures are rendered as RFC 7807 problem documents in the format the
caller negotiated.
"""
from __future__ import annotations

from .config import KernelConfig, Settings, load_settings
from .dispatch import Dispatcher, Invocable, MethodReference, RedirectDirective, TemplatePath
from .enums import ContentType, HttpStatus
from .exceptions import DispatchError, HttpError, HttpKernelError, RouteNotFoundError, TooManyRequestsError
from .kernel import Kernel
from .messages import Request, Response, ServerRequest, UploadedFile
from .middleware import Middleware, Pipeline, RequestHandler
from .negotiation import ContentNegotiator
from .problem import ProblemDocument, ProblemFactory
from .problem_handler import ProblemHandler
from .routing import DictRouter, RouteMatch, Router
from .throwable import SafeThrowable, SafeThrowableFactory

__version__ = "0.1.0"

__all__ = [
    "ContentNegotiator",
    "ContentType",
    "DictRouter",
    "DispatchError",
    "Dispatcher",
    "HttpError",
    "HttpKernelError",
    "HttpStatus",
    "Invocable",
    "Kernel",
    "KernelConfig",
    "MethodReference",
    "Middleware",
    "Pipeline",
    "ProblemDocument",
    "ProblemFactory",
    "ProblemHandler",
    "RedirectDirective",
    "Request",
    "RequestHandler",
    "Response",
    "RouteMatch",
    "RouteNotFoundError",
    "Router",
    "SafeThrowable",
    "SafeThrowableFactory",
    "ServerRequest",
    "Settings",
    "TemplatePath",
    "TooManyRequestsError",
    "UploadedFile",
    "load_settings",
]
