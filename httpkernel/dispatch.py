# FILE: httpkernel/dispatch.py
"""
Handler dispatch.

A route handler descriptor is parsed into exactly one of four variants:

  - TemplatePath       existing template file, rendered with the call variables;
  - MethodReference    "pkg.module.Class::method" or "pkg.module::function";
  - RedirectDirective  "redirect:<url>", answered with a 302;
  - Invocable          any other callable.

Anything else raises DispatchError.
"""
from __future__ import annotations

import importlib
import inspect
import logging
import os
import typing
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .enums import HttpStatus
from .exceptions import DispatchError
from .messages import Response, ServerRequest
from .rendering import Renderer
from .routing import RouteMatch

_log = logging.getLogger(__name__)

REDIRECT_PREFIX = "redirect:"
METHOD_SEPARATOR = "::"


# =============================================================================
# Handler variants
# =============================================================================


@dataclass(frozen=True)
class TemplatePath:
    path: str


@dataclass(frozen=True)
class MethodReference:
    target: str
    method: str

    def __str__(self) -> str:
        return f"{self.target}{METHOD_SEPARATOR}{self.method}"


@dataclass(frozen=True)
class RedirectDirective:
    url: str
    status: HttpStatus = HttpStatus.FOUND


@dataclass(frozen=True)
class Invocable:
    func: Callable[..., Any]


HandlerDescriptor = Union[TemplatePath, MethodReference, RedirectDirective, Invocable]
_VARIANTS = (TemplatePath, MethodReference, RedirectDirective, Invocable)


# =============================================================================
# Dispatcher
# =============================================================================


class Dispatcher:
    """
    Runs the handler of a RouteMatch.

    Callables receive their arguments by parameter name from: every context
    key, every route parameter, then `request`, `route`, `params` and
    `context` (later sources win). Parameters annotated with a request or
    RouteMatch type get those objects, parameters annotated with a type
    registered in `services` get that service, and anything left over falls
    back to its default value.

    Controllers named by a MethodReference are instantiated with the same
    rules applied to their constructor.
    """

    def __init__(
        self,
        renderer: Optional[Renderer] = None,
        *,
        template_dir: Optional[str] = None,
        services: Optional[Mapping[Any, Any]] = None,
    ):
        self.renderer = renderer
        self.template_dir = template_dir
        self.services: Dict[Any, Any] = dict(services or {})
        if renderer is not None:
            self.services.setdefault(Renderer, renderer)
            self.services.setdefault("renderer", renderer)

    # ------- public API -------

    def dispatch(
        self,
        match: RouteMatch,
        request: ServerRequest,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        if match is None:
            raise DispatchError("No route was matched for this request.")
        context = dict(context or {})
        params = dict(match.parameters)

        variables: Dict[str, Any] = {}
        variables.update(context)
        variables.update(params)
        variables.update(
            {
                "request": request,
                "route": match,
                "params": params,
                "context": context,
            }
        )

        descriptor = self.parse(match.handler)
        _log.debug("dispatching %s", type(descriptor).__name__)
        return self._call(descriptor, variables, request, match)

    def parse(self, handler: Any) -> HandlerDescriptor:
        """Classify a raw route handler into one of the handler variants."""
        if isinstance(handler, _VARIANTS):
            return handler

        if isinstance(handler, str):
            template = self._template_path(handler)
            if template is not None:
                return TemplatePath(template)
            if METHOD_SEPARATOR in handler:
                target, _, method = handler.partition(METHOD_SEPARATOR)
                if not target or not method:
                    raise DispatchError(f"Handler of type string {handler!r} is invalid.")
                return MethodReference(target, method)
            if handler.startswith(REDIRECT_PREFIX):
                return RedirectDirective(handler[len(REDIRECT_PREFIX):])
            raise DispatchError(f"Handler of type string {handler!r} is invalid.")

        if callable(handler):
            return Invocable(handler)

        raise DispatchError(f"Unsupported handler type: {type(handler).__name__}.")

    # ------- variants -------

    def _call(
        self,
        descriptor: HandlerDescriptor,
        variables: Dict[str, Any],
        request: ServerRequest,
        match: RouteMatch,
    ) -> Any:
        if isinstance(descriptor, TemplatePath):
            if self.renderer is None:
                raise DispatchError(f"No renderer configured for template {descriptor.path!r}.")
            return self.renderer.render(descriptor.path, variables)

        if isinstance(descriptor, MethodReference):
            func = self._resolve_method(descriptor, variables, request, match)
            return self.invoke(func, variables, request, match)

        if isinstance(descriptor, RedirectDirective):
            return Response(status_code=int(descriptor.status), headers={"Location": descriptor.url})

        return self.invoke(descriptor.func, variables, request, match)

    def _template_path(self, handler: str) -> Optional[str]:
        candidates = [handler]
        if self.template_dir and not os.path.isabs(handler):
            candidates.insert(0, os.path.join(self.template_dir, handler))
        for path in candidates:
            if os.path.isfile(path):
                return path
        return None

    def _resolve_method(
        self,
        ref: MethodReference,
        variables: Dict[str, Any],
        request: ServerRequest,
        match: RouteMatch,
    ) -> Callable[..., Any]:
        owner = _import_target(ref.target)
        if inspect.ismodule(owner):
            func = getattr(owner, ref.method, None)
            if not callable(func):
                raise DispatchError(f"Handler {ref} is not callable.")
            return func

        if not inspect.isclass(owner):
            raise DispatchError(f"Handler target {ref.target!r} is not a class or module.")

        try:
            raw = inspect.getattr_static(owner, ref.method)
        except AttributeError:
            raise DispatchError(f"Controller {ref.target!r} has no method {ref.method!r}.") from None

        if isinstance(raw, (staticmethod, classmethod)):
            return getattr(owner, ref.method)

        instance = self.services.get(owner)
        if instance is None:
            instance = self.invoke(owner, variables, request, match)
        func = getattr(instance, ref.method)
        if not callable(func):
            raise DispatchError(f"Handler {ref} is not callable.")
        return func

    # ------- invocation -------

    def invoke(
        self,
        func: Callable[..., Any],
        variables: Mapping[str, Any],
        request: ServerRequest,
        match: RouteMatch,
    ) -> Any:
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            raise DispatchError(f"Cannot inspect handler {func!r}.") from None

        hints = _type_hints(func)
        args = []
        kwargs: Dict[str, Any] = {}
        for name, param in signature.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            found, value = self._resolve_parameter(name, param, hints.get(name), variables, request, match)
            if not found:
                if param.default is not param.empty:
                    continue
                raise DispatchError(f"Unable to resolve parameter {name!r} of handler {_describe(func)}.")
            if param.kind is param.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[name] = value
        return func(*args, **kwargs)

    def _resolve_parameter(
        self,
        name: str,
        param: inspect.Parameter,
        annotation: Any,
        variables: Mapping[str, Any],
        request: ServerRequest,
        match: RouteMatch,
    ):
        if inspect.isclass(annotation):
            if issubclass(annotation, ServerRequest) and isinstance(request, annotation):
                return True, request
            if issubclass(annotation, RouteMatch):
                return True, match
            if annotation in self.services:
                return True, self.services[annotation]
        if name in variables:
            return True, variables[name]
        if name in self.services:
            return True, self.services[name]
        return False, None


def _import_target(target: str) -> Any:
    try:
        return importlib.import_module(target)
    except ImportError:
        pass
    module_name, _, attr = target.rpartition(".")
    if not module_name:
        raise DispatchError(f"Cannot import handler target {target!r}.")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise DispatchError(f"Cannot import handler target {target!r}.") from e
    try:
        return getattr(module, attr)
    except AttributeError:
        raise DispatchError(f"Module {module_name!r} has no attribute {attr!r}.") from None


def _type_hints(func: Callable[..., Any]) -> Dict[str, Any]:
    target = func.__init__ if inspect.isclass(func) else func
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references; fall back to name-based injection.
        return {}


def _describe(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or repr(func)
