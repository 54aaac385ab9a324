# FILE: httpkernel/controller.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .messages import Request
from .rendering import Renderer


class Controller:
    """
    Optional base for "Class::method" handlers that render templates.

    The dispatcher builds controllers itself, injecting the configured
    renderer into the `renderer` constructor argument.
    """

    def __init__(self, renderer: Renderer):
        self.renderer = renderer

    def render(
        self,
        template: str,
        data: Optional[Mapping[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> str:
        variables: Dict[str, Any] = dict(data or {})
        if request is not None:
            variables["app"] = self.app_variable(request)
        return self.renderer.render(template, variables)

    @staticmethod
    def app_variable(request: Request) -> Dict[str, Any]:
        return {
            "request": request,
            "route": request.route,
            "context": request.context(),
        }
