# FILE: httpkernel/problem_handler.py
from __future__ import annotations

import logging
from typing import Any, Optional

from .dispatch import Dispatcher
from .enums import ContentType
from .exceptions import RouteNotFoundError
from .messages import Request, Response
from .problem import ProblemDocument
from .routing import Router

_log = logging.getLogger(__name__)

DEFAULT_ERROR_ROUTE = "error"


class ProblemHandler:
    """
    Renders a ProblemDocument in the format the request prefers.

    json      -> the document's wire shape;
    html      -> route "error<status>", then route "error", then markdown;
    otherwise -> the markdown rendering.

    Failure headers carried by the document are applied last, whatever the
    format.
    """

    def __init__(self, router: Optional[Router] = None, dispatcher: Optional[Dispatcher] = None):
        self.router = router
        self.dispatcher = dispatcher

    def handle(self, document: ProblemDocument) -> Response:
        fmt = _preferred_format(document)
        if fmt == "json":
            response = self.render_json(document)
        elif fmt == "html":
            response = self.render_html(document)
        else:
            response = self.render_markdown(document)

        for name, value in document.headers.items():
            response = response.with_header(name, value)
        return response

    # ------- formats -------

    def render_json(self, document: ProblemDocument) -> Response:
        return Response().as_json(document.to_dict()).with_http_status(document.http_status)

    def render_markdown(self, document: ProblemDocument) -> Response:
        return Response().as_text(str(document), ContentType.MARKDOWN).with_http_status(document.http_status)

    def render_html(self, document: ProblemDocument) -> Response:
        router, dispatcher = self.router, self.dispatcher
        if router is None or dispatcher is None:
            return self.render_markdown(document)

        try:
            return _render_error_page(router, dispatcher, f"error{document.status}", document)
        except RouteNotFoundError:
            pass
        except Exception:
            _log.warning("error page for status %s failed", document.status, exc_info=True)
            return self.render_markdown(document)

        try:
            return _render_error_page(router, dispatcher, DEFAULT_ERROR_ROUTE, document)
        except RouteNotFoundError:
            return self.render_markdown(document)
        except Exception:
            _log.warning("generic error page failed", exc_info=True)
            return self.render_markdown(document)


def _render_error_page(router: Router, dispatcher: Dispatcher, route_name: str, document: ProblemDocument) -> Response:
    match = router.match(route_name)
    result: Any = dispatcher.dispatch(match, document.request, {"error": document})
    if isinstance(result, Response):
        return result
    return Response().as_html(result).with_http_status(document.http_status)


def _preferred_format(document: ProblemDocument) -> str:
    request = document.request
    if not isinstance(request, Request):
        request = Request.from_server_request(request)
    return request.get_preferred_format()
