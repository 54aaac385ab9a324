# FILE: httpkernel/middleware_static.py
from __future__ import annotations

import logging
import os
from typing import Optional

from .enums import ContentType, HttpStatus
from .messages import Response, ServerRequest
from .middleware import RequestHandler

_log = logging.getLogger(__name__)


class StaticFilesMiddleware:
    """
    Serves static assets from a directory and short-circuits the pipeline.

    Only paths whose extension maps to a static content type are considered;
    the file must resolve inside `directory`, be a regular readable file.
    Anything else falls through to the next stage.

    Responses carry Content-Type, `Cache-Control: public, max-age=<n>` and
    an ETag built from the file's mtime and size; a matching If-None-Match
    yields an empty 304.
    """

    def __init__(self, directory: str, cache_max_age: int = 86400):
        self.directory = os.path.realpath(directory)
        self.cache_max_age = int(cache_max_age)

    def process(self, request: ServerRequest, handler: RequestHandler) -> Response:
        path = request.path
        content_type = ContentType.from_filename(path)
        if not content_type.is_static():
            return handler.handle(request)

        file_path = self._resolve(path)
        if file_path is None:
            return handler.handle(request)

        etag = self._etag(file_path)
        if etag is None:
            return handler.handle(request)

        cache_control = f"public, max-age={self.cache_max_age}"
        if request.get_header_line("if-none-match") == etag:
            return (
                Response()
                .with_http_status(HttpStatus.NOT_MODIFIED)
                .with_header("ETag", etag)
                .with_header("Cache-Control", cache_control)
            )

        content = self._read(file_path)
        if content is None:
            return handler.handle(request)

        return (
            Response(body=content)
            .with_content_type(content_type)
            .with_header("Cache-Control", cache_control)
            .with_header("ETag", etag)
        )

    # ------- helpers -------

    def _resolve(self, path: str) -> Optional[str]:
        candidate = os.path.realpath(os.path.join(self.directory, path.lstrip("/")))
        if not candidate.startswith(self.directory + os.sep):
            return None
        if not os.path.isfile(candidate) or not os.access(candidate, os.R_OK):
            return None
        return candidate

    @staticmethod
    def _etag(file_path: str) -> Optional[str]:
        try:
            st = os.stat(file_path)
        except OSError:
            _log.warning("static file %s could not be stat'ed", file_path, exc_info=True)
            return None
        return f'"{int(st.st_mtime):x}-{st.st_size:x}"'

    @staticmethod
    def _read(file_path: str) -> Optional[bytes]:
        try:
            with open(file_path, "rb") as f:
                return f.read()
        except OSError:
            _log.warning("static file %s could not be read", file_path, exc_info=True)
            return None
