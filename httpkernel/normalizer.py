# FILE: httpkernel/normalizer.py
from __future__ import annotations

import logging
from typing import Any, Optional

from starlette.responses import Response as StarletteResponse

from .enums import ContentType
from .messages import Response, ServerRequest
from .negotiation import ContentNegotiator

_log = logging.getLogger(__name__)


class ResponseNormalizer:
    """
    Turns whatever a handler produced into a Response.

      - Response: gets the negotiated Content-Type only when it has none.
      - Starlette response: converted first, then treated as above.
      - JSON format: value serialized; unencodable values degrade to text/plain.
      - any other format: text of the value under that content type.
      - None: empty body.
    """

    def __init__(self, negotiator: Optional[ContentNegotiator] = None):
        self.negotiator = negotiator or ContentNegotiator()

    def normalize(self, request: ServerRequest, value: Any) -> Response:
        if isinstance(value, StarletteResponse):
            value = Response.from_starlette(value)

        content_type = self.negotiator.resolve(request)

        if isinstance(value, Response):
            if not value.has_header("content-type"):
                return value.with_content_type(content_type)
            return value

        response = Response()
        if value is None:
            return response.as_text("", content_type)

        if content_type is ContentType.JSON:
            try:
                return response.as_json(value)
            except (TypeError, ValueError):
                _log.debug("handler value not JSON-encodable, degrading to text", exc_info=True)
                return response.as_text(value, ContentType.PLAIN)

        return response.as_text(value, content_type)
