# FILE: httpkernel/negotiation.py
from __future__ import annotations

from typing import TYPE_CHECKING, List, Tuple

from .enums import ContentType

if TYPE_CHECKING:  # pragma: no cover
    from .messages import ServerRequest


# Accept candidates we can produce, in priority order for equal weights.
_SUPPORTED: Tuple[Tuple[str, ContentType], ...] = (
    ("application/json", ContentType.JSON),
    ("text/html", ContentType.HTML),
    ("text/plain", ContentType.PLAIN),
)


def parse_accept(header: str) -> List[Tuple[str, float]]:
    """
    Parse an Accept header into (media_range, q) pairs sorted by weight.

    The sort is stable, so among equal weights the first-listed candidate
    stays first. A missing `q` means 1.0; an unparsable one means 0.0.
    """
    candidates: List[Tuple[str, float]] = []
    for item in (header or "").split(","):
        parts = [p.strip() for p in item.split(";")]
        media = parts[0].lower()
        if not media:
            continue
        q = 1.0
        for param in parts[1:]:
            if param.lower().startswith("q="):
                try:
                    q = float(param[2:])
                except ValueError:
                    q = 0.0
                break
        candidates.append((media, q))
    return sorted(candidates, key=lambda c: -c[1])


class ContentNegotiator:
    """
    Decides the representation format a caller wants.

    Signals, first decisive one wins:
      1. a known file extension on the path;
      2. the API namespace (`/api` or `/api/...`);
      3. an XHR marker header;
      4. the Accept header (q-weighted), defaulting to HTML.
    """

    def __init__(self, api_prefix: str = "/api"):
        self.api_prefix = "/" + api_prefix.strip("/")

    def resolve(self, request: "ServerRequest") -> ContentType:
        path = request.path

        content_type = ContentType.from_filename(path)
        if content_type is not ContentType.OCTET_STREAM:
            return content_type

        if self.is_api_path(path):
            return ContentType.JSON

        if self.is_xml_http_request(request):
            return ContentType.JSON

        return self.from_accept(request.get_header_line("accept"))

    def preferred_format(self, request: "ServerRequest") -> str:
        return self.resolve(request).sub_type

    def is_api_path(self, path: str) -> bool:
        return path == self.api_prefix or path.startswith(self.api_prefix + "/")

    @staticmethod
    def is_xml_http_request(request: "ServerRequest") -> bool:
        return request.get_header_line("x-requested-with") == "XMLHttpRequest"

    @staticmethod
    def from_accept(header: str) -> ContentType:
        if not header or not header.strip():
            return ContentType.HTML
        for media, _q in parse_accept(header):
            for needle, content_type in _SUPPORTED:
                if needle in media:
                    return content_type
        return ContentType.HTML
