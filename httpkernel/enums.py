# FILE: httpkernel/enums.py
from __future__ import annotations

import enum
import posixpath
from typing import Dict, Optional


# =============================================================================
# Content types
# =============================================================================


class ContentType(enum.Enum):
    """
    Closed set of MIME types understood by the pipeline.

    OCTET_STREAM is the single default member: unknown extensions and
    extension-less paths resolve to it.
    """

    # Application types.
    JSON = "application/json"
    XML = "application/xml"
    FORM = "application/x-www-form-urlencoded"
    PDF = "application/pdf"
    ZIP = "application/zip"
    JAVASCRIPT = "application/javascript"
    OCTET_STREAM = "application/octet-stream"

    # RFC 7807.
    PROBLEM_JSON = "application/problem+json"
    PROBLEM_XML = "application/problem+xml"

    # Text types.
    HTML = "text/html"
    PLAIN = "text/plain"
    CSS = "text/css"
    CSV = "text/csv"
    MARKDOWN = "text/markdown"

    # Images.
    PNG = "image/png"
    JPEG = "image/jpeg"
    GIF = "image/gif"
    SVG = "image/svg+xml"
    WEBP = "image/webp"
    ICO = "image/x-icon"

    # Fonts.
    WOFF = "font/woff"
    WOFF2 = "font/woff2"

    # Audio / video.
    MP3 = "audio/mpeg"
    MP4 = "video/mp4"
    WEBM = "video/webm"

    # Special types.
    MULTIPART_FORM = "multipart/form-data"
    EVENT_STREAM = "text/event-stream"

    @property
    def main_type(self) -> str:
        return self.value.split("/", 1)[0]

    @property
    def sub_type(self) -> str:
        return self.value.split("/", 1)[1]

    def with_charset(self, charset: str = "UTF-8") -> str:
        return f"{self.value}; charset={charset}"

    def header_value(self) -> str:
        """Content-Type header value, with charset for text-like types."""
        return self.with_charset() if self.is_text() else self.value

    def is_text(self) -> bool:
        return self.main_type == "text" or self in _TEXT_APPLICATION_TYPES

    def is_static(self) -> bool:
        """Whether files of this type are served directly by the static stage."""
        return self in _STATIC_TYPES

    @classmethod
    def from_extension(cls, extension: str) -> "ContentType":
        ext = (extension or "").strip().lower().lstrip(".")
        return _EXTENSION_MAP.get(ext, cls.OCTET_STREAM)

    @classmethod
    def from_filename(cls, filename: str) -> "ContentType":
        _, ext = posixpath.splitext(filename or "")
        if not ext:
            return cls.OCTET_STREAM
        return cls.from_extension(ext)


_TEXT_APPLICATION_TYPES = frozenset(
    {
        ContentType.JSON,
        ContentType.XML,
        ContentType.JAVASCRIPT,
        ContentType.PROBLEM_JSON,
        ContentType.PROBLEM_XML,
    }
)

_EXTENSION_MAP: Dict[str, ContentType] = {
    "json": ContentType.JSON,
    "xml": ContentType.XML,
    "pdf": ContentType.PDF,
    "zip": ContentType.ZIP,
    "js": ContentType.JAVASCRIPT,
    "mjs": ContentType.JAVASCRIPT,
    "html": ContentType.HTML,
    "htm": ContentType.HTML,
    "txt": ContentType.PLAIN,
    "css": ContentType.CSS,
    "csv": ContentType.CSV,
    "md": ContentType.MARKDOWN,
    "markdown": ContentType.MARKDOWN,
    "png": ContentType.PNG,
    "jpg": ContentType.JPEG,
    "jpeg": ContentType.JPEG,
    "gif": ContentType.GIF,
    "svg": ContentType.SVG,
    "webp": ContentType.WEBP,
    "ico": ContentType.ICO,
    "woff": ContentType.WOFF,
    "woff2": ContentType.WOFF2,
    "mp3": ContentType.MP3,
    "mp4": ContentType.MP4,
    "webm": ContentType.WEBM,
}

# Asset types; documents such as .json/.html/.md are left to the handlers.
_STATIC_TYPES = frozenset(
    {
        ContentType.JAVASCRIPT,
        ContentType.CSS,
        ContentType.PNG,
        ContentType.JPEG,
        ContentType.GIF,
        ContentType.SVG,
        ContentType.WEBP,
        ContentType.ICO,
        ContentType.WOFF,
        ContentType.WOFF2,
        ContentType.PDF,
        ContentType.ZIP,
        ContentType.MP3,
        ContentType.MP4,
        ContentType.WEBM,
    }
)


# =============================================================================
# HTTP status
# =============================================================================


class HttpStatus(enum.IntEnum):
    # 1xx
    CONTINUE = 100

    # 2xx
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # 3xx
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    PAYMENT_REQUIRED = 402
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    NOT_ACCEPTABLE = 406
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    GONE = 410
    PAYLOAD_TOO_LARGE = 413
    UNSUPPORTED_MEDIA_TYPE = 415
    UNPROCESSABLE_CONTENT = 422
    LOCKED = 423
    TOO_MANY_REQUESTS = 429

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504
    INSUFFICIENT_STORAGE = 507
    UNKNOWN_ERROR = 520  # non-RFC

    @property
    def reason_phrase(self) -> str:
        return _REASON_PHRASES[self]

    @classmethod
    def try_from(cls, value) -> Optional["HttpStatus"]:
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        try:
            return cls(value)
        except ValueError:
            return None

    def is_informational(self) -> bool:
        return self.value < 200

    def is_successful(self) -> bool:
        return 200 <= self.value < 300

    def is_redirection(self) -> bool:
        return 300 <= self.value < 400

    def is_client_error(self) -> bool:
        return 400 <= self.value < 500

    def is_server_error(self) -> bool:
        return self.value >= 500

    def is_error(self) -> bool:
        return self.value >= 400


_REASON_PHRASES: Dict[HttpStatus, str] = {
    HttpStatus.CONTINUE: "Continue",
    HttpStatus.OK: "OK",
    HttpStatus.CREATED: "Created",
    HttpStatus.ACCEPTED: "Accepted",
    HttpStatus.NO_CONTENT: "No Content",
    HttpStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HttpStatus.FOUND: "Found",
    HttpStatus.SEE_OTHER: "See Other",
    HttpStatus.NOT_MODIFIED: "Not Modified",
    HttpStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HttpStatus.BAD_REQUEST: "Bad Request",
    HttpStatus.UNAUTHORIZED: "Unauthorized",
    HttpStatus.PAYMENT_REQUIRED: "Payment Required",
    HttpStatus.FORBIDDEN: "Forbidden",
    HttpStatus.NOT_FOUND: "Not Found",
    HttpStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HttpStatus.NOT_ACCEPTABLE: "Not Acceptable",
    HttpStatus.REQUEST_TIMEOUT: "Request Timeout",
    HttpStatus.CONFLICT: "Conflict",
    HttpStatus.GONE: "Gone",
    HttpStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HttpStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HttpStatus.UNPROCESSABLE_CONTENT: "Unprocessable Content",
    HttpStatus.LOCKED: "Locked",
    HttpStatus.TOO_MANY_REQUESTS: "Too Many Requests",
    HttpStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HttpStatus.NOT_IMPLEMENTED: "Not Implemented",
    HttpStatus.BAD_GATEWAY: "Bad Gateway",
    HttpStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HttpStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
    HttpStatus.INSUFFICIENT_STORAGE: "Insufficient Storage",
    HttpStatus.UNKNOWN_ERROR: "Unknown Error",
}
