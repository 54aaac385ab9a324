# FILE: httpkernel/problem.py
"""
RFC 7807 problem documents.

`ProblemFactory` turns any exception into a `ProblemDocument`; the document
knows its JSON wire shape (`to_dict`) and its markdown rendering (`__str__`),
which needs nothing beyond this module.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from .config import KernelConfig
from .enums import HttpStatus
from .exceptions import DispatchError, HttpError, RouteNotFoundError
from .messages import ServerRequest
from .throwable import SafeThrowable, SafeThrowableFactory
from .utils import pretty_json


DEFAULT_TYPE = "about:blank"

# Subclass-aware; first match wins.
_STATUS_BY_EXCEPTION: Tuple[Tuple[Type[BaseException], HttpStatus], ...] = (
    (RouteNotFoundError, HttpStatus.NOT_FOUND),
    (DispatchError, HttpStatus.INTERNAL_SERVER_ERROR),
)


def _iso_timestamp() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


@dataclass(frozen=True, eq=False)
class ProblemDocument:
    http_status: HttpStatus
    detail: str
    request: ServerRequest
    throwable: SafeThrowable
    timestamp: str
    environment: str
    type: str = DEFAULT_TYPE
    title: Optional[str] = None
    context: Mapping[str, Any] = field(default_factory=dict)
    debug: bool = True
    headers: Mapping[str, str] = field(default_factory=dict)

    def get_title(self) -> str:
        if self.type == DEFAULT_TYPE or self.title is None:
            return self.http_status.reason_phrase
        return self.title

    @property
    def status(self) -> int:
        return int(self.http_status)

    @property
    def instance(self) -> str:
        return self.request.path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.get_title(),
            "status": self.status,
            "detail": self.detail,
            "instance": self.instance,
            "extensions": {
                "timestamp": self.timestamp,
                "environment": self.environment,
                "debug": self.debug,
                "context": dict(self.context),
                "throwable": self.throwable.to_dict() if self.debug else None,
            },
        }

    def __str__(self) -> str:
        out = "# An Error Occurred\n\n"
        out += "## HTTP Problem Detail\n\n"
        out += f"- **Type**: {self.type}\n"
        out += f"- **Title**: {self.get_title()}\n"
        out += f"- **Status**: {self.status}\n"
        out += f"- **Detail**: {self.detail}\n"
        out += f"- **Instance**: {self.instance}\n\n"
        out += "## Environment\n\n"
        out += f"- **Timestamp**: {self.timestamp}\n"
        out += f"- **Environment**: {self.environment}\n"
        out += f"- **Debug**: {'true' if self.debug else 'false'}\n"
        if self.context:
            out += "\n## Context\n\n```json\n" + pretty_json(dict(self.context)) + "\n```\n"
        if self.debug:
            out += "\n## Throwable\n\n```\n" + str(self.throwable).rstrip("\n") + "\n```\n"
        return out


class ProblemFactory:
    """
    Maps an exception plus the request it interrupted to a ProblemDocument.

    Status resolution, first hit wins:
      1. HttpError metadata, taken verbatim;
      2. the exception's integer `code` when it is a known HttpStatus;
      3. the exception-type table (RouteNotFoundError -> 404, ...);
      4. 500.
    """

    def __init__(self, config: KernelConfig, safe_throwable_factory: Optional[SafeThrowableFactory] = None):
        self.config = config
        self.safe_throwable_factory = safe_throwable_factory or SafeThrowableFactory(config.project_dir)

    def create(self, exc: BaseException, request: ServerRequest) -> ProblemDocument:
        throwable = self.safe_throwable_factory.create(exc)
        common: Dict[str, Any] = {
            "detail": self.safe_throwable_factory.obfuscate_path(str(exc)),
            "request": request,
            "throwable": throwable,
            "timestamp": _iso_timestamp(),
            "environment": self.config.environment,
            "debug": self.config.debug,
        }

        if isinstance(exc, HttpError):
            return ProblemDocument(
                http_status=exc.status,
                type=exc.uri_reference,
                title=exc.title,
                context=dict(exc.context),
                headers=dict(exc.headers),
                **common,
            )

        return ProblemDocument(http_status=self.resolve_status(exc), **common)

    @staticmethod
    def resolve_status(exc: BaseException) -> HttpStatus:
        code = getattr(exc, "code", None)
        status = HttpStatus.try_from(code)
        if status is not None:
            return status
        for exc_type, mapped in _STATUS_BY_EXCEPTION:
            if isinstance(exc, exc_type):
                return mapped
        return HttpStatus.INTERNAL_SERVER_ERROR
