# FILE: httpkernel/demo.py
# Usage: python -m httpkernel.demo [host] [port]
from __future__ import annotations

import sys
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry

from .config import Settings, load_settings
from .exceptions import HttpError
from .enums import HttpStatus
from .kernel import Kernel
from .messages import Request
from .routing import DictRouter
from .runtime import serve


def home(request: Request) -> str:
    return f"Hello from {request.context().get('APP_NAME') or 'httpkernel'}."


def hello(name: str, request: Request) -> Dict[str, Any]:
    return {"hello": name, "request_id": request.request_id}


def locked() -> None:
    raise HttpError("Resource is locked.", status=HttpStatus.LOCKED, context={"resource": "demo"})


def build_router() -> DictRouter:
    return (
        DictRouter()
        .add("/", home, name="home")
        .add("/api/hello/{name}", hello, name="hello")
        .add("/api/locked", locked)
        .add("/old-home", "redirect:/")
    )


def build_kernel(settings: Optional[Settings] = None, registry: Optional[CollectorRegistry] = None) -> Kernel:
    settings = settings or load_settings({"app_name": "httpkernel-demo"})
    return Kernel.from_settings(settings, build_router(), metrics_registry=registry)


if __name__ == "__main__":
    host = sys.argv[1] if len(sys.argv) > 1 else "127.0.0.1"
    port = int(sys.argv[2]) if len(sys.argv) > 2 else 8000
    settings = load_settings({"app_name": "httpkernel-demo"})
    serve(build_kernel(settings), settings, host=host, port=port)
