# httpkernel/tests/test_pipeline.py
import json
import os

import pytest
from starlette.responses import StreamingResponse

from httpkernel.config import KernelConfig
from httpkernel.enums import HttpStatus
from httpkernel.exceptions import HttpError
from httpkernel.kernel import Kernel
from httpkernel.messages import REQUEST_ID_ATTRIBUTE, Request, Response, ServerRequest
from httpkernel.middleware import Pipeline, RequestContextMiddleware
from httpkernel.middleware_static import StaticFilesMiddleware
from httpkernel.ratelimit import RateLimiter
from httpkernel.routing import DictRouter

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
CONFIG = KernelConfig(project_dir=PROJECT_DIR, environment="test", debug=True, app_name="demo")


def _boom():
    raise ValueError("kaboom")


def _locked():
    raise HttpError("held", status=HttpStatus.LOCKED)


def _router():
    return (
        DictRouter()
        .add("/", lambda: "home")
        .add("/api/items/{id}", lambda id: {"id": id})
        .add("/api/boom", _boom)
        .add("/api/locked", _locked)
        .add("/ctx", lambda context: dict(context))
        .add("/rid", lambda request: request.request_id)
        .add("/old", "redirect:/")
    )


kernel = Kernel(CONFIG, _router())


def _get(path, headers=None, k=kernel):
    return k.handle(ServerRequest(uri=path, headers=headers or {}, server_params={"REMOTE_ADDR": "203.0.113.9"}))


# --------------------------------
# Pipeline mechanics
# --------------------------------


class Recorder:
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def process(self, request, handler):
        self.log.append(self.name)
        return handler.handle(request)


class ShortCircuit:
    def process(self, request, handler):
        return Response(status_code=204)


def test_stages_run_in_order_then_fallback():
    log = []
    r = Pipeline([Recorder("a", log), Recorder("b", log)]).handle(ServerRequest())
    assert log == ["a", "b"]
    assert r.status_code == 404
    assert r.body == b""


def test_short_circuit_skips_later_stages():
    log = []
    r = Pipeline([Recorder("a", log), ShortCircuit(), Recorder("never", log)]).handle(ServerRequest())
    assert r.status_code == 204
    assert log == ["a"]


def test_fallback_returns_stashed_result():
    r = Pipeline().handle(Request().with_handler_result("stashed"))
    assert r.status_code == 200
    assert r.text == "stashed"


def test_fallback_buffers_stashed_streaming_response():
    r = Pipeline().handle(Request().with_handler_result(StreamingResponse(iter([b"a", b"b"]))))
    assert r.body == b"ab"


def test_pipeline_does_not_catch_failures():
    class Boom:
        def process(self, request, handler):
            raise RuntimeError("x")

    with pytest.raises(RuntimeError):
        Pipeline([Boom()]).handle(ServerRequest())


# --------------------------------
# Kernel end to end
# --------------------------------


def test_html_success_path():
    r = _get("/", {"Accept": "text/html"})
    assert r.status_code == 200
    assert r.text == "home"
    assert r.get_header_line("content-type") == "text/html; charset=UTF-8"


def test_api_route_params_are_json():
    r = _get("/api/items/5")
    assert r.status_code == 200
    assert json.loads(r.text) == {"id": "5"}


def test_unknown_api_path_is_json_problem_with_debug_throwable():
    r = _get("/api/mustFail")
    assert r.status_code == 404
    doc = json.loads(r.text)
    assert doc["status"] == 404
    assert doc["title"] == "Not Found"
    assert doc["instance"] == "/api/mustFail"
    assert doc["extensions"]["environment"] == "test"
    assert doc["extensions"]["throwable"]["class"] == "httpkernel.exceptions.RouteNotFoundError"
    assert PROJECT_DIR + "/" not in r.text


def test_html_without_error_pages_is_markdown():
    r = _get("/nowhere", {"Accept": "text/html"})
    assert r.status_code == 404
    assert r.get_header_line("content-type") == "text/markdown; charset=UTF-8"
    assert "# An Error Occurred" in r.text


def test_application_failure_is_logged_and_rendered(caplog):
    with caplog.at_level("ERROR", logger="httpkernel.kernel"):
        r = _get("/api/boom")
    assert r.status_code == 500
    assert json.loads(r.text)["detail"] == "kaboom"
    assert any(rec.levelname == "ERROR" and rec.exc_info for rec in caplog.records)


def test_http_error_status_is_kept():
    r = _get("/api/locked")
    assert r.status_code == 423
    assert json.loads(r.text)["detail"] == "held"


def test_debug_off_never_leaks_throwable():
    quiet = Kernel(KernelConfig(project_dir=PROJECT_DIR, environment="prod", debug=False), _router())
    r = _get("/api/boom", k=quiet)
    assert json.loads(r.text)["extensions"]["throwable"] is None
    md = _get("/boom-page", {"Accept": "text/html"}, k=quiet)
    assert "## Throwable" not in md.text


def test_kernel_context_reaches_handlers():
    r = _get("/ctx", {"Accept": "application/json"})
    assert json.loads(r.text) == {
        "APP_ENV": "test",
        "APP_DEBUG": True,
        "APP_NAME": "demo",
        "APP_BASE_PATH": "",
    }


def test_redirect_route():
    r = _get("/old")
    assert r.status_code == 302
    assert r.get_header_line("location") == "/"


# --------------------------------
# Request context
# --------------------------------


def test_request_id_is_generated_and_echoed():
    r = _get("/rid", {"Accept": "text/plain"})
    rid = r.get_header_line("x-request-id")
    assert len(rid) == 32
    assert r.text == rid


def test_well_formed_upstream_request_id_is_kept():
    r = _get("/rid", {"Accept": "text/plain", "X-Request-Id": "abc12345-upstream"})
    assert r.get_header_line("x-request-id") == "abc12345-upstream"
    assert r.text == "abc12345-upstream"


def test_malformed_upstream_request_id_is_replaced():
    r = _get("/rid", {"Accept": "text/plain", "X-Request-Id": "bad id with spaces"})
    assert r.get_header_line("x-request-id") != "bad id with spaces"


def test_request_id_does_not_overwrite_downstream_header():
    class SetsId:
        def process(self, request, handler):
            assert request.get_attribute(REQUEST_ID_ATTRIBUTE)
            return Response(headers={"X-Request-Id": "downstream"})

    r = Pipeline([RequestContextMiddleware(), SetsId()]).handle(ServerRequest())
    assert r.get_header_line("x-request-id") == "downstream"


def test_error_responses_carry_request_id():
    r = _get("/api/mustFail", {"X-Request-Id": "trace-0001"})
    assert r.get_header_line("x-request-id") == "trace-0001"


# --------------------------------
# Static files
# --------------------------------


@pytest.fixture
def static_kernel(tmp_path):
    (tmp_path / "app.css").write_text("body{}")
    (tmp_path / "notes.json").write_text("{}")
    return Kernel(CONFIG, _router(), static_dir=str(tmp_path), static_cache_max_age=60), tmp_path


def test_static_asset_is_served_with_cache_headers(static_kernel):
    k, root = static_kernel
    r = _get("/app.css", k=k)
    st = os.stat(root / "app.css")
    assert r.status_code == 200
    assert r.text == "body{}"
    assert r.get_header_line("content-type") == "text/css; charset=UTF-8"
    assert r.get_header_line("cache-control") == "public, max-age=60"
    assert r.get_header_line("etag") == f'"{int(st.st_mtime):x}-{st.st_size:x}"'


def test_matching_etag_short_circuits_with_304(static_kernel):
    k, _ = static_kernel
    etag = _get("/app.css", k=k).get_header_line("etag")

    log = []
    static = StaticFilesMiddleware(k.pipeline.middlewares[0].directory)
    r = Pipeline([static, Recorder("later", log)]).handle(
        ServerRequest(uri="/app.css", headers={"If-None-Match": etag})
    )
    assert r.status_code == 304
    assert r.body == b""
    assert log == []


def test_revalidation_does_not_read_the_file(static_kernel, monkeypatch):
    k, _ = static_kernel
    etag = _get("/app.css", k=k).get_header_line("etag")

    reads = []
    monkeypatch.setattr(StaticFilesMiddleware, "_read", staticmethod(lambda path: reads.append(path)))
    r = _get("/app.css", {"If-None-Match": etag}, k=k)
    assert r.status_code == 304
    assert r.get_header_line("etag") == etag
    assert reads == []


def test_non_static_or_missing_files_fall_through(static_kernel):
    k, _ = static_kernel
    assert _get("/missing.css", {"Accept": "text/html"}, k=k).status_code == 404
    # .json is not a static asset type: the router handles it (and fails)
    assert _get("/notes.json", k=k).status_code == 404


def test_static_refuses_directory_escape(static_kernel):
    k, root = static_kernel
    outside = root.parent / "secret.css"
    outside.write_text("nope")
    r = _get("/../secret.css", {"Accept": "text/html"}, k=k)
    assert r.text != "nope"


# --------------------------------
# Throttle
# --------------------------------


def test_throttle_rejects_after_capacity():
    k = Kernel(CONFIG, _router(), rate_limiter=RateLimiter(2, 0.0))
    first = _get("/api/items/1", k=k)
    assert first.get_header_line("x-ratelimit-limit") == "2"
    assert first.get_header_line("x-ratelimit-remaining") == "1"
    _get("/api/items/1", k=k)

    r = _get("/api/items/1", k=k)
    assert r.status_code == 429
    doc = json.loads(r.text)
    assert doc["type"] == "https://tools.ietf.org/html/rfc6585#section-4"
    assert doc["title"] == "Too Many Requests"
    assert int(r.get_header_line("retry-after")) >= 1
    assert r.get_header_line("x-ratelimit-remaining") == "0"
    assert r.has_header("x-ratelimit-reset")
