# httpkernel/tests/test_runtime.py
import io
import json
import logging
import os

from prometheus_client import CollectorRegistry
from starlette.testclient import TestClient

from httpkernel.config import KernelConfig, load_settings
from httpkernel.demo import build_kernel
from httpkernel.kernel import Kernel
from httpkernel.logging import JSONFormatter
from httpkernel.messages import Response
from httpkernel.routing import DictRouter
from httpkernel.runtime import _field_path, _multi_dict, _nest, create_app

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def echo(request):
    return {
        "method": request.method,
        "query": dict(request.query_params),
        "post": dict(request.parsed_body or {}),
        "cookie": request.cookie("sid"),
        "remote": request.server_params.get("REMOTE_ADDR"),
    }


def upload(request):
    files = request.files()
    return {
        "docs": [(f.filename, f.size) for f in files["docs"]],
        "avatar": files["avatar"]["main"].content_type,
        "title": request.post("title"),
    }


def cookies():
    return Response().with_added_header("Set-Cookie", "a=1").with_added_header("Set-Cookie", "b=2")


router = (
    DictRouter()
    .add("/api/echo", echo)
    .add("/api/upload", upload)
    .add("/api/cookies", cookies)
)
kernel = Kernel(KernelConfig(project_dir=PROJECT_DIR, environment="test"), router)
client = TestClient(create_app(kernel))


# --------------------------------
# Field name helpers
# --------------------------------


def test_field_paths():
    assert _field_path("plain") == ["plain"]
    assert _field_path("a[b][]") == ["a", "b", ""]
    assert _field_path("[odd]") == ["[odd]"]


def test_nest_builds_dicts_and_lists():
    out = {}
    _nest(out, "docs[]", 1)
    _nest(out, "docs[]", 2)
    _nest(out, "avatar[main]", "x")
    _nest(out, "single", "y")
    assert out == {"docs": [1, 2], "avatar": {"main": "x"}, "single": "y"}


def test_multi_dict_keeps_repeats():
    assert _multi_dict([("a", "1"), ("b", "2"), ("a", "3")]) == {"a": ["1", "3"], "b": "2"}


# --------------------------------
# ASGI round trips
# --------------------------------


def test_query_and_server_params_reach_handler():
    r = client.get("/api/echo?tag=a&tag=b&q=x", headers={"Cookie": "sid=abc"})
    assert r.status_code == 200
    data = r.json()
    assert data["method"] == "GET"
    assert data["query"] == {"tag": ["a", "b"], "q": "x"}
    assert data["cookie"] == "abc"
    assert data["remote"] == "testclient"
    assert len(r.headers["x-request-id"]) == 32


def test_urlencoded_form_is_parsed():
    r = client.post("/api/echo", data={"name": "ana", "tag": ["x", "y"]})
    assert r.json()["post"] == {"name": "ana", "tag": ["x", "y"]}


def test_multipart_files_are_nested():
    r = client.post(
        "/api/upload",
        data={"title": "report"},
        files=[
            ("docs[]", ("a.txt", b"A", "text/plain")),
            ("docs[]", ("b.txt", b"BB", "text/plain")),
            ("avatar[main]", ("p.png", b"png", "image/png")),
        ],
    )
    assert r.status_code == 200
    assert r.json() == {"docs": [["a.txt", 1], ["b.txt", 2]], "avatar": "image/png", "title": "report"}


def test_repeated_headers_are_sent_as_separate_lines():
    r = client.get("/api/cookies")
    assert r.headers.get_list("set-cookie") == ["a=1", "b=2"]


def test_failures_become_problem_documents():
    r = client.get("/api/mustFail")
    assert r.status_code == 404
    assert r.headers["content-type"].startswith("application/json")
    doc = json.loads(r.text)
    assert doc["instance"] == "/api/mustFail"
    assert r.headers["x-request-id"]


def test_demo_kernel_over_asgi():
    settings = load_settings({"app_name": "demo-app", "environment": "test"})
    app = TestClient(create_app(build_kernel(settings, CollectorRegistry())))
    assert app.get("/", headers={"Accept": "text/html"}).text == "Hello from demo-app."
    assert app.get("/api/hello/ana").json()["hello"] == "ana"
    assert app.get("/api/locked").status_code == 423
    moved = app.get("/old-home", follow_redirects=False)
    assert moved.status_code == 302
    assert moved.headers["location"] == "/"


def test_malformed_body_becomes_bad_request_problem(caplog):
    with caplog.at_level("WARNING", logger="httpkernel.runtime"):
        r = client.post(
            "/api/upload",
            content=b"garbage",
            headers={"Content-Type": "multipart/form-data", "Accept": "application/json"},
        )
    assert r.status_code == 400
    assert r.headers["content-type"].startswith("application/json")
    doc = r.json()
    assert doc["title"] == "Bad Request"
    assert doc["detail"] == "Malformed request body."
    assert doc["instance"] == "/api/upload"
    assert doc["extensions"]["throwable"]["previous"] is not None
    assert any(rec.exc_info for rec in caplog.records)


def test_access_log_carries_the_response_request_id():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter(env="test"))
    access = logging.getLogger("httpkernel.http")
    old_level = access.level
    access.addHandler(handler)
    access.setLevel(logging.INFO)
    try:
        r = client.get("/api/echo", headers={"X-Request-Id": "trace-access-01"})
    finally:
        access.removeHandler(handler)
        access.setLevel(old_level)
    finish = [json.loads(line) for line in stream.getvalue().splitlines() if '"http.finish"' in line]
    assert len(finish) == 1
    assert finish[0]["req_id"] == r.headers["x-request-id"] == "trace-access-01"
