# httpkernel/tests/test_problem.py
import json

from httpkernel.config import KernelConfig
from httpkernel.dispatch import Dispatcher
from httpkernel.enums import HttpStatus
from httpkernel.exceptions import DispatchError, HttpError, RouteNotFoundError, TooManyRequestsError
from httpkernel.messages import Request, Response
from httpkernel.problem import ProblemFactory
from httpkernel.problem_handler import ProblemHandler
from httpkernel.routing import DictRouter

CONFIG = KernelConfig(project_dir="/srv/app", environment="test", debug=True)
factory = ProblemFactory(CONFIG)


class CodedError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


def _req(path="/x", accept=None):
    headers = {"Accept": accept} if accept else {}
    return Request(uri=path, headers=headers)


# --------------------------------
# Factory
# --------------------------------


def test_http_error_metadata_is_used_verbatim():
    exc = HttpError(
        "nope",
        status=HttpStatus.FORBIDDEN,
        title="Custom Title",
        uri_reference="https://example.test/problems/forbidden",
        context={"reason": "policy"},
        headers={"X-Why": "policy"},
    )
    doc = factory.create(exc, _req())
    assert doc.status == 403
    assert doc.type == "https://example.test/problems/forbidden"
    assert doc.get_title() == "Custom Title"
    assert doc.context == {"reason": "policy"}
    assert doc.headers == {"X-Why": "policy"}
    assert doc.detail == "nope"


def test_default_type_uses_reason_phrase_title():
    doc = factory.create(HttpError("x", status=HttpStatus.CONFLICT, title="Ignored"), _req())
    assert doc.get_title() == "Conflict"


def test_known_integer_code_sets_status():
    assert factory.create(CodedError("gone", 410), _req()).status == 410


def test_unknown_code_falls_back_to_type_table_then_500():
    assert factory.create(CodedError("weird", 999), _req()).status == 500
    assert factory.create(RouteNotFoundError("/x"), _req()).status == 404
    assert factory.create(DispatchError("bad"), _req()).status == 500
    assert factory.create(ValueError("boom"), _req()).status == 500


def test_detail_is_the_plain_message_with_paths_redacted():
    doc = factory.create(CodedError("duplicate key", "23000"), _req())
    assert doc.detail == "duplicate key"
    assert doc.throwable.message == "23000 - duplicate key"

    leaky = factory.create(FileNotFoundError("missing /srv/app/conf/app.yaml"), _req())
    assert leaky.detail == "missing project_dir:conf/app.yaml"


def test_html_without_router_renders_markdown():
    doc = factory.create(ValueError("boom"), _req(accept="text/html"))
    r = ProblemHandler().handle(doc)
    assert r.status_code == 500
    assert "# An Error Occurred" in r.text


def test_too_many_requests_defaults():
    doc = factory.create(TooManyRequestsError(headers={"Retry-After": "5"}), _req())
    assert doc.status == 429
    assert doc.type == "https://tools.ietf.org/html/rfc6585#section-4"
    assert doc.get_title() == "Too Many Requests"
    assert doc.headers["Retry-After"] == "5"


def test_wire_shape():
    doc = factory.create(RouteNotFoundError("/api/mustFail"), _req("/api/mustFail"))
    d = doc.to_dict()
    assert set(d) == {"type", "title", "status", "detail", "instance", "extensions"}
    assert set(d["extensions"]) == {"timestamp", "environment", "debug", "context", "throwable"}
    assert d["instance"] == "/api/mustFail"
    assert d["extensions"]["environment"] == "test"
    assert d["extensions"]["throwable"]["class"] == "httpkernel.exceptions.RouteNotFoundError"


def test_debug_off_hides_throwable_everywhere():
    quiet = ProblemFactory(KernelConfig(project_dir="/srv/app", environment="prod", debug=False))
    doc = quiet.create(ValueError("boom"), _req())
    assert doc.to_dict()["extensions"]["throwable"] is None
    assert "## Throwable" not in str(doc)
    assert "ValueError" not in json.dumps(doc.to_dict())


def test_markdown_rendering():
    doc = factory.create(HttpError("x", status=HttpStatus.LOCKED, context={"k": "v"}), _req("/p"))
    text = str(doc)
    assert text.startswith("# An Error Occurred")
    assert "## HTTP Problem Detail" in text
    assert "## Environment" in text
    assert "## Context" in text and '"k": "v"' in text
    assert "## Throwable" in text


# --------------------------------
# Handler
# --------------------------------


def test_json_rendering():
    doc = factory.create(RouteNotFoundError("/api/x"), _req("/api/x"))
    r = ProblemHandler().handle(doc)
    assert r.status_code == 404
    assert r.get_header_line("content-type").startswith("application/json")
    assert json.loads(r.text)["status"] == 404


def test_markdown_for_other_formats():
    doc = factory.create(ValueError("boom"), _req("/p", accept="text/plain"))
    r = ProblemHandler().handle(doc)
    assert r.status_code == 500
    assert r.get_header_line("content-type") == "text/markdown; charset=UTF-8"
    assert "# An Error Occurred" in r.text


def test_html_uses_status_specific_error_page():
    router = DictRouter().add("/errors/404", lambda error: f"<h1>{error.status}</h1>", name="error404")
    doc = factory.create(RouteNotFoundError("/p"), _req("/p", accept="text/html"))
    r = ProblemHandler(router, Dispatcher()).handle(doc)
    assert r.status_code == 404
    assert r.text == "<h1>404</h1>"
    assert r.get_header_line("content-type") == "text/html; charset=UTF-8"


def test_html_falls_back_to_generic_error_page():
    router = DictRouter().add("/errors", lambda error: Response(status_code=error.status, body="generic"), name="error")
    doc = factory.create(RouteNotFoundError("/p"), _req("/p", accept="text/html"))
    r = ProblemHandler(router, Dispatcher()).handle(doc)
    assert r.status_code == 404
    assert r.text == "generic"


def test_html_without_error_pages_degrades_to_markdown():
    doc = factory.create(RouteNotFoundError("/p"), _req("/p", accept="text/html"))
    r = ProblemHandler(DictRouter(), Dispatcher()).handle(doc)
    assert r.status_code == 404
    assert "# An Error Occurred" in r.text


def test_broken_error_page_is_logged_and_degrades(caplog):
    def broken(error):
        raise RuntimeError("template exploded")

    router = DictRouter().add("/errors/500", broken, name="error500")
    doc = factory.create(ValueError("boom"), _req("/p", accept="text/html"))
    with caplog.at_level("WARNING", logger="httpkernel.problem_handler"):
        r = ProblemHandler(router, Dispatcher()).handle(doc)
    assert r.status_code == 500
    assert "# An Error Occurred" in r.text
    assert any(rec.exc_info for rec in caplog.records)


def test_failure_headers_are_applied_last():
    doc = factory.create(TooManyRequestsError(headers={"Retry-After": "7"}), _req("/api/x"))
    r = ProblemHandler().handle(doc)
    assert r.status_code == 429
    assert r.get_header_line("retry-after") == "7"
