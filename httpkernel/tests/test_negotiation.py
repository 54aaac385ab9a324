# httpkernel/tests/test_negotiation.py
import pytest

from httpkernel.enums import ContentType
from httpkernel.messages import Request, ServerRequest
from httpkernel.negotiation import ContentNegotiator, parse_accept

neg = ContentNegotiator()


def _req(path="/", headers=None):
    return ServerRequest(uri=path, headers=headers or {})


def test_accept_json_wins():
    assert neg.resolve(_req("/x", {"Accept": "application/json"})) is ContentType.JSON


def test_api_namespace_is_json_regardless_of_accept():
    assert neg.resolve(_req("/api/users", {"Accept": "text/html"})) is ContentType.JSON
    assert neg.resolve(_req("/api")) is ContentType.JSON


def test_api_prefix_needs_segment_boundary():
    assert neg.resolve(_req("/apiary")) is ContentType.HTML


def test_xhr_marker_is_json():
    assert neg.resolve(_req("/page", {"X-Requested-With": "XMLHttpRequest"})) is ContentType.JSON


def test_q_weights_order_candidates():
    r = _req("/page", {"Accept": "text/plain;q=0.5, text/html;q=0.9"})
    assert neg.resolve(r) is ContentType.HTML


def test_equal_weights_keep_listed_order():
    assert neg.resolve(_req("/page", {"Accept": "text/plain, text/html"})) is ContentType.PLAIN


def test_unparsable_q_counts_as_zero():
    r = _req("/page", {"Accept": "text/plain;q=abc, application/json;q=0.1"})
    assert neg.resolve(r) is ContentType.JSON


def test_missing_or_unknown_accept_defaults_to_html():
    assert neg.resolve(_req("/page")) is ContentType.HTML
    assert neg.resolve(_req("/page", {"Accept": "image/png"})) is ContentType.HTML


def test_extension_is_decisive():
    assert neg.resolve(_req("/assets/app.css", {"Accept": "application/json"})) is ContentType.CSS
    assert neg.resolve(_req("/api/report.pdf")) is ContentType.PDF


def test_preferred_format_is_sub_type():
    assert neg.preferred_format(_req("/api/x")) == "json"
    assert neg.preferred_format(_req("/docs.md")) == "markdown"


@pytest.mark.parametrize("ext", ["json", "css", "csv", "html", "png", "gif", "webp", "pdf", "zip", "xml"])
def test_extension_sub_type_round_trip(ext):
    assert ContentType.from_extension(ext).sub_type == ext


def test_unknown_extension_is_octet_stream():
    assert ContentType.from_extension("nope") is ContentType.OCTET_STREAM
    assert ContentType.from_filename("/no/extension") is ContentType.OCTET_STREAM


def test_parse_accept_defaults():
    assert parse_accept("text/html, application/json;q=0.2") == [
        ("text/html", 1.0),
        ("application/json", 0.2),
    ]
    assert parse_accept("") == []


def test_request_helpers_delegate_to_negotiator():
    r = Request(uri="/api/users", headers={"X-Requested-With": "XMLHttpRequest"})
    assert r.is_api_request()
    assert r.is_xml_http_request()
    assert r.get_preferred_content_type() is ContentType.JSON
    assert r.get_preferred_format() == "json"
