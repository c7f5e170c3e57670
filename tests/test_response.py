import json

import cbor2
import pytest

from search_link.models.response import NO_RESPONSE_DATA, ContentType, render_error_body


@pytest.mark.parametrize("header, expected", [
    ("application/json", ContentType.JSON),
    ("application/json; charset=UTF-8", ContentType.JSON),
    ("Application/CBOR", ContentType.CBOR),
    ("text/plain; charset=UTF-8", ContentType.TEXT),
    ("text/html", ContentType.TEXT),
    ("", ContentType.TEXT),
    (None, ContentType.TEXT),
])
def test_content_type_from_header(header, expected):
    assert ContentType.from_header(header) is expected


def test_json_body_is_pretty_printed():
    assert render_error_body(ContentType.JSON, b'{"error":{"reason":"x"}}') == \
        json.dumps({"error": {"reason": "x"}}, indent=2)


def test_cbor_and_json_render_the_same():
    error = {"error": {"type": "version_conflict_engine_exception"}, "status": 409}
    assert render_error_body(ContentType.CBOR, cbor2.dumps(error)) == \
        render_error_body(ContentType.JSON, json.dumps(error).encode())


def test_invalid_cbor_falls_back_to_text():
    assert render_error_body(ContentType.CBOR, b"gateway timeout") != NO_RESPONSE_DATA


def test_text_body_is_verbatim():
    assert render_error_body(ContentType.TEXT, "résumé not found".encode("utf-8")) == "résumé not found"


def test_missing_or_binary_body_uses_placeholder():
    assert render_error_body(ContentType.TEXT, None) == NO_RESPONSE_DATA
    assert render_error_body(ContentType.TEXT, b"\xff\xfe") == NO_RESPONSE_DATA
    assert render_error_body(ContentType.JSON, b"\xff\xfe") == NO_RESPONSE_DATA


def test_cbor_map_with_array_keys_falls_back():
    # {[1, 2]: "z"} decodes to a dict keyed by a tuple, which has no JSON form
    assert render_error_body(ContentType.CBOR, bytes.fromhex("a1820102617a")) == NO_RESPONSE_DATA
