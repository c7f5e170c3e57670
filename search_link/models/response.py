from enum import Enum
import json
import logging
from typing import Callable, Dict, Optional

import cbor2

logger = logging.getLogger(__name__)

NO_RESPONSE_DATA = "no response data"


class ContentType(Enum):
    JSON = "application/json"
    CBOR = "application/cbor"
    TEXT = "text/plain"

    @classmethod
    def from_header(cls, value: Optional[str]) -> "ContentType":
        # Elasticsearch sends e.g. "application/json; charset=UTF-8"
        if not value:
            return cls.TEXT
        mime = value.split(";", 1)[0].strip().lower()
        for content_type in (cls.JSON, cls.CBOR):
            if mime == content_type.value:
                return content_type
        return cls.TEXT


def _pretty(value) -> str:
    return json.dumps(value, indent=2, default=str)


def _render_json(body: bytes) -> str:
    return _pretty(json.loads(body))


def _render_cbor(body: bytes) -> str:
    # CBOR error bodies are rendered as pretty JSON so that both encodings produce the same message format
    return _pretty(cbor2.loads(body))


def _render_text(body: bytes) -> str:
    return body.decode("utf-8")


RENDERERS: Dict[ContentType, Callable[[bytes], str]] = {
    ContentType.JSON: _render_json,
    ContentType.CBOR: _render_cbor,
    ContentType.TEXT: _render_text,
}


def render_error_body(content_type: ContentType, body: Optional[bytes]) -> str:
    """
    Render the body of a non-2xx response as a human readable message.

    Structured bodies that fail to decode fall back to their raw text, and a body that could
    not be read at all (or is not text) becomes a fixed placeholder.
    """
    if body is None:
        return NO_RESPONSE_DATA
    try:
        return RENDERERS[content_type](body)
    except (ValueError, TypeError, cbor2.CBORDecodeError) as e:
        if content_type is ContentType.TEXT:
            return NO_RESPONSE_DATA
        logger.debug(f"Unable to decode {content_type.value} error body, using raw text: {e}")
    try:
        return _render_text(body)
    except UnicodeDecodeError:
        return NO_RESPONSE_DATA
