from enum import Enum
import io
import json
import logging
from typing import Any, BinaryIO, Callable, Dict, Optional, TypeVar

import requests
from pydantic import ValidationError

from search_link.models.errors import DecodeError, ElasticsearchError, RemoteError, TransportError
from search_link.models.response import ContentType, render_error_body
from search_link.models.transport import Transport, get_transport

logger = logging.getLogger(__name__)

HttpMethod = Enum("HttpMethod", ["GET", "POST", "PUT", "DELETE", "HEAD"])

R = TypeVar("R")
ResponseParser = Callable[[BinaryIO], R]


def json_parser(body: BinaryIO) -> Any:
    return json.load(body)


def text_parser(body: BinaryIO) -> str:
    return body.read().decode("utf-8")


def ignore_body(body: BinaryIO) -> None:
    return None


def execute_json_request(method: HttpMethod, url: str, post_data: Optional[Any],
                         response_parser: ResponseParser, auth=None,
                         transport: Optional[Transport] = None) -> R:
    """
    Send `post_data` (if any) as a JSON body and hand a successful response to `response_parser`.

    Raises TransportError if no response was received, RemoteError for a non-2xx response, and
    DecodeError if the parser rejects a 2xx body.
    """
    if post_data is not None:
        return _send(method, url, response_parser, auth, transport, json=post_data)
    return _send(method, url, response_parser, auth, transport)


def execute_request(method: HttpMethod, url: str, data, response_parser: ResponseParser,
                    headers: Optional[Dict[str, str]] = None, auth=None,
                    transport: Optional[Transport] = None) -> R:
    return _send(method, url, response_parser, auth, transport, data=data, headers=headers)


def _send(method: HttpMethod, url: str, response_parser: ResponseParser, auth, transport: Optional[Transport],
          **kwargs) -> R:
    transport = transport or get_transport()
    logger.debug(f"Sending {method.name} {url}")
    try:
        response = transport.request(method.name, url, auth=auth, **kwargs)
    except requests.exceptions.RequestException as e:
        logger.warning(f"{method.name} {url} did not reach the server: {e}")
        raise TransportError(str(e)) from e
    with response:
        return handle_response(method, url, response, response_parser)


def _read_body(response: requests.Response) -> Optional[bytes]:
    try:
        return response.content
    except requests.exceptions.RequestException as e:
        logger.debug(f"Unable to read response body: {e}")
        return None


def handle_response(method: HttpMethod, url: str, response: requests.Response,
                    response_parser: ResponseParser) -> R:
    # the request was processed by ES, but maybe not successfully
    if not 200 <= response.status_code < 300:
        content_type = ContentType.from_header(response.headers.get("Content-Type"))
        message = render_error_body(content_type, _read_body(response))
        logger.info(f"{method.name} {url} failed with HTTP {response.status_code}")
        raise RemoteError(response.status_code, message)

    body = _read_body(response)
    if body is None:
        raise TransportError(f"Failed reading the response body of {method.name} {url}")
    try:
        return response_parser(io.BytesIO(body))
    except ElasticsearchError:
        raise
    except (ValueError, LookupError, TypeError, AttributeError, ValidationError) as e:
        logger.error(f"Unable to decode the response of {method.name} {url}: {e}")
        raise DecodeError(response.status_code, f"Unable to decode response: {e}") from e
