"""
Canonical request construction for AWS Signature Version 4.

The canonical request is six LF-separated parts:

    HTTPMethod
    CanonicalURI
    CanonicalQueryString
    CanonicalHeaders
    SignedHeaders
    HashedPayload

A verifying service rebuilds the same string independently, so every rule
here is byte-exact.
"""

import logging
import urllib.parse
from collections.abc import Mapping
from typing import Optional

from sigv4_lib.codec import (
    CASE_INSENSITIVE_ORDER,
    append_uri,
    compact_whitespace,
    to_hex,
    url_encode,
)
from sigv4_lib.digest import get_digest
from sigv4_lib.errors import SigningIOError
from sigv4_lib.request import Payload, SignableRequest

logger = logging.getLogger(__name__)

LINE_SEPARATOR = "\n"

# Never signed: proxies and tracing layers rewrite them in transit
IGNORED_HEADERS = frozenset({"connection", "x-amzn-trace-id"})

READ_CHUNK_SIZE = 64 * 1024


def should_exclude_header(name: str) -> bool:
    return name.lower() in IGNORED_HEADERS


def _signable_header_names(headers: Mapping[str, Optional[str]]) -> list[str]:
    names = sorted(headers.keys(), key=CASE_INSENSITIVE_ORDER)
    return [name for name in names if not should_exclude_header(name)]


def canonical_header_string(headers: Mapping[str, Optional[str]]) -> str:
    """One ``name:value`` line per signable header, each ending in LF."""
    lines = []
    for name in _signable_header_names(headers):
        lines.append(f"{compact_whitespace(name.lower())}:{compact_whitespace(headers[name])}\n")
    return "".join(lines)


def signed_headers_string(headers: Mapping[str, Optional[str]]) -> str:
    return ";".join(name.lower() for name in _signable_header_names(headers))


def canonical_query_string(parameters: Mapping[str, list[Optional[str]]]) -> str:
    """
    Encode and sort query parameters.

    Names are sorted after encoding; the values of a repeated name are
    sorted after encoding too. A missing value renders as ``name=``.
    """
    encoded: dict[str, list[str]] = {}
    for name, values in parameters.items():
        if values is None:
            values = [None]
        encoded.setdefault(url_encode(name), []).extend(url_encode(value) for value in values)

    pairs = []
    for name in sorted(encoded):
        for value in sorted(encoded[name]):
            pairs.append(f"{name}={value}")
    return "&".join(pairs)


def canonical_resource_path(endpoint: str, resource_path: Optional[str], double_url_encode: bool) -> str:
    """
    Build the canonical URI.

    The resource path is encoded once when joined to the endpoint path and,
    with ``double_url_encode``, encoded a second time.
    """
    path = append_uri(urllib.parse.urlsplit(endpoint).path, resource_path)
    if not path:
        return "/"
    value = url_encode(path, path=True) if double_url_encode else path
    return value if value.startswith("/") else "/" + value


def calculate_content_hash(content: Payload) -> str:
    """
    Hex SHA-256 of the payload.

    Streams are read to the end and then rewound to where they started, so
    the transport can send the body afterwards.

    Raises:
        SigningIOError: If the stream cannot be read or rewound
    """
    md = get_digest("SHA-256")
    if content is None:
        return to_hex(md.digest())
    if isinstance(content, str):
        return to_hex(md.digest(content.encode("utf-8")))
    if isinstance(content, (bytes, bytearray)):
        return to_hex(md.digest(content))

    seekable = getattr(content, "seekable", None)
    try:
        if seekable is None or not seekable():
            raise SigningIOError("Payload stream does not support rewinding")
        start = content.tell()
    except SigningIOError:
        raise
    except (OSError, ValueError) as e:
        raise SigningIOError("Unable to read payload stream") from e

    try:
        _update_from_stream(md, content)
    finally:
        # rewind even when reading failed part way through
        try:
            content.seek(start)
        except (OSError, ValueError) as e:
            raise SigningIOError("Unable to reset stream after calculating AWS4 signature") from e

    return to_hex(md.digest())


def _update_from_stream(md, content) -> None:
    try:
        while True:
            chunk = content.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            if isinstance(chunk, str):
                raise SigningIOError("Payload stream must be opened in binary mode")
            md.update(chunk)
    except SigningIOError:
        raise
    except (OSError, ValueError) as e:
        raise SigningIOError("Unable to read payload stream") from e


def create_canonical_request(
    request: SignableRequest,
    content_sha256: str,
    double_url_encode: bool = True,
) -> str:
    """
    Serialize ``request`` into its canonical form.

    Args:
        request: The request, with every header that is to be signed
        content_sha256: Hex SHA-256 of the payload
        double_url_encode: Encode the resource path a second time

    Returns:
        The canonical request string
    """
    canonical_request = LINE_SEPARATOR.join(
        [
            request.method,
            canonical_resource_path(request.endpoint, request.resource_path, double_url_encode),
            canonical_query_string(request.parameters),
            canonical_header_string(request.headers),
            signed_headers_string(request.headers),
            content_sha256,
        ]
    )
    logger.debug("Canonical request:\n%s", canonical_request)
    return canonical_request
