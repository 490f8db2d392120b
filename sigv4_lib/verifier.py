"""
Verification of SigV4 signed requests on the receiving side.

The verifier rebuilds the canonical request from exactly the headers the
client listed as signed, derives the same signing key and compares the two
signatures in constant time.
"""

import dataclasses
import logging
import re
from typing import Any, Optional, Tuple

from sigv4_lib.canonical import calculate_content_hash, create_canonical_request
from sigv4_lib.clock import STANDARD
from sigv4_lib.codec import as_utc, from_hex, parse_timestamp
from sigv4_lib.digest import is_equal
from sigv4_lib.errors import InvalidArgumentError
from sigv4_lib.mac import wipe
from sigv4_lib.request import Credentials, HeaderMap, SignableRequest
from sigv4_lib.signer import (
    AUTHORIZATION,
    AWS4_SIGNING_ALGORITHM,
    AWS4_TERMINATOR,
    X_AMZ_DATE,
    SigningParams,
    create_string_to_sign,
    derive_signing_key,
    hmac_sha256,
    sanitize_credentials,
)

logger = logging.getLogger(__name__)

# Tolerance for clients whose clocks run ahead of ours
FUTURE_TOLERANCE_SECONDS = 60

_AUTH_HEADER_RE = re.compile(
    r"^(?P<algorithm>\S+)\s+"
    r"Credential=(?P<access_key_id>[^/,\s]+)/"
    r"(?P<date>\d{8})/(?P<region>[^/,\s]+)/(?P<service>[^/,\s]+)/(?P<terminator>[^/,\s]+),\s*"
    r"SignedHeaders=(?P<signed_headers>[^,\s]+),\s*"
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)


def parse_authorization_header(auth_header: Optional[str]) -> dict[str, Any]:
    """
    Parse a SigV4 Authorization header.

    Expected format:
    AWS4-HMAC-SHA256 Credential=<key>/<date>/<region>/<service>/aws4_request,
    SignedHeaders=<h1;h2>, Signature=<hex>

    Returns:
        Dictionary with 'algorithm', 'access_key_id', 'date', 'region',
        'service', 'scope', 'signed_headers' (list) and 'signature'

    Raises:
        InvalidArgumentError: If the header format is invalid
    """
    if not auth_header:
        raise InvalidArgumentError("Empty authorization header")

    match = _AUTH_HEADER_RE.match(auth_header.strip())
    if not match:
        raise InvalidArgumentError("Invalid SigV4 authorization header format")
    if match.group("algorithm") != AWS4_SIGNING_ALGORITHM:
        raise InvalidArgumentError(f"Unsupported signing algorithm: {match.group('algorithm')}")
    if match.group("terminator") != AWS4_TERMINATOR:
        raise InvalidArgumentError("Credential scope must end with aws4_request")

    scope = "/".join(
        [match.group("date"), match.group("region"), match.group("service"), AWS4_TERMINATOR]
    )
    return {
        "algorithm": match.group("algorithm"),
        "access_key_id": match.group("access_key_id"),
        "date": match.group("date"),
        "region": match.group("region"),
        "service": match.group("service"),
        "scope": scope,
        "signed_headers": match.group("signed_headers").split(";"),
        "signature": match.group("signature"),
    }


def verify_timestamp(
    amz_date: Optional[str], clock=None, max_age_seconds: int = 300
) -> Tuple[bool, Optional[str]]:
    """
    Verify that an X-Amz-Date timestamp is within acceptable age.

    Args:
        amz_date: The X-Amz-Date header value (yyyyMMdd'T'HHmmss'Z')
        clock: Clock to compare against (default: system clock)
        max_age_seconds: Maximum acceptable age in seconds (default: 5 minutes)

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        request_time = parse_timestamp(amz_date)
    except (TypeError, ValueError) as e:
        return False, f"Invalid X-Amz-Date header: {e}"

    current_time = as_utc((clock or STANDARD).now())
    age = (current_time - request_time).total_seconds()

    if age > max_age_seconds:
        return False, f"Request timestamp too old: {age:.0f} seconds (max: {max_age_seconds})"

    if -age > FUTURE_TOLERANCE_SECONDS:
        return False, "Request timestamp is in the future"

    return True, None


def verify_request(
    request: SignableRequest,
    credentials: Credentials,
    clock=None,
    max_age_seconds: int = 300,
    double_url_encode: bool = True,
) -> Tuple[bool, Optional[str]]:
    """
    Verify the SigV4 signature carried by ``request``.

    Args:
        request: The received request, Authorization header included
        credentials: Credentials of the access key the client claims to use
        clock: Clock used for the timestamp check (default: system clock)
        max_age_seconds: Maximum age for X-Amz-Date (default: 5 minutes)
        double_url_encode: Must match the client's signer setting

    Returns:
        Tuple of (is_valid, error_message)

    Raises:
        InvalidCredentialsError: If ``credentials`` are incomplete
        SigningIOError: If the payload cannot be read and rewound
    """
    credentials = sanitize_credentials(credentials)
    is_valid, error = _check_signature(request, credentials, clock, max_age_seconds, double_url_encode)
    if not is_valid:
        logger.debug("Rejected %s request: %s", request.method, error)
    return is_valid, error


def _check_signature(
    request: SignableRequest,
    credentials: Credentials,
    clock,
    max_age_seconds: int,
    double_url_encode: bool,
) -> Tuple[bool, Optional[str]]:
    auth_header = request.headers.get(AUTHORIZATION)
    if not auth_header:
        return False, "Missing Authorization header"

    try:
        header_data = parse_authorization_header(auth_header)
    except InvalidArgumentError as e:
        return False, str(e)

    if header_data["access_key_id"] != credentials.access_key_id:
        return False, f"Unknown access key: {header_data['access_key_id']}"

    amz_date = request.headers.get(X_AMZ_DATE)
    if not amz_date:
        return False, "Missing required X-Amz-Date header"

    is_valid_time, time_error = verify_timestamp(amz_date, clock, max_age_seconds)
    if not is_valid_time:
        return False, f"Timestamp validation failed: {time_error}"

    if not amz_date.startswith(header_data["date"]):
        return False, "Credential scope date does not match X-Amz-Date"

    signed_header_names = header_data["signed_headers"]
    if "host" not in signed_header_names:
        return False, "Host header must be included in signed headers"

    headers_to_verify = HeaderMap()
    for header_name in signed_header_names:
        if header_name not in request.headers:
            return False, f"Signed header '{header_name}' not found in request"
        headers_to_verify[header_name] = request.headers[header_name]

    content_sha256 = calculate_content_hash(request.content)
    canonical_request = create_canonical_request(
        dataclasses.replace(request, headers=headers_to_verify),
        content_sha256,
        double_url_encode,
    )
    params = SigningParams(parse_timestamp(amz_date), header_data["region"], header_data["service"])
    string_to_sign = create_string_to_sign(canonical_request, params)

    signing_key = derive_signing_key(
        credentials.secret_key, params.formatted_signing_date, params.region_name, params.service_name
    )
    try:
        expected_signature = hmac_sha256(signing_key, string_to_sign)
    finally:
        wipe(signing_key)

    if is_equal(expected_signature, from_hex(header_data["signature"])):
        return True, None

    return False, "Signature mismatch"
