"""
AWS Signature Version 4 request signer.

Signing runs in four steps:

1. Canonical request (see ``sigv4_lib.canonical``)
2. String to sign: algorithm, timestamp, scope and the canonical request hash
3. Signing key: an HMAC chain over date, region, service and "aws4_request"
4. Signature: HMAC of the string to sign, attached as the Authorization header

Usage:
    signer = SigV4Signer(service_name="iam", region_name="us-east-1")
    request = SignableRequest.from_url("GET", "https://iam.amazonaws.com/?Action=ListUsers")
    signer.sign(request, Credentials("AKID", "secret"))
    request.headers["Authorization"]
"""

import dataclasses
import logging
import re
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sigv4_lib.canonical import (
    LINE_SEPARATOR,
    calculate_content_hash,
    create_canonical_request,
    signed_headers_string,
)
from sigv4_lib.clock import STANDARD
from sigv4_lib.codec import as_utc, format_date_stamp, format_timestamp, to_hex, to_utf8
from sigv4_lib.digest import BytesLike, get_digest
from sigv4_lib.errors import EndpointParseError, InvalidCredentialsError
from sigv4_lib.mac import get_mac, wipe
from sigv4_lib.request import Credentials, HeaderMap, SignableRequest

logger = logging.getLogger(__name__)

AWS4_SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"
AWS4_TERMINATOR = "aws4_request"
SIGNING_MAC_ALGORITHM = "HmacSHA256"

AUTHORIZATION = "Authorization"
HOST = "Host"
X_AMZ_DATE = "X-Amz-Date"
X_AMZ_CONTENT_SHA256 = "x-amz-content-sha256"
X_AMZ_SECURITY_TOKEN = "X-Amz-Security-Token"

# Sentinel value a caller sets on x-amz-content-sha256 to have it filled in
CONTENT_SHA256_REQUIRED = "required"

DEFAULT_REGION = "us-east-1"

_AMAZONAWS_SUFFIX = ".amazonaws.com"
_S3_ENDPOINT_PATTERN = re.compile(r"^(?:.+\.)?s3[.-]([a-z0-9-]+)$")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _endpoint_host(endpoint: str) -> str:
    """Host part of the endpoint authority, IPv6 brackets included."""
    authority = urllib.parse.urlsplit(endpoint).netloc.rpartition("@")[2]
    if authority.startswith("["):
        return authority[: authority.index("]") + 1]
    return authority.partition(":")[0]


def host_header(endpoint: str) -> str:
    """Host header value: the endpoint host, plus the port if non-default."""
    parts = urllib.parse.urlsplit(endpoint)
    host = _endpoint_host(endpoint)
    port = parts.port
    if port is not None and port != _DEFAULT_PORTS.get(parts.scheme.lower()):
        return f"{host}:{port}"
    return host


def _parse_standard_region_name(fragment: str) -> str:
    match = _S3_ENDPOINT_PATTERN.match(fragment)
    if match:
        return match.group(1)

    index = fragment.rfind(".")
    if index == -1:
        return DEFAULT_REGION

    region = fragment[index + 1 :]
    if region == "us-gov":
        region = "us-gov-west-1"
    return region


def parse_region_name(host: str, service_hint: Optional[str] = None) -> str:
    """
    Guess the region from an endpoint host.

    Args:
        host: Endpoint host name (e.g. "sqs.eu-west-1.amazonaws.com")
        service_hint: Endpoint prefix used to find the region in
            non-standard hosts

    Returns:
        The region name, or "us-east-1" when none can be found
    """
    if host.endswith(_AMAZONAWS_SUFFIX):
        return _parse_standard_region_name(host[: -len(_AMAZONAWS_SUFFIX)])

    if service_hint:
        pattern = re.compile(r"^(?:.+\.)?" + re.escape(service_hint) + r"[.-]([a-z0-9-]+)\.")
        match = pattern.match(host)
        if match:
            return match.group(1)

    return DEFAULT_REGION


def parse_service_name(host: str) -> str:
    """
    Derive the service name from an ``*.amazonaws.com`` host.

    Raises:
        EndpointParseError: If the host is not an AWS endpoint
    """
    if not host.endswith(_AMAZONAWS_SUFFIX):
        raise EndpointParseError(f"Cannot parse a service name from an unrecognized endpoint ({host}).")

    service_and_region = host[: host.index(_AMAZONAWS_SUFFIX)]
    if service_and_region.endswith(".s3") or _S3_ENDPOINT_PATTERN.match(service_and_region):
        return "s3"
    return service_and_region.partition(".")[0]


@dataclass(frozen=True)
class SigningParams:
    """Per-call values shared by the string to sign and the signing key."""

    signing_datetime: datetime
    region_name: str
    service_name: str
    algorithm: str = AWS4_SIGNING_ALGORITHM

    @property
    def formatted_signing_date(self) -> str:
        return format_date_stamp(self.signing_datetime)

    @property
    def formatted_signing_datetime(self) -> str:
        return format_timestamp(self.signing_datetime)

    @property
    def scope(self) -> str:
        return f"{self.formatted_signing_date}/{self.region_name}/{self.service_name}/{AWS4_TERMINATOR}"


@dataclass(frozen=True)
class SignerConfig:
    """
    Signer settings fixed at construction.

    Attributes:
        service_name: Service override (default: parsed from the endpoint)
        region_name: Region override (default: parsed from the endpoint)
        double_url_encode: Encode the resource path a second time, as most
            services other than S3 expect
        endpoint_prefix: Service hint used when parsing the region
            (default: the service name)
        override_date: Fixed signing time, for tests only
    """

    service_name: Optional[str] = None
    region_name: Optional[str] = None
    double_url_encode: bool = True
    endpoint_prefix: Optional[str] = None
    override_date: Optional[datetime] = None


def hmac_sha256(key: BytesLike, data: Union[str, BytesLike]) -> bytes:
    mac = get_mac(SIGNING_MAC_ALGORITHM)
    mac.init(key)
    return mac.do_final(to_utf8(data) if isinstance(data, str) else data)


def derive_signing_key(
    secret_key: Union[str, bytes],
    date_stamp: str,
    region_name: str,
    service_name: str,
) -> bytearray:
    """
    Derive the date/region/service scoped signing key.

    Intermediate keys are zeroed before returning; the caller owns the
    returned buffer and should ``wipe`` it once the signature is computed.
    """
    if isinstance(secret_key, str):
        k_secret = bytearray(to_utf8("AWS4" + secret_key))
    else:
        k_secret = bytearray(b"AWS4" + secret_key)

    k_date = k_region = k_service = bytearray()
    try:
        k_date = bytearray(hmac_sha256(k_secret, date_stamp))
        k_region = bytearray(hmac_sha256(k_date, region_name))
        k_service = bytearray(hmac_sha256(k_region, service_name))
        return bytearray(hmac_sha256(k_service, AWS4_TERMINATOR))
    finally:
        for scratch in (k_secret, k_date, k_region, k_service):
            wipe(scratch)


def create_string_to_sign(canonical_request: str, params: SigningParams) -> str:
    """Algorithm, timestamp, scope and hex SHA-256 of the canonical request."""
    canonical_hash = to_hex(get_digest("SHA-256").digest(to_utf8(canonical_request)))
    string_to_sign = LINE_SEPARATOR.join(
        [
            params.algorithm,
            params.formatted_signing_datetime,
            params.scope,
            canonical_hash,
        ]
    )
    logger.debug("String to sign:\n%s", string_to_sign)
    return string_to_sign


def sanitize_credentials(credentials: Optional[Credentials]) -> Credentials:
    """
    Strip whitespace around each credential part.

    Raises:
        InvalidCredentialsError: If the access key id or secret key is missing
    """
    if credentials is None:
        raise InvalidCredentialsError("No credentials provided")

    access_key_id = credentials.access_key_id
    secret_key = credentials.secret_key
    if isinstance(access_key_id, str):
        access_key_id = access_key_id.strip()
    if isinstance(secret_key, str):
        secret_key = secret_key.strip()
    if not access_key_id:
        raise InvalidCredentialsError("Missing access key id")
    if not secret_key:
        raise InvalidCredentialsError("Missing secret key")

    session_token = credentials.session_token
    if session_token is not None:
        session_token = session_token.strip()
    return Credentials(access_key_id, secret_key, session_token)


class SigV4Signer:
    """
    Signs requests with the AWS4-HMAC-SHA256 algorithm.

    A signer keeps only its configuration between calls; credentials and
    derived keys live for a single ``sign`` call.
    """

    def __init__(
        self,
        service_name: Optional[str] = None,
        region_name: Optional[str] = None,
        double_url_encode: bool = True,
        endpoint_prefix: Optional[str] = None,
        clock=None,
        override_date: Optional[datetime] = None,
    ):
        self.config = SignerConfig(
            service_name=service_name,
            region_name=region_name,
            double_url_encode=double_url_encode,
            endpoint_prefix=endpoint_prefix,
            override_date=as_utc(override_date) if override_date is not None else None,
        )
        self._clock = clock or STANDARD

    def signing_params(self, request: SignableRequest) -> SigningParams:
        """
        Resolve signing time, region and service for ``request``.

        Raises:
            EndpointParseError: If no service override is set and the
                endpoint is not an AWS host
        """
        config = self.config
        if config.override_date is not None:
            signing_datetime = config.override_date
        else:
            signing_datetime = as_utc(self._clock.now()) - timedelta(seconds=request.time_offset)

        host = urllib.parse.urlsplit(request.endpoint).hostname or ""
        region_name = config.region_name or parse_region_name(
            host, config.endpoint_prefix or config.service_name
        )
        service_name = config.service_name or parse_service_name(host)
        return SigningParams(signing_datetime, region_name, service_name)

    def create_canonical_request(self, request: SignableRequest, content_sha256: str) -> str:
        return create_canonical_request(request, content_sha256, self.config.double_url_encode)

    def create_string_to_sign(self, canonical_request: str, params: SigningParams) -> str:
        return create_string_to_sign(canonical_request, params)

    def compute_signature(self, string_to_sign: str, signing_key: BytesLike) -> bytes:
        return hmac_sha256(signing_key, string_to_sign)

    def build_authorization_header(
        self,
        headers: HeaderMap,
        signature: bytes,
        credentials: Credentials,
        params: SigningParams,
    ) -> str:
        return (
            f"{params.algorithm} "
            f"Credential={credentials.access_key_id}/{params.scope}, "
            f"SignedHeaders={signed_headers_string(headers)}, "
            f"Signature={to_hex(signature)}"
        )

    def sign(self, request: SignableRequest, credentials: Credentials) -> None:
        """
        Sign ``request`` in place.

        Sets Host, X-Amz-Date and Authorization (plus X-Amz-Security-Token
        for session credentials, and x-amz-content-sha256 when the request
        carries it with the value "required"). The request is left untouched
        if any step fails.

        Raises:
            InvalidCredentialsError: If credentials are missing
            EndpointParseError: If the service name cannot be resolved
            SigningIOError: If the payload stream cannot be read and rewound
        """
        credentials = sanitize_credentials(credentials)
        params = self.signing_params(request)

        working = dataclasses.replace(request, headers=request.headers.copy())
        working.headers.pop(AUTHORIZATION, None)
        added = []

        if credentials.session_token:
            working.headers[X_AMZ_SECURITY_TOKEN] = credentials.session_token
            added.append(X_AMZ_SECURITY_TOKEN)

        working.headers[HOST] = host_header(request.endpoint)
        working.headers[X_AMZ_DATE] = params.formatted_signing_datetime
        added.extend([HOST, X_AMZ_DATE])

        content_sha256 = calculate_content_hash(request.content)
        if working.headers.get(X_AMZ_CONTENT_SHA256) == CONTENT_SHA256_REQUIRED:
            working.headers[X_AMZ_CONTENT_SHA256] = content_sha256
            added.append(X_AMZ_CONTENT_SHA256)

        canonical_request = self.create_canonical_request(working, content_sha256)
        string_to_sign = self.create_string_to_sign(canonical_request, params)

        signing_key = derive_signing_key(
            credentials.secret_key,
            params.formatted_signing_date,
            params.region_name,
            params.service_name,
        )
        try:
            signature = self.compute_signature(string_to_sign, signing_key)
        finally:
            wipe(signing_key)

        working.headers[AUTHORIZATION] = self.build_authorization_header(
            working.headers, signature, credentials, params
        )
        added.append(AUTHORIZATION)

        for name in added:
            request.headers[name] = working.headers[name]
        logger.debug("Signed %s request with scope %s", request.method, params.scope)
