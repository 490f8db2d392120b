"""
AWS Signature Version 4 Signing Library.

Provides an incremental digest/HMAC engine and an AWS SigV4 request signer
and verifier built on top of it.

Basic Usage (signing):
    from sigv4_lib import Credentials, SignableRequest, SigV4Signer

    request = SignableRequest.from_url(
        "POST",
        "https://dynamodb.us-east-1.amazonaws.com/",
        headers={"Content-Type": "application/x-amz-json-1.0"},
        content='{"TableName": "test-table"}',
    )
    signer = SigV4Signer()
    signer.sign(request, Credentials("AKIDEXAMPLE", "secret"))
    # request.headers now carries Host, X-Amz-Date and Authorization

Server: Verify a request
    from sigv4_lib import verify_request

    is_valid, error = verify_request(request, Credentials("AKIDEXAMPLE", "secret"))

Engine Usage:
    from sigv4_lib import get_mac

    mac = get_mac("HmacSHA256")
    mac.init(b"key")
    mac.update(b"message")
    tag = mac.do_final()
"""

from sigv4_lib.clock import FixedClock, SystemClock
from sigv4_lib.digest import DigestState, MessageDigest, get_digest, is_equal
from sigv4_lib.errors import (
    EndpointParseError,
    IllegalStateError,
    InvalidAlgorithmParameterError,
    InvalidArgumentError,
    InvalidCredentialsError,
    InvalidKeyError,
    NoSuchAlgorithmError,
    NotCloneableError,
    ShortBufferError,
    Sigv4Error,
    SigningIOError,
)
from sigv4_lib.mac import HmacCore, HmacSHA256, Mac, get_mac
from sigv4_lib.request import Credentials, HeaderMap, SignableRequest
from sigv4_lib.signer import (
    SignerConfig,
    SigningParams,
    SigV4Signer,
    derive_signing_key,
)
from sigv4_lib.verifier import (
    parse_authorization_header,
    verify_request,
    verify_timestamp,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Engines
    "DigestState",
    "HmacCore",
    "HmacSHA256",
    "Mac",
    "MessageDigest",
    "get_digest",
    "get_mac",
    "is_equal",
    # Signing
    "Credentials",
    "FixedClock",
    "HeaderMap",
    "SignableRequest",
    "SignerConfig",
    "SigningParams",
    "SigV4Signer",
    "SystemClock",
    "derive_signing_key",
    # Verification
    "parse_authorization_header",
    "verify_request",
    "verify_timestamp",
    # Errors
    "EndpointParseError",
    "IllegalStateError",
    "InvalidAlgorithmParameterError",
    "InvalidArgumentError",
    "InvalidCredentialsError",
    "InvalidKeyError",
    "NoSuchAlgorithmError",
    "NotCloneableError",
    "ShortBufferError",
    "Sigv4Error",
    "SigningIOError",
]
