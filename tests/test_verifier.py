"""
Unit tests for SigV4 signature verification.

Requests are signed with SigV4Signer and then verified, mirroring a client
and a server sharing the same credentials.
"""

import io
import unittest
from datetime import datetime, timedelta, timezone

import pytest

from sigv4_lib.clock import FixedClock
from sigv4_lib.errors import InvalidArgumentError
from sigv4_lib.request import Credentials, SignableRequest
from sigv4_lib.signer import SigV4Signer
from sigv4_lib.verifier import parse_authorization_header, verify_request, verify_timestamp

ACCESS_KEY = "AKIDEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
SIGNING_TIME = datetime(2015, 8, 30, 12, 36, 0, tzinfo=timezone.utc)

GET_VANILLA_AUTHORIZATION = (
    "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20150830/us-east-1/service/aws4_request, "
    "SignedHeaders=host;x-amz-date, "
    "Signature=5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
)


class TestAuthorizationHeaderParsing(unittest.TestCase):
    """Test Authorization header parsing."""

    def test_parse_valid_header(self):
        params = parse_authorization_header(GET_VANILLA_AUTHORIZATION)

        self.assertEqual(params["algorithm"], "AWS4-HMAC-SHA256")
        self.assertEqual(params["access_key_id"], "AKIDEXAMPLE")
        self.assertEqual(params["date"], "20150830")
        self.assertEqual(params["region"], "us-east-1")
        self.assertEqual(params["service"], "service")
        self.assertEqual(params["scope"], "20150830/us-east-1/service/aws4_request")
        self.assertEqual(params["signed_headers"], ["host", "x-amz-date"])
        self.assertEqual(
            params["signature"], "5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
        )

    def test_parse_invalid_header_format(self):
        with self.assertRaises(InvalidArgumentError):
            parse_authorization_header("")

        with self.assertRaises(InvalidArgumentError):
            parse_authorization_header("Bearer token123")

        with self.assertRaises(InvalidArgumentError):
            parse_authorization_header(GET_VANILLA_AUTHORIZATION.replace("Signature=5f", "Signature=zz"))

    def test_parse_unsupported_algorithm(self):
        with pytest.raises(ValueError):
            parse_authorization_header(GET_VANILLA_AUTHORIZATION.replace("AWS4-HMAC-SHA256", "AWS4-HMAC-SHA512"))

    def test_parse_bad_terminator(self):
        with self.assertRaises(InvalidArgumentError):
            parse_authorization_header(GET_VANILLA_AUTHORIZATION.replace("aws4_request", "aws4_other"))


class TestTimestampValidation(unittest.TestCase):
    """Test X-Amz-Date validation."""

    def test_recent_timestamp(self):
        clock = FixedClock(SIGNING_TIME + timedelta(seconds=30))
        self.assertEqual(verify_timestamp("20150830T123600Z", clock), (True, None))

    def test_expired_timestamp(self):
        clock = FixedClock(SIGNING_TIME + timedelta(hours=1))
        result, message = verify_timestamp("20150830T123600Z", clock, max_age_seconds=300)
        self.assertFalse(result)
        self.assertIn("too old", message)

    def test_future_timestamp(self):
        clock = FixedClock(SIGNING_TIME - timedelta(minutes=5))
        result, message = verify_timestamp("20150830T123600Z", clock)
        self.assertFalse(result)
        self.assertEqual(message, "Request timestamp is in the future")

    def test_invalid_timestamp_format(self):
        result, _ = verify_timestamp("not a date")
        self.assertFalse(result)

        result, _ = verify_timestamp(None)
        self.assertFalse(result)


class TestVerifyRequest(unittest.TestCase):
    """Test full sign-then-verify flows."""

    def setUp(self):
        self.clock = FixedClock(SIGNING_TIME)
        self.credentials = Credentials(ACCESS_KEY, SECRET_KEY)
        self.signer = SigV4Signer(service_name="service", region_name="us-east-1", clock=self.clock)

    def _signed_request(self, content=b'{"eventId": "12345"}'):
        request = SignableRequest.from_url(
            "POST",
            "https://example.amazonaws.com/feedback/scheduling?page=1",
            headers={"Content-Type": "application/json"},
            content=io.BytesIO(content),
        )
        self.signer.sign(request, self.credentials)
        return request

    def test_valid_signature(self):
        request = self._signed_request()
        self.assertEqual(verify_request(request, self.credentials, self.clock), (True, None))

    def test_published_request(self):
        """Test verifying the get-vanilla request from the AWS test suite."""
        request = SignableRequest(
            "GET",
            "https://example.amazonaws.com",
            "/",
            headers={
                "Host": "example.amazonaws.com",
                "X-Amz-Date": "20150830T123600Z",
                "Authorization": GET_VANILLA_AUTHORIZATION,
            },
        )
        self.assertEqual(verify_request(request, self.credentials, self.clock), (True, None))

    def test_unsigned_header_added_later(self):
        """Test that headers outside SignedHeaders do not affect verification."""
        request = self._signed_request()
        request.headers["User-Agent"] = "python-requests/2.32.4"
        self.assertEqual(verify_request(request, self.credentials, self.clock), (True, None))

    def test_tampered_body(self):
        request = self._signed_request()
        request.content = io.BytesIO(b'{"eventId": "99999"}')
        self.assertEqual(verify_request(request, self.credentials, self.clock), (False, "Signature mismatch"))

    def test_tampered_signed_header(self):
        request = self._signed_request()
        request.headers["Content-Type"] = "text/plain"
        self.assertEqual(verify_request(request, self.credentials, self.clock), (False, "Signature mismatch"))

    def test_tampered_query(self):
        request = self._signed_request()
        request.parameters["page"] = ["2"]
        self.assertEqual(verify_request(request, self.credentials, self.clock), (False, "Signature mismatch"))

    def test_wrong_secret(self):
        request = self._signed_request()
        result, message = verify_request(request, Credentials(ACCESS_KEY, "other-secret"), self.clock)
        self.assertFalse(result)
        self.assertEqual(message, "Signature mismatch")

    def test_unknown_access_key(self):
        request = self._signed_request()
        result, message = verify_request(request, Credentials("AKIDOTHER", SECRET_KEY), self.clock)
        self.assertFalse(result)
        self.assertIn("Unknown access key", message)

    def test_missing_authorization_header(self):
        request = SignableRequest("GET", "https://example.amazonaws.com", "/")
        self.assertEqual(
            verify_request(request, self.credentials, self.clock),
            (False, "Missing Authorization header"),
        )

    def test_rejections_logged(self):
        """Test that early rejections are logged at DEBUG without the secret."""
        request = SignableRequest("GET", "https://example.amazonaws.com", "/")
        with self.assertLogs("sigv4_lib.verifier", level="DEBUG") as logs:
            verify_request(request, self.credentials, self.clock)

        self.assertEqual(len(logs.records), 1)
        self.assertIn("Missing Authorization header", logs.output[0])
        self.assertNotIn(SECRET_KEY, logs.output[0])

    def test_missing_signed_header(self):
        request = self._signed_request()
        del request.headers["Content-Type"]
        result, message = verify_request(request, self.credentials, self.clock)
        self.assertFalse(result)
        self.assertEqual(message, "Signed header 'content-type' not found in request")

    def test_expired_request(self):
        request = self._signed_request()
        later = FixedClock(SIGNING_TIME + timedelta(hours=1))
        result, message = verify_request(request, self.credentials, later)
        self.assertFalse(result)
        self.assertTrue(message.startswith("Timestamp validation failed"))

    def test_scope_date_mismatch(self):
        request = self._signed_request()
        request.headers["Authorization"] = request.headers["Authorization"].replace("20150830/", "20150829/")
        result, message = verify_request(request, self.credentials, self.clock)
        self.assertFalse(result)
        self.assertEqual(message, "Credential scope date does not match X-Amz-Date")

    def test_malformed_authorization_header(self):
        request = self._signed_request()
        request.headers["Authorization"] = "HMAC-SHA256 Signature=abc"
        result, message = verify_request(request, self.credentials, self.clock)
        self.assertFalse(result)
        self.assertEqual(message, "Invalid SigV4 authorization header format")


if __name__ == "__main__":
    unittest.main()
