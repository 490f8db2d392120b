"""
Binary and text helpers shared by the canonicalization and signing steps.
"""

import functools
import re
import urllib.parse
from datetime import datetime, timezone
from typing import Optional

from sigv4_lib.digest import BytesLike

# Characters matched by "\s" in the canonical header rules
_WHITESPACE = " \t\n\x0b\r\f"
_WHITESPACE_RUN = re.compile(r"[ \t\n\x0b\r\f]+")

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"


def to_hex(data: BytesLike) -> str:
    """Lower-case base16 encoding."""
    return bytes(data).hex()


def from_hex(value: str) -> bytes:
    return bytes.fromhex(value)


def to_utf8(value: str) -> bytes:
    return value.encode("utf-8")


def compact_whitespace(value: Optional[str]) -> str:
    """
    Trim and collapse every run of whitespace into a single space.

    >>> compact_whitespace("  a \\t b\\n  c ")
    'a b c'
    """
    if not value:
        return ""
    return _WHITESPACE_RUN.sub(" ", value.strip(_WHITESPACE))


def _single_char(converted: str, original: str) -> str:
    # str.upper/lower may expand one character into several ("ß" -> "SS")
    return converted if len(converted) == 1 else original


def compare_ignore_case(s1: str, s2: str) -> int:
    """
    Compare two strings character by character, ignoring case.

    Differing characters are compared upper-cased, then lower-cased; when
    every shared position matches, the shorter string sorts first.
    """
    for c1, c2 in zip(s1, s2):
        if c1 != c2:
            c1 = _single_char(c1.upper(), c1)
            c2 = _single_char(c2.upper(), c2)
            if c1 != c2:
                c1 = _single_char(c1.lower(), c1)
                c2 = _single_char(c2.lower(), c2)
                if c1 != c2:
                    return ord(c1) - ord(c2)
    return len(s1) - len(s2)


CASE_INSENSITIVE_ORDER = functools.cmp_to_key(compare_ignore_case)


def url_encode(value: Optional[str], path: bool = False) -> str:
    """
    Percent-encode per RFC 3986, leaving ``A-Za-z0-9-_.~`` literal.

    Args:
        value: Text to encode (None encodes to "")
        path: Also leave "/" literal
    """
    if value is None:
        return ""
    return urllib.parse.quote(value, safe="/" if path else "")


def append_uri(base_uri: Optional[str], path: Optional[str]) -> str:
    """
    Join an endpoint path and a resource path, encoding the resource path.

    Exactly one "/" separates the two parts.
    """
    result = base_uri or ""
    if path:
        if path.startswith("/"):
            if result.endswith("/"):
                result = result[:-1]
        elif not result.endswith("/"):
            result += "/"
        result += url_encode(path, path=True)
    elif not result.endswith("/"):
        result += "/"
    return result


def as_utc(moment: datetime) -> datetime:
    """Convert to UTC; naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_date_stamp(moment: datetime) -> str:
    """``yyyyMMdd`` in UTC, the year always zero-padded to four digits."""
    moment = as_utc(moment)
    return f"{moment.year:04d}{moment.month:02d}{moment.day:02d}"


def format_timestamp(moment: datetime) -> str:
    """``yyyyMMdd'T'HHmmss'Z'`` in UTC."""
    moment = as_utc(moment)
    return f"{format_date_stamp(moment)}T{moment.hour:02d}{moment.minute:02d}{moment.second:02d}Z"


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ``X-Amz-Date`` value.

    Raises:
        ValueError: If the value is not in ``yyyyMMdd'T'HHmmss'Z'`` form
    """
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
