"""
Request and credential types consumed by the signer.

A ``SignableRequest`` is the transport-neutral view of an HTTP request:
the signer reads it, then attaches the signing headers in place before the
HTTP client sends it.
"""

import io
import urllib.parse
from collections.abc import Iterator, MutableMapping
from dataclasses import dataclass, field
from typing import BinaryIO, Mapping, Optional, Union

Payload = Union[None, bytes, bytearray, str, BinaryIO]


class HeaderMap(MutableMapping):
    """
    Ordered header mapping with case-insensitive keys.

    Iteration yields header names in the casing they were last set with.
    """

    def __init__(self, headers: Optional[Mapping[str, Optional[str]]] = None):
        self._store: dict[str, tuple[str, Optional[str]]] = {}
        if headers:
            self.update(headers)

    def __setitem__(self, name: str, value: Optional[str]) -> None:
        self._store[name.lower()] = (name, value)

    def __getitem__(self, name: str) -> Optional[str]:
        return self._store[name.lower()][1]

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def copy(self) -> "HeaderMap":
        return HeaderMap(dict(self.items()))

    def __repr__(self) -> str:
        return f"HeaderMap({dict(self.items())!r})"


@dataclass
class Credentials:
    """AWS access key pair, with an optional session token."""

    access_key_id: Optional[str]
    secret_key: Optional[str] = field(default=None, repr=False)
    session_token: Optional[str] = field(default=None, repr=False)


@dataclass
class SignableRequest:
    """
    An HTTP request about to be signed.

    Args:
        method: HTTP method
        endpoint: Scheme and authority, optionally with a base path
            (e.g. "https://iam.amazonaws.com")
        resource_path: Unencoded path appended to the endpoint path
        headers: Request headers (case-insensitive)
        parameters: Query parameters, each name mapping to its values
        content: Payload as bytes, text (UTF-8) or a seekable binary stream
        time_offset: Clock skew in seconds (local minus server time)
    """

    method: str
    endpoint: str
    resource_path: str = ""
    headers: HeaderMap = field(default_factory=HeaderMap)
    parameters: dict[str, list[Optional[str]]] = field(default_factory=dict)
    content: Payload = None
    time_offset: int = 0

    def __post_init__(self):
        self.method = self.method.upper()
        if not isinstance(self.headers, HeaderMap):
            self.headers = HeaderMap(self.headers)
        if isinstance(self.content, str):
            self.content = io.BytesIO(self.content.encode("utf-8"))
        elif isinstance(self.content, (bytes, bytearray)):
            self.content = io.BytesIO(bytes(self.content))

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        content: Payload = None,
    ) -> "SignableRequest":
        """
        Build a request from a full URL.

        The URL path is percent-decoded into ``resource_path`` and the query
        string is split into multi-valued ``parameters``.
        """
        parts = urllib.parse.urlsplit(url)
        request = cls(
            method=method,
            endpoint=f"{parts.scheme}://{parts.netloc}",
            resource_path=urllib.parse.unquote(parts.path),
            headers=HeaderMap(headers),
            content=content,
        )
        for name, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True):
            request.add_parameter(name, value)
        return request

    def add_header(self, name: str, value: Optional[str]) -> None:
        self.headers[name] = value

    def add_parameter(self, name: str, value: Optional[str]) -> None:
        self.parameters.setdefault(name, []).append(value)
