"""
ExchangeMock Models

Declarative description of the exchanges served by the mock server.

A NetworkExchange pairs an EndpointRequest (method + path) with an ordered,
non-empty list of MockResponse objects. Each MockResponse carries a status,
headers, an optional delay and exactly one payload kind:

- EmptyBody: no body
- TextBody: a string, encoded on the way out
- BytesBody: raw bytes, sent verbatim
- JSONBody: a structured value serialized by an encoder
- FileContent: the content of a file read at request time
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

from .errors import InvalidConfigurationError


Header = Tuple[str, str]

HTTP_METHODS = frozenset({
    'GET', 'HEAD', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS', 'TRACE', 'CONNECT'
})


@dataclass(frozen=True)
class EndpointRequest:
    """Method + path pattern that identifies a declared endpoint."""

    method: str
    path: str

    def __post_init__(self):
        object.__setattr__(self, 'method', self.method.upper())

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.method, self.path)

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


@dataclass(frozen=True)
class EmptyBody:
    """Response without a body."""


@dataclass(frozen=True)
class TextBody:
    """Response whose body is a string encoded with `encoding`."""

    value: str
    encoding: str = 'utf-8'


@dataclass(frozen=True)
class BytesBody:
    """Response whose body is sent byte for byte."""

    value: bytes


@dataclass(frozen=True)
class JSONBody:
    """
    Response whose body is a serialized structured value.

    `encoder` is any object with an `encode(value)` method returning str or
    bytes; a json.JSONEncoder instance works as-is. None means the server's
    default encoder.
    """

    value: Any
    encoder: Any = None


@dataclass(frozen=True)
class FileContent:
    """Response whose body is the content of the file at `path`."""

    path: str


ResponseKind = Union[EmptyBody, TextBody, BytesBody, JSONBody, FileContent]
RESPONSE_KINDS = (EmptyBody, TextBody, BytesBody, JSONBody, FileContent)


@dataclass(frozen=True)
class MockResponse:
    """One pre-programmed response of an exchange."""

    status: int = 200
    headers: Tuple[Header, ...] = ()
    kind: ResponseKind = field(default_factory=EmptyBody)
    delay: Optional[float] = None  # Seconds, overrides the server default

    def __post_init__(self):
        object.__setattr__(self, 'headers', normalize_headers(self.headers))

        if isinstance(self.status, bool) or not isinstance(self.status, int) or not 100 <= self.status <= 599:
            raise InvalidConfigurationError(f"Invalid HTTP status: {self.status!r}")
        if self.delay is not None and (isinstance(self.delay, bool) or not isinstance(self.delay, (int, float))):
            raise InvalidConfigurationError(f"Invalid delay: {self.delay!r}")
        if self.delay is not None and self.delay < 0:
            raise InvalidConfigurationError(f"Delay must not be negative: {self.delay!r}")
        if not isinstance(self.kind, RESPONSE_KINDS):
            raise InvalidConfigurationError(f"Unknown response kind: {type(self.kind).__name__}")

    @property
    def kind_name(self) -> str:
        return {
            EmptyBody: 'empty',
            TextBody: 'text',
            BytesBody: 'bytes',
            JSONBody: 'json',
            FileContent: 'file',
        }[type(self.kind)]


@dataclass
class NetworkExchange:
    """
    A declared endpoint and the sequence of responses it serves.

    The n-th request (0-based) receives responses[min(n, len(responses) - 1)],
    so the last response repeats once the sequence is exhausted.
    """

    request: EndpointRequest
    responses: List[MockResponse]

    def __post_init__(self):
        self.responses = list(self.responses)
        if not self.responses:
            raise InvalidConfigurationError(
                f"Exchange {self.request} must declare at least one response"
            )

    @property
    def identity(self) -> Tuple[str, str]:
        return self.request.identity


@dataclass
class MaterializedResponse:
    """Concrete status/headers/body triple handed back to the transport."""

    status: int
    headers: List[Header]
    body: Optional[bytes] = None
    failure: Optional[str] = None  # 'serialization' or 'file' when the payload was replaced


def normalize_headers(headers: Any) -> Tuple[Header, ...]:
    """
    Turn a mapping or a sequence of pairs into an ordered tuple of pairs.

    Mappings keep their insertion order; sequences may repeat names.
    """
    if headers is None:
        return ()
    if isinstance(headers, (str, bytes)):
        raise InvalidConfigurationError(f"Headers must be a mapping or a list of pairs: {headers!r}")
    if hasattr(headers, 'items'):
        headers = headers.items()
    try:
        pairs = list(headers)
    except TypeError:
        raise InvalidConfigurationError(f"Headers must be a mapping or a list of pairs: {headers!r}")

    normalized = []
    for pair in pairs:
        try:
            name, value = pair
        except (TypeError, ValueError):
            raise InvalidConfigurationError(f"Invalid header entry: {pair!r}")
        normalized.append(_check_header(str(name), str(value)))
    return tuple(normalized)


def remove_header(headers: Sequence[Header], name: str) -> List[Header]:
    """Return headers without any entry named `name` (case-insensitive)."""
    lowered = name.lower()
    return [(key, value) for key, value in headers if key.lower() != lowered]


def _check_header(name: str, value: str) -> Header:
    # Written to the wire as latin-1; CR/LF would split the header block
    if not name:
        raise InvalidConfigurationError("Header name must not be empty")
    for part in (name, value):
        if '\r' in part or '\n' in part:
            raise InvalidConfigurationError(f"Header {name!r} contains a line break")
        try:
            part.encode('latin-1')
        except UnicodeEncodeError:
            raise InvalidConfigurationError(f"Header {name!r} is not latin-1 encodable: {part!r}")
    return (name, value)
