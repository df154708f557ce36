"""
ExchangeMock Response Materializer

Turns a selected MockResponse into a concrete status/headers/body triple.

The configured delay is always awaited first, whatever the payload kind, since
it stands in for network latency. Payloads that cannot be produced are never
raised to the caller:

- JSON (or text) that fails to encode -> 500, Content-Type removed, no body
- File that cannot be read            -> 404, Content-Type removed, no body
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from fastapi.concurrency import run_in_threadpool

from .models import (
    BytesBody,
    EmptyBody,
    FileContent,
    JSONBody,
    MaterializedResponse,
    MockResponse,
    TextBody,
    remove_header,
)


logger = logging.getLogger("exchangemock.materializer")

FileReader = Callable[[str], Awaitable[bytes]]

HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_404_NOT_FOUND = 404

FAILURE_REASONS = {
    HTTP_500_INTERNAL_SERVER_ERROR: 'serialization',
    HTTP_404_NOT_FOUND: 'file',
}


async def read_file(path: str) -> bytes:
    """Read a file's raw bytes without blocking the event loop."""
    return await run_in_threadpool(Path(path).read_bytes)


def default_json_encoder() -> json.JSONEncoder:
    """Strict encoder: NaN and infinity are rejected like any unserializable value."""
    return json.JSONEncoder(allow_nan=False, ensure_ascii=False)


class ResponseMaterializer:
    """
    Builds response payloads after waiting the effective delay.

    Example:
        materializer = ResponseMaterializer(default_delay=0.5)
        result = await materializer.materialize(
            MockResponse(status=200, kind=TextBody('ok'))
        )
        result.body  # b'ok'
    """

    def __init__(
        self,
        default_delay: float = 0.0,
        file_reader: Optional[FileReader] = None,
        json_encoder: Optional[Any] = None
    ):
        """
        Initialize materializer.

        Args:
            default_delay: Server-wide delay in seconds, used when a response has none
            file_reader: Coroutine function returning a file's bytes (raises OSError on failure)
            json_encoder: Encoder used for JSON bodies that do not carry their own
        """
        self.default_delay = default_delay
        self.file_reader = file_reader or read_file
        self.json_encoder = json_encoder or default_json_encoder()

    def effective_delay(self, response: MockResponse) -> float:
        """Delay declared on the response, falling back to the server default."""
        return response.delay if response.delay is not None else self.default_delay

    async def materialize(self, response: MockResponse) -> MaterializedResponse:
        """
        Wait the effective delay, then produce the response body.

        Args:
            response: Selected response of the matched exchange

        Returns:
            MaterializedResponse ready to be written by the transport
        """
        await asyncio.sleep(self.effective_delay(response))

        kind = response.kind
        headers = list(response.headers)

        if isinstance(kind, EmptyBody):
            body = None

        elif isinstance(kind, TextBody):
            try:
                body = kind.value.encode(kind.encoding)
            except (UnicodeError, LookupError) as e:
                logger.warning(f"Failed to encode text body as {kind.encoding}: {e}")
                return self._failure(HTTP_500_INTERNAL_SERVER_ERROR, headers)

        elif isinstance(kind, BytesBody):
            body = bytes(kind.value)

        elif isinstance(kind, JSONBody):
            encoder = kind.encoder or self.json_encoder
            try:
                encoded = encoder.encode(kind.value)
                body = encoded.encode('utf-8') if isinstance(encoded, str) else bytes(encoded)
            except Exception as e:
                logger.warning(f"Failed to encode JSON body: {e}")
                return self._failure(HTTP_500_INTERNAL_SERVER_ERROR, headers)

        elif isinstance(kind, FileContent):
            try:
                body = await self.file_reader(kind.path)
            except OSError as e:
                logger.warning(f"Failed to read file {kind.path}: {e}")
                return self._failure(HTTP_404_NOT_FOUND, headers)

        else:
            raise TypeError(f"Unsupported response kind: {type(kind).__name__}")

        return MaterializedResponse(status=response.status, headers=headers, body=body)

    @staticmethod
    def _failure(status: int, headers) -> MaterializedResponse:
        # The declared Content-Type described a payload that was not produced
        return MaterializedResponse(
            status=status,
            headers=remove_header(headers, 'Content-Type'),
            body=None,
            failure=FAILURE_REASONS[status]
        )
