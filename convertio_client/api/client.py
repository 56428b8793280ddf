"""Async HTTP transport for the Convertio conversion API.

WHY: Every Convertio call needs the same handling. URLs are built from
protocol and host, the API key goes into POST bodies, and timeouts are
applied. A JSON body with ``status: error`` must become a typed exception,
and network failures must be told apart from service failures. This module
is the single point of contact with the service so the conversion state
machine never touches HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. ConvertioAPI exposes one
coroutine per verb (get/post/put/delete) on top of a shared _request(),
which normalizes the path, runs the exchange under the configured
timeouts and decodes the response. It can be used as an async context
manager to reuse one pooled client; otherwise each call opens and closes
its own client.

RULES:
- API key is required and non-empty; it is sent only as the ``apikey`` field
  of POST bodies and never logged
- "//host/x" is protocol-relative, "http..." is used verbatim, anything else
  is appended to protocol://host
- JSON responses with status "error" raise ServiceError(error, code)
- Invalid JSON under a JSON content type raises ProtocolError
- Non-JSON responses are returned as raw bytes
- httpx network failures and total-timeout expiry raise TransportError
- No retries, no caching: one HTTP call per invocation
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import ssl
from collections.abc import AsyncIterator
from typing import Any, BinaryIO, Mapping

import httpx

from convertio_client.config import TransportConfig
from convertio_client.errors import (
    ConfigurationError,
    ProtocolError,
    ServiceError,
    TransportError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_UPLOAD_CHUNK_SIZE = 64 * 1024

# curl-compatible error numbers, matched in order
_CURLE_TIMEOUT = 28
_CURLE_SSL_CONNECT = 35
_TRANSPORT_ERROR_CODES: tuple[tuple[type[Exception], int], ...] = (
    (httpx.TimeoutException, _CURLE_TIMEOUT),
    (httpx.ConnectError, 7),
    (httpx.RemoteProtocolError, 8),
    (httpx.NetworkError, 56),
)


class ConvertioAPI:
    """Async client wrapping the raw Convertio HTTP API.

    WHY: Gives the Conversion session a small verb-level interface
    (get/post/put/delete) with auth, URL building, timeouts and error
    typing handled in one place.

    HOW: Holds an API key and a TransportConfig. Each verb delegates to
    _request(). An optional httpx transport can be injected, which tests
    use to plug in httpx.MockTransport.

    RULES:
    - Use as: async with ConvertioAPI(key) as api: ... to pool connections,
      or call verbs directly for one-off clients
    - configure() returns self for chaining
    - The instance holds no per-request state
    """

    def __init__(
        self,
        api_key: str | None,
        options: Mapping[str, Any] | None = None,
        *,
        config: TransportConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not str(api_key).strip():
            raise ConfigurationError("API key parameter is empty")
        self._api_key = str(api_key).strip()
        self._config = config if config is not None else TransportConfig.from_env()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        if options:
            self.configure(options)

    async def __aenter__(self) -> ConvertioAPI:
        self._client = self._new_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def config(self) -> TransportConfig:
        return self._config

    def configure(self, options: Mapping[str, Any] | None) -> ConvertioAPI:
        """Apply transport options and return self.

        Recognized keys: protocol, connect_timeout, total_timeout. Unknown
        keys are ignored. Raises ConfigurationError on an invalid value, in
        which case the current settings are left unchanged.
        """
        self._config = self._config.with_options(options)
        return self

    def build_url(self, path: str) -> str:
        """Turn an API path into an absolute URL."""
        if path.startswith("//"):
            return f"{self._config.protocol}:{path}"
        if path.startswith("http"):
            return path
        return f"{self._config.base_url}{path}"

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post(self, path: str, payload: Mapping[str, Any]) -> Any:
        """POST ``payload`` as JSON with the API key injected."""
        body = dict(payload)
        body["apikey"] = self._api_key
        return await self._request("POST", path, json=body)

    async def put(self, path: str, stream: BinaryIO) -> Any:
        """PUT the remaining bytes of a binary stream as the raw request body.

        WHY: File uploads can be large; reading the whole file into memory
        first is wasteful and the service expects a sized body, not a
        chunked one.

        HOW: Measures the stream (fstat when backed by a real file,
        seek/tell otherwise), then streams it in chunks with an explicit
        Content-Length header.

        RULES:
        - The stream must be opened in binary mode
        - The caller owns the stream and is responsible for closing it
        """
        size = _stream_size(stream)
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(size),
        }
        return await self._request(
            "PUT", path, content=_iter_chunks(stream), headers=headers
        )

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _timeout(self) -> httpx.Timeout:
        connect = self._config.connect_timeout or None
        return httpx.Timeout(None, connect=connect)

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout(), transport=self._transport)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, timeout=self._timeout(), **kwargs)
        async with self._new_client() as client:
            return await client.request(method, url, **kwargs)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Issue one request and decode its response.

        WHY: All four verbs share URL normalization, timeout enforcement
        and error typing.

        HOW: The whole exchange (connect, upload, download) runs inside
        asyncio.wait_for when a total timeout is configured; httpx only
        enforces the connect timeout. Network exceptions are mapped to
        TransportError with a curl-style code before the body is parsed.

        RULES:
        - total_timeout == 0 means no overall limit
        - httpx.TransportError never escapes; it becomes TransportError
        """
        url = self.build_url(path)
        total = self._config.total_timeout
        logger.debug("%s %s", method, url)

        try:
            if total:
                resp = await asyncio.wait_for(self._send(method, url, **kwargs), timeout=total)
            else:
                resp = await self._send(method, url, **kwargs)
        except asyncio.TimeoutError:
            raise TransportError(
                f"Operation timed out after {total} seconds", _CURLE_TIMEOUT
            ) from None
        except httpx.TransportError as exc:
            raise TransportError(
                str(exc) or type(exc).__name__, _transport_error_code(exc)
            ) from exc

        logger.debug("%s %s -> %d", method, url, resp.status_code)
        return _parse_response(resp)


# ---------------------------------------------------------------------------
# Helpers (module-private)
# ---------------------------------------------------------------------------


def _parse_response(resp: httpx.Response) -> Any:
    """Decode a response following the Convertio envelope conventions.

    RULES:
    - Content type containing application/json is decoded
    - Decoded dict with status "error" raises ServiceError(error, code)
    - Anything else is returned as raw bytes, whatever the HTTP status
    """
    content_type = resp.headers.get("content-type", "")
    if "application/json" not in content_type:
        return resp.content

    try:
        data = resp.json()
    except ValueError as exc:
        raise ProtocolError("Error parsing JSON response") from exc

    if isinstance(data, dict) and data.get("status") == "error":
        raise ServiceError(data.get("error") or "Unknown error", data.get("code"))

    return data


def _transport_error_code(exc: httpx.TransportError) -> int:
    # httpx wraps httpcore, which wraps the ssl error
    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, ssl.SSLError):
            return _CURLE_SSL_CONNECT
        cause = cause.__cause__ or cause.__context__
    for exc_type, code in _TRANSPORT_ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return 0


def _stream_size(stream: BinaryIO) -> int:
    """Return the number of bytes left to read in ``stream``."""
    try:
        return os.fstat(stream.fileno()).st_size - stream.tell()
    except (AttributeError, OSError):
        # In-memory streams (BytesIO) have no file descriptor
        pos = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(pos)
        return end - pos


async def _iter_chunks(stream: BinaryIO) -> AsyncIterator[bytes]:
    while True:
        chunk = stream.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        yield chunk
