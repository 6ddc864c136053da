"""HTTP transports for streaming sessions.

Two implementations of the transport contract in
``ollama_stream.client.interfaces``:

    - RequestsTransport: synchronous, requests.Session with a pooled
      HTTPAdapter and ``stream=True`` responses
    - HttpxTransport: asynchronous, httpx.AsyncClient with ``send(...,
      stream=True)``

Library errors are converted to TransportError here, at the edge. Neither
transport retries; a failed stream is reported, never replayed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator

import httpx
import requests
from requests.adapters import HTTPAdapter

from ollama_stream.core.config import ClientConfig, settings
from ollama_stream.domain.exceptions import TransportError

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/x-ndjson"}


class RequestsResponse:
    """Streaming body of a requests response.

    Attributes:
        status_code: HTTP status code.
    """

    __slots__ = ("_chunk_size", "_closed", "_response")

    def __init__(self, response: requests.Response, chunk_size: int | None = None) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield body chunks as they arrive.

        Raises:
            TransportError: If the connection fails or times out mid-body.
                A read that fails because ``close()`` was called ends quietly.
        """
        try:
            for chunk in self._response.iter_content(chunk_size=self._chunk_size):
                if chunk:
                    yield chunk
        except Exception as exc:
            # close() from another thread tears down the socket under the
            # reader; urllib3 then fails in ways that are not all I/O errors.
            if self._closed:
                logger.debug("Read interrupted by close: %r", exc)
                return
            if isinstance(exc, requests.RequestException | OSError | ValueError):
                raise TransportError(f"Stream read failed: {exc}") from exc
            raise

    def read(self) -> bytes:
        try:
            return self._response.content
        except requests.RequestException as exc:
            raise TransportError(f"Reading response body failed: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()


class RequestsTransport:
    """Synchronous transport over a pooled requests.Session.

    Attributes:
        config: Client configuration (base URL, timeouts, pool size).
        session: requests.Session used for every exchange.

    Thread safety:
        Sessions may run concurrently on separate threads; each streaming
        response holds its own pooled connection until closed.
    """

    __slots__ = ("config", "session")

    def __init__(
        self, config: ClientConfig | None = None, session: requests.Session | None = None
    ) -> None:
        self.config = config or settings.client
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_keepalive_connections,
                pool_maxsize=self.config.max_connections,
                max_retries=0,
            )
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    @property
    def _timeout(self) -> tuple[float, float | None]:
        return (self.config.connect_timeout, self.config.read_timeout)

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def open(self, path: str, body: bytes) -> RequestsResponse:
        """POST ``body`` to ``path`` and return once response headers arrive.

        Raises:
            TransportError: If the connection fails or times out.
        """
        try:
            response = self.session.post(
                self._url(path),
                data=body,
                headers=_JSON_HEADERS,
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        logger.debug("POST %s -> %s", path, response.status_code)
        return RequestsResponse(response, self.config.chunk_size)

    def get(self, path: str, timeout: float | None = None) -> tuple[int, bytes]:
        """Plain GET returning ``(status_code, body)``.

        Raises:
            TransportError: If the connection fails or times out.
        """
        try:
            response = self.session.get(
                self._url(path),
                timeout=timeout if timeout is not None else self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc
        return response.status_code, response.content

    def close(self) -> None:
        self.session.close()


class HttpxResponse:
    """Streaming body of an httpx response."""

    __slots__ = ("_chunk_size", "_closed", "_response")

    def __init__(self, response: httpx.Response, chunk_size: int | None = None) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive.

        Raises:
            TransportError: If the connection fails or times out mid-body.
                A read that fails because ``aclose()`` was called ends quietly.
        """
        try:
            async for chunk in self._response.aiter_bytes(self._chunk_size):
                if chunk:
                    yield chunk
        except (httpx.HTTPError, httpx.StreamError, OSError) as exc:
            if self._closed:
                logger.debug("Read interrupted by close: %s", exc)
                return
            raise TransportError(f"Stream read failed: {exc}") from exc

    async def aread(self) -> bytes:
        try:
            return await self._response.aread()
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(f"Reading response body failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HttpxTransport:
    """Asynchronous transport over httpx.AsyncClient.

    Attributes:
        config: Client configuration (base URL, timeouts, pool limits).
        client: httpx.AsyncClient used for every exchange.

    Args:
        config: Client configuration. Defaults to ``settings.client``.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``
            in tests.
        client: Preconfigured AsyncClient; overrides ``transport``.
    """

    __slots__ = ("client", "config")

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or settings.client
        if client is None:
            client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(
                    connect=self.config.connect_timeout,
                    read=self.config.read_timeout,
                    write=self.config.connect_timeout,
                    pool=self.config.connect_timeout,
                ),
                limits=httpx.Limits(
                    max_keepalive_connections=self.config.max_keepalive_connections,
                    max_connections=self.config.max_connections,
                ),
                transport=transport,
            )
        self.client = client

    async def open(self, path: str, body: bytes) -> HttpxResponse:
        """POST ``body`` to ``path`` and return once response headers arrive.

        Raises:
            TransportError: If the connection fails or times out.
        """
        request = self.client.build_request("POST", path, content=body, headers=_JSON_HEADERS)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        logger.debug("POST %s -> %s", path, response.status_code)
        return HttpxResponse(response, self.config.chunk_size)

    async def get(self, path: str, timeout: float | None = None) -> tuple[int, bytes]:
        """Plain GET returning ``(status_code, body)``.

        Raises:
            TransportError: If the connection fails or times out.
        """
        try:
            if timeout is not None:
                response = await self.client.get(path, timeout=timeout)
            else:
                response = await self.client.get(path)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {path} failed: {exc}") from exc
        return response.status_code, response.content

    async def aclose(self) -> None:
        await self.client.aclose()


__all__ = ["HttpxResponse", "HttpxTransport", "RequestsResponse", "RequestsTransport"]
