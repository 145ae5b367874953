# mediapreview/infra/fetcher.py
"""
Bounded origin fetcher.

Retrieves a remote URL in two separately bounded phases:

1. connect – request sent, redirects followed, until the final response
   headers are in (``connect_timeout``)
2. transfer – body streamed straight into scratch storage
   (``transfer_timeout``)

Both phase timers arm the same per-run CancellationToken, so whichever
fires cancels the in-flight network operation.

Redirects are followed here rather than by aiohttp so that every hop is
logged and relative Location headers are resolved explicitly.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import urljoin, urlparse

import aiohttp

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.domain import MediaFetchError
from mediapreview.infra.http_client import create_fetcher_session
from mediapreview.infra.logging_config import get_logger, mask_url

logger = get_logger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
ALLOWED_SCHEMES = ("http", "https")
# Body bytes buffered before each file write (writes run off the event loop)
WRITE_BATCH_BYTES = 1024 * 1024


class SourceResource:
    """
    An origin response whose headers have arrived but whose body has not
    been read yet. The body can be consumed exactly once.
    """

    def __init__(
        self,
        response: aiohttp.ClientResponse,
        token: CancellationToken,
        transfer_timeout: float,
        chunk_size: int = 64 * 1024,
    ):
        self._response = response
        self._token = token
        self._transfer_timeout = transfer_timeout
        self._chunk_size = chunk_size
        self._consumed = False

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def reason(self) -> str | None:
        return self._response.reason

    @property
    def content_type(self) -> str | None:
        return self._response.headers.get("Content-Type")

    @property
    def url(self) -> str:
        return str(self._response.url)

    async def stream_to(self, path: Path) -> int:
        """
        Stream the body into ``path`` under the transfer deadline.

        The file is created exclusively: an existing file is an error
        (FileExistsError), never overwritten.

        Returns:
            Number of bytes written.

        Raises:
            FetchTimeoutError: transfer deadline exceeded
            MediaFetchError: connection dropped mid-body
        """
        if self._consumed:
            raise RuntimeError("response body already consumed")
        self._consumed = True

        with self._token.deadline("transfer", self._transfer_timeout):
            written = await self._token.guard(self._write_body(Path(path)))

        logger.info(f"Download complete: {written} bytes")
        return written

    async def _write_body(self, path: Path) -> int:
        written = 0
        pending = bytearray()
        fh = await asyncio.to_thread(open, path, "xb")
        try:
            async for chunk in self._response.content.iter_chunked(self._chunk_size):
                pending += chunk
                written += len(chunk)
                if len(pending) >= WRITE_BATCH_BYTES:
                    await asyncio.to_thread(fh.write, bytes(pending))
                    pending.clear()
            if pending:
                await asyncio.to_thread(fh.write, bytes(pending))
        except aiohttp.ClientError as e:
            raise MediaFetchError(f"Body transfer failed after {written} bytes: {e}") from e
        finally:
            fh.close()
        return written


class BoundedFetcher:
    """
    Fetch a URL with independent connect and transfer deadlines.

    Pass ``session`` to reuse a long-lived aiohttp session; otherwise a
    session is created for each fetch and closed when it ends.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        user_agent: str = "xxx-preview",
        accept: str = "image/webp,image/*,video/*",
        max_redirects: int = 5,
        connect_timeout: float = 10.0,
        transfer_timeout: float = 60.0,
        chunk_size: int = 64 * 1024,
    ):
        self._session = session
        self.headers = {
            "User-Agent": user_agent,
            "Accept": accept,
        }
        self.max_redirects = max(0, max_redirects)
        self.connect_timeout = connect_timeout
        self.transfer_timeout = transfer_timeout
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings, session: aiohttp.ClientSession | None = None) -> "BoundedFetcher":
        return cls(
            session,
            user_agent=settings.fetch_user_agent,
            accept=settings.fetch_accept,
            max_redirects=settings.fetch_max_redirects,
            connect_timeout=settings.fetch_connect_timeout,
            transfer_timeout=settings.fetch_transfer_timeout,
            chunk_size=settings.fetch_chunk_size,
        )

    @asynccontextmanager
    async def fetch(self, url: str, token: CancellationToken) -> AsyncIterator[SourceResource]:
        """
        Open ``url`` and yield the final (post-redirect) response.

        Raises:
            FetchTimeoutError: connect deadline exceeded
            MediaFetchError: invalid URL, network failure, too many redirects
        """
        owns_session = self._session is None
        session = self._session or create_fetcher_session()
        response: aiohttp.ClientResponse | None = None

        try:
            with token.deadline("connect", self.connect_timeout):
                response = await token.guard(self._open(session, url))

            yield SourceResource(
                response,
                token,
                transfer_timeout=self.transfer_timeout,
                chunk_size=self.chunk_size,
            )
        finally:
            if response is not None:
                response.release()
            if owns_session:
                await session.close()

    async def _open(self, session: aiohttp.ClientSession, url: str) -> aiohttp.ClientResponse:
        current_url = url

        # max_redirects hops plus the final request
        for hop in range(self.max_redirects + 1):
            _validate_url(current_url)
            logger.info(f"Request {mask_url(current_url)}" + (f" (redirect {hop})" if hop else ""))

            try:
                response = await session.get(
                    current_url,
                    headers=self.headers,
                    allow_redirects=False,
                )
            except aiohttp.ClientError as e:
                raise MediaFetchError(f"Request to {urlparse(current_url).netloc} failed: {e}") from e

            logger.info(
                f"Response {response.status} {response.reason or ''} "
                f"Content-Type={response.headers.get('Content-Type', 'absent')}"
            )

            if response.status not in REDIRECT_STATUSES:
                return response

            location = response.headers.get("Location")
            response.release()
            if not location:
                raise MediaFetchError(f"Redirect {response.status} without Location header")

            # Resolve relative redirects against the current URL
            current_url = urljoin(current_url, location)

        raise MediaFetchError(f"Too many redirects (>{self.max_redirects})")


def _validate_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise MediaFetchError(f"Invalid URL scheme: {parsed.scheme or '(none)'}")
    if not parsed.netloc:
        raise MediaFetchError("Invalid URL: missing host")
