"""Asynchronous HTTP fetching with a bounded number of in-flight requests."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from ..errors import FetchError

MAX_REDIRECTS = 5
DEFAULT_CONCURRENCY = 5


class Fetcher:
    """Fetch source documents; at most ``concurrency`` requests run at once."""

    def __init__(
        self,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = 30.0,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.logger = logger or structlog.get_logger("feedmailer.fetcher")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            timeout=timeout,
            headers={"User-Agent": user_agent} if user_agent else None,
        )
        self._slots = asyncio.Semaphore(concurrency)

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> bytes:
        """Return the body of ``url``; anything but a 200 raises :class:`FetchError`."""

        async with self._slots:
            self.logger.debug("fetch_start", url=url)
            try:
                response = await self._client.get(url)
            except httpx.TooManyRedirects as exc:
                raise FetchError(f"Error: too many redirects ({MAX_REDIRECTS})") from exc
            except httpx.HTTPError as exc:
                raise FetchError(f"Error: {str(exc) or type(exc).__name__}") from exc
            except httpx.InvalidURL as exc:
                raise FetchError(f"Error: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise FetchError.http(response.status_code)
        self.logger.debug("fetch_done", url=url, size=len(response.content))
        return response.content


__all__ = ["Fetcher", "MAX_REDIRECTS"]
