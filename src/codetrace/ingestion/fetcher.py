"""Document acquisition with an on-disk cache.

Every fetched listing page and document is written to the cache directory
keyed by a hash of its URL, so re-running ingestion never downloads the same
PDF twice. Failures surface as AcquisitionError carrying the HTTP status.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

import httpx

from codetrace.config import settings
from codetrace.core.errors import AcquisitionError
from codetrace.ingestion.extract import document_to_text

logger = logging.getLogger(__name__)

USER_AGENT = "codetrace/0.1 (+municipal code indexer)"


def cache_key(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:40]


class DocumentFetcher:
    """Async client for fetching listing pages and source documents.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``
    (the caller then owns its lifecycle).
    """

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir if cache_dir is not None else settings.cache_dir)
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "DocumentFetcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    def _cache_path(self, url: str, suffix: str) -> Path:
        return self.cache_dir / f"{cache_key(url)}{suffix}"

    async def _download(self, url: str) -> bytes:
        try:
            resp = await self._get_client().get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AcquisitionError(url, e.response.status_code) from e
        except httpx.HTTPError as e:
            raise AcquisitionError(url, None, str(e) or type(e).__name__) from e
        return resp.content

    async def _cached(self, url: str, suffix: str) -> bytes:
        path = self._cache_path(url, suffix)
        if path.exists():
            logger.debug("Cache hit for %s", url)
            return path.read_bytes()

        logger.info("Fetching %s", url)
        data = await self._download(url)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return data

    async def fetch_page(self, url: str) -> str:
        """Fetch an HTML page (e.g. a chapter listing) as text."""
        data = await self._cached(url, ".html")
        return data.decode("utf-8", errors="replace")

    async def fetch_document(self, url: str) -> bytes:
        """Fetch a source document's raw bytes."""
        return await self._cached(url, ".doc")

    async def fetch_text(self, url: str) -> str:
        """Fetch a document and extract its text (PDF or HTML)."""
        data = await self.fetch_document(url)
        return await asyncio.to_thread(document_to_text, data, url)
