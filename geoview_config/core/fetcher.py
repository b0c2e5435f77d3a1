"""Service metadata fetching client."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from geoview_config.core.config import FETCH_TIMEOUT, MAX_CONCURRENT_FETCHES
from geoview_config.core.exceptions import (
    ErrorKind,
    FetchError,
    GeoviewConfigError,
    ServiceMetadataError,
)

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of a single metadata request.

    Exactly one of ``data`` and ``error`` is meaningful: ``error`` is None on success.
    """

    url: str
    data: Any = None
    error: GeoviewConfigError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """
        Return the fetched data.

        Raises:
            GeoviewConfigError: The recorded error, if the fetch failed
        """
        if self.error is not None:
            raise self.error
        return self.data


class MetadataClient:
    """Client for fetching service metadata documents.

    No retries are performed; a failed request is reported once through its FetchResult.
    """

    def __init__(self, timeout: float = FETCH_TIMEOUT, max_concurrent: int = MAX_CONCURRENT_FETCHES):
        """
        Initialize metadata client.

        Args:
            timeout: Total timeout in seconds for each request
            max_concurrent: Maximum number of requests in flight
        """
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.session: Optional[aiohttp.ClientSession] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_bytes(self, url: str) -> FetchResult:
        """
        Fetch a document as raw bytes.

        Args:
            url: Absolute URL to request

        Returns:
            FetchResult with bytes data, or a FetchError / ServiceMetadataError
        """
        if self.session is None:
            raise RuntimeError("MetadataClient must be used as an async context manager")

        async with self._semaphore:
            try:
                async with self.session.get(url) as response:
                    if not 200 <= response.status < 300:
                        logger.warning(f"HTTP {response.status} for {url}")
                        return FetchResult(
                            url,
                            error=FetchError(f"HTTP {response.status} for {url}", params=[url, response.status]),
                        )
                    content = await response.read()
            except asyncio.TimeoutError:
                logger.warning(f"Timed out after {self.timeout}s fetching {url}")
                return FetchResult(
                    url,
                    error=FetchError(f"Timed out fetching {url}", params=[url], kind=ErrorKind.TIMEOUT),
                )
            except aiohttp.ClientError as e:
                logger.warning(f"Error fetching {url}: {e}")
                return FetchResult(url, error=FetchError(f"Error fetching {url}: {e}", params=[url]))

        if not content:
            logger.warning(f"Empty response from {url}")
            return FetchResult(url, error=ServiceMetadataError(f"Empty response from {url}", params=[url]))

        logger.debug(f"Fetched {len(content)} bytes from {url}")
        return FetchResult(url, data=content)

    async def fetch_json(self, url: str) -> FetchResult:
        """
        Fetch a JSON document.

        An empty object or an object with an ``error`` member (ESRI style
        ``{"error": {"code": 400, "message": ...}}``) is reported as a
        ServiceMetadataError even though the HTTP status was 200.

        Args:
            url: Absolute URL to request

        Returns:
            FetchResult with the decoded JSON value
        """
        result = await self.fetch_bytes(url)
        if not result.ok:
            return result

        try:
            data = json.loads(result.data)
        except ValueError as e:
            logger.warning(f"Malformed JSON from {url}: {e}")
            return FetchResult(url, error=ServiceMetadataError(f"Malformed JSON from {url}: {e}", params=[url]))

        if data == {}:
            return FetchResult(url, error=ServiceMetadataError(f"Empty JSON object from {url}", params=[url]))

        if isinstance(data, dict) and "error" in data:
            service_error = data["error"]
            if isinstance(service_error, dict):
                details = service_error.get("message") or service_error.get("code")
            else:
                details = service_error
            logger.warning(f"Service error from {url}: {details}")
            return FetchResult(
                url,
                error=ServiceMetadataError(f"Service error from {url}: {details}", params=[url, details]),
            )

        return FetchResult(url, data=data)
