"""Shared collaborators for resolving layer configurations."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from geoview_config.core.config import (
    DEFAULT_LANGUAGE,
    DEFAULT_MAP_PROJECTION,
    FETCH_TIMEOUT,
    GEOCORE_URL,
    MAX_CONCURRENT_FETCHES,
    SUPPORTED_LANGUAGES,
    VALID_PROJECTION_CODES,
    WORKER_POOL_SIZE,
)
from geoview_config.core.fetcher import MetadataClient

logger = logging.getLogger(__name__)


class ResolutionContext:
    """Fetch client, worker pool and map settings passed to every root config.

    One context may be shared by any number of roots. Use it as an async context
    manager so the HTTP session and the worker pool are released:

        async with ResolutionContext(map_projection=3978) as context:
            root = GeoviewLayerConfig(..., context=context)
            await root.fetch_service_metadata()
    """

    def __init__(
        self,
        map_projection: int = DEFAULT_MAP_PROJECTION,
        language: str = DEFAULT_LANGUAGE,
        timeout: float = FETCH_TIMEOUT,
        geocore_url: str = GEOCORE_URL,
        max_workers: int = WORKER_POOL_SIZE,
        max_concurrent: int = MAX_CONCURRENT_FETCHES,
    ):
        """
        Initialize resolution context.

        Args:
            map_projection: EPSG code of the map, one of VALID_PROJECTION_CODES
            language: Language used to resolve GeoCore records
            timeout: Per-request timeout in seconds
            geocore_url: Base URL of the GeoCore service
            max_workers: Size of the worker pool
            max_concurrent: Maximum number of requests in flight

        Raises:
            ValueError: If the projection or the language is not supported
        """
        if map_projection not in VALID_PROJECTION_CODES:
            raise ValueError(
                f"Unsupported map projection: {map_projection}. "
                f"Supported projections: {', '.join(str(c) for c in VALID_PROJECTION_CODES)}"
            )
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}. Supported languages: {', '.join(SUPPORTED_LANGUAGES)}")

        self.map_projection = map_projection
        self.language = language
        self.timeout = timeout
        self.geocore_url = geocore_url.rstrip("/")
        self.max_workers = max_workers
        self.client = MetadataClient(timeout=timeout, max_concurrent=max_concurrent)
        self._executor: Optional[ThreadPoolExecutor] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.client.__aenter__()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="geoview-worker")
        logger.debug(f"Resolution context ready: EPSG:{self.map_projection}, {self.language}, {self.max_workers} workers")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.client.__aexit__(exc_type, exc_val, exc_tb)
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def run_in_worker(self, fn: Callable[..., Any], *args) -> Any:
        """
        Run a CPU bound function in the worker pool.

        Workers are stateless: each call receives everything it needs as arguments.

        Args:
            fn: Function to run
            *args: Positional arguments for fn

        Returns:
            The function's return value (exceptions are re-raised in the caller)
        """
        if self._executor is None:
            raise RuntimeError("ResolutionContext must be used as an async context manager")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)
