"""Search the external catalog and enrich candidates with local knowledge."""

from __future__ import annotations

import asyncio
import logging

from ..models import OnlineShowSearchResult, PlatformSummary
from ..utils import imdb_title_url
from .errors import CatalogLookupError, StoreError
from .platforms import PlatformService
from .tvmaze import TVMAZE_SOURCE, TVMazeClient, TVMazeShow

logger = logging.getLogger(__name__)

ENRICHMENT_POOL_WIDTH = 3


class OnlineSearchService:
    """Fan out per-candidate lookups over a small worker pool and merge the results."""

    def __init__(
        self,
        tvmaze: TVMazeClient,
        platforms: PlatformService,
        *,
        timeout_seconds: float = 30.0,
    ):
        self._tvmaze = tvmaze
        self._platforms = platforms
        self._timeout_seconds = timeout_seconds

    async def online_search(self, term: str) -> list[OnlineShowSearchResult]:
        """Return enriched candidates for ``term``, most relevant first.

        A failed season or platform lookup only degrades its own candidate.
        Running past the search budget raises :class:`TimeoutError` and
        discards whatever was gathered so far. Any other candidate failure
        cancels the remaining lookups and is re-raised as is.
        """

        async with asyncio.timeout(self._timeout_seconds):
            candidates = await self._tvmaze.search_shows(term)
            if not candidates:
                return []

            pool = asyncio.Semaphore(ENRICHMENT_POOL_WIDTH)
            lock = asyncio.Lock()
            enriched: list[tuple[int, OnlineShowSearchResult]] = []

            async def enrich_candidate(index: int, show: TVMazeShow) -> None:
                async with pool:
                    result = await self._enrich(show)
                async with lock:
                    enriched.append((index, result))

            # The first failing candidate cancels its siblings before the error escapes.
            try:
                async with asyncio.TaskGroup() as tasks:
                    for index, candidate in enumerate(candidates):
                        tasks.create_task(enrich_candidate(index, candidate.show))
            except ExceptionGroup as failures:
                raise failures.exceptions[0]

        enriched.sort(key=lambda item: (-item[1].weight, item[0]))
        return [result for _, result in enriched]

    async def find_show_image_by_name(self, name: str) -> str:
        """Return the medium poster URL of the best match for ``name``, or ``""``."""

        show = await self._tvmaze.single_search(name)
        if show is None or show.image is None:
            return ""
        return show.image.medium or ""

    async def _enrich(self, show: TVMazeShow) -> OnlineShowSearchResult:
        try:
            num_seasons = len(await self._tvmaze.fetch_seasons(show.id))
        except CatalogLookupError as exc:
            logger.warning("error fetching seasons for show %s: %s", show.id, exc)
            num_seasons = 0

        raw_platform_names = show.raw_platform_names
        logger.debug("found online show %s on %s", show.name, raw_platform_names)

        return OnlineShowSearchResult(
            image_urls=show.image_urls,
            imdb_link=imdb_title_url(show.externals.imdb),
            name=show.name,
            num_seasons=num_seasons,
            platforms=await self._resolve_platforms(raw_platform_names),
            raw_platform_names=raw_platform_names,
            weight=show.weight,
        )

    async def _resolve_platforms(self, raw_names: list[str]) -> list[PlatformSummary]:
        if not raw_names:
            return []
        try:
            return await self._platforms.lookup_platforms_by_external_names(
                raw_names, TVMAZE_SOURCE
            )
        except StoreError as exc:
            logger.error("error looking up platforms %s: %s", raw_names, exc)
            return []
