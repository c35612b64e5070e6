"""Client for the TVMaze show catalog."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import CatalogLookupError

logger = logging.getLogger(__name__)

TVMAZE_SOURCE = "tvmaze"


class TVMazeModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TVMazeImage(TVMazeModel):
    medium: str | None = None
    original: str | None = None


class TVMazeNetwork(TVMazeModel):
    """A broadcast network or a web channel."""

    id: int | None = None
    name: str = ""


class TVMazeExternals(TVMazeModel):
    tvrage: int | None = None
    thetvdb: int | None = None
    imdb: str | None = None


class TVMazeShow(TVMazeModel):
    id: int
    name: str
    weight: int = 0
    network: TVMazeNetwork | None = None
    web_channel: TVMazeNetwork | None = Field(default=None, alias="webChannel")
    externals: TVMazeExternals = Field(default_factory=TVMazeExternals)
    image: TVMazeImage | None = None

    @property
    def image_urls(self) -> list[str]:
        if self.image is None:
            return []
        return [url for url in (self.image.medium, self.image.original) if url]

    @property
    def raw_platform_names(self) -> list[str]:
        """Web channel first, then the broadcast network."""

        return [
            channel.name
            for channel in (self.web_channel, self.network)
            if channel is not None and channel.name
        ]


class TVMazeSearchResult(TVMazeModel):
    score: float = 0.0
    show: TVMazeShow


class TVMazeSeason(TVMazeModel):
    id: int
    number: int | None = None
    name: str = ""


_SEARCH_RESULTS = TypeAdapter(list[TVMazeSearchResult])
_SEASONS = TypeAdapter(list[TVMazeSeason])


class TVMazeClient:
    """Thin wrapper around the TVMaze REST endpoints used for enrichment."""

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    async def search_shows(self, term: str) -> list[TVMazeSearchResult]:
        """Search the catalog; an envelope that is not a result list means no matches."""

        payload = await self._get_json("/search/shows", params={"q": term})
        try:
            return _SEARCH_RESULTS.validate_python(payload)
        except ValidationError:
            logger.info("no results found for %r: %s", term, payload)
            return []

    async def fetch_seasons(self, show_id: int) -> list[TVMazeSeason]:
        payload = await self._get_json(f"/shows/{show_id}/seasons")
        try:
            return _SEASONS.validate_python(payload)
        except ValidationError as exc:
            raise CatalogLookupError(
                f"unexpected seasons payload for show {show_id}"
            ) from exc

    async def single_search(self, name: str) -> TVMazeShow | None:
        """Return the single best match for ``name``, or ``None`` when there is none."""

        payload = await self._get_json(
            "/singlesearch/shows", params={"q": name}, allow_missing=True
        )
        if payload is None:
            return None
        try:
            return TVMazeShow.model_validate(payload)
        except ValidationError as exc:
            raise CatalogLookupError(f"unexpected show payload for {name!r}") from exc

    async def _get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.error("TVMaze request to %s failed: %s", path, exc)
            raise CatalogLookupError(f"error calling TVMaze {path}") from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error(
                "TVMaze request to %s returned %s: %s",
                path,
                response.status_code,
                response.text,
            )
            raise CatalogLookupError(
                f"error calling TVMaze {path}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise CatalogLookupError(
                f"invalid JSON from TVMaze {path}",
                status_code=response.status_code,
                body=response.text,
            ) from exc
