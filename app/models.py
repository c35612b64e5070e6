"""Pydantic models describing requests, listings and catalog results."""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WatchStatus(IntEnum):
    """Watch-state of a show; values match the stored ``watch_status_id``."""

    WANT_TO_WATCH = 1
    WATCHING = 2
    FINISHED = 3

    @property
    def label(self) -> str:
        return _WATCH_STATUS_LABELS[self]

    @classmethod
    def label_for(cls, value: int) -> str:
        """Return the display label for a stored status id."""

        return cls(value).label


_WATCH_STATUS_LABELS = {
    WatchStatus.WANT_TO_WATCH: "Want to Watch",
    WatchStatus.WATCHING: "Watching",
    WatchStatus.FINISHED: "Finished",
}

ACTIVE_WATCH_STATUSES: tuple[WatchStatus, ...] = (
    WatchStatus.WANT_TO_WATCH,
    WatchStatus.WATCHING,
)


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PlatformSummary(CamelModel):
    id: int
    name: str
    icon: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreatePlatformRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    icon: str = ""


class PlatformAliasRequest(CamelModel):
    """Maps a provider's network name onto an existing platform."""

    source: str = Field(default="tvmaze", min_length=1, max_length=32)
    external_name: str = Field(min_length=1, max_length=200)


class ShowFields(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    platform_id: int | None = None
    watcher_ids: list[int] = Field(default_factory=list)
    poster_image: str = ""


class AddShowRequest(ShowFields):
    """Fields accepted when a show is first added to an account."""

    total_seasons: int = Field(default=1, ge=0)


class EditShowPayload(ShowFields):
    """Edit form body; the season count must always be restated."""

    total_seasons: int = Field(ge=0)


class EditShowRequest(EditShowPayload):
    """Edit payload; an empty ``watcher_ids`` keeps the current watchers."""

    id: int


class ShowForEdit(CamelModel):
    """A show as loaded for the edit form. Watch status is deliberately absent."""

    id: int
    name: str
    num_seasons: int
    platform_id: int | None = None
    watcher_ids: list[int] = Field(default_factory=list)
    finished_at: datetime | None = None
    cancelled: bool = False
    date_cancelled: datetime | None = None
    poster_image: str = ""


class ShowListing(CamelModel):
    """One show with its status and comma-joined watcher names."""

    show_id: int
    show_name: str
    num_seasons: int
    platform_name: str = ""
    platform_icon: str = ""
    cancelled: bool = False
    date_cancelled: datetime | None = None
    watch_status_id: int
    watch_status: str
    current_season: int
    finished_at: datetime | None = None
    watcher_name: str
    poster_image: str = ""


class SearchShowsOptions(CamelModel):
    """Optional filters for a paginated show search."""

    page: int = 1
    show_name: str = ""
    platform_id: int | None = None


class PagedShows(CamelModel):
    shows: list[ShowListing] = Field(default_factory=list)
    page: int
    num_pages: int
    total_count: int


class OnlineShowSearchResult(CamelModel):
    """An external catalog candidate enriched with local platform knowledge."""

    image_urls: list[str] = Field(default_factory=list)
    imdb_link: str = ""
    name: str
    num_seasons: int = 0
    platforms: list[PlatformSummary] = Field(default_factory=list)
    raw_platform_names: list[str] = Field(default_factory=list)
    weight: int = 0


class WatcherSummary(CamelModel):
    id: int
    name: str
    user_id: int | None = None
    user_email: str = ""


class WatcherWithUserInfo(WatcherSummary):
    is_owner: bool = False
    current_user_id: int


class CreateWatcherRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)


class RenameWatcherRequest(CreateWatcherRequest):
    pass


class AccountSummary(CamelModel):
    id: int
    owner: int
    join_token: str = ""


class UserSummary(CamelModel):
    """A user as returned by identity lookups; the password hash stays internal."""

    id: int
    created_at: datetime
    active: bool
    email: str
    auth_token: str
    activation_code: str | None = None
    account: AccountSummary | None = None
    password: str = Field(default="", exclude=True, repr=False)


class SignupRequest(CamelModel):
    """New login; a join token places the user in an existing household."""

    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=200)
    join_token: str = ""


class SignupResponse(CamelModel):
    user_id: int
    email: str
    account_id: int
    watcher_id: int
