from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select

from app.database import Database
from app.db_models import Account
from app.main import register_routes
from app.models import (
    AddShowRequest,
    EditShowRequest,
    OnlineShowSearchResult,
    SearchShowsOptions,
    ShowForEdit,
    ShowListing,
    WatcherWithUserInfo,
)
from app.services.errors import (
    CatalogLookupError,
    PermissionDeniedError,
    ShowCancelledError,
    ShowHasWatchedSeasonsError,
    ShowNotFoundError,
)
from app.services.grouping import group_by_status_then_watchers
from app.services.identity import AccountService, UserService
from app.services.online_search import OnlineSearchService
from app.services.shows import ShowService
from app.services.watchers import WatcherService


def _listing(show_id: int, name: str, status_id: int, watchers: str) -> ShowListing:
    return ShowListing(
        show_id=show_id,
        show_name=name,
        num_seasons=2,
        watch_status_id=status_id,
        watch_status={1: "Want to Watch", 2: "Watching", 3: "Finished"}[status_id],
        current_season=status_id - 1,
        watcher_name=watchers,
    )


class DummyShowService(ShowService):
    """Records calls instead of touching a store."""

    def __init__(self) -> None:
        # Deliberately skip super().__init__ to avoid touching a database.
        self._page_size = 2
        self.calls: list[tuple[str, Any]] = []
        self.missing: set[int] = set()
        self.cancelled: set[int] = set()

    async def search_shows(  # type: ignore[override]
        self, account_id: int, options: SearchShowsOptions | None = None
    ) -> tuple[list[ShowListing], int]:
        self.calls.append(("search", (account_id, options)))
        return [_listing(1, "Andor", 2, "Bob"), _listing(2, "Dark", 1, "Alice")], 3

    async def get_active_shows_grouped_by_status_and_watchers(self, account_id: int):
        self.calls.append(("by-status", account_id))
        return group_by_status_then_watchers(
            [_listing(1, "Andor", 2, "Bob"), _listing(2, "Dark", 1, "Alice, Bob")]
        )

    async def get_active_shows_grouped_by_watchers_and_status(self, account_id: int):
        self.calls.append(("by-watchers", account_id))
        return {}

    async def add_show(self, account_id: int, request: AddShowRequest) -> int:
        self.calls.append(("add", (account_id, request)))
        return 42

    async def get_show_by_id(self, account_id: int, show_id: int) -> ShowForEdit:
        if show_id in self.missing:
            raise ShowNotFoundError()
        return ShowForEdit(id=show_id, name="Foo", num_seasons=1, watcher_ids=[3])

    async def update_show(self, account_id: int, request: EditShowRequest) -> None:
        self.calls.append(("update", (account_id, request)))

    async def delete_show(self, account_id: int, show_id: int) -> None:
        raise ShowHasWatchedSeasonsError()

    async def finish_season(self, account_id: int, show_id: int) -> None:
        if show_id in self.cancelled:
            raise ShowCancelledError()
        self.calls.append(("finish-season", (account_id, show_id)))

    async def cancel_show(self, account_id: int, show_id: int) -> None:
        self.calls.append(("cancel", (account_id, show_id)))


class DummyWatcherService(WatcherService):
    def __init__(self) -> None:
        self.renames: list[tuple[int, int, int, str]] = []

    async def get_watchers_with_user_info(  # type: ignore[override]
        self, account_id: int, current_user_id: int
    ) -> list[WatcherWithUserInfo]:
        return [
            WatcherWithUserInfo(
                id=1,
                name="owner@example.com",
                user_id=7,
                user_email="owner@example.com",
                is_owner=True,
                current_user_id=current_user_id,
            )
        ]

    async def update_watcher_name(
        self, watcher_id: int, account_id: int, current_user_id: int, name: str
    ) -> None:
        if current_user_id != 7:
            raise PermissionDeniedError()
        self.renames.append((watcher_id, account_id, current_user_id, name))


class DummyOnlineSearchService(OnlineSearchService):
    def __init__(self) -> None:
        pass

    async def online_search(self, term: str) -> list[OnlineShowSearchResult]:
        if term == "broken":
            raise CatalogLookupError("error calling TVMaze", status_code=500, body="boom")
        if term == "slow":
            raise TimeoutError()
        return [OnlineShowSearchResult(name="Dark", num_seasons=3, weight=90)]

    async def find_show_image_by_name(self, name: str) -> str:
        return "https://img/dark.jpg"


def _client() -> tuple[TestClient, DummyShowService, DummyWatcherService]:
    app = FastAPI()
    register_routes(app)
    shows = DummyShowService()
    watchers = DummyWatcherService()
    app.state.show_service = shows
    app.state.watcher_service = watchers
    app.state.online_search_service = DummyOnlineSearchService()
    return TestClient(app), shows, watchers


def test_healthcheck() -> None:
    client, _, _ = _client()
    with client:
        assert client.get("/healthz").json() == {"status": "ok"}


def test_search_returns_camel_case_page() -> None:
    client, shows, _ = _client()
    with client:
        response = client.get(
            "/accounts/5/shows", params={"page": 0, "name": "an", "platform": 3}
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["page"] == 1
    assert payload["numPages"] == 2
    assert payload["totalCount"] == 3
    assert payload["shows"][0]["showName"] == "Andor"
    assert payload["shows"][0]["watcherName"] == "Bob"
    assert payload["shows"][0]["finishedAt"] is None

    (name, (account_id, options)), = shows.calls
    assert name == "search"
    assert account_id == 5
    assert options == SearchShowsOptions(page=0, show_name="an", platform_id=3)


def test_active_shows_keep_group_order() -> None:
    client, shows, _ = _client()
    with client:
        by_status = client.get("/accounts/5/shows/active")
        by_watchers = client.get("/accounts/5/shows/active", params={"groupBy": "watchers"})
        invalid = client.get("/accounts/5/shows/active", params={"groupBy": "platform"})

    assert list(by_status.json()) == ["Watching", "Want to Watch"]
    assert by_status.json()["Want to Watch"]["Alice, Bob"][0]["showId"] == 2
    assert by_watchers.json() == {}
    assert invalid.status_code == 422
    assert [name for name, _ in shows.calls] == ["by-status", "by-watchers"]


def test_add_and_edit_show_accept_camel_case_bodies() -> None:
    client, shows, _ = _client()
    with client:
        created = client.post(
            "/accounts/5/shows",
            json={"name": "Foo", "totalSeasons": 2, "watcherIds": [1, 2]},
        )
        updated = client.put(
            "/accounts/5/shows/42",
            json={"name": "Foo", "totalSeasons": 3, "posterImage": "p.jpg"},
        )
        fetched = client.get("/accounts/5/shows/42")

    assert created.status_code == 201
    assert created.json() == {"id": 42}
    assert updated.status_code == 204
    assert fetched.json()["watcherIds"] == [3]
    assert "watchStatus" not in fetched.json()

    (_, (_, add_request)), (_, (_, edit_request)) = shows.calls
    assert add_request.total_seasons == 2
    assert add_request.watcher_ids == [1, 2]
    assert edit_request.id == 42
    assert edit_request.poster_image == "p.jpg"


def test_edit_show_requires_season_count() -> None:
    client, shows, _ = _client()
    with client:
        response = client.put("/accounts/5/shows/42", json={"name": "Foo"})

    assert response.status_code == 422
    assert shows.calls == []


def test_transitions_and_domain_errors_map_to_status_codes() -> None:
    client, shows, _ = _client()
    shows.missing.add(9)
    shows.cancelled.add(8)
    with client:
        finished = client.post("/accounts/5/shows/1/finish-season")
        cancelled = client.post("/accounts/5/shows/1/cancel")
        unknown = client.post("/accounts/5/shows/1/rewind")
        refused = client.post("/accounts/5/shows/8/finish-season")
        missing = client.get("/accounts/5/shows/9")
        watched = client.delete("/accounts/5/shows/1")

    assert finished.status_code == 204
    assert cancelled.status_code == 204
    assert unknown.status_code == 422
    assert refused.status_code == 409
    assert missing.status_code == 404
    assert missing.json() == {"detail": "show not found"}
    assert watched.status_code == 409
    assert shows.calls == [("finish-season", (5, 1)), ("cancel", (5, 1))]


def test_watcher_routes_use_acting_user_header() -> None:
    client, _, watchers = _client()
    with client:
        listed = client.get("/accounts/5/watchers", headers={"X-User-Id": "11"})
        denied = client.put(
            "/accounts/5/watchers/1", json={"name": "Nana"}, headers={"X-User-Id": "11"}
        )
        renamed = client.put(
            "/accounts/5/watchers/1", json={"name": "Me"}, headers={"X-User-Id": "7"}
        )
        anonymous = client.get("/accounts/5/watchers")

    assert listed.json()[0]["isOwner"] is True
    assert listed.json()[0]["currentUserId"] == 11
    assert denied.status_code == 403
    assert renamed.status_code == 204
    assert watchers.renames == [(1, 5, 7, "Me")]
    assert anonymous.status_code == 422


def test_online_search_routes() -> None:
    client, _, _ = _client()
    with client:
        found = client.get("/shows/online-search", params={"q": "dark"})
        broken = client.get("/shows/online-search", params={"q": "broken"})
        slow = client.get("/shows/online-search", params={"q": "slow"})
        image = client.get("/shows/image", params={"name": "Dark"})

    assert found.json()[0]["numSeasons"] == 3
    assert found.json()[0]["imageUrls"] == []
    assert broken.status_code == 502
    assert slow.status_code == 504
    assert image.json() == {"imageUrl": "https://img/dark.jpg"}


def _store_backed_client(tmp_path) -> TestClient:
    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
        await database.create_all()
        fastapi_app.state.user_service = UserService(database.session_factory)
        fastapi_app.state.account_service = AccountService(database.session_factory)
        fastapi_app.state.watcher_service = WatcherService(database.session_factory)
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_routes(app)
    return TestClient(app)


def test_signup_creates_or_joins_a_household(tmp_path) -> None:
    with _store_backed_client(tmp_path) as client:
        owner = client.post(
            "/users", json={"email": "owner@example.com", "password": "s3cret-pass"}
        )
        account_id = owner.json()["accountId"]
        options = client.get(f"/accounts/{account_id}/watchers/options").json()

        listed = client.get(
            f"/accounts/{account_id}/watchers",
            headers={"X-User-Id": str(owner.json()["userId"])},
        )
        join_token = next(iter(_join_tokens(tmp_path)))
        member = client.post(
            "/users",
            json={
                "email": "member@example.com",
                "password": "an0ther-pass",
                "joinToken": join_token,
            },
        )
        duplicate = client.post(
            "/users", json={"email": "owner@example.com", "password": "s3cret-pass"}
        )
        bad_token = client.post(
            "/users",
            json={
                "email": "late@example.com",
                "password": "an0ther-pass",
                "joinToken": "nope",
            },
        )
        unknown_code = client.post("/users/activate/zzzzzz")
        members = client.get(f"/accounts/{account_id}/watchers/options").json()

    assert owner.status_code == 201
    assert options == [
        {
            "id": owner.json()["watcherId"],
            "name": "owner@example.com",
            "userId": owner.json()["userId"],
            "userEmail": "owner@example.com",
        }
    ]
    assert listed.json()[0]["isOwner"] is True
    assert member.status_code == 201
    assert member.json()["accountId"] == account_id
    assert [watcher["name"] for watcher in members] == [
        "member@example.com",
        "owner@example.com",
    ]
    assert duplicate.status_code == 409
    assert bad_token.status_code == 404
    assert unknown_code.status_code == 404


def _join_tokens(tmp_path) -> list[str]:
    engine = create_engine(f"sqlite:///{tmp_path / 'api.db'}")
    try:
        with engine.connect() as connection:
            return list(connection.scalars(select(Account.join_token)))
    finally:
        engine.dispose()
