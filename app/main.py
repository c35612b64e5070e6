"""Entry point for the streaming tracker JSON API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Literal, TypeVar

import httpx
from fastapi import FastAPI, Header, Query, Request, Response, status
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .models import (
    AddShowRequest,
    CreatePlatformRequest,
    CreateWatcherRequest,
    EditShowPayload,
    EditShowRequest,
    OnlineShowSearchResult,
    PagedShows,
    PlatformAliasRequest,
    PlatformSummary,
    RenameWatcherRequest,
    SearchShowsOptions,
    ShowForEdit,
    SignupRequest,
    SignupResponse,
    ShowListing,
    WatcherSummary,
    WatcherWithUserInfo,
)
from .services.errors import (
    BusinessRuleError,
    CatalogLookupError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
)
from .services.grouping import GroupedShows
from .services.identity import AccountService, UserService
from .services.online_search import OnlineSearchService
from .services.platforms import PlatformService
from .services.shows import ShowService
from .services.tvmaze import TVMazeClient
from .services.watchers import WatcherService
from .utils import page_count

logging.basicConfig(level=settings.logging_level)
logger = logging.getLogger(__name__)

app: FastAPI

ServiceT = TypeVar("ServiceT")

SHOW_TRANSITIONS = {
    "start-watching": "start_watching",
    "finish-season": "finish_season",
    "add-season": "add_season",
    "want-to-watch": "back_to_want_to_watch",
    "cancel": "cancel_show",
}


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tvmaze_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tvmaze_base_url),
            timeout=httpx.Timeout(settings.tvmaze_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    service_options = {
        "query_timeout": settings.query_timeout_seconds,
        "page_size": settings.page_size,
    }
    platform_service = PlatformService(database.session_factory, **service_options)

    fastapi_app.state.database = database
    fastapi_app.state.platform_service = platform_service
    fastapi_app.state.show_service = ShowService(
        database.session_factory, **service_options
    )
    fastapi_app.state.watcher_service = WatcherService(
        database.session_factory, **service_options
    )
    fastapi_app.state.user_service = UserService(
        database.session_factory, **service_options
    )
    fastapi_app.state.account_service = AccountService(
        database.session_factory, **service_options
    )
    fastapi_app.state.online_search_service = OnlineSearchService(
        TVMazeClient(tvmaze_http_client),
        platform_service,
        timeout_seconds=settings.online_search_timeout_seconds,
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Track which shows a household is watching, and how far along it is",
        version="1.0.0",
        lifespan=lifespan,
    )
    register_routes(fastapi_app)
    return fastapi_app


def _get_service(
    fastapi_app: FastAPI, name: str, expected_type: type[ServiceT]
) -> ServiceT:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected_type):
        raise RuntimeError(f"{name} not initialised")
    return service


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    """Translate domain errors into JSON error responses."""

    def _error(status_code: int, detail: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @fastapi_app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @fastapi_app.exception_handler(BusinessRuleError)
    async def business_rule_handler(
        request: Request, exc: BusinessRuleError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @fastapi_app.exception_handler(PermissionDeniedError)
    async def permission_denied_handler(
        request: Request, exc: PermissionDeniedError
    ) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, str(exc))

    @fastapi_app.exception_handler(CatalogLookupError)
    async def catalog_lookup_handler(
        request: Request, exc: CatalogLookupError
    ) -> JSONResponse:
        logger.error(
            "Catalog lookup failed at %s (status %s): %s",
            request.url.path,
            exc.status_code,
            exc.body,
        )
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc))

    @fastapi_app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure at %s: %s", request.url.path, exc.__cause__ or exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @fastapi_app.exception_handler(TimeoutError)
    async def timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
        logger.error("Timed out serving %s", request.url.path)
        return _error(status.HTTP_504_GATEWAY_TIMEOUT, "operation timed out")


def register_routes(fastapi_app: FastAPI) -> None:
    register_exception_handlers(fastapi_app)

    def shows() -> ShowService:
        return _get_service(fastapi_app, "show_service", ShowService)

    def watchers() -> WatcherService:
        return _get_service(fastapi_app, "watcher_service", WatcherService)

    def platforms() -> PlatformService:
        return _get_service(fastapi_app, "platform_service", PlatformService)

    def users() -> UserService:
        return _get_service(fastapi_app, "user_service", UserService)

    def accounts() -> AccountService:
        return _get_service(fastapi_app, "account_service", AccountService)

    def online_search() -> OnlineSearchService:
        return _get_service(fastapi_app, "online_search_service", OnlineSearchService)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/users", status_code=status.HTTP_201_CREATED)
    async def signup(payload: SignupRequest) -> SignupResponse:
        user_service = users()
        joined = None
        if payload.join_token:
            joined = await accounts().get_account_by_join_token(payload.join_token)

        user = await user_service.create_user(payload.email, payload.password)
        if joined is not None:
            await user_service.add_user_to_account(user.id, joined.id)
        else:
            await accounts().create_account(user.id, associate_to_user=user.id)

        user = await user_service.get_user_by_email(user.email)
        watcher = await watchers().create_watcher(user)
        logger.info("Signed up user %s into account %s", user.id, user.account.id)
        return SignupResponse(
            user_id=user.id,
            email=user.email,
            account_id=user.account.id,
            watcher_id=watcher.id,
        )

    @fastapi_app.post(
        "/users/activate/{activation_code}", status_code=status.HTTP_204_NO_CONTENT
    )
    async def activate_user(activation_code: str) -> Response:
        await users().activate_user(activation_code)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @fastapi_app.get("/platforms")
    async def list_platforms() -> list[PlatformSummary]:
        return await platforms().get_platforms()

    @fastapi_app.post("/platforms", status_code=status.HTTP_201_CREATED)
    async def create_platform(payload: CreatePlatformRequest) -> PlatformSummary:
        return await platforms().create_platform(payload.name, payload.icon)

    @fastapi_app.post(
        "/platforms/{platform_id}/aliases", status_code=status.HTTP_204_NO_CONTENT
    )
    async def add_platform_alias(
        platform_id: int, payload: PlatformAliasRequest
    ) -> Response:
        await platforms().add_alias(platform_id, payload.source, payload.external_name)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @fastapi_app.get("/shows/online-search")
    async def search_online(
        q: str = Query(min_length=1),
    ) -> list[OnlineShowSearchResult]:
        return await online_search().online_search(q)

    @fastapi_app.get("/shows/image")
    async def find_show_image(name: str = Query(min_length=1)) -> dict[str, str]:
        return {"imageUrl": await online_search().find_show_image_by_name(name)}

    @fastapi_app.get("/accounts/{account_id}/shows/active")
    async def active_shows(
        account_id: int,
        group_by: Literal["status", "watchers"] = Query(
            default="status", alias="groupBy"
        ),
    ) -> GroupedShows:
        service = shows()
        if group_by == "watchers":
            return await service.get_active_shows_grouped_by_watchers_and_status(
                account_id
            )
        return await service.get_active_shows_grouped_by_status_and_watchers(
            account_id
        )

    @fastapi_app.get("/accounts/{account_id}/shows/finished")
    async def finished_shows(account_id: int) -> list[ShowListing]:
        return await shows().get_finished_shows(account_id)

    @fastapi_app.get("/accounts/{account_id}/shows")
    async def search_shows(
        account_id: int,
        page: int = 1,
        name: str = "",
        platform: int | None = None,
    ) -> PagedShows:
        service = shows()
        options = SearchShowsOptions(page=page, show_name=name, platform_id=platform)
        listings, total_count = await service.search_shows(account_id, options)
        return PagedShows(
            shows=listings,
            page=max(page, 1),
            num_pages=page_count(total_count, service.page_size),
            total_count=total_count,
        )

    @fastapi_app.post("/accounts/{account_id}/shows", status_code=status.HTTP_201_CREATED)
    async def add_show(account_id: int, payload: AddShowRequest) -> dict[str, int]:
        return {"id": await shows().add_show(account_id, payload)}

    @fastapi_app.get("/accounts/{account_id}/shows/{show_id}")
    async def get_show(account_id: int, show_id: int) -> ShowForEdit:
        return await shows().get_show_by_id(account_id, show_id)

    @fastapi_app.put(
        "/accounts/{account_id}/shows/{show_id}", status_code=status.HTTP_204_NO_CONTENT
    )
    async def update_show(
        account_id: int, show_id: int, payload: EditShowPayload
    ) -> Response:
        request = EditShowRequest(id=show_id, **payload.model_dump())
        await shows().update_show(account_id, request)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @fastapi_app.delete(
        "/accounts/{account_id}/shows/{show_id}", status_code=status.HTTP_204_NO_CONTENT
    )
    async def delete_show(account_id: int, show_id: int) -> Response:
        await shows().delete_show(account_id, show_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @fastapi_app.post(
        "/accounts/{account_id}/shows/{show_id}/{action}",
        status_code=status.HTTP_204_NO_CONTENT,
    )
    async def transition_show(
        account_id: int,
        show_id: int,
        action: Literal[
            "start-watching", "finish-season", "add-season", "want-to-watch", "cancel"
        ],
    ) -> Response:
        transition = getattr(shows(), SHOW_TRANSITIONS[action])
        await transition(account_id, show_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @fastapi_app.get("/accounts/{account_id}/watchers")
    async def list_watchers(
        account_id: int, current_user_id: int = Header(alias="X-User-Id")
    ) -> list[WatcherWithUserInfo]:
        return await watchers().get_watchers_with_user_info(account_id, current_user_id)

    @fastapi_app.get("/accounts/{account_id}/watchers/options")
    async def watcher_options(account_id: int) -> list[WatcherSummary]:
        return await watchers().get_watchers(account_id)

    @fastapi_app.post(
        "/accounts/{account_id}/watchers", status_code=status.HTTP_201_CREATED
    )
    async def create_watcher(
        account_id: int, payload: CreateWatcherRequest
    ) -> WatcherSummary:
        return await watchers().create_watcher_manual(account_id, payload.name)

    @fastapi_app.put(
        "/accounts/{account_id}/watchers/{watcher_id}",
        status_code=status.HTTP_204_NO_CONTENT,
    )
    async def rename_watcher(
        account_id: int,
        watcher_id: int,
        payload: RenameWatcherRequest,
        current_user_id: int = Header(alias="X-User-Id"),
    ) -> Response:
        await watchers().update_watcher_name(
            watcher_id, account_id, current_user_id, payload.name
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
