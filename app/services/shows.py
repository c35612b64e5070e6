"""Watch-state transitions, listings and search for tracked shows."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Sequence

from sqlalchemy import Select, case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_models import Platform, Show, ShowStatus, Watcher, WatcherShowStatus
from ..models import (
    ACTIVE_WATCH_STATUSES,
    AddShowRequest,
    EditShowRequest,
    SearchShowsOptions,
    ShowForEdit,
    ShowListing,
    WatchStatus,
)
from ..utils import utcnow
from .base import DbServiceBase
from .errors import (
    ShowCancelledError,
    ShowHasWatchedSeasonsError,
    ShowNotFoundError,
    WatcherNotFoundError,
)
from .grouping import (
    GroupedShows,
    group_by_status_then_watchers,
    group_by_watchers_then_status,
)

logger = logging.getLogger(__name__)


class ShowService(DbServiceBase):
    """Owns shows, their per-account status rows and the watcher links."""

    async def add_show(self, account_id: int, request: AddShowRequest) -> int:
        """Create a show in Want to Watch and link its watchers atomically."""

        async with self._transaction("adding show") as session:
            show = Show(
                name=request.name,
                num_seasons=request.total_seasons,
                platform_id=request.platform_id,
                account_id=account_id,
                poster_image=request.poster_image,
            )
            session.add(show)
            await session.flush()

            status = ShowStatus(
                show_id=show.id,
                account_id=account_id,
                watch_status_id=WatchStatus.WANT_TO_WATCH.value,
                current_season=0,
            )
            session.add(status)
            await session.flush()

            await self._link_watchers(
                session, account_id, status.id, request.watcher_ids
            )
            show_id = show.id

        logger.info("Added show %s (%s) to account %s", show_id, request.name, account_id)
        return show_id

    async def start_watching(self, account_id: int, show_id: int) -> None:
        """Move a show to Watching, starting at season one when never watched."""

        stmt = (
            update(ShowStatus)
            .where(*self._mutable_status(account_id, show_id))
            .values(
                watch_status_id=WatchStatus.WATCHING.value,
                current_season=case(
                    (ShowStatus.current_season == 0, 1),
                    else_=ShowStatus.current_season,
                ),
                finished_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("updating show to watching status") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await self._raise_missing_or_cancelled(session, account_id, show_id)

    async def finish_season(self, account_id: int, show_id: int) -> None:
        """Advance one season, or finish the show when on its last season.

        The decision is evaluated by the store inside a single UPDATE so two
        concurrent finishers of the same show cannot both advance it.
        """

        total_seasons = (
            select(Show.num_seasons)
            .where(Show.id == ShowStatus.show_id)
            .correlate(ShowStatus)
            .scalar_subquery()
        )
        on_last_season = ShowStatus.current_season >= total_seasons
        now = utcnow()

        stmt = (
            update(ShowStatus)
            .where(*self._mutable_status(account_id, show_id))
            .values(
                current_season=case(
                    (on_last_season, ShowStatus.current_season),
                    else_=ShowStatus.current_season + 1,
                ),
                watch_status_id=case(
                    (on_last_season, WatchStatus.FINISHED.value),
                    else_=ShowStatus.watch_status_id,
                ),
                finished_at=case(
                    (on_last_season, func.coalesce(ShowStatus.finished_at, now)),
                    else_=ShowStatus.finished_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("finishing season") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await self._raise_missing_or_cancelled(session, account_id, show_id)

    async def add_season(self, account_id: int, show_id: int) -> None:
        """Add a newly released season and put the show back in the queue."""

        async with self._transaction("adding season") as session:
            result = await session.execute(
                update(ShowStatus)
                .where(*self._mutable_status(account_id, show_id))
                .values(
                    finished_at=None,
                    watch_status_id=WatchStatus.WANT_TO_WATCH.value,
                    current_season=ShowStatus.current_season + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_missing_or_cancelled(session, account_id, show_id)

            result = await session.execute(
                update(Show)
                .where(Show.id == show_id, Show.account_id == account_id)
                .values(num_seasons=Show.num_seasons + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ShowNotFoundError()

    async def back_to_want_to_watch(self, account_id: int, show_id: int) -> None:
        stmt = (
            update(ShowStatus)
            .where(*self._mutable_status(account_id, show_id))
            .values(watch_status_id=WatchStatus.WANT_TO_WATCH.value, finished_at=None)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("updating show to want to watch status") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await self._raise_missing_or_cancelled(session, account_id, show_id)

    async def cancel_show(self, account_id: int, show_id: int) -> None:
        """Flag a show as cancelled. Its status row is left as it is."""

        now = utcnow()
        stmt = (
            update(Show)
            .where(Show.id == show_id, Show.account_id == account_id)
            .values(cancelled=True, date_cancelled=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("cancelling show") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise ShowNotFoundError()

        logger.info("Cancelled show %s for account %s", show_id, account_id)

    async def update_show(self, account_id: int, request: EditShowRequest) -> None:
        """Save edits, replacing the watcher links when watchers are supplied."""

        async with self._transaction("updating show") as session:
            result = await session.execute(
                update(Show)
                .where(
                    Show.id == request.id,
                    Show.account_id == account_id,
                    Show.cancelled.is_(False),
                )
                .values(
                    name=request.name,
                    num_seasons=request.total_seasons,
                    platform_id=request.platform_id,
                    poster_image=request.poster_image,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_missing_or_cancelled(session, account_id, request.id)

            if request.watcher_ids:
                status_id = await session.scalar(
                    select(ShowStatus.id).where(
                        ShowStatus.show_id == request.id,
                        ShowStatus.account_id == account_id,
                    )
                )
                if status_id is None:
                    raise ShowNotFoundError()
                await session.execute(
                    delete(WatcherShowStatus)
                    .where(WatcherShowStatus.show_status_id == status_id)
                    .execution_options(synchronize_session=False)
                )
                await self._link_watchers(
                    session, account_id, status_id, request.watcher_ids
                )

    async def delete_show(self, account_id: int, show_id: int) -> None:
        """Delete a show that was never started, links first, then status, then show."""

        async with self._transaction("deleting show") as session:
            status = (
                await session.execute(
                    select(ShowStatus.id, ShowStatus.current_season)
                    .join(Show, Show.id == ShowStatus.show_id)
                    .where(
                        ShowStatus.show_id == show_id,
                        ShowStatus.account_id == account_id,
                    )
                )
            ).first()
            if status is None:
                raise ShowNotFoundError()
            if status.current_season > 0:
                raise ShowHasWatchedSeasonsError()

            await session.execute(
                delete(WatcherShowStatus)
                .where(WatcherShowStatus.show_status_id == status.id)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                delete(ShowStatus)
                .where(ShowStatus.show_id == show_id, ShowStatus.account_id == account_id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(Show)
                .where(Show.id == show_id, Show.account_id == account_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ShowNotFoundError()

        logger.info("Deleted show %s from account %s", show_id, account_id)

    async def get_show_by_id(self, account_id: int, show_id: int) -> ShowForEdit:
        async with self._session("fetching show by id") as session:
            row = (
                await session.execute(
                    select(Show, ShowStatus.finished_at)
                    .outerjoin(
                        ShowStatus,
                        (ShowStatus.show_id == Show.id)
                        & (ShowStatus.account_id == account_id),
                    )
                    .where(Show.id == show_id, Show.account_id == account_id)
                )
            ).first()
            if row is None:
                raise ShowNotFoundError()

            watcher_ids = (
                await session.scalars(
                    select(WatcherShowStatus.watcher_id)
                    .join(ShowStatus, ShowStatus.id == WatcherShowStatus.show_status_id)
                    .where(
                        ShowStatus.show_id == show_id,
                        ShowStatus.account_id == account_id,
                    )
                    .order_by(WatcherShowStatus.watcher_id)
                )
            ).all()

        show: Show = row[0]
        return ShowForEdit(
            id=show.id,
            name=show.name,
            num_seasons=show.num_seasons,
            platform_id=show.platform_id,
            watcher_ids=list(watcher_ids),
            finished_at=row.finished_at,
            cancelled=show.cancelled,
            date_cancelled=show.date_cancelled,
            poster_image=show.poster_image or "",
        )

    async def get_active_shows_grouped_by_status_and_watchers(
        self, account_id: int
    ) -> GroupedShows:
        """Active shows keyed by status label, then by the watchers sharing them."""

        listings = await self._fetch_active_listings(account_id)
        return group_by_status_then_watchers(listings)

    async def get_active_shows_grouped_by_watchers_and_status(
        self, account_id: int
    ) -> GroupedShows:
        """Active shows keyed by watcher group, then by status label."""

        listings = await self._fetch_active_listings(account_id)
        # Stable sort keeps the status/name order within each watcher group.
        listings.sort(
            key=lambda listing: (listing.watcher_name.casefold(), listing.watcher_name)
        )
        return group_by_watchers_then_status(listings)

    async def get_finished_shows(self, account_id: int) -> list[ShowListing]:
        stmt = (
            self._listing_select(account_id)
            .where(ShowStatus.watch_status_id == WatchStatus.FINISHED.value)
            .order_by(Show.name.asc(), Show.id.asc())
        )
        async with self._session("fetching finished shows") as session:
            rows = (await session.execute(stmt)).all()
            return await self._build_listings(session, rows)

    async def search_shows(
        self, account_id: int, options: SearchShowsOptions | None = None
    ) -> tuple[list[ShowListing], int]:
        """Return one page of matching shows and the total number of matches."""

        opts = options or SearchShowsOptions()
        page = max(opts.page, 1)

        filters = []
        if opts.show_name:
            filters.append(Show.name.ilike(f"%{opts.show_name}%"))
        if opts.platform_id:
            filters.append(Show.platform_id == opts.platform_id)

        offset = self.paging(page)
        stmt = (
            self._listing_select(account_id, func.count().over().label("total_count"))
            .where(*filters)
            .order_by(Show.name.asc(), Show.id.asc())
            .offset(offset)
            .limit(self.page_size)
        )

        async with self._session("fetching searched shows") as session:
            rows = (await session.execute(stmt)).all()
            listings = await self._build_listings(session, rows)
            if rows:
                total_count = rows[0].total_count
            elif offset:
                # Past the last page the window count has no row to ride on.
                matching = self._listing_select(account_id).where(*filters).subquery()
                total_count = await session.scalar(
                    select(func.count()).select_from(matching)
                )
            else:
                total_count = 0

        return listings, total_count

    async def _fetch_active_listings(self, account_id: int) -> list[ShowListing]:
        stmt = (
            self._listing_select(account_id)
            .where(
                ShowStatus.watch_status_id.in_(
                    [status.value for status in ACTIVE_WATCH_STATUSES]
                )
            )
            .order_by(
                ShowStatus.watch_status_id.desc(), Show.name.asc(), Show.id.asc()
            )
        )
        async with self._session("fetching active grouped shows") as session:
            rows = (await session.execute(stmt)).all()
            return await self._build_listings(session, rows)

    @staticmethod
    def _listing_select(account_id: int, *extra_columns: Any) -> Select:
        """Shows of an account that at least one watcher is following."""

        has_watchers = (
            select(WatcherShowStatus.watcher_id)
            .where(WatcherShowStatus.show_status_id == ShowStatus.id)
            .exists()
        )
        return (
            select(
                ShowStatus.id.label("show_status_id"),
                Show.id.label("show_id"),
                Show.name.label("show_name"),
                Show.num_seasons,
                func.coalesce(Platform.name, "").label("platform_name"),
                func.coalesce(Platform.icon, "").label("platform_icon"),
                Show.cancelled,
                Show.date_cancelled,
                ShowStatus.watch_status_id,
                ShowStatus.current_season,
                ShowStatus.finished_at,
                func.coalesce(Show.poster_image, "").label("poster_image"),
                *extra_columns,
            )
            .select_from(ShowStatus)
            .join(Show, Show.id == ShowStatus.show_id)
            .outerjoin(Platform, Platform.id == Show.platform_id)
            .where(ShowStatus.account_id == account_id, has_watchers)
        )

    async def _build_listings(
        self, session: AsyncSession, rows: Sequence[Any]
    ) -> list[ShowListing]:
        """Attach the sorted, comma-joined watcher names to each listing row."""

        status_ids = [row.show_status_id for row in rows]
        names: dict[int, list[str]] = defaultdict(list)
        if status_ids:
            result = await session.execute(
                select(WatcherShowStatus.show_status_id, Watcher.name)
                .join(Watcher, Watcher.id == WatcherShowStatus.watcher_id)
                .where(WatcherShowStatus.show_status_id.in_(status_ids))
            )
            for status_id, watcher_name in result.all():
                names[status_id].append(watcher_name)

        return [
            ShowListing(
                show_id=row.show_id,
                show_name=row.show_name,
                num_seasons=row.num_seasons,
                platform_name=row.platform_name,
                platform_icon=row.platform_icon,
                cancelled=row.cancelled,
                date_cancelled=row.date_cancelled,
                watch_status_id=row.watch_status_id,
                watch_status=WatchStatus.label_for(row.watch_status_id),
                current_season=row.current_season,
                finished_at=row.finished_at,
                watcher_name=", ".join(sorted(names[row.show_status_id])),
                poster_image=row.poster_image,
            )
            for row in rows
        ]

    @staticmethod
    def _mutable_status(account_id: int, show_id: int) -> tuple[Any, ...]:
        """WHERE clauses selecting a status row whose show is not cancelled."""

        open_shows = select(Show.id).where(
            Show.account_id == account_id, Show.cancelled.is_(False)
        )
        return (
            ShowStatus.show_id == show_id,
            ShowStatus.account_id == account_id,
            ShowStatus.show_id.in_(open_shows),
        )

    @staticmethod
    async def _raise_missing_or_cancelled(
        session: AsyncSession, account_id: int, show_id: int
    ) -> None:
        cancelled = await session.scalar(
            select(Show.cancelled).where(
                Show.id == show_id, Show.account_id == account_id
            )
        )
        if cancelled:
            raise ShowCancelledError()
        raise ShowNotFoundError()

    @staticmethod
    async def _link_watchers(
        session: AsyncSession,
        account_id: int,
        show_status_id: int,
        watcher_ids: Iterable[int],
    ) -> None:
        """Link watchers of ``account_id``; a foreign or unknown id aborts the transaction."""

        unique_ids = list(dict.fromkeys(watcher_ids))
        if not unique_ids:
            return
        owned = set(
            (
                await session.scalars(
                    select(Watcher.id).where(
                        Watcher.id.in_(unique_ids), Watcher.account_id == account_id
                    )
                )
            ).all()
        )
        if len(owned) != len(unique_ids):
            raise WatcherNotFoundError()
        session.add_all(
            WatcherShowStatus(watcher_id=watcher_id, show_status_id=show_status_id)
            for watcher_id in unique_ids
        )
