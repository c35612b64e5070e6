"""Household watchers and the rules for renaming them."""

from __future__ import annotations

import logging

from sqlalchemy import case, func, select, update

from ..db_models import Account, User, Watcher
from ..models import UserSummary, WatcherSummary, WatcherWithUserInfo
from .base import DbServiceBase
from .errors import AccountNotFoundError, PermissionDeniedError, WatcherNotFoundError

logger = logging.getLogger(__name__)


def can_rename_watcher(
    watcher_user_id: int | None, *, current_user_id: int, is_account_owner: bool
) -> bool:
    """Users may rename their own watcher; owners may also rename manual ones."""

    if watcher_user_id is not None and watcher_user_id == current_user_id:
        return True
    return is_account_owner and watcher_user_id is None


class WatcherService(DbServiceBase):
    async def create_watcher(self, user: UserSummary) -> WatcherSummary:
        """Create the watcher representing ``user`` in the user's account."""

        if user.account is None:
            raise AccountNotFoundError()

        async with self._transaction("creating watcher") as session:
            watcher = Watcher(user_id=user.id, name=user.email, account_id=user.account.id)
            session.add(watcher)
            await session.flush()
            watcher_id = watcher.id

        return WatcherSummary(
            id=watcher_id, name=user.email, user_id=user.id, user_email=user.email
        )

    async def create_watcher_manual(self, account_id: int, name: str) -> WatcherSummary:
        """Create a watcher that no login is attached to."""

        async with self._transaction("creating manual watcher") as session:
            watcher = Watcher(user_id=None, name=name, account_id=account_id)
            session.add(watcher)
            await session.flush()
            watcher_id = watcher.id

        logger.info("Created manual watcher %s in account %s", watcher_id, account_id)
        return WatcherSummary(id=watcher_id, name=name)

    async def get_watchers(self, account_id: int) -> list[WatcherSummary]:
        stmt = (
            select(
                Watcher.id,
                Watcher.name,
                Watcher.user_id,
                func.coalesce(User.email, "").label("user_email"),
            )
            .outerjoin(User, User.id == Watcher.user_id)
            .where(Watcher.account_id == account_id)
            .order_by(Watcher.name.asc(), Watcher.id.asc())
        )
        async with self._session("fetching watchers") as session:
            rows = (await session.execute(stmt)).all()

        return [WatcherSummary.model_validate(row) for row in rows]

    async def get_watchers_with_user_info(
        self, account_id: int, current_user_id: int
    ) -> list[WatcherWithUserInfo]:
        """Watchers of an account, the owner's own watcher first."""

        owns_account = User.id == Account.owner
        is_owner = case((owns_account, True), else_=False)
        stmt = (
            select(
                Watcher.id,
                Watcher.name,
                Watcher.user_id,
                func.coalesce(User.email, "").label("user_email"),
                is_owner.label("is_owner"),
            )
            .outerjoin(User, User.id == Watcher.user_id)
            .outerjoin(Account, Account.id == Watcher.account_id)
            .where(Watcher.account_id == account_id)
            .order_by(
                case((owns_account, 0), else_=1), Watcher.name.asc(), Watcher.id.asc()
            )
        )
        async with self._session("fetching watchers with user info") as session:
            rows = (await session.execute(stmt)).all()

        return [
            WatcherWithUserInfo(
                id=row.id,
                name=row.name,
                user_id=row.user_id,
                user_email=row.user_email,
                is_owner=bool(row.is_owner),
                current_user_id=current_user_id,
            )
            for row in rows
        ]

    async def update_watcher_name(
        self, watcher_id: int, account_id: int, current_user_id: int, name: str
    ) -> None:
        """Rename a watcher after checking the acting user may do so.

        The permission check and the update share one transaction but take
        no lock, so concurrent renames of the same watcher are last-write-wins.
        """

        async with self._transaction("updating watcher name") as session:
            result = await session.execute(
                select(Watcher.user_id).where(
                    Watcher.id == watcher_id, Watcher.account_id == account_id
                )
            )
            target = result.first()
            if target is None:
                raise WatcherNotFoundError()

            owner = await session.scalar(
                select(Account.owner).where(Account.id == account_id)
            )
            if owner is None:
                raise AccountNotFoundError()

            if not can_rename_watcher(
                target.user_id,
                current_user_id=current_user_id,
                is_account_owner=owner == current_user_id,
            ):
                logger.info(
                    "User %s may not rename watcher %s in account %s",
                    current_user_id,
                    watcher_id,
                    account_id,
                )
                raise PermissionDeniedError()

            await session.execute(
                update(Watcher)
                .where(Watcher.id == watcher_id, Watcher.account_id == account_id)
                .values(name=name)
                .execution_options(synchronize_session=False)
            )
