"""Users, accounts and the credentials that tie them together."""

from __future__ import annotations

import logging

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError

from ..db_models import Account, User
from ..models import AccountSummary, UserSummary
from ..utils import hash_password, random_string, utcnow
from ..utils import verify_password as _check_password
from .base import DbServiceBase
from .errors import (
    AccountNotFoundError,
    ActivationCodeNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

AUTH_TOKEN_LENGTH = 20
ACTIVATION_CODE_LENGTH = 6
JOIN_TOKEN_LENGTH = 6


class UserService(DbServiceBase):
    """Registers, activates and looks up users."""

    async def create_user(self, email: str, password: str) -> UserSummary:
        """Create an inactive user with no account yet."""

        user = User(
            created_at=utcnow(),
            active=False,
            email=email,
            password=hash_password(password),
            auth_token=random_string(AUTH_TOKEN_LENGTH),
            activation_code=random_string(ACTIVATION_CODE_LENGTH),
        )
        async with self._transaction("creating user") as session:
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as exc:
                if self.is_duplicate_record_error(exc):
                    raise UserAlreadyExistsError() from exc
                raise

        logger.info("Created user %s", user.id)
        return UserSummary.model_validate(user)

    async def activate_user(self, activation_code: str) -> None:
        async with self._transaction("activating user") as session:
            result = await session.execute(
                update(User)
                .where(User.activation_code == activation_code)
                .values(active=True, activation_code=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ActivationCodeNotFoundError()

    async def add_user_to_account(self, user_id: int, account_id: int) -> None:
        async with self._transaction("updating user account") as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(account_id=account_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise UserNotFoundError()

    async def get_user_by_email(
        self, email: str, *, only_active: bool = False
    ) -> UserSummary:
        stmt = self._user_select().where(User.email == email)
        if only_active:
            stmt = stmt.where(User.active.is_(True))
        return await self._fetch_user(stmt, "querying user by email")

    async def get_user_by_id_and_auth_token(
        self, user_id: int, auth_token: str, *, only_active: bool = False
    ) -> UserSummary:
        stmt = self._user_select().where(
            User.id == user_id, User.auth_token == auth_token
        )
        if only_active:
            stmt = stmt.where(User.active.is_(True))
        return await self._fetch_user(stmt, "querying user by id and auth token")

    async def get_user_by_activation_code(self, activation_code: str) -> UserSummary:
        stmt = self._user_select().where(User.activation_code == activation_code)
        return await self._fetch_user(stmt, "querying user by activation code")

    @staticmethod
    def verify_password(user: UserSummary, password: str) -> bool:
        return bool(user.password) and _check_password(password, user.password)

    @staticmethod
    def _user_select() -> Select:
        return select(User, Account).outerjoin(Account, Account.id == User.account_id)

    async def _fetch_user(self, stmt: Select, operation: str) -> UserSummary:
        async with self._session(operation) as session:
            row = (await session.execute(stmt.limit(1))).first()
        if row is None:
            raise UserNotFoundError()

        user, account = row
        summary = UserSummary.model_validate(user)
        if account is not None:
            summary.account = AccountSummary.model_validate(account)
        return summary


class AccountService(DbServiceBase):
    async def create_account(
        self, owner_user_id: int, *, associate_to_user: int | None = None
    ) -> AccountSummary:
        """Create an account with a fresh join token.

        When ``associate_to_user`` is given that user joins the new account in
        the same transaction.
        """

        async with self._transaction("creating account") as session:
            account = Account(
                owner=owner_user_id, join_token=random_string(JOIN_TOKEN_LENGTH)
            )
            session.add(account)
            await session.flush()

            if associate_to_user is not None:
                result = await session.execute(
                    update(User)
                    .where(User.id == associate_to_user)
                    .values(account_id=account.id)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise UserNotFoundError()

            summary = AccountSummary.model_validate(account)

        logger.info("Created account %s owned by user %s", summary.id, owner_user_id)
        return summary

    async def get_account_by_join_token(self, join_token: str) -> AccountSummary:
        async with self._session("fetching account by join token") as session:
            account = await session.scalar(
                select(Account).where(Account.join_token == join_token)
            )
        if account is None:
            raise AccountNotFoundError()
        return AccountSummary.model_validate(account)
