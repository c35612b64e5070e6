"""Domain errors raised by the tracker services."""

from __future__ import annotations


class StreamTrackerError(Exception):
    """Base class for every error the services raise on purpose."""


class NotFoundError(StreamTrackerError):
    """A targeted lookup or update matched no rows."""


class BusinessRuleError(StreamTrackerError):
    """A mutation was refused before it touched the store."""


class ShowNotFoundError(NotFoundError):
    def __init__(self, message: str = "show not found") -> None:
        super().__init__(message)


class WatcherNotFoundError(NotFoundError):
    def __init__(self, message: str = "watcher not found") -> None:
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


class AccountNotFoundError(NotFoundError):
    def __init__(self, message: str = "account not found") -> None:
        super().__init__(message)


class ActivationCodeNotFoundError(NotFoundError):
    def __init__(self, message: str = "activation code not found") -> None:
        super().__init__(message)


class ShowHasWatchedSeasonsError(BusinessRuleError):
    def __init__(
        self, message: str = "show has watched seasons and cannot be deleted"
    ) -> None:
        super().__init__(message)


class ShowCancelledError(BusinessRuleError):
    def __init__(self, message: str = "show is cancelled and cannot be changed") -> None:
        super().__init__(message)


class UserAlreadyExistsError(BusinessRuleError):
    def __init__(self, message: str = "user already exists") -> None:
        super().__init__(message)


class PermissionDeniedError(StreamTrackerError):
    def __init__(
        self, message: str = "permission denied: cannot edit this watcher's name"
    ) -> None:
        super().__init__(message)


class StoreError(StreamTrackerError):
    """The relational store failed while running ``operation``."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"error {operation}")
        self.operation = operation


class CatalogLookupError(StreamTrackerError):
    """The external show catalog could not be queried."""

    def __init__(
        self, message: str, *, status_code: int | None = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
