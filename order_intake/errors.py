"""Typed errors surfaced by the core.

Every error carries a stable machine ``code`` so the HTTP layer (and the bulk
status path) can report it without string matching.
"""
from __future__ import annotations

__all__ = [
    "OrderIntakeError",
    "NotFoundError",
    "InvalidError",
    "ConflictError",
    "FolderExistsError",
    "ExpiredError",
    "DeletedError",
    "StorageFailure",
    "RateLimitedError",
    "ConfigError",
]


class OrderIntakeError(Exception):
    """Base class for all errors raised by the core."""

    code: str = "error"


class NotFoundError(OrderIntakeError):
    """Token, order or manifest is absent."""

    code = "not_found"


class InvalidError(OrderIntakeError, ValueError):
    """Malformed input: token shape, unknown status, blank customer name."""

    code = "invalid"


class ConflictError(OrderIntakeError):
    """Token already consumed, or a concurrent double-bind was detected."""

    code = "conflict"


class FolderExistsError(ConflictError):
    """Raised by storage backends that enforce unique names under a parent."""

    code = "folder_exists"

    def __init__(self, name: str, parent_id: str) -> None:
        super().__init__(f"folder {name!r} already exists under {parent_id!r}")
        self.name = name
        self.parent_id = parent_id


class ExpiredError(OrderIntakeError):
    code = "expired"


class DeletedError(OrderIntakeError):
    code = "deleted"


class StorageFailure(OrderIntakeError):
    """A remote call failed or returned malformed data.

    ``status_code`` is the HTTP status when the failure came from a response;
    ``retryable`` marks transport errors, 429 and 5xx.
    """

    code = "storage_failure"

    def __init__(
        self, message: str, *, status_code: int | None = None, retryable: bool = False
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class RateLimitedError(OrderIntakeError):
    """Too many requests from one client; ``retry_after`` is in seconds."""

    code = "rate_limited"

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ConfigError(OrderIntakeError):
    code = "config_error"
