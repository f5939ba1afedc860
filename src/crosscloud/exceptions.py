"""Exception hierarchy for CrossCloud.

``UserError`` subclasses carry messages that are safe to show to end
users.  Everything else is an internal failure whose message stays in
the logs.
"""

from __future__ import annotations

GENERIC_ERROR_MESSAGE = "Internal server error"


class CrossCloudError(Exception):
    """Base exception for all CrossCloud errors."""


class UserError(CrossCloudError):
    """An error whose message can be returned verbatim to the caller."""


class NotFoundError(UserError):
    """Raised when a record does not exist or is not visible to the caller."""


class ConflictError(UserError):
    """Raised when an operation would break a uniqueness or at-most-once rule."""


class PermissionDeniedError(UserError):
    """Raised when the caller is not a member or owner of the resource."""


class ValidationError(UserError):
    """Raised when input data is malformed or incomplete."""


class StorageError(CrossCloudError):
    """Raised on storage failures (lock timeout, lost connection, constraint violation).

    The enclosing unit of work has been rolled back when this is raised.
    """

    retryable = True


def public_message(exc: BaseException) -> str:
    """Return the message for *exc* that may be shown to an end user."""
    if isinstance(exc, UserError):
        return str(exc)
    return GENERIC_ERROR_MESSAGE
