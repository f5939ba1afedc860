"""Tests for the exception hierarchy and public messages."""

from __future__ import annotations

import pytest

from crosscloud.exceptions import (
    GENERIC_ERROR_MESSAGE,
    ConflictError,
    CrossCloudError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    UserError,
    ValidationError,
    public_message,
)
from crosscloud.storage_types import StorageType


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type", [NotFoundError, ConflictError, PermissionDeniedError, ValidationError]
    )
    def test_user_errors(self, exc_type):
        assert issubclass(exc_type, UserError)
        assert issubclass(exc_type, CrossCloudError)

    def test_storage_error_is_not_a_user_error(self):
        assert not issubclass(StorageError, UserError)
        assert StorageError.retryable


class TestPublicMessage:
    def test_user_error_verbatim(self):
        assert public_message(NotFoundError("Cannot find the share")) == "Cannot find the share"

    def test_storage_error_hidden(self):
        assert public_message(StorageError("deadlock on shares")) == GENERIC_ERROR_MESSAGE

    def test_unexpected_error_hidden(self):
        assert public_message(RuntimeError("secret")) == GENERIC_ERROR_MESSAGE


class TestStorageType:
    def test_validate(self):
        assert StorageType.validate("onedrivebusiness") == "onedrivebusiness"
        assert StorageType.validate(StorageType.BOX) == "box"

    def test_invalid(self):
        with pytest.raises(ValidationError, match="Unsupported storage type: 'floppy'"):
            StorageType.validate("floppy")
