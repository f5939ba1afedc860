"""Supported cloud storage provider types."""

from __future__ import annotations

from enum import Enum

from .exceptions import ValidationError


class StorageType(str, Enum):
    """External storage services a user can link."""

    BOX = "box"
    CIFS = "cifs"
    DROPBOX = "dropbox"
    GDRIVE = "gdrive"
    NEXTCLOUD = "nextcloud"
    OFFICE365_GROUPS = "office365groups"
    ONEDRIVE = "onedrive"
    ONEDRIVE_BUSINESS = "onedrivebusiness"
    OWNCLOUD = "owncloud"
    SHAREPOINT = "sharepoint"

    @classmethod
    def validate(cls, value: str) -> str:
        """Return *value* as a plain string, or raise ``ValidationError``."""
        try:
            return cls(value).value
        except ValueError:
            raise ValidationError(f"Unsupported storage type: {value!r}") from None
