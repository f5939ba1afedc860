"""Input types for share and key exchange operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class CspInput:
    """A new link between the current user and an external storage account."""

    csp_id: str
    type: str
    unique_id: str
    display_name: str = ""
    authentication_data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ShareInput:
    """A share to register in the current organization."""

    name: str
    storage_type: str
    unique_id: str
    storage_unique_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EncryptedShareKey:
    """The share's private key encrypted for one member."""

    user_id: str
    encrypted_share_key: str


@dataclass(frozen=True)
class InitShareKeysInput:
    """One-time key bootstrap for a share."""

    storage_type: str
    share_unique_id: str
    public_share_key: str
    encrypted_share_keys: list[EncryptedShareKey] = field(default_factory=list)


@dataclass(frozen=True)
class AddShareKeyInput:
    """A key for one more member of an already initialised share."""

    storage_type: str
    share_unique_id: str
    user_id: str
    encrypted_share_key: str


@dataclass(frozen=True)
class DeviceKeyData:
    """The user key encrypted for a device, as sent by an approving device."""

    device_id: str
    public_device_key: str
    encrypted_user_key: str


@dataclass(frozen=True)
class InitUserKeyInput:
    """First-device key setup: the user's public key plus its device copy."""

    public_user_key: str
    device_id: str
    public_device_key: str
    encrypted_user_key: str

    @property
    def device_key(self) -> DeviceKeyData:
        return DeviceKeyData(
            device_id=self.device_id,
            public_device_key=self.public_device_key,
            encrypted_user_key=self.encrypted_user_key,
        )
