from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union


class Role(str, Enum):
    """Role stored on an account; selects the profile variant it owns."""

    consumer = "consumer"
    provider = "provider"


class ProfileType(str, Enum):
    customer = "customer"
    organisation = "organisation"


@dataclass(slots=True)
class Account:
    """Aggregate root for a user identity."""

    account_id: str
    phone_number: str
    role: Role
    password_hash: str
    created_at: datetime
    updated_at: datetime

    def public_fields(self) -> dict[str, Any]:
        """Return the account fields safe to expose, leaving out the credential hash."""
        return {
            "account_id": self.account_id,
            "phone_number": self.phone_number,
            "role": self.role.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class ConsumerProfile:
    """Profile owned by consumer accounts, tagged as a customer or an organisation."""

    profile_id: str
    account_id: str
    type: ProfileType
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "account_id": self.account_id,
            "type": self.type.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class ProviderProfile:
    """Profile owned by provider accounts."""

    profile_id: str
    account_id: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "account_id": self.account_id,
            "created_at": self.created_at.isoformat(),
        }


Profile = Union[ConsumerProfile, ProviderProfile]


@dataclass(slots=True)
class AccountView:
    """Account merged with its profile, embedded under the account's role name."""

    account: Account
    profile: Profile | None

    def to_dict(self) -> dict[str, Any]:
        data = self.account.public_fields()
        data[self.account.role.value] = self.profile.to_dict() if self.profile else None
        return data
