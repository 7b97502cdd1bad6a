"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .account import ProfileType, Role
from .errors import AccountError, ErrorKind

# bcrypt ignores or rejects anything past 72 bytes of input.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


class RoleSelector(str, Enum):
    """Role values accepted at creation; ``organisation`` is a kind of consumer."""

    organisation = "organisation"
    provider = "provider"
    consumer = "consumer"

    def resolve(self) -> tuple[Role, ProfileType | None]:
        """Return the role to store and, for consumers, the profile type to create."""
        if self is RoleSelector.organisation:
            return Role.consumer, ProfileType.organisation
        if self is RoleSelector.consumer:
            return Role.consumer, ProfileType.customer
        return Role.provider, None


class CreateAccountInput(BaseModel):
    """Validated inputs required to create an account."""

    model_config = ConfigDict(extra="ignore")

    phone_number: str = Field(..., min_length=1, pattern=r"^\d+$")
    password: str = Field(..., min_length=4)
    role: RoleSelector

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class UpdateAccountInput(BaseModel):
    """Fields a plain update may change; role and credential are not among them."""

    model_config = ConfigDict(extra="forbid")

    phone_number: str | None = Field(default=None, min_length=1, pattern=r"^\d+$")


class PasswordChangeInput(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


ContractT = TypeVar("ContractT", bound=BaseModel)


def violated_rules(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error entries into ``{field, rule, message}`` entries."""
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "body",
            "rule": error["type"],
            "message": error["msg"],
        }
        for error in errors
    ]


def parse_contract(
    model: type[ContractT],
    payload: Mapping[str, Any] | ContractT,
    *,
    kind: ErrorKind = ErrorKind.VALIDATION_ERROR,
) -> ContractT:
    """Validate ``payload`` against ``model`` collecting every violated rule.

    Raises
    ------
    AccountError
        With ``kind`` and the list of violations when validation fails.
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        rules = violated_rules(exc.errors())
        raise AccountError(kind, "request validation failed", errors=rules) from exc
