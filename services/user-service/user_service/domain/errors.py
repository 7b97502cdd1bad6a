"""Error taxonomy shared by the account workflows and the HTTP layer."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_CREATION_ERROR = "USER_CREATION_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    PASSWORD_UPDATE_ERROR = "PASSWORD_UPDATE_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"


_DEFAULT_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.USER_CREATION_ERROR: 400,
    ErrorKind.PASSWORD_UPDATE_ERROR: 400,
    ErrorKind.AUTHENTICATION_ERROR: 401,
    ErrorKind.SERVER_ERROR: 500,
}


class AccountError(Exception):
    """Failure surfaced by an account workflow, tagged with its error kind."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors
        self.status_code = status_code or _DEFAULT_STATUS[kind]

    def to_payload(self) -> dict[str, Any]:
        """Return the error body rendered to API consumers."""
        payload: dict[str, Any] = {"type": self.kind.value, "message": self.message}
        if self.errors is not None:
            payload["errors"] = self.errors
        return payload


def classify(exc: BaseException, default: ErrorKind) -> AccountError:
    """Return ``exc`` if it already carries a kind, else wrap it under ``default``."""
    if isinstance(exc, AccountError):
        return exc
    return AccountError(default, str(exc) or exc.__class__.__name__)


@contextmanager
def classified(default: ErrorKind) -> Iterator[None]:
    """Re-raise any unclassified failure inside the block as ``default``."""
    try:
        yield
    except AccountError:
        raise
    except Exception as exc:
        raise classify(exc, default) from exc
