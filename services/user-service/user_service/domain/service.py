"""Account service orchestrating account creation, profiles, and credential rotation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from .account import Account, AccountView, Profile, ProfileType, Role
from .contracts import (
    CreateAccountInput,
    PasswordChangeInput,
    UpdateAccountInput,
    parse_contract,
)
from .errors import AccountError, ErrorKind, classified
from ..metrics import ACCOUNT_CREATION_FAILURES, ACCOUNTS_CREATED, PASSWORD_ROTATIONS
from ..repository import AccountRepository, ProfileRepository
from ..security.passwords import PasswordHasher

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(slots=True)
class AccountPage:
    """One page of accounts plus the counters clients need to walk the rest."""

    docs: list[Account]
    total: int
    page: int
    per_page: int
    pages: int


class AccountService:
    """User account workflows backed by the account and profile stores."""

    def __init__(
        self,
        accounts: AccountRepository,
        profiles: ProfileRepository,
        hasher: PasswordHasher,
        *,
        legacy_error_kinds: bool = False,
        compensate_orphaned_accounts: bool = False,
    ) -> None:
        self._accounts = accounts
        self._profiles = profiles
        self._hasher = hasher
        self._legacy_error_kinds = legacy_error_kinds
        self._compensate_orphaned_accounts = compensate_orphaned_accounts

    def create_account(self, payload: Mapping[str, Any] | CreateAccountInput) -> AccountView:
        """Create an account and the single profile its role calls for.

        The account and the profile are written by two separate store calls. When
        the profile write fails the account is left without a profile, unless
        orphan compensation is enabled, and the failure surfaces as ``SERVER_ERROR``.
        """
        validation_kind = (
            ErrorKind.USER_CREATION_ERROR if self._legacy_error_kinds else ErrorKind.VALIDATION_ERROR
        )
        request = parse_contract(CreateAccountInput, payload, kind=validation_kind)
        role, profile_type = request.role.resolve()

        try:
            with classified(ErrorKind.SERVER_ERROR):
                account = self._accounts.create_account(
                    phone_number=request.phone_number,
                    role=role,
                    password_hash=self._hasher.hash_password(request.password),
                )
        except AccountError as exc:
            ACCOUNT_CREATION_FAILURES.labels(stage="account").inc()
            logger.error("account creation failed for role %s: %s", role.value, exc.message)
            raise

        try:
            with classified(ErrorKind.SERVER_ERROR):
                profile = self._create_profile(account, profile_type)
        except AccountError as exc:
            ACCOUNT_CREATION_FAILURES.labels(stage="profile").inc()
            logger.error(
                "profile creation failed for account %s (%s): %s",
                account.account_id,
                account.role.value,
                exc.message,
            )
            if self._compensate_orphaned_accounts:
                self._discard_orphan(account)
            raise

        ACCOUNTS_CREATED.labels(
            role=account.role.value,
            profile=profile_type.value if profile_type else account.role.value,
        ).inc()
        logger.info("created %s account %s", account.role.value, account.account_id)
        return AccountView(account=account, profile=profile)

    def update_password(
        self, account_id: str, payload: Mapping[str, Any] | PasswordChangeInput
    ) -> dict[str, bool]:
        """Replace the account's credential after the current one has been proven."""
        request = parse_contract(PasswordChangeInput, payload)
        try:
            with classified(ErrorKind.PASSWORD_UPDATE_ERROR):
                account = self._accounts.get_account(account_id)
                if account is None:
                    raise AccountError(ErrorKind.PASSWORD_UPDATE_ERROR, "User cannot be found")

                if not self._hasher.verify_password(request.old_password, account.password_hash):
                    raise AccountError(ErrorKind.PASSWORD_UPDATE_ERROR, "Old password is incorrect")

                new_hash = self._hasher.hash_password(request.new_password)
                updated = self._accounts.update_account(
                    account.account_id, {"password_hash": new_hash}
                )
                if updated is None:
                    raise AccountError(ErrorKind.PASSWORD_UPDATE_ERROR, "User cannot be found")
        except AccountError as exc:
            PASSWORD_ROTATIONS.labels(outcome="rejected").inc()
            logger.warning("password update refused for account %s: %s", account_id, exc.message)
            raise

        PASSWORD_ROTATIONS.labels(outcome="updated").inc()
        logger.info("password updated for account %s", account_id)
        return {"updated": True}

    def get_account(self, account_id: str) -> AccountView:
        """Return the account merged with its profile."""
        with classified(ErrorKind.SERVER_ERROR):
            account = self._require_account(account_id)
            return AccountView(account=account, profile=self._load_profile(account))

    def update_account(
        self, account_id: str, payload: Mapping[str, Any] | UpdateAccountInput
    ) -> AccountView:
        """Apply a plain field update; role and credential are not updatable here."""
        request = parse_contract(UpdateAccountInput, payload)
        fields = request.model_dump(exclude_none=True)
        with classified(ErrorKind.SERVER_ERROR):
            account = self._accounts.update_account(account_id, fields)
            if account is None:
                raise _not_found()
            return AccountView(account=account, profile=self._load_profile(account))

    def delete_account(self, account_id: str) -> AccountView:
        """Delete the account and its profile, returning what was removed."""
        with classified(ErrorKind.SERVER_ERROR):
            view = self.get_account(account_id)
            if self._accounts.delete_account(account_id) is None:
                raise _not_found()
        logger.info("deleted account %s", account_id)
        return view

    def iter_accounts(self) -> Iterator[Account]:
        """Lazily yield every account; each call starts a fresh scan."""
        return self._accounts.iter_accounts()

    def paginate_accounts(self, page: int = 1, per_page: int = 10) -> AccountPage:
        """Return one page of accounts, newest first."""
        if page < 1 or not 1 <= per_page <= MAX_PAGE_SIZE:
            raise AccountError(
                ErrorKind.VALIDATION_ERROR,
                f"page must be >= 1 and per_page between 1 and {MAX_PAGE_SIZE}",
            )
        with classified(ErrorKind.SERVER_ERROR):
            total = self._accounts.count_accounts()
            docs = self._accounts.list_accounts(limit=per_page, offset=(page - 1) * per_page)
        return AccountPage(
            docs=docs,
            total=total,
            page=page,
            per_page=per_page,
            pages=math.ceil(total / per_page) if total else 0,
        )

    def _create_profile(self, account: Account, profile_type: ProfileType | None) -> Profile:
        if account.role is Role.consumer:
            return self._profiles.create_consumer_profile(
                account.account_id, profile_type or ProfileType.customer
            )
        if account.role is Role.provider:
            return self._profiles.create_provider_profile(account.account_id)
        raise AccountError(ErrorKind.SERVER_ERROR, f"no profile defined for role {account.role!r}")

    def _discard_orphan(self, account: Account) -> None:
        try:
            self._accounts.delete_account(account.account_id)
        except Exception:
            logger.exception("could not remove orphaned account %s", account.account_id)
        else:
            logger.warning("removed orphaned account %s", account.account_id)

    def _require_account(self, account_id: str) -> Account:
        account = self._accounts.get_account(account_id)
        if account is None:
            raise _not_found()
        return account

    def _load_profile(self, account: Account) -> Profile | None:
        profile = self._profiles.get_profile(account.account_id, account.role)
        if profile is None:
            logger.warning("account %s has no %s profile", account.account_id, account.role.value)
        return profile


def _not_found() -> AccountError:
    return AccountError(ErrorKind.SERVER_ERROR, "User not found", status_code=404)
