"""Workflow-level tests for account creation and credential rotation."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from user_service.domain.account import ProfileType, ProviderProfile, Role
from user_service.domain.contracts import CreateAccountInput, PasswordChangeInput, RoleSelector
from user_service.domain.errors import AccountError, ErrorKind
from user_service.domain.service import AccountService


def _payload(role: str, password: str = "abcd") -> dict[str, str]:
    return {"phone_number": "2547000000", "password": password, "role": role}


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.parametrize(
    "selector, role, profile_type",
    [
        (RoleSelector.consumer, Role.consumer, ProfileType.customer),
        (RoleSelector.organisation, Role.consumer, ProfileType.organisation),
        (RoleSelector.provider, Role.provider, None),
    ],
)
def test_role_selector_resolution(selector, role, profile_type):
    assert selector.resolve() == (role, profile_type)


def test_create_hashes_the_password(service, accounts, hasher):
    view = service.create_account(_payload("consumer", password="secret"))

    stored = accounts.get_account(view.account.account_id)
    assert stored.password_hash != "secret"
    assert hasher.verify_password("secret", stored.password_hash)


def test_create_accepts_validated_input(service):
    view = service.create_account(
        CreateAccountInput(phone_number="2547000000", password="abcd", role=RoleSelector.provider)
    )

    assert isinstance(view.profile, ProviderProfile)
    assert view.to_dict()["provider"]["account_id"] == view.account.account_id


def test_create_counts_accounts_by_role_and_profile(service):
    labels = {"role": "consumer", "profile": "organisation"}
    before = _sample("user_accounts_created_total", labels)

    service.create_account(_payload("organisation"))

    assert _sample("user_accounts_created_total", labels) == before + 1


def test_account_store_failure_is_server_error_without_profile(service, accounts, profiles):
    accounts.fail_with = RuntimeError("connection reset")

    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("consumer"))

    assert excinfo.value.kind is ErrorKind.SERVER_ERROR
    assert excinfo.value.message == "connection reset"
    assert profiles.consumers == {}


def test_store_errors_that_carry_a_kind_are_not_reclassified(service, accounts):
    accounts.fail_with = AccountError(ErrorKind.VALIDATION_ERROR, "phone number already registered")

    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("provider"))

    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR


def test_profile_failure_leaves_orphaned_account(service, accounts, profiles):
    profiles.fail_with = RuntimeError("profiles table unavailable")
    before = _sample("user_account_creation_failures_total", {"stage": "profile"})

    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("provider"))

    assert excinfo.value.kind is ErrorKind.SERVER_ERROR
    assert len(accounts.accounts) == 1
    assert _sample("user_account_creation_failures_total", {"stage": "profile"}) == before + 1


def test_profile_failure_with_compensation_removes_account(accounts, profiles, hasher):
    service = AccountService(accounts, profiles, hasher, compensate_orphaned_accounts=True)
    profiles.fail_with = RuntimeError("profiles table unavailable")

    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("organisation"))

    assert excinfo.value.kind is ErrorKind.SERVER_ERROR
    assert accounts.accounts == {}


def test_legacy_error_kinds_report_user_creation_error(accounts, profiles, hasher):
    service = AccountService(accounts, profiles, hasher, legacy_error_kinds=True)

    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("manager"))

    assert excinfo.value.kind is ErrorKind.USER_CREATION_ERROR
    assert excinfo.value.errors[0]["field"] == "role"
    assert accounts.accounts == {}


def test_rotation_accepts_validated_input(service, hasher):
    view = service.create_account(_payload("consumer", password="right"))

    result = service.update_password(
        view.account.account_id,
        PasswordChangeInput(old_password="right", new_password="newpass"),
    )

    assert result == {"updated": True}
    assert hasher.verify_password("newpass", view.account.password_hash)


def test_rotation_store_failure_is_password_update_error(service, accounts):
    view = service.create_account(_payload("consumer", password="right"))
    accounts.fail_update_with = RuntimeError("deadlock detected")

    with pytest.raises(AccountError) as excinfo:
        service.update_password(
            view.account.account_id, {"old_password": "right", "new_password": "newpass"}
        )

    assert excinfo.value.kind is ErrorKind.PASSWORD_UPDATE_ERROR
    assert excinfo.value.message == "deadlock detected"


def test_rotation_verify_failure_never_writes(accounts, profiles, hasher):
    class ExplodingHasher:
        def hash_password(self, password: str) -> str:
            return hasher.hash_password(password)

        def verify_password(self, password: str, password_hash: str) -> bool:
            raise RuntimeError("verifier offline")

    service = AccountService(accounts, profiles, ExplodingHasher())
    view = service.create_account(_payload("provider", password="right"))
    original_hash = view.account.password_hash
    labels = {"outcome": "rejected"}
    before = _sample("user_password_rotations_total", labels)

    with pytest.raises(AccountError) as excinfo:
        service.update_password(
            view.account.account_id, {"old_password": "right", "new_password": "newpass"}
        )

    assert excinfo.value.kind is ErrorKind.PASSWORD_UPDATE_ERROR
    assert accounts.get_account(view.account.account_id).password_hash == original_hash
    assert _sample("user_password_rotations_total", labels) == before + 1


def test_rotation_leaves_other_fields_untouched(service, accounts):
    view = service.create_account(_payload("consumer", password="right"))
    account = accounts.get_account(view.account.account_id)
    snapshot = (account.phone_number, account.role, account.created_at)

    service.update_password(account.account_id, {"old_password": "right", "new_password": "other"})

    assert (account.phone_number, account.role, account.created_at) == snapshot


def test_get_account_without_profile_embeds_none(service, accounts):
    account = accounts.create_account(phone_number="2547000000", role=Role.consumer, password_hash="x")

    view = service.get_account(account.account_id)

    assert view.profile is None
    assert view.to_dict()["consumer"] is None


@pytest.mark.parametrize("page, per_page", [(0, 10), (1, 0), (1, 101)])
def test_paginate_rejects_out_of_range_arguments(service, page, per_page):
    with pytest.raises(AccountError) as excinfo:
        service.paginate_accounts(page=page, per_page=per_page)

    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR


def test_paginate_empty_store(service):
    page = service.paginate_accounts()

    assert (page.docs, page.total, page.pages) == ([], 0, 0)


def test_iter_accounts_restarts_per_call(service):
    service.create_account(_payload("consumer"))
    service.create_account(_payload("provider"))

    assert len(list(service.iter_accounts())) == 2
    assert len(list(service.iter_accounts())) == 2


def test_create_rejects_password_over_bcrypt_byte_limit(service, accounts):
    # 40 characters, 80 bytes once UTF-8 encoded
    with pytest.raises(AccountError) as excinfo:
        service.create_account(_payload("consumer", password="é" * 40))

    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR
    assert [error["field"] for error in excinfo.value.errors] == ["password"]
    assert accounts.accounts == {}


def test_rotation_rejects_new_password_over_bcrypt_byte_limit(service, accounts):
    view = service.create_account(_payload("consumer", password="right"))
    original_hash = view.account.password_hash

    with pytest.raises(AccountError) as excinfo:
        service.update_password(
            view.account.account_id, {"old_password": "right", "new_password": "é" * 40}
        )

    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR
    assert excinfo.value.errors[0]["field"] == "new_password"
    assert accounts.get_account(view.account.account_id).password_hash == original_hash


def test_create_accepts_password_at_bcrypt_byte_limit(service, hasher):
    view = service.create_account(_payload("provider", password="é" * 36))

    assert hasher.verify_password("é" * 36, view.account.password_hash)
