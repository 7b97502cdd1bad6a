from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from user_service.api import routes
from user_service.domain.account import (
    Account,
    ConsumerProfile,
    ProfileType,
    ProviderProfile,
    Role,
)
from user_service.domain.service import AccountService
from user_service.security.passwords import BcryptPasswordHasher
from user_service.security.throttle import InMemoryRateLimiter


class FakeAccountRepository:
    """In-memory account store mimicking the Postgres repository."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.fail_with: Exception | None = None
        self.fail_update_with: Exception | None = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def create_account(self, *, phone_number: str, role: Role, password_hash: str) -> Account:
        if self.fail_with is not None:
            raise self.fail_with
        now = self._tick()
        account = Account(
            account_id=str(uuid.uuid4()),
            phone_number=phone_number,
            role=role,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        self.accounts[account.account_id] = account
        return account

    def get_account(self, account_id: str) -> Account | None:
        return self.accounts.get(account_id)

    def update_account(self, account_id: str, fields: dict[str, Any]) -> Account | None:
        if self.fail_update_with is not None:
            raise self.fail_update_with
        account = self.accounts.get(account_id)
        if account is None:
            return None
        for column, value in fields.items():
            setattr(account, column, value)
        account.updated_at = self._tick()
        return account

    def delete_account(self, account_id: str) -> Account | None:
        return self.accounts.pop(account_id, None)

    def iter_accounts(self, batch_size: int = 100) -> Iterator[Account]:
        yield from self._ordered()

    def list_accounts(self, *, limit: int, offset: int) -> list[Account]:
        return self._ordered()[offset : offset + limit]

    def count_accounts(self) -> int:
        return len(self.accounts)

    def _ordered(self) -> list[Account]:
        return sorted(self.accounts.values(), key=lambda a: a.created_at, reverse=True)


class FakeProfileRepository:
    """In-memory profile store keyed by account id."""

    def __init__(self, accounts: FakeAccountRepository) -> None:
        self._accounts = accounts
        self.consumers: dict[str, ConsumerProfile] = {}
        self.providers: dict[str, ProviderProfile] = {}
        self.fail_with: Exception | None = None

    def create_consumer_profile(self, account_id: str, profile_type: ProfileType) -> ConsumerProfile:
        if self.fail_with is not None:
            raise self.fail_with
        profile = ConsumerProfile(
            profile_id=str(uuid.uuid4()),
            account_id=account_id,
            type=profile_type,
            created_at=datetime.now(timezone.utc),
        )
        self.consumers[account_id] = profile
        return profile

    def create_provider_profile(self, account_id: str) -> ProviderProfile:
        if self.fail_with is not None:
            raise self.fail_with
        profile = ProviderProfile(
            profile_id=str(uuid.uuid4()),
            account_id=account_id,
            created_at=datetime.now(timezone.utc),
        )
        self.providers[account_id] = profile
        return profile

    def get_profile(self, account_id: str, role: Role):
        if role is Role.consumer:
            return self.consumers.get(account_id)
        return self.providers.get(account_id)


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def accounts() -> FakeAccountRepository:
    return FakeAccountRepository()


@pytest.fixture
def profiles(accounts: FakeAccountRepository) -> FakeProfileRepository:
    return FakeProfileRepository(accounts)


@pytest.fixture
def service(accounts, profiles, hasher) -> AccountService:
    return AccountService(accounts, profiles, hasher)


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    routes.install_error_handlers(app)
    app.state.account_service = service

    original_limiter = routes.rate_limiter
    routes.rate_limiter = InMemoryRateLimiter(max_requests=50, window_seconds=60)

    with TestClient(app) as client:
        yield client, service

    routes.rate_limiter = original_limiter
