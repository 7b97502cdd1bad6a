"""Prometheus counters for the account workflows."""

from __future__ import annotations

from prometheus_client import Counter

ACCOUNTS_CREATED = Counter(
    "user_accounts_created_total",
    "Accounts created, by stored role and profile kind.",
    ["role", "profile"],
)

ACCOUNT_CREATION_FAILURES = Counter(
    "user_account_creation_failures_total",
    "Account creation failures, by the step that failed.",
    ["stage"],
)

PASSWORD_ROTATIONS = Counter(
    "user_password_rotations_total",
    "Credential rotation attempts, by outcome.",
    ["outcome"],
)
