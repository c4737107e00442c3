"""
Pytest configuration and fixtures for diffcheck tests.
"""

import os
from datetime import UTC, datetime

import pytest

from tests.fakes import FixedClock, InMemoryStore


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch) -> None:
    """Give every test the same baseline environment."""
    defaults = {
        "POSTGRES_HOST": "localhost",
        "POSTGRES_PORT": "5432",
        "POSTGRES_DB": "diffcheck_test",
        "POSTGRES_USER": "postgres",
        "POSTGRES_PASSWORD": "postgres_test_password",
    }
    for key, value in defaults.items():
        if key not in os.environ:
            monkeypatch.setenv(key, value)
    for key in (
        "DIFFCHECK_BATCH_SIZE",
        "DIFFCHECK_MAX_BATCH_SIZE",
        "DIFFCHECK_CONTINUE_ON_ERROR",
        "DIFFCHECK_STAGING_TABLE",
        "DIFFCHECK_SNAPSHOT_TABLE",
        "DIFFCHECK_TIMEZONE",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 4, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
