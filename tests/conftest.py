"""
tests/conftest.py
Shared fixtures: a LocalBackend in a temp directory and signed-up users.
"""

from datetime import datetime, timezone

import pytest

from lifevault.backend.sqlite_backend import LocalBackend

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def backend(tmp_path):
    # Low PBKDF2 cost keeps sign-up fast in tests.
    return LocalBackend(
        db_path     = tmp_path / "lifevault.db",
        storage_dir = tmp_path / "storage",
        iterations  = 1_000,
    )


@pytest.fixture
def session(backend):
    return backend.sign_up("alice@example.com", "secret123")


@pytest.fixture
def other_session(backend):
    return backend.sign_up("bob@example.com", "hunter22")
