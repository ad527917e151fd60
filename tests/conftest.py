"""
Shared fixtures: a fresh SQLite database per test, cheap password hashing,
and seeded operator/admin accounts.
"""
import pytest

import config
import database
from database import RecordStore, init_db
from identity import AuthState, IdentityProvider

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'ecocarbon.db'}"
    database.configure(url)
    init_db()
    yield url
    database.engine.dispose()


@pytest.fixture
def store(db_url):
    return RecordStore()


@pytest.fixture
def provider(store):
    provider = IdentityProvider(store)
    provider.resolve()
    return provider


@pytest.fixture
def make_account(provider):
    """Provision an account and return its AuthState, as if it had signed in."""
    def _make(email, role="operator", full_name=None, is_active=True):
        profile = provider.provision(email, PASSWORD, full_name or email.split("@")[0],
                                     role=role, is_active=is_active)
        return AuthState.from_profile(profile)
    return _make


@pytest.fixture
def operator(make_account):
    return make_account("op1@example.com", full_name="Ana Operator")


@pytest.fixture
def admin(make_account):
    return make_account("admin@example.com", role="admin", full_name="Ada Admin")
