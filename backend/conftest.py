# backend/conftest.py
from datetime import datetime, timezone

import pytest

from backend.core.database import create_all_tables, dispose_engine, init_engine
from backend.features.entitlements.policy import EntitlementPolicyConfig


@pytest.fixture(scope="function", autouse=True)
def sqlite_db(tmp_path):
    """
    Bind every test to its own SQLite file.

    A file (not :memory:) so that threads and separate sessions see the same
    data, which the concurrency tests rely on.
    """
    url = f"sqlite:///{tmp_path / 'hooksmith-test.db'}"
    init_engine(url)
    create_all_tables()
    yield url
    dispose_engine()


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def policy_config():
    """Default product numbers: 5 free drafts, 100/200/400/unlimited premium, 30 days."""
    return EntitlementPolicyConfig()


@pytest.fixture
def make_user(now):
    """Factory for entitlement rows. Period starts at `now` unless given."""
    from backend.features.entitlements.store import create_user_entitlement

    def _make(user_id: str = "user_1", **kwargs):
        kwargs.setdefault("now", now)
        return create_user_entitlement(user_id, **kwargs)

    return _make
