from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before adminpanel builds it at import time.
_DB_DIR = tempfile.mkdtemp(prefix="adminpanel-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/adminpanel.db")
# Low work factor keeps password hashing cheap across the suite.
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")

import pytest  # noqa: E402

from adminpanel.core.config import get_settings  # noqa: E402
from adminpanel.domain.models import Base  # noqa: E402
from adminpanel.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_schema_between_tests() -> None:
    # Every test starts from empty tables so seeded ids stay predictable.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Tests that monkeypatch env vars must not leak cached settings into later tests.
    yield
    get_settings.cache_clear()
