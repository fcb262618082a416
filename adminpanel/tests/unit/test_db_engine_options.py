from __future__ import annotations

from adminpanel.core.config import Settings
from adminpanel.persistence.db import _engine_options


def test_sqlite_urls_skip_pool_sizing() -> None:
    options = _engine_options(Settings(database_url="sqlite+aiosqlite:///tmp/adminpanel.db"))
    assert options == {"pool_pre_ping": True}


def test_postgres_urls_get_bounded_pool_and_statement_timeout() -> None:
    options = _engine_options(
        Settings(
            database_url="postgresql+asyncpg://u:p@db:5432/adminpanel",
            api_db_pool_size=0,
            api_db_max_overflow=-3,
            api_db_statement_timeout_ms=2500,
        )
    )
    assert options["pool_size"] == 1
    assert options["max_overflow"] == 0
    assert options["connect_args"] == {"server_settings": {"statement_timeout": "2500"}}


def test_statement_timeout_is_omitted_when_disabled() -> None:
    options = _engine_options(Settings(database_url="postgresql+asyncpg://u:p@db:5432/adminpanel"))
    assert "connect_args" not in options
    assert options["pool_recycle"] == 1800
