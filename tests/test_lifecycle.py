import asyncio
import socket

import pytest
from sqlalchemy.exc import NoSuchModuleError

from storefront.core.exceptions import SchemaError, StartupError
from storefront.db import session as session_module
from storefront.db.session import Database, LifecycleState, describe_startup_error


class InvalidPasswordError(Exception):
    """Same class name as the asyncpg error."""


async def test_ensure_ready_reaches_ready(database):
    assert database.state is LifecycleState.UNINITIALIZED
    await database.ensure_ready()
    assert database.state is LifecycleState.READY
    await database.ping()


async def test_concurrent_callers_share_one_initialization(database, monkeypatch):
    real = session_module.ensure_users_schema
    calls = 0

    async def slow_bootstrap(engine):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        await real(engine)

    monkeypatch.setattr(session_module, "ensure_users_schema", slow_bootstrap)

    await asyncio.gather(*(database.ensure_ready() for _ in range(5)))

    assert calls == 1
    assert database.state is LifecycleState.READY


async def test_failure_rearms_for_retry(database, monkeypatch):
    real = session_module.ensure_users_schema
    attempts = 0

    async def flaky(engine):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise ConnectionRefusedError("connection refused")
        await real(engine)

    monkeypatch.setattr(session_module, "ensure_users_schema", flaky)

    with pytest.raises(StartupError, match="unreachable"):
        await database.ensure_ready()
    assert database.state is LifecycleState.UNINITIALIZED

    await database.ensure_ready()
    assert database.state is LifecycleState.READY
    assert attempts == 2


async def test_schema_error_passes_through(database, monkeypatch):
    async def broken(engine):
        raise SchemaError("Could not add column users.email.")

    monkeypatch.setattr(session_module, "ensure_users_schema", broken)

    with pytest.raises(SchemaError, match="users.email"):
        await database.ensure_ready()
    assert database.state is LifecycleState.UNINITIALIZED


async def test_missing_connection_string(make_settings):
    db = Database(make_settings(DATABASE_URL=None, PG_HOST=None))
    with pytest.raises(StartupError, match="not configured"):
        await db.ensure_ready()
    assert db.state is LifecycleState.UNINITIALIZED


def test_pg_pieces_build_asyncpg_url(make_settings):
    s = make_settings(DATABASE_URL=None, PG_HOST="db", PG_DB="shop", PG_USER="app", PG_PASSWORD="pw")
    assert s.database_url == "postgresql+asyncpg://app:pw@db:5432/shop"


@pytest.mark.parametrize(
    "raw",
    [
        "postgres://app:pw@db:5432/shop",
        "postgresql://app:pw@db:5432/shop",
        "postgresql+psycopg2://app:pw@db:5432/shop",
        "postgresql+asyncpg://app:pw@db:5432/shop",
    ],
)
def test_hosted_urls_use_asyncpg(make_settings, raw):
    assert make_settings(DATABASE_URL=raw).database_url == "postgresql+asyncpg://app:pw@db:5432/shop"


def test_sslmode_moves_out_of_the_url(make_settings):
    s = make_settings(DATABASE_URL="postgres://app:pw@db/shop?sslmode=require", PG_SSLMODE="disable")
    assert s.database_url == "postgresql+asyncpg://app:pw@db/shop"
    assert s.database_sslmode == "require"


def test_sslmode_falls_back_to_pg_setting(make_settings):
    s = make_settings(DATABASE_URL="postgresql://app:pw@db/shop", PG_SSLMODE="verify-full")
    assert s.database_sslmode == "verify-full"


def test_sqlite_url_is_left_alone(settings):
    assert settings.database_url == settings.DATABASE_URL


async def test_unparseable_url(make_settings):
    db = Database(make_settings(DATABASE_URL="not a url"))
    with pytest.raises(StartupError, match="not a valid URL"):
        await db.ensure_ready()
    assert db.state is LifecycleState.UNINITIALIZED


async def test_unknown_driver_gets_its_own_message(make_settings):
    db = Database(make_settings(DATABASE_URL="mysql+nosuchdriver://app:pw@db/shop"))
    with pytest.raises(StartupError, match="driver is not supported"):
        await db.ensure_ready()


@pytest.mark.parametrize(
    "exc, expected",
    [
        (InvalidPasswordError("password authentication failed"), "credentials"),
        (TimeoutError(), "Timed out"),
        (socket.gaierror("name resolution"), "unreachable"),
        (NoSuchModuleError("Can't load plugin: sqlalchemy.dialects:postgres"), "driver"),
        (ModuleNotFoundError("No module named 'psycopg'"), "driver"),
        (ValueError("other"), "initialization failed"),
    ],
)
def test_describe_startup_error(exc, expected):
    assert expected in describe_startup_error(exc)


def test_describe_follows_cause_chain():
    try:
        try:
            raise ConnectionRefusedError("refused")
        except ConnectionRefusedError as inner:
            raise RuntimeError("wrapped") from inner
    except RuntimeError as outer:
        message = describe_startup_error(outer)
    assert "unreachable" in message
    assert "refused" not in message
