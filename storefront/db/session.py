import asyncio
import enum
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from storefront.core.config import Settings
from storefront.core.exceptions import SchemaError, StartupError
from storefront.db.schema import ensure_users_schema

logger = logging.getLogger(__name__)


class LifecycleState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    stack = [exc]
    while stack:
        err = stack.pop()
        if err is None or id(err) in seen:
            continue
        seen.add(id(err))
        yield err
        stack.extend([getattr(err, "orig", None), err.__cause__, err.__context__])


def describe_startup_error(exc: BaseException) -> str:
    """Operator-facing explanation of a failed database start, without secrets."""
    for err in _error_chain(exc):
        name = type(err).__name__
        if name in {"InvalidPasswordError", "InvalidAuthorizationSpecificationError"}:
            return "Database credentials were rejected; check PG_USER and PG_PASSWORD."
        if name == "InvalidCatalogNameError":
            return "Database does not exist; check PG_DB."
        if isinstance(err, TimeoutError):
            return "Timed out connecting to the database."
        if isinstance(err, (ConnectionRefusedError, socket.gaierror)):
            return "Database host is unreachable; check PG_HOST and PG_PORT."
        if isinstance(err, (NoSuchModuleError, ModuleNotFoundError)):
            return "Database driver is not supported; use a postgresql+asyncpg:// URL."
    return "Database initialization failed."


class Database:
    """Connection pool plus a run-once bootstrap of the users schema.

    ``ensure_ready()`` moves UNINITIALIZED -> INITIALIZING -> READY. Callers
    arriving while initialization is in flight await the same task. A failed
    attempt goes back to UNINITIALIZED so the next call retries.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._state = LifecycleState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None
        self.engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    async def ensure_ready(self) -> None:
        if self._state is LifecycleState.READY:
            return
        task = self._init_task
        if task is None:
            self._state = LifecycleState.INITIALIZING
            task = self._init_task = asyncio.ensure_future(self._initialize())
        try:
            await asyncio.shield(task)
        except BaseException:
            # a cancelled waiter must not re-arm while the task is still running
            if task.done() and self._init_task is task:
                self._init_task = None
                self._state = LifecycleState.UNINITIALIZED
            raise
        self._state = LifecycleState.READY

    def _create_engine(self, url: str) -> AsyncEngine:
        s = self._settings
        engine_kwargs = dict(echo=False, pool_pre_ping=True)
        if make_url(url).drivername == "postgresql+asyncpg":
            connect_args = {
                "timeout": s.DB_CONNECT_TIMEOUT_SECONDS,
                "command_timeout": s.DB_STATEMENT_TIMEOUT_SECONDS,
            }
            if s.database_sslmode:
                connect_args["ssl"] = s.database_sslmode
            engine_kwargs.update(
                pool_size=s.DB_POOL_SIZE,
                max_overflow=s.DB_MAX_OVERFLOW,
                pool_timeout=s.DB_POOL_TIMEOUT_SECONDS,
                connect_args=connect_args,
            )
        return create_async_engine(url, **engine_kwargs)

    async def _initialize(self) -> None:
        try:
            url = self._settings.database_url
        except ArgumentError as exc:
            logger.error("DATABASE_URL could not be parsed")
            raise StartupError("Database connection string is not a valid URL; check DATABASE_URL.") from exc
        if not url:
            logger.error("No database connection string configured")
            raise StartupError("Database connection string is not configured; set DATABASE_URL or PG_HOST/PG_DB/PG_USER.")

        engine: AsyncEngine | None = None
        try:
            engine = self._create_engine(url)
            await ensure_users_schema(engine)
        except SchemaError:
            if engine is not None:
                await engine.dispose()
            raise
        except Exception as exc:
            if engine is not None:
                await engine.dispose()
            message = describe_startup_error(exc)
            logger.error("Database startup failed: %s", message, exc_info=True)
            raise StartupError(message) from exc

        self.engine = engine
        self._sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Database ready")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.ensure_ready()
        async with self._sessionmaker() as session:
            yield session

    async def ping(self) -> None:
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self._sessionmaker = None
        self._init_task = None
        self._state = LifecycleState.UNINITIALIZED
