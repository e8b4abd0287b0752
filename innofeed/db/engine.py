"""Async store: one engine per process, short-lived sessions per unit of work."""
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from innofeed.db.models import Base
from innofeed.errors import ConfigurationError

# Screening and analysis batches write from several tasks at once
SQLITE_BUSY_TIMEOUT_MS = 30000


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


class DatabaseEngine:
    """Owns the engine and session factory.

    Constructed once at startup and passed to every component that needs the store.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ConfigurationError("DATABASE_URL is not configured")
        self.database_url = database_url
        self.url = make_url(database_url)
        self._engine = None
        self._session_factory = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.get_backend_name() == "sqlite"

    async def init(self) -> None:
        """Create the engine, the session factory and any missing tables."""
        connect_args = {}
        if self.is_sqlite:
            if self.url.database and self.url.database != ":memory:":
                Path(self.url.database).parent.mkdir(parents=True, exist_ok=True)
            connect_args = {"check_same_thread": False}

        self._engine = create_async_engine(self.database_url, echo=False, connect_args=connect_args)
        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _sqlite_pragmas)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()

    def get_session(self) -> AsyncSession:
        if not self._session_factory:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._session_factory()
