"""
Database connection handling for the Emotibot service.

A `Database` is built once at process start from `DatabaseOptions` and
handed to the components that need it (the emotion store and the migrator).
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Dialect(str, Enum):
    SQLITE = "sqlite3"
    POSTGRES = "postgres"


class DatabaseOptions(BaseModel):
    """Connection parameters shared by every dialect."""

    dialect: Dialect = Dialect.POSTGRES
    host: str = Field("localhost", description="postgres -> host, sqlite3 -> file path")
    port: int = 5432
    name: str = "cerberus"
    user: str = "postgres"
    password: str = ""
    echo: bool = Field(False, description="Log every SQL statement")

    def url(self) -> URL:
        """Build the SQLAlchemy URL for the configured dialect."""
        if self.dialect is Dialect.SQLITE:
            if not self.host:
                raise ConfigurationError("sqlite3 needs a database file path as host")
            return URL.create("sqlite+aiosqlite", database=self.host)

        return URL.create(
            "postgresql+asyncpg",
            username=self.user,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.name,
        )


class Database:
    """
    Owns the async engine and the session factory.

    Use as an async context manager, or call `close()` when done.
    """

    def __init__(self, options: DatabaseOptions) -> None:
        self.options = options

        engine_kwargs: dict = {"echo": options.echo}
        if options.dialect is Dialect.POSTGRES:
            engine_kwargs.update(pool_size=20, max_overflow=0, pool_recycle=600)

        url = options.url()
        logger.info("Connecting to %s", url.render_as_string(hide_password=True))
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def close(self) -> None:
        await self.engine.dispose()
        logger.debug("Database engine disposed")

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
