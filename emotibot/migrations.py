"""
Schema migrations for the Emotibot database.

Migrations are an ordered list of named steps. Each step carries a forward
and a backward function that receive a synchronous SQLAlchemy connection.
Applied step ids are recorded in the `migrations` table. An upgrade runs all
pending steps inside a single transaction.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import (
    Column,
    Connection,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from .database import Database
from .errors import MigrationError

logger = logging.getLogger(__name__)

_history_metadata = MetaData()

migration_history = Table(
    "migrations",
    _history_metadata,
    Column("id", String(255), primary_key=True),
)


@dataclass(frozen=True)
class Migration:
    """A single named schema change."""

    id: str
    migrate: Callable[[Connection], None]
    rollback: Callable[[Connection], None]


# MARK: - v0


# Frozen snapshot of the table as this step created it. Later steps must not
# edit it; the ORM mapping in store.py follows the latest schema instead.
_v0_metadata = MetaData()

_emotions_v0 = Table(
    "emotions",
    _v0_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
    Column("user_id", Text, nullable=False),
    Column("emoji", Text, nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("score", Integer),
    Column("task", Text),
    Column("task_completed_at", DateTime(timezone=True)),
    Index("idx_user_id", "user_id"),
)

create_emotion = Migration(
    id="2024-09-28:create-emotion",
    migrate=lambda conn: _emotions_v0.create(conn),
    rollback=lambda conn: _emotions_v0.drop(conn),
)


MIGRATIONS: list[Migration] = [
    create_emotion,
]


# MARK: - Migrator


class Migrator:
    """Applies and rolls back migrations against a database."""

    def __init__(
        self, database: Database, migrations: Sequence[Migration] = MIGRATIONS
    ) -> None:
        seen: set[str] = set()
        for migration in migrations:
            if migration.id in seen:
                raise MigrationError(f'duplicated migration id "{migration.id}"')
            seen.add(migration.id)

        self._database = database
        self._migrations = list(migrations)

    async def applied(self) -> list[str]:
        """Return the ids of applied migrations, in declaration order."""
        async with self._database.engine.begin() as conn:
            done = await conn.run_sync(self._applied_ids)
        return [m.id for m in self._migrations if m.id in done]

    async def upgrade(self) -> str | None:
        """
        Apply every pending migration.

        Returns:
            The id of the latest migration, or None if there are none
        """
        if not self._migrations:
            return None

        try:
            async with self._database.engine.begin() as conn:
                await conn.run_sync(self._upgrade)
        except SQLAlchemyError as e:
            raise MigrationError(f"upgrade failed: {e}") from e

        latest = self._migrations[-1].id
        logger.info('upgraded to version "%s"', latest)
        return latest

    async def rollback_last(self) -> str:
        """
        Roll back the most recently declared migration that has been applied.

        Returns:
            The id of the rolled back migration
        """
        try:
            async with self._database.engine.begin() as conn:
                rolled_back = await conn.run_sync(self._rollback_last)
        except SQLAlchemyError as e:
            raise MigrationError(f"rollback last: {e}") from e

        logger.info('rolled back "%s"', rolled_back)
        return rolled_back

    # MARK: - Private Helpers

    @staticmethod
    def _applied_ids(conn: Connection) -> set[str]:
        migration_history.create(conn, checkfirst=True)
        return set(conn.execute(select(migration_history.c.id)).scalars())

    def _upgrade(self, conn: Connection) -> None:
        done = self._applied_ids(conn)
        for migration in self._migrations:
            if migration.id in done:
                continue
            logger.info('applying migration "%s"', migration.id)
            migration.migrate(conn)
            conn.execute(insert(migration_history).values(id=migration.id))

    def _rollback_last(self, conn: Connection) -> str:
        done = self._applied_ids(conn)
        for migration in reversed(self._migrations):
            if migration.id in done:
                migration.rollback(conn)
                conn.execute(
                    delete(migration_history).where(
                        migration_history.c.id == migration.id
                    )
                )
                return migration.id

        raise MigrationError("no migration to rollback")
