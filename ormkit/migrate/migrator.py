"""Applies and rolls back migrations, recording their status in a table."""

from __future__ import annotations

import contextlib
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..timeparse import parse_time
from .migration import (
    PY_TEMPLATE,
    SQL_TEMPLATE,
    Migration,
    MigrationFile,
    MigrationGroup,
    MigrationSlice,
)
from .migrations import Migrations

_NAME_RE = re.compile(r"^[0-9a-z_\-]+$")
_VERSION_FORMAT = "%Y%m%d%H%M%S"
_STORED_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class MigrationLockedError(Exception):
    """Raised when another run holds the migrations lock."""


def _attach_group(exc: BaseException, group: MigrationGroup) -> None:
    with contextlib.suppress(AttributeError, TypeError):
        exc.migration_group = group  # type: ignore[attr-defined]


def _to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    parsed = parse_time(str(value))
    return parsed if isinstance(parsed, datetime) else None


class Migrator:
    """Runs migrations against a DB-API connection.

    Applied migrations are stored in ``table``; ``locks_table`` prevents two
    runs at once. ``placeholder`` is the parameter marker of the driver.
    When a migration fails, the exception is re-raised with the group that
    was being applied attached as its ``migration_group`` attribute.
    """

    def __init__(
        self,
        db: Any,
        migrations: Migrations,
        *,
        table: str = "ormkit_migrations",
        locks_table: str = "ormkit_migration_locks",
        mark_applied_on_success: bool = False,
        placeholder: str = "?",
    ) -> None:
        self.db = db
        self.migrations = migrations
        self.table = table
        self.locks_table = locks_table
        self.mark_applied_on_success = mark_applied_on_success
        self.placeholder = placeholder

    # -- database helpers -------------------------------------------------

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        cursor = self.db.cursor()
        try:
            cursor.execute(sql, tuple(params))
            return list(cursor.fetchall()) if cursor.description else []
        finally:
            cursor.close()

    def _next_id(self, table: str) -> int:
        rows = self._execute(f"SELECT COALESCE(MAX(id), 0) + 1 FROM {table}")
        return int(rows[0][0])

    def _select_applied(self) -> MigrationSlice:
        rows = self._execute(
            f"SELECT id, name, group_id, migrated_at FROM {self.table}"
        )
        return MigrationSlice(
            Migration(
                id=int(row[0]),
                name=str(row[1]),
                group_id=int(row[2]),
                migrated_at=_to_datetime(row[3]),
            )
            for row in rows
        )

    def _validate(self) -> None:
        if len(self.migrations) == 0:
            raise ValueError("there are no migrations")

    def _with_status(self) -> tuple[MigrationSlice, int]:
        ordered = self.migrations.sorted()
        applied = self._select_applied()
        by_name = {m.name: m for m in applied}
        for migration in ordered:
            found = by_name.get(migration.name)
            if found is not None:
                migration.id = found.id
                migration.group_id = found.group_id
                migration.migrated_at = found.migrated_at
        return ordered, applied.last_group_id()

    def _unlock_quietly(self) -> None:
        with contextlib.suppress(Exception):
            self.unlock()

    # -- public API -------------------------------------------------------

    def migrations_with_status(self) -> MigrationSlice:
        """All known migrations in ascending order, with their applied status."""
        ordered, _ = self._with_status()
        return ordered

    def init(self) -> None:
        """Create the migrations and locks tables if they do not exist."""
        self._execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            "id BIGINT PRIMARY KEY, "
            "name VARCHAR(255) NOT NULL, "
            "group_id BIGINT NOT NULL, "
            "migrated_at TIMESTAMP NOT NULL)"
        )
        self._execute(
            f"CREATE TABLE IF NOT EXISTS {self.locks_table} ("
            "id BIGINT PRIMARY KEY, "
            "table_name VARCHAR(255) NOT NULL UNIQUE)"
        )
        self.db.commit()

    def reset(self) -> None:
        """Drop both tables and create them again."""
        self._execute(f"DROP TABLE IF EXISTS {self.table}")
        self._execute(f"DROP TABLE IF EXISTS {self.locks_table}")
        self.db.commit()
        self.init()

    def migrate(self, nop: bool = False) -> MigrationGroup:
        """Apply unapplied migrations as one new group, stopping at the first failure.

        With ``nop`` the migrations are only recorded, not run.
        """
        self._validate()
        self.lock()
        try:
            ordered, last_group_id = self._with_status()
            pending = ordered.unapplied()

            group = MigrationGroup()
            if not pending:
                return group
            group.id = last_group_id + 1

            try:
                for i, migration in enumerate(pending):
                    migration.group_id = group.id
                    if not self.mark_applied_on_success:
                        self.mark_applied(migration)
                    group.migrations = MigrationSlice(pending[: i + 1])
                    if not nop and migration.up is not None:
                        migration.up(self.db)
                    if self.mark_applied_on_success:
                        self.mark_applied(migration)
            except BaseException as exc:
                _attach_group(exc, group)
                raise
            return group
        finally:
            self._unlock_quietly()

    def rollback(self, nop: bool = False) -> MigrationGroup:
        """Roll back the last applied group, newest migration first."""
        self._validate()
        self.lock()
        try:
            last_group = self.migrations_with_status().last_group()
            try:
                for migration in reversed(last_group.migrations):
                    if not self.mark_applied_on_success:
                        self.mark_unapplied(migration)
                    if not nop and migration.down is not None:
                        migration.down(self.db)
                    if self.mark_applied_on_success:
                        self.mark_unapplied(migration)
            except BaseException as exc:
                _attach_group(exc, last_group)
                raise
            return last_group
        finally:
            self._unlock_quietly()

    def _gen_migration_name(self, name: str) -> str:
        if not name:
            raise ValueError("migration name can't be empty")
        if not _NAME_RE.match(name):
            raise ValueError(f"invalid migration name: {name!r}")
        version = datetime.now(timezone.utc).strftime(_VERSION_FORMAT)
        return f"{version}_{name}"

    def _write(self, fname: str, content: str) -> MigrationFile:
        path = Path(self.migrations.directory()) / fname
        path.write_text(content, encoding="utf-8")
        return MigrationFile(name=fname, path=path, content=content)

    def create_py_migration(self, name: str) -> MigrationFile:
        """Write a Python migration file into the migrations directory."""
        full_name = self._gen_migration_name(name)
        return self._write(full_name + ".py", PY_TEMPLATE)

    def create_sql_migrations(self, name: str) -> list[MigrationFile]:
        """Write an up and a down SQL migration file."""
        full_name = self._gen_migration_name(name)
        up = self._write(full_name + ".up.sql", SQL_TEMPLATE)
        down = self._write(full_name + ".down.sql", SQL_TEMPLATE)
        return [up, down]

    def mark_applied(self, migration: Migration) -> None:
        """Record the migration as applied, assigning its id and time."""
        migrated_at = datetime.now(timezone.utc)
        migration_id = self._next_id(self.table)
        p = self.placeholder
        self._execute(
            f"INSERT INTO {self.table} (id, name, group_id, migrated_at) "
            f"VALUES ({p}, {p}, {p}, {p})",
            (
                migration_id,
                migration.name,
                migration.group_id,
                migrated_at.replace(tzinfo=None).strftime(_STORED_TIME_FORMAT),
            ),
        )
        self.db.commit()
        migration.id = migration_id
        migration.migrated_at = migrated_at

    def mark_unapplied(self, migration: Migration) -> None:
        """Remove the applied record of the migration."""
        self._execute(
            f"DELETE FROM {self.table} WHERE id = {self.placeholder}",
            (migration.id,),
        )
        self.db.commit()

    def lock(self) -> None:
        """Take the migrations lock or raise ``MigrationLockedError``."""
        p = self.placeholder
        try:
            lock_id = self._next_id(self.locks_table)
            self._execute(
                f"INSERT INTO {self.locks_table} (id, table_name) VALUES ({p}, {p})",
                (lock_id, self.table),
            )
            self.db.commit()
        except Exception as exc:
            with contextlib.suppress(Exception):
                self.db.rollback()
            raise MigrationLockedError(
                f"migrations table is already locked ({exc})"
            ) from exc

    def unlock(self) -> None:
        """Release the migrations lock."""
        self._execute(
            f"DELETE FROM {self.locks_table} WHERE table_name = {self.placeholder}",
            (self.table,),
        )
        self.db.commit()