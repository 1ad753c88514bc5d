"""Migration records, their ordering and SQL migration files."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

MigrationFunc = Callable[[Any], None]

DIRECTIVE_PREFIX = "--migrate:"

PY_TEMPLATE = '''"""Database migration."""

from . import migrations


def up(db):
    print(" [up migration] ", end="")


def down(db):
    print(" [down migration] ", end="")


migrations.register(up, down)
'''

SQL_TEMPLATE = """SET statement_timeout = 0;

--migrate:split

SELECT 1

--migrate:split

SELECT 2
"""


@dataclass
class Migration:
    """One migration: its name, applied status and up/down callables."""

    name: str = ""
    id: int = 0
    group_id: int = 0
    migrated_at: Optional[datetime] = None
    up: Optional[MigrationFunc] = field(default=None, compare=False, repr=False)
    down: Optional[MigrationFunc] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return self.name

    def is_applied(self) -> bool:
        return self.id > 0


class MigrationSlice(list):
    """A list of migrations with helpers for ordering and grouping."""

    def __str__(self) -> str:
        if not self:
            return "empty"
        if len(self) > 5:
            return f"{len(self)} migrations ({self[0].name} ... {self[-1].name})"
        return ", ".join(m.name for m in self)

    def applied(self) -> "MigrationSlice":
        """Applied migrations, newest name first (the order rollback uses)."""
        return MigrationSlice(
            sorted((m for m in self if m.is_applied()), key=lambda m: m.name, reverse=True)
        )

    def unapplied(self) -> "MigrationSlice":
        """Unapplied migrations, oldest name first (the order migrate uses)."""
        return MigrationSlice(
            sorted((m for m in self if not m.is_applied()), key=lambda m: m.name)
        )

    def last_group_id(self) -> int:
        """The highest group id, or 0 when there are no groups."""
        return max((m.group_id for m in self), default=0)

    def last_group(self) -> "MigrationGroup":
        """The migrations of the last applied group."""
        group = MigrationGroup(id=self.last_group_id())
        if group.id == 0:
            return group
        group.migrations = MigrationSlice(m for m in self if m.group_id == group.id)
        return group


@dataclass
class MigrationGroup:
    """Migrations applied together in one run."""

    id: int = 0
    migrations: MigrationSlice = field(default_factory=MigrationSlice)

    def is_zero(self) -> bool:
        return self.id == 0 and not self.migrations

    def __str__(self) -> str:
        if self.is_zero():
            return "nil"
        return f"group #{self.id} ({MigrationSlice(self.migrations)})"


@dataclass
class MigrationFile:
    """A migration file that was created on disk."""

    name: str
    path: Path
    content: str


def split_sql(text: str) -> list[str]:
    """Split SQL text into queries at ``--migrate:split`` lines.

    Every kept line ends with a newline. Any other directive raises ``ValueError``.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    queries: list[str] = []
    query: list[str] = []
    for line in lines:
        line = line.removesuffix("\r")
        if line.startswith(DIRECTIVE_PREFIX):
            directive = line[len(DIRECTIVE_PREFIX) :]
            if directive == "split":
                queries.append("".join(query))
                query = []
                continue
            raise ValueError(f"unknown directive: {directive!r}")
        query.append(line + "\n")

    if query:
        queries.append("".join(query))
    return queries


def _execute_all(db: Any, queries: Iterable[str], commit_each: bool) -> None:
    for query in queries:
        cursor = db.cursor()
        try:
            cursor.execute(query)
        finally:
            cursor.close()
        if commit_each:
            db.commit()


def sql_migration_func(path: str | Path) -> MigrationFunc:
    """Return a callable that runs the SQL file at ``path`` on a DB-API connection.

    Files named ``*.tx.up.sql`` or ``*.tx.down.sql`` run in one transaction that
    is rolled back on failure; other files commit after every statement.
    """
    path = Path(path)
    is_tx = path.name.endswith((".tx.up.sql", ".tx.down.sql"))

    def run(db: Any) -> None:
        queries = split_sql(path.read_text(encoding="utf-8"))
        if not is_tx:
            _execute_all(db, queries, commit_each=True)
            return
        try:
            _execute_all(db, queries, commit_each=False)
        except BaseException:
            db.rollback()
            raise
        db.commit()

    return run