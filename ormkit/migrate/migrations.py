"""A registry of migrations collected from code and SQL files."""

from __future__ import annotations

import dataclasses
import inspect
import os
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from .migration import Migration, MigrationFunc, MigrationSlice, sql_migration_func

_PACKAGE_DIR = Path(__file__).resolve().parent

_FNAME_RE = re.compile(r"^(\d{14})_[0-9a-z_\-]+\.")


def _in_package(filename: str) -> bool:
    try:
        return Path(filename).resolve().parent == _PACKAGE_DIR
    except (OSError, ValueError):
        return False


def _caller_file() -> Optional[Path]:
    """The first file on the call stack outside this package."""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = frame.f_code.co_filename
            if not _in_package(filename):
                return Path(filename)
            frame = frame.f_back
    finally:
        del frame
    return None


def extract_migration_name(path: str | Path) -> str:
    """Return the 14-digit version that starts a migration file name."""
    fname = os.path.basename(str(path))
    match = _FNAME_RE.match(fname)
    if match is None:
        raise ValueError(f"unsupported migration name format: {fname!r}")
    return match.group(1)


class Migrations:
    """Holds the known migrations of an application."""

    def __init__(self, directory: str | Path | None = None) -> None:
        self._ms = MigrationSlice()
        self._explicit_directory = Path(directory) if directory else None
        caller = _caller_file()
        self._implicit_directory = caller.parent if caller is not None else None

    def __len__(self) -> int:
        return len(self._ms)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._ms)

    def sorted(self) -> MigrationSlice:
        """Copies of the migrations in ascending name order."""
        return MigrationSlice(
            sorted((dataclasses.replace(m) for m in self._ms), key=lambda m: m.name)
        )

    def register(self, up: Optional[MigrationFunc], down: Optional[MigrationFunc]) -> None:
        """Add a migration named after the calling file."""
        caller = _caller_file()
        name = extract_migration_name(caller if caller is not None else "")
        self.add(Migration(name=name, up=up, down=down))

    def add(self, migration: Migration) -> None:
        if not migration.name:
            raise ValueError("migration name is required")
        self._ms.append(migration)

    def discover_caller(self) -> None:
        """Discover SQL migrations next to the calling file."""
        caller = _caller_file()
        self.discover(caller.parent if caller is not None else Path("."))

    def discover(self, root: str | Path) -> None:
        """Find ``*.up.sql`` and ``*.down.sql`` files below ``root``."""
        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"no such directory: {str(root)!r}")
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for fname in sorted(filenames):
                if fname.endswith(".up.sql"):
                    attr = "up"
                elif fname.endswith(".down.sql"):
                    attr = "down"
                else:
                    continue
                path = Path(dirpath) / fname
                migration = self._get_or_create(extract_migration_name(path))
                setattr(migration, attr, sql_migration_func(path))

    def _get_or_create(self, name: str) -> Migration:
        for migration in self._ms:
            if migration.name == name:
                return migration
        migration = Migration(name=name)
        self._ms.append(migration)
        return migration

    def directory(self) -> Path:
        """Where new migration files are written."""
        if self._explicit_directory is not None:
            return self._explicit_directory
        if self._implicit_directory is not None:
            return self._implicit_directory
        caller = _caller_file()
        return caller.parent if caller is not None else Path(".")