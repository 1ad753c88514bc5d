import sqlite3
from datetime import datetime, timezone

import pytest

from ormkit.migrate.migration import SQL_TEMPLATE, PY_TEMPLATE, Migration
from ormkit.migrate.migrations import Migrations, extract_migration_name
from ormkit.migrate.migrator import MigrationLockedError, Migrator


@pytest.fixture
def db():
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


def _recording(history, label, fail=False):
    def run(db):
        history.append(label)
        if fail:
            raise RuntimeError("failed")

    return run


def _two_migrations(history):
    migrations = Migrations()
    migrations.add(
        Migration(
            name="20060102150405",
            up=_recording(history, "up1"),
            down=_recording(history, "down1"),
        )
    )
    migrations.add(
        Migration(
            name="20060102160405",
            up=_recording(history, "up2"),
            down=_recording(history, "down2"),
        )
    )
    return migrations


def _failing_migrations(history):
    migrations = Migrations()
    migrations.add(
        Migration(
            name="20060102150405",
            up=_recording(history, "up1"),
            down=_recording(history, "down1"),
        )
    )
    migrations.add(
        Migration(
            name="20060102160405",
            up=_recording(history, "up2", fail=True),
            down=_recording(history, "down2"),
        )
    )
    migrations.add(
        Migration(
            name="20060102170405",
            up=_recording(history, "up3", fail=True),
            down=_recording(history, "down3"),
        )
    )
    return migrations


def test_migrate_up_and_down(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()

    group = m.migrate()
    assert group.id == 1
    assert len(group.migrations) == 2
    assert history == ["up1", "up2"]

    history.clear()
    group = m.rollback()
    assert group.id == 1
    assert len(group.migrations) == 2
    assert history == ["down2", "down1"]


def test_migrate_up_error(db):
    history = []
    m = Migrator(db, _failing_migrations(history))
    m.reset()

    with pytest.raises(RuntimeError, match="^failed$") as excinfo:
        m.migrate()
    group = excinfo.value.migration_group
    assert group.id == 1
    assert len(group.migrations) == 2
    assert history == ["up1", "up2"]

    history.clear()
    group = m.rollback()
    assert group.id == 1
    assert len(group.migrations) == 2
    assert history == ["down2", "down1"]


def test_mark_applied_on_success_skips_failed(db):
    history = []
    m = Migrator(db, _failing_migrations(history), mark_applied_on_success=True)
    m.reset()

    with pytest.raises(RuntimeError) as excinfo:
        m.migrate()
    assert len(excinfo.value.migration_group.migrations) == 2

    statuses = {mig.name: mig.is_applied() for mig in m.migrations_with_status()}
    assert statuses == {
        "20060102150405": True,
        "20060102160405": False,
        "20060102170405": False,
    }

    history.clear()
    group = m.rollback()
    assert [mig.name for mig in group.migrations] == ["20060102150405"]
    assert history == ["down1"]


def test_second_migrate_is_empty(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()
    m.migrate()

    group = m.migrate()
    assert group.is_zero()
    assert history == ["up1", "up2"]


def test_groups_increment(db):
    history = []
    migrations = _two_migrations(history)
    m = Migrator(db, migrations)
    m.reset()
    m.migrate()

    migrations.add(
        Migration(name="20060102170405", up=_recording(history, "up3"))
    )
    group = m.migrate()
    assert group.id == 2
    assert [mig.name for mig in group.migrations] == ["20060102170405"]

    group = m.rollback()
    assert group.id == 2
    assert [mig.name for mig in m.migrations_with_status() if mig.is_applied()] == [
        "20060102150405",
        "20060102160405",
    ]


def test_migrations_with_status(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()

    before = m.migrations_with_status()
    assert [mig.is_applied() for mig in before] == [False, False]

    m.migrate()
    after = m.migrations_with_status()
    assert [mig.name for mig in after] == ["20060102150405", "20060102160405"]
    assert [mig.group_id for mig in after] == [1, 1]
    assert all(mig.id > 0 for mig in after)
    assert all(isinstance(mig.migrated_at, datetime) for mig in after)
    assert after[0].migrated_at.tzinfo == timezone.utc


def test_nop_records_without_running(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()

    group = m.migrate(nop=True)
    assert len(group.migrations) == 2
    assert history == []
    assert all(mig.is_applied() for mig in m.migrations_with_status())

    group = m.rollback(nop=True)
    assert len(group.migrations) == 2
    assert history == []
    assert not any(mig.is_applied() for mig in m.migrations_with_status())


def test_reset_forgets_applied(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()
    m.migrate()
    m.reset()
    assert [mig.is_applied() for mig in m.migrations_with_status()] == [False, False]


def test_no_migrations_raises(db):
    m = Migrator(db, Migrations())
    m.reset()
    with pytest.raises(ValueError, match="no migrations"):
        m.migrate()
    with pytest.raises(ValueError, match="no migrations"):
        m.rollback()


def test_locked_migrator_refuses(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()
    m.lock()

    with pytest.raises(MigrationLockedError, match="already locked"):
        m.migrate()
    assert history == []

    m.unlock()
    group = m.migrate()
    assert group.id == 1


def test_lock_released_after_migrate(db):
    history = []
    m = Migrator(db, _two_migrations(history))
    m.reset()
    m.migrate()
    m.lock()
    with pytest.raises(MigrationLockedError):
        m.lock()
    m.unlock()
    rows = db.execute("SELECT COUNT(*) FROM ormkit_migration_locks").fetchall()
    assert rows == [(0,)]


def test_custom_table_names(db):
    history = []
    m = Migrator(
        db, _two_migrations(history), table="my_migrations", locks_table="my_locks"
    )
    m.reset()
    m.migrate()
    rows = db.execute("SELECT name FROM my_migrations ORDER BY name").fetchall()
    assert rows == [("20060102150405",), ("20060102160405",)]


def test_sql_migrations_from_discovery(db, tmp_path):
    (tmp_path / "20060102150405_create.up.sql").write_text(
        "CREATE TABLE items (x INTEGER);\n--migrate:split\nINSERT INTO items VALUES (7);\n"
    )
    (tmp_path / "20060102150405_create.down.sql").write_text("DROP TABLE items;\n")

    migrations = Migrations()
    migrations.discover(tmp_path)
    m = Migrator(db, migrations)
    m.reset()

    group = m.migrate()
    assert [mig.name for mig in group.migrations] == ["20060102150405"]
    assert db.execute("SELECT x FROM items").fetchall() == [(7,)]

    m.rollback()
    tables = db.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'items'"
    ).fetchall()
    assert tables == []


def test_create_sql_migrations(db, tmp_path):
    m = Migrator(db, Migrations(directory=tmp_path))
    up, down = m.create_sql_migrations("add_users")

    assert up.name.endswith("_add_users.up.sql")
    assert down.name.endswith("_add_users.down.sql")
    assert up.path == tmp_path / up.name
    assert up.path.read_text() == SQL_TEMPLATE
    assert down.content == SQL_TEMPLATE
    assert len(extract_migration_name(up.path)) == 14
    assert extract_migration_name(up.path) == extract_migration_name(down.path)


def test_create_py_migration(db, tmp_path):
    m = Migrator(db, Migrations(directory=tmp_path))
    created = m.create_py_migration("seed-data")

    assert created.name.endswith("_seed-data.py")
    assert created.path.read_text() == PY_TEMPLATE
    assert created.content == PY_TEMPLATE
    assert len(extract_migration_name(created.path)) == 14


@pytest.mark.parametrize("name", ["", "Bad Name", "UPPER", "dot.name"])
def test_invalid_migration_names(db, tmp_path, name):
    m = Migrator(db, Migrations(directory=tmp_path))
    with pytest.raises(ValueError):
        m.create_sql_migrations(name)
    assert list(tmp_path.iterdir()) == []


def test_mark_applied_and_unapplied(db):
    m = Migrator(db, _two_migrations([]))
    m.reset()
    migration = Migration(name="20060102150405", group_id=3)
    m.mark_applied(migration)
    assert migration.id == 1
    assert migration.is_applied()
    rows = db.execute("SELECT id, name, group_id FROM ormkit_migrations").fetchall()
    assert rows == [(1, "20060102150405", 3)]

    m.mark_unapplied(migration)
    rows = db.execute("SELECT COUNT(*) FROM ormkit_migrations").fetchall()
    assert rows == [(0,)]