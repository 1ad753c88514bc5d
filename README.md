# ormkit

Small, dependency-free building blocks for working with SQL databases
from Python, and a migration runner that works on any DB-API
connection.

## What is inside

- `ormkit.tagparser` — `parse(s)` reads field tags such as
  `"type:geometry(POINT, 4326),notnull"` into a `Tag` with a `name` and
  repeatable `options`. `Tag.option(name)` returns the last value given
  for an option, or `None`; `Tag.has_option` and `Tag.is_zero` answer
  the obvious questions.
- `ormkit.naming` — `underscore`, `camel_cased` and `to_exported`
  convert between `CamelCased` and `snake_case` names (ASCII letters
  only).
- `ormkit.timeparse` — `parse_time(s)` understands the date, time,
  timestamp and RFC 3339 text forms that databases return, with or
  without a zone offset. Dates and timestamps come back as `datetime`,
  times of day as `time`; values without an offset are taken as UTC and
  fractions beyond microseconds are cut off. Anything else raises
  `ValueError`.
- `ormkit.hexenc` — `HexEncoder` writes bytes as a quoted `'\x…'` SQL
  literal, or `NULL` when nothing was written. It can be used as a
  context manager; `getvalue()` returns the result.
- `ormkit.parser` — `Parser`, a cursor over bytes (`Parser.from_string`
  for text) with `read`, `peek`, `skip`, `skip_bytes`, `read_sep`,
  `read_identifier` and `read_number`.
- `ormkit.mapkey` — `new_map_key(values)` turns a sequence of values
  into a hashable key for grouping rows.
- `ormkit.flag` — `Flag`, an unsigned 64-bit bit set with `has`, `set`
  and `remove`.
- `ormkit.migrate` — the `migration`, `migrations` and `migrator`
  modules for applying and rolling back groups of schema migrations.

## Install

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Examples

Parsing a tag:

```python
from ormkit.tagparser import parse

tag = parse("hello:world,foo:bar,foo:baz")
assert tag.option("hello") == "world"
assert tag.options["foo"] == ["bar", "baz"]
assert tag.option("foo") == "baz"
```

Naming helpers:

```python
from ormkit.naming import underscore, camel_cased

assert underscore("CamelCasedString") == "camel_cased_string"
assert camel_cased("camel_cased") == "CamelCased"
```

Parsing a timestamp returned by a database:

```python
from ormkit.timeparse import parse_time

moment = parse_time("2021-09-15 10:30:00+02:00")
assert moment.utcoffset().total_seconds() == 7200
```

Encoding bytes as a literal:

```python
from ormkit.hexenc import HexEncoder

with HexEncoder() as enc:
    enc.write(b"hi")
assert enc.getvalue() == b"'\\x6869'"
```

## Migrations

A migration is named after a 14-digit UTC timestamp, and its files carry
a short description after it, for example
`20240101120000_create_users.up.sql` and
`20240101120000_create_users.down.sql`.

- `Migrations(directory=None)` holds the known migrations. New files
  are written to `directory`, or else next to the file that created the
  registry.
- `Migrations.discover(root)` collects `*.up.sql` and `*.down.sql` files
  below a directory. Statements in one file are separated by a
  `--migrate:split` line; any other `--migrate:` directive is an error.
  Files ending in `.tx.up.sql` or `.tx.down.sql` run as one transaction
  that is rolled back on failure; other files commit after every
  statement. `discover_caller()` does the same for the directory of the
  calling file.
- `Migrations.add(Migration(name=..., up=..., down=...))` adds a
  migration written as Python callables; each callable receives the
  connection. `Migrations.register(up, down)` does the same, taking the
  name from the file it is called from.
- `Migrator(db, migrations)` records applied migrations in a table.
  Keyword options: `table` (default `ormkit_migrations`), `locks_table`
  (default `ormkit_migration_locks`), `mark_applied_on_success`
  (record a migration only after it succeeded) and `placeholder` (the
  driver's parameter marker, default `?`).
- `Migrator.init()` creates both tables; `Migrator.reset()` drops and
  recreates them.
- `Migrator.migrate()` applies every unapplied migration, in name order,
  as one new `MigrationGroup`, stopping at the first failure;
  `Migrator.rollback()` undoes the last group in reverse order. Both
  accept `nop=True` to record the change without running anything. When
  a migration fails, its exception is raised again with the group being
  processed attached as `migration_group`.
- `Migrator.migrations_with_status()` lists all migrations with their
  applied id, group and time.
- `Migrator.create_sql_migrations(name)` and
  `Migrator.create_py_migration(name)` write new migration files from a
  template and return `MigrationFile` records.

While `migrate` or `rollback` runs, the migrator holds a lock row; a
second runner gets `MigrationLockedError`.

```python
import sqlite3

from ormkit.migrate.migration import Migration
from ormkit.migrate.migrations import Migrations
from ormkit.migrate.migrator import Migrator

conn = sqlite3.connect("app.db")

migrations = Migrations()
migrations.add(Migration(
    name="20240101120000",
    up=lambda db: db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY)"),
    down=lambda db: db.execute("DROP TABLE users"),
))

migrator = Migrator(conn, migrations)
migrator.init()
group = migrator.migrate()
print(group)  # group #1 (20240101120000)
```

## What it does not do

There is no query builder, no mapping of classes to tables and no
database driver: the migrator issues its own few SQL statements on a
connection you supply. There is no command-line tool; migrations are
run from your own code.