"""Versioned schema migrations.

Each migration is a pair of transformations: ``up`` moves the schema from
version N-1 to N and ``down`` moves it back. Applied versions are recorded in
the schema_versions table. Every step runs in one transaction with foreign key
enforcement switched off, which is the procedure Sqlite requires for
rebuilding a table, and foreign keys are checked before the step commits.

## 1. users
People, houses, forms and the staff, developers and students role tables.
Students link to an optional form and an optional house.

## 2. events
Events, optionally owned by a staff member, and student participation.

## 3. oauth
OAuth access token on people and the web session table.

## 4. forms_to_tutor_groups
Forms are replaced by staff-led tutor groups that each belong to one house.
A student's house is no longer stored; it is found through the tutor group.

## 5. admins_and_constraints
Admins role table, unique email addresses, event timezones, clearing the
owner of events whose staff member is deleted, and a verification flag with
one participation row per event and student.
"""

from collections.abc import Callable
import dataclasses
import datetime
import logging
import pathlib
import sqlite3
from typing import Optional

from denim.model import database


logger = logging.getLogger(__name__)


VERSIONS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (
       version INTEGER PRIMARY KEY,
          name TEXT NOT NULL,
    applied_at TEXT NOT NULL
);
"""


@dataclasses.dataclass(frozen=True)
class Migration:
    """A reversible schema change."""

    version: int
    name: str
    up: tuple[str, ...]
    down: tuple[str, ...]
    before_up: Optional[Callable[[sqlite3.Connection], None]] = None
    """Called inside the transaction before the up statements run."""


def _require_no_students(conn: sqlite3.Connection) -> None:
    """Reject the tutor group migration when students need a group."""
    count = conn.execute("SELECT COUNT(*) AS total FROM students;").fetchone()
    if count["total"]:
        raise database.MigrationError(
            f"Cannot convert forms to tutor groups: {count['total']} student(s)"
            " exist and no tutor group can be inferred for them. Export and"
            " remove the students, upgrade, then re-import them."
        )


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        name="users",
        up=(
            """
            CREATE TABLE houses (
                house_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE forms (
                form_id INTEGER PRIMARY KEY AUTOINCREMENT,
                   name TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE people (
                                  person_id TEXT PRIMARY KEY,
                                 first_name TEXT NOT NULL,
                                  pref_name TEXT,
                                    surname TEXT NOT NULL,
                                      email TEXT NOT NULL,
                              password_hash TEXT,
                current_password_is_default INTEGER NOT NULL DEFAULT 0
            );
            """,
            """
            CREATE TABLE staff (
                person_id TEXT PRIMARY KEY
                          REFERENCES people (person_id) ON DELETE CASCADE
            );
            """,
            """
            CREATE TABLE developers (
                person_id TEXT PRIMARY KEY
                          REFERENCES people (person_id) ON DELETE CASCADE
            );
            """,
            """
            CREATE TABLE students (
                person_id TEXT PRIMARY KEY
                          REFERENCES people (person_id) ON DELETE CASCADE,
                  form_id INTEGER REFERENCES forms (form_id),
                 house_id INTEGER REFERENCES houses (house_id)
            );
            """,
        ),
        down=(
            "DROP TABLE students;",
            "DROP TABLE developers;",
            "DROP TABLE staff;",
            "DROP TABLE people;",
            "DROP TABLE forms;",
            "DROP TABLE houses;",
        ),
    ),
    Migration(
        version=2,
        name="events",
        up=(
            """
            CREATE TABLE events (
                  event_id TEXT PRIMARY KEY,
                      name TEXT NOT NULL,
                      date TEXT NOT NULL,
                  location TEXT,
                extra_info TEXT,
                  owner_id TEXT REFERENCES staff (person_id)
            );
            """,
            """
            CREATE TABLE participation (
                  event_id TEXT NOT NULL
                           REFERENCES events (event_id) ON DELETE CASCADE,
                student_id TEXT NOT NULL
                           REFERENCES students (person_id) ON DELETE CASCADE
            );
            """,
        ),
        down=(
            "DROP TABLE participation;",
            "DROP TABLE events;",
        ),
    ),
    Migration(
        version=3,
        name="oauth",
        up=(
            "ALTER TABLE people ADD COLUMN access_token TEXT;",
            """
            CREATE TABLE sessions (
                 session_id TEXT PRIMARY KEY NOT NULL,
                       data BLOB NOT NULL,
                expiry_date TEXT NOT NULL
            );
            """,
        ),
        down=(
            "DROP TABLE sessions;",
            "ALTER TABLE people DROP COLUMN access_token;",
        ),
    ),
    Migration(
        version=4,
        name="forms_to_tutor_groups",
        up=(
            """
            CREATE TABLE tutor_groups (
                tutor_group_id TEXT PRIMARY KEY,
                      staff_id TEXT NOT NULL
                               REFERENCES staff (person_id) ON DELETE CASCADE,
                      house_id INTEGER NOT NULL
                               REFERENCES houses (house_id) ON DELETE CASCADE
            );
            """,
            """
            CREATE TABLE students_new (
                     person_id TEXT PRIMARY KEY
                               REFERENCES people (person_id) ON DELETE CASCADE,
                tutor_group_id TEXT NOT NULL
                               REFERENCES tutor_groups (tutor_group_id)
                               ON DELETE RESTRICT
            );
            """,
            "DROP TABLE students;",
            "DROP TABLE forms;",
            "ALTER TABLE students_new RENAME TO students;",
        ),
        down=(
            """
            CREATE TABLE forms (
                form_id INTEGER PRIMARY KEY AUTOINCREMENT,
                   name TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE students_old (
                person_id TEXT PRIMARY KEY
                          REFERENCES people (person_id) ON DELETE CASCADE,
                  form_id INTEGER REFERENCES forms (form_id),
                 house_id INTEGER REFERENCES houses (house_id)
            );
            """,
            """
            INSERT INTO students_old (person_id, house_id)
                 SELECT s.person_id, t.house_id
                   FROM students AS s
                   JOIN tutor_groups AS t
                     ON t.tutor_group_id = s.tutor_group_id;
            """,
            "DROP TABLE students;",
            "ALTER TABLE students_old RENAME TO students;",
            "DROP TABLE tutor_groups;",
        ),
        before_up=_require_no_students,
    ),
    Migration(
        version=5,
        name="admins_and_constraints",
        up=(
            """
            CREATE TABLE admins (
                person_id TEXT PRIMARY KEY
                          REFERENCES people (person_id) ON DELETE CASCADE
            );
            """,
            "CREATE UNIQUE INDEX people_email_unique ON people (email);",
            """
            CREATE TABLE events_new (
                  event_id TEXT PRIMARY KEY,
                      name TEXT NOT NULL,
                      date TEXT NOT NULL,
                        tz TEXT NOT NULL,
                  location TEXT,
                extra_info TEXT,
                  owner_id TEXT REFERENCES staff (person_id) ON DELETE SET NULL
            );
            """,
            """
            INSERT INTO events_new
                        (event_id, name, date, tz, location, extra_info, owner_id)
                 SELECT event_id, name, date, 'UTC', location, extra_info, owner_id
                   FROM events;
            """,
            "DROP TABLE events;",
            "ALTER TABLE events_new RENAME TO events;",
            """
            ALTER TABLE participation
             ADD COLUMN is_verified INTEGER NOT NULL DEFAULT 0;
            """,
            """
            DELETE FROM participation
                  WHERE rowid NOT IN (
                        SELECT MIN(rowid)
                          FROM participation
                      GROUP BY event_id, student_id
                  );
            """,
            """
            CREATE UNIQUE INDEX participation_pair_unique
                ON participation (event_id, student_id);
            """,
        ),
        down=(
            "DROP INDEX participation_pair_unique;",
            "ALTER TABLE participation DROP COLUMN is_verified;",
            """
            CREATE TABLE events_old (
                  event_id TEXT PRIMARY KEY,
                      name TEXT NOT NULL,
                      date TEXT NOT NULL,
                  location TEXT,
                extra_info TEXT,
                  owner_id TEXT REFERENCES staff (person_id)
            );
            """,
            """
            INSERT INTO events_old
                        (event_id, name, date, location, extra_info, owner_id)
                 SELECT event_id, name, date, location, extra_info, owner_id
                   FROM events;
            """,
            "DROP TABLE events;",
            "ALTER TABLE events_old RENAME TO events;",
            "DROP INDEX people_email_unique;",
            "DROP TABLE admins;",
        ),
    ),
]

LATEST_VERSION = MIGRATIONS[-1].version


def current_version(dbase: database.DBase) -> int:
    """Highest migration version applied to the database, or 0."""
    conn = dbase.get_db_connection()
    conn.execute(VERSIONS_TABLE_SCHEMA)
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS version FROM schema_versions;"
    ).fetchone()
    conn.close()
    return row["version"]


def _apply(dbase: database.DBase, migration: Migration, forward: bool) -> None:
    """Run one direction of a migration in a single transaction."""
    direction = "up" if forward else "down"
    try:
        with dbase.transaction(foreign_keys=False) as conn:
            conn.execute(VERSIONS_TABLE_SCHEMA)
            if forward and migration.before_up is not None:
                migration.before_up(conn)
            for statement in migration.up if forward else migration.down:
                conn.execute(statement)
            violations = conn.execute("PRAGMA foreign_key_check;").fetchall()
            if violations:
                raise database.MigrationError(
                    f"Migration {migration.version} {direction} leaves"
                    f" {len(violations)} broken foreign key reference(s)."
                )
            if forward:
                conn.execute(
                    """
                    INSERT INTO schema_versions (version, name, applied_at)
                         VALUES (?, ?, ?);
                    """,
                    (
                        migration.version,
                        migration.name,
                        datetime.datetime.now(datetime.timezone.utc),
                    ),
                )
            else:
                conn.execute(
                    "DELETE FROM schema_versions WHERE version = ?;",
                    (migration.version,),
                )
    except (database.ConflictError, database.ConstraintViolationError) as err:
        raise database.MigrationError(
            f"Migration {migration.version} {direction} failed: {err}"
        ) from err
    logger.info(
        "Applied migration %d (%s) %s to %s",
        migration.version, migration.name, direction, dbase.db_path,
    )


def upgrade(dbase: database.DBase, target: Optional[int] = None) -> int:
    """Apply pending migrations up to and including target.

    Returns:
        The schema version after upgrading.
    """
    if target is None:
        target = LATEST_VERSION
    if not 0 <= target <= LATEST_VERSION:
        raise database.MigrationError(f"Unknown schema version {target}.")
    version = current_version(dbase)
    for migration in MIGRATIONS:
        if version < migration.version <= target:
            _apply(dbase, migration, forward=True)
            version = migration.version
    return version


def downgrade(dbase: database.DBase, target: int) -> int:
    """Revert applied migrations newer than target.

    Returns:
        The schema version after downgrading.
    """
    if not 0 <= target <= LATEST_VERSION:
        raise database.MigrationError(f"Unknown schema version {target}.")
    version = current_version(dbase)
    for migration in reversed(MIGRATIONS):
        if target < migration.version <= version:
            _apply(dbase, migration, forward=False)
            version = migration.version - 1
    return version


def copy_database(
    source: database.DBase, new_db_path: pathlib.Path
) -> database.DBase:
    """Create a new database at the latest version and copy data into it.

    Sessions are not copied.
    """
    if current_version(source) != LATEST_VERSION:
        raise database.MigrationError(
            f"Source database {source.db_path} must be upgraded to version"
            f" {LATEST_VERSION} before it can be copied."
        )
    newdb = database.DBase(new_db_path, create_new=True)
    newdb.load_from_dict(source.to_dict())
    return newdb
