"""Connect to the Sqlite database and run queries."""

from collections.abc import Iterator, Sequence
import contextlib
import datetime
import logging
import pathlib
import sqlite3
from typing import Any

import polars as pl


logger = logging.getLogger(__name__)


class DBaseError(Exception):
    """Error occurred when working with database."""


class NotFoundError(DBaseError):
    """A referenced record does not exist."""


class ConflictError(DBaseError):
    """A uniqueness constraint would be violated."""


class ConstraintViolationError(DBaseError):
    """A mutation would break a mandatory relationship."""


class MigrationError(DBaseError):
    """A schema migration step cannot be applied."""


def dict_factory(cursor: sqlite3.Cursor, row: Sequence) -> dict[str, Any]:
    """Return Sqlite data as a dictionary."""
    fields = [column[0] for column in cursor.description]
    return {key: value for key, value in zip(fields, row)}


def adapt_date_iso(val: datetime.date | str) -> str:
    """Adapt datetime.date to ISO 8601 date."""
    if isinstance(val, datetime.date):
        return val.isoformat()
    return val


def adapt_datetime_iso(val: datetime.datetime | str) -> str:
    """Adapt datetime.datetime to ISO 8601, normalizing aware values to UTC.

    Every aware timestamp is stored with a +00:00 offset so that text
    comparisons in SQL order correctly.
    """
    if isinstance(val, datetime.datetime):
        if val.tzinfo is not None:
            val = val.astimezone(datetime.timezone.utc)
        return val.isoformat(timespec="microseconds")
    return val


# Python 3.12 deprecated the default date and datetime adapters, so tell
#   Sqlite explicitly how to convert them to text.
sqlite3.register_adapter(datetime.date, adapt_date_iso)
sqlite3.register_adapter(datetime.datetime, adapt_datetime_iso)


def translate_integrity_error(err: sqlite3.IntegrityError) -> DBaseError:
    """Convert a Sqlite integrity error to the matching typed error."""
    message = str(err)
    if message.startswith("UNIQUE") or "PRIMARY KEY" in message:
        return ConflictError(message)
    return ConstraintViolationError(message)


class DBase:
    """Read and write to database."""

    db_path: pathlib.Path
    """Path to Sqlite database."""

    def __init__(self, db_path: pathlib.Path, create_new: bool = False) -> None:
        """Set database path."""
        self.db_path = db_path
        if create_new:
            if self.db_path.exists():
                raise DBaseError(
                    f"Cannot create new database at {db_path}, file already exists."
                )
            else:
                self.create_tables()
        else:
            if not db_path.exists():
                raise DBaseError(f"Database file at {db_path} does not exist.")

    def get_db_connection(
        self, as_dict: bool = False, foreign_keys: bool = True
    ) -> sqlite3.Connection:
        """Get connection to the SQLite database.

        The connection is in autocommit mode. Use transaction() for
        multi-statement changes.
        """
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        if as_dict:
            conn.row_factory = dict_factory
        else:
            conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA foreign_keys = {'ON' if foreign_keys else 'OFF'};")
        return conn

    @contextlib.contextmanager
    def transaction(
        self, as_dict: bool = False, foreign_keys: bool = True
    ) -> Iterator[sqlite3.Connection]:
        """Run statements in a single write transaction.

        Commits when the block exits normally and rolls back on any exception.
        Integrity errors raised by Sqlite are re-raised as ConflictError or
        ConstraintViolationError.
        """
        conn = self.get_db_connection(as_dict=as_dict, foreign_keys=foreign_keys)
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except sqlite3.IntegrityError as err:
                conn.execute("ROLLBACK;")
                translated = translate_integrity_error(err)
                logger.warning("Rolled back transaction: %s", translated)
                raise translated from err
            except DBaseError as err:
                conn.execute("ROLLBACK;")
                logger.warning("Rolled back transaction: %s", err)
                raise
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
            else:
                conn.execute("COMMIT;")
        finally:
            conn.close()

    def create_tables(self) -> None:
        """Create the database tables by applying every migration."""
        from denim.model import migrate

        migrate.upgrade(self)

    def get_table_names(self) -> set[str]:
        """Names of all user tables in the database."""
        query = "SELECT name FROM sqlite_schema WHERE type = 'table';"
        conn = self.get_db_connection()
        tables = {
            row["name"]
            for row in conn.execute(query)
            if not row["name"].startswith("sqlite_")
        }
        conn.close()
        return tables

    def get_participation_dataframe(self) -> pl.DataFrame:
        """Get a Polars dataframe with one row per participation record."""
        query = """
                SELECT e.event_id, e.name AS event_name, e.date AS event_date,
                       p.student_id, s.first_name, s.surname, p.is_verified
                  FROM participation AS p
                  JOIN events AS e
                    ON e.event_id = p.event_id
                  JOIN people AS s
                    ON s.person_id = p.student_id
              ORDER BY e.date, s.surname, s.first_name;
        """
        conn = self.get_db_connection()
        dframe = pl.read_database(query, conn)
        conn.close()
        return dframe

    # Tables in dependency order, leaves last.
    EXPORT_TABLES = [
        "people",
        "staff",
        "admins",
        "developers",
        "houses",
        "tutor_groups",
        "students",
        "events",
        "participation",
    ]

    def to_dict(self) -> dict[str, list[dict[str, str | int | None]]]:
        """Get database contents as a JSON-serializable dictionary.

        Sessions are not exported.

        Returns:
            Contents of the database as a Python dictionary. Format:
            {<table_name>: [{<col_name>: <col_value>}]}
        """
        db_data = {}
        conn = self.get_db_connection(as_dict=True)
        for table in self.EXPORT_TABLES:
            db_data[table] = conn.execute(f"SELECT * FROM {table};").fetchall()
        conn.close()
        return db_data

    def load_from_dict(
        self, db_data_dict: dict[str, list[dict[str, str | int | None]]]
    ) -> None:
        """Import data into the Sqlite database in a single transaction."""
        with self.transaction() as conn:
            for table in self.EXPORT_TABLES:
                rows = db_data_dict.get(table, [])
                if not rows:
                    continue
                columns = list(rows[0].keys())
                query = f"""
                    INSERT INTO {table} ({", ".join(columns)})
                         VALUES ({", ".join(":" + col for col in columns)});
                """
                conn.executemany(query, rows)
        logger.info("Loaded %s into %s", list(db_data_dict), self.db_path)
