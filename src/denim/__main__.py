"""Maintain a Denim database from the command line."""
import argparse
import logging
import pathlib
import sys
from typing import Optional

import rich

from denim import config, logging_config
from denim.model import database, excel, migrate, roster, sessions_mod


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define command line arguments."""
    parser = argparse.ArgumentParser(prog="denim")
    parser.add_argument(
        "-d", "--db_path",
        help="Path to Sqlite database",
        type=pathlib.Path,
        default=None
    )
    parser.add_argument(
        "-c", "--config_path",
        help="Path to config file",
        type=pathlib.Path,
        default=None
    )
    parser.set_defaults(func=None)
    subparsers = parser.add_subparsers()

    init_parser = subparsers.add_parser(
        "init",
        help="Create a new database at the latest schema version."
    )
    init_parser.set_defaults(func=init_db)

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Upgrade or downgrade the database schema."
    )
    migrate_parser.add_argument(
        "-t", "--target",
        type=int,
        default=None,
        help="Schema version to move to. Defaults to the latest version.",
    )
    migrate_parser.set_defaults(func=run_migrations)

    version_parser = subparsers.add_parser(
        "version",
        help="Show the database schema version."
    )
    version_parser.set_defaults(func=show_version)

    purge_parser = subparsers.add_parser(
        "purge-sessions",
        help="Delete expired web sessions."
    )
    purge_parser.set_defaults(func=purge_sessions)

    excel_parser = subparsers.add_parser(
        "export-excel",
        help="Write all data to an Excel workbook."
    )
    excel_parser.add_argument("excel_path", type=pathlib.Path)
    excel_parser.set_defaults(func=export_excel)

    students_parser = subparsers.add_parser(
        "import-students",
        help="Import students from a CSV file."
    )
    students_parser.add_argument("csv_path", type=pathlib.Path)
    students_parser.set_defaults(func=import_students)

    events_parser = subparsers.add_parser(
        "import-events",
        help="Import events from a CSV file."
    )
    events_parser.add_argument("csv_path", type=pathlib.Path)
    events_parser.add_argument(
        "--tz",
        default=None,
        help="Timezone of the event times. Defaults to the configured timezone.",
    )
    events_parser.set_defaults(func=import_events)
    return parser


def open_db() -> database.DBase:
    """Open the configured database."""
    return database.DBase(config.settings.db_path)


def init_db(args: argparse.Namespace) -> None:
    """Create a new database."""
    dbase = database.DBase(config.settings.db_path, create_new=True)
    rich.print(
        f"Created {dbase.db_path} at schema version {migrate.current_version(dbase)}"
    )


def run_migrations(args: argparse.Namespace) -> None:
    """Move the schema to the target version."""
    dbase = open_db()
    version = migrate.current_version(dbase)
    target = migrate.LATEST_VERSION if args.target is None else args.target
    if target >= version:
        version = migrate.upgrade(dbase, target)
    else:
        version = migrate.downgrade(dbase, target)
    rich.print(f"{dbase.db_path} is at schema version {version}")


def show_version(args: argparse.Namespace) -> None:
    """Print the schema version."""
    dbase = open_db()
    rich.print(
        f"{dbase.db_path}: version {migrate.current_version(dbase)}"
        f" (latest {migrate.LATEST_VERSION})"
    )


def purge_sessions(args: argparse.Namespace) -> None:
    """Delete expired sessions."""
    count = sessions_mod.purge_expired(open_db())
    rich.print(f"Removed {count} expired session(s)")


def export_excel(args: argparse.Namespace) -> None:
    """Write the database to an Excel file."""
    excel.write(open_db(), to_absolute_path(args.excel_path))
    rich.print(f"Wrote {args.excel_path}")


def import_students(args: argparse.Namespace) -> None:
    """Import students from CSV."""
    report = roster.import_students(open_db(), to_absolute_path(args.csv_path))
    print_report(report)


def import_events(args: argparse.Namespace) -> None:
    """Import events from CSV."""
    tz = args.tz if args.tz is not None else config.settings.default_timezone
    report = roster.import_events(open_db(), to_absolute_path(args.csv_path), tz)
    print_report(report)


def print_report(report: roster.ImportReport) -> None:
    """Summarize an import."""
    rich.print(f"Added {len(report.added)} record(s)")
    for row_number, reason in report.skipped:
        rich.print(f"[yellow]Skipped row {row_number}: {reason}[/yellow]")


def to_absolute_path(path: pathlib.Path) -> pathlib.Path:
    """Convert relative paths to absolute paths."""
    if not path.is_absolute():
        path = pathlib.Path.cwd() / path
    return path


def main(argv: Optional[list[str]] = None) -> None:
    """Function to run the command line, used for the console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config.settings.update_from_args(args)
    logging_config.setup_logging(
        config.settings.log_dir, config.settings.log_level or "INFO"
    )
    if args.func is None:
        parser.print_help()
        return
    try:
        args.func(args)
    except (database.DBaseError, config.ConfigError, ValueError) as err:
        logger.error("%s", err)
        rich.print(f"[red]{err}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
