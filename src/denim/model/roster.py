"""Import students and events from CSV files.

## Students CSV
Columns: first_name, pref_name, surname, email, house, tutor_email.
Houses that do not exist yet are created. Each student is placed in the tutor
group led by the member of staff with tutor_email in their house, and that
tutor group is created if needed. Rows whose tutor is not a member of staff
are skipped.

## Events CSV
Columns: name, datetime, location, extra_info. Dates are day first, for
example 14-05-2025 08:20, in local time for the given timezone.
"""

import dataclasses
import logging
import pathlib

import dateutil.parser
import polars as pl

from denim.model import database, events_mod, groups_mod, people_mod


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ImportReport:
    """Outcome of importing a CSV file."""

    added: list[str] = dataclasses.field(default_factory=list)
    """IDs of records that were created."""
    skipped: list[tuple[int, str]] = dataclasses.field(default_factory=list)
    """Row number (starting at 1) and reason for each row that was not imported."""


STUDENT_COLUMNS = ["first_name", "surname", "email", "house", "tutor_email"]
EVENT_COLUMNS = ["name", "datetime"]


def _read_csv(csv_path: pathlib.Path, required: list[str]) -> pl.DataFrame:
    """Read a CSV file with every column as text."""
    dframe = pl.read_csv(csv_path, infer_schema=False)
    missing = [col for col in required if col not in dframe.columns]
    if missing:
        raise ValueError(f"{csv_path.name} is missing column(s): {', '.join(missing)}")
    return dframe


def _empty_cells(row: dict[str, str | None], required: list[str]) -> list[str]:
    """Required columns with no value in this row."""
    return [col for col in required if not (row[col] or "").strip()]


def import_students(dbase: database.DBase, csv_path: pathlib.Path) -> ImportReport:
    """Create students from a CSV file.

    Each row is imported on its own. A row that cannot be imported is recorded
    in the report and the remaining rows are still read.
    """
    dframe = _read_csv(csv_path, STUDENT_COLUMNS)
    report = ImportReport()
    for row_number, row in enumerate(dframe.iter_rows(named=True), start=1):
        empty = _empty_cells(row, STUDENT_COLUMNS)
        if empty:
            report.skipped.append((row_number, f"Missing {', '.join(empty)}"))
            continue
        tutor = people_mod.Person.get_by_email(dbase, row["tutor_email"])
        if tutor is None or people_mod.Role.STAFF not in people_mod.get_roles(
            dbase, tutor.person_id
        ):
            report.skipped.append(
                (row_number, f"{row['tutor_email']} is not a member of staff")
            )
            continue
        if people_mod.Person.get_by_email(dbase, row["email"]) is not None:
            report.skipped.append((row_number, f"{row['email']} already exists"))
            continue
        try:
            house = groups_mod.House.get_by_name(dbase, row["house"])
            house_id = (
                house.house_id
                if house is not None
                else groups_mod.create_house(dbase, row["house"])
            )
            group = groups_mod.TutorGroup.find(dbase, tutor.person_id, house_id)
            tutor_group_id = (
                group.tutor_group_id
                if group is not None
                else groups_mod.create_tutor_group(dbase, tutor.person_id, house_id)
            )
            person_id = people_mod.create_student(
                dbase,
                first_name=row["first_name"],
                surname=row["surname"],
                email=row["email"],
                tutor_group_id=tutor_group_id,
                pref_name=row.get("pref_name"),
            )
        except database.DBaseError as err:
            report.skipped.append((row_number, str(err)))
            continue
        report.added.append(person_id)
    logger.info(
        "Imported %d student(s) from %s, skipped %d",
        len(report.added), csv_path, len(report.skipped),
    )
    return report


def import_events(
    dbase: database.DBase, csv_path: pathlib.Path, tz: str
) -> ImportReport:
    """Create events from a CSV file.

    Raises:
        ValueError: If tz is not a known timezone.
    """
    events_mod.get_timezone(tz)
    dframe = _read_csv(csv_path, EVENT_COLUMNS)
    report = ImportReport()
    for row_number, row in enumerate(dframe.iter_rows(named=True), start=1):
        empty = _empty_cells(row, EVENT_COLUMNS)
        if empty:
            report.skipped.append((row_number, f"Missing {', '.join(empty)}"))
            continue
        try:
            date = dateutil.parser.parse(row["datetime"], dayfirst=True)
        except dateutil.parser.ParserError:
            report.skipped.append((row_number, f"Bad date {row['datetime']!r}"))
            continue
        try:
            event_id = events_mod.create_event(
                dbase,
                name=row["name"],
                date=date,
                tz=tz,
                location=row.get("location"),
                extra_info=row.get("extra_info"),
            )
        except database.DBaseError as err:
            report.skipped.append((row_number, str(err)))
            continue
        report.added.append(event_id)
    logger.info(
        "Imported %d event(s) from %s, skipped %d",
        len(report.added), csv_path, len(report.skipped),
    )
    return report
