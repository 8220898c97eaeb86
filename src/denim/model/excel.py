"""Export school data to an Excel file."""

import pathlib
from typing import Any

import xlsxwriter

from denim.model import database


SHEET_NAMES = {
    "people": "People",
    "staff": "Staff",
    "admins": "Admins",
    "developers": "Developers",
    "houses": "Houses",
    "tutor_groups": "Tutor Groups",
    "students": "Students",
    "events": "Events",
    "participation": "Participation",
}


def write(dbase: database.DBase, excel_path: pathlib.Path) -> None:
    """Write all tables except sessions to a Microsoft Excel file.

    Password hashes and access tokens are left out.
    """
    workbook = xlsxwriter.Workbook(excel_path)
    school_data = dbase.to_dict()
    school_data["people"] = [
        {
            col: val
            for col, val in row.items()
            if col not in ("password_hash", "access_token")
        }
        for row in school_data["people"]
    ]
    for table, sheet_name in SHEET_NAMES.items():
        _write_sheet(workbook, sheet_name, school_data[table])
    workbook.close()


def _write_sheet(
    workbook: xlsxwriter.Workbook, sheet_name: str, data: list[dict[str, Any]]
) -> None:
    """Write a table of data to a worksheet."""
    sheet = workbook.add_worksheet(sheet_name)
    if not data:
        return
    sheet.write_row(row=0, col=0, data=list(data[0].keys()))
    for row_number, row_values in enumerate(data):
        sheet.write_row(row=row_number + 1, col=0, data=list(row_values.values()))
