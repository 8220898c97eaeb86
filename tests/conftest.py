"""Pytest fixtures."""

import json
import pathlib
import shutil

import pytest

from denim.model import database


TEST_FOLDER = pathlib.Path(__file__).parent
DATA_FOLDER = TEST_FOLDER / "data"
OUTPUT_FOLDER = TEST_FOLDER / "output"

# IDs of records in data/testdata.json.
ADA = "11111111-1111-4111-8111-111111111111"
"""Staff member and developer who leads tutor group A in Lion house."""
GRACE = "22222222-2222-4222-8222-222222222222"
"""Staff member who leads tutor group B in Eagle house."""
ALAN = "33333333-3333-4333-8333-333333333333"
"""Admin."""
JACK = "44444444-4444-4444-8444-444444444444"
MARY = "55555555-5555-4555-8555-555555555555"
TED = "66666666-6666-4666-8666-666666666666"
TUTOR_GROUP_A = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TUTOR_GROUP_B = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
LION = 1
EAGLE = 2
FOOTBALL = "cccccccc-cccc-4ccc-8ccc-cccccccccccc"
SCIENCE_FAIR = "dddddddd-dddd-4ddd-8ddd-dddddddddddd"


@pytest.fixture()
def empty_output_folder() -> pathlib.Path:
    """Create an empty output folder prior to each test."""
    if OUTPUT_FOLDER.exists():
        for item in OUTPUT_FOLDER.iterdir():
            if item.is_dir():
                shutil.rmtree(item, ignore_errors=True)
            else:
                item.unlink()
    else:
        OUTPUT_FOLDER.mkdir(parents=True)
    return OUTPUT_FOLDER


@pytest.fixture
def empty_database(empty_output_folder: pathlib.Path) -> database.DBase:
    """An empty Denim database, with tables created."""
    return database.DBase(OUTPUT_FOLDER / "testdatabase.db", create_new=True)


@pytest.fixture
def empty_database2(empty_output_folder: pathlib.Path) -> database.DBase:
    """A second empty Denim database, with tables created."""
    return database.DBase(OUTPUT_FOLDER / "testdatabase2.db", create_new=True)


@pytest.fixture
def school_test_data() -> dict[str, list]:
    """Get test data as a dictionary.

    Keys are table names and values are lists of row dictionaries.
    """
    with open(DATA_FOLDER / "testdata.json") as jfile:
        test_data = json.load(jfile)
    return test_data


@pytest.fixture
def full_dbase(
    empty_database: database.DBase, school_test_data: dict[str, list]
) -> database.DBase:
    """Database with people, roles, houses, tutor groups and events."""
    empty_database.load_from_dict(school_test_data)
    return empty_database
