"""Test schema migrations and the delete policy table."""

import pathlib

import pytest

from denim.model import cascades, database, migrate

from conftest import JACK, TED


def student_columns(dbase: database.DBase) -> list[str]:
    conn = dbase.get_db_connection()
    columns = [row["name"] for row in conn.execute("PRAGMA table_info(students);")]
    conn.close()
    return columns


def test_new_database_is_at_latest_version(empty_database: database.DBase) -> None:
    """Creating a database applies every migration."""
    # Act
    version = migrate.current_version(empty_database)
    # Assert
    assert version == migrate.LATEST_VERSION == 5
    assert [m.version for m in migrate.MIGRATIONS] == [1, 2, 3, 4, 5]


def test_downgrade_and_upgrade_empty_database(empty_database: database.DBase) -> None:
    """Every migration can be reverted and applied again."""
    # Act
    down_version = migrate.downgrade(empty_database, 0)
    tables_at_zero = empty_database.get_table_names()
    up_version = migrate.upgrade(empty_database)
    # Assert
    assert down_version == 0
    assert tables_at_zero == {"schema_versions"}
    assert up_version == migrate.LATEST_VERSION
    assert "tutor_groups" in empty_database.get_table_names()


def test_intermediate_versions(empty_database: database.DBase) -> None:
    """Forms exist until version 4 replaces them with tutor groups."""
    # Act
    migrate.downgrade(empty_database, 3)
    tables_v3 = empty_database.get_table_names()
    migrate.upgrade(empty_database, 4)
    tables_v4 = empty_database.get_table_names()
    # Assert
    assert "forms" in tables_v3
    assert "tutor_groups" not in tables_v3
    assert "admins" not in tables_v3
    assert "forms" not in tables_v4
    assert "tutor_groups" in tables_v4
    assert migrate.current_version(empty_database) == 4


def test_downgrade_keeps_student_houses(full_dbase: database.DBase) -> None:
    """Going back to forms keeps each student's house."""
    # Act
    version = migrate.downgrade(full_dbase, 3)
    # Assert
    assert version == 3
    assert student_columns(full_dbase) == ["person_id", "form_id", "house_id"]
    conn = full_dbase.get_db_connection()
    houses = {
        row["person_id"]: row["house_id"]
        for row in conn.execute("SELECT person_id, house_id FROM students;")
    }
    conn.close()
    assert houses[JACK] == 1
    assert houses[TED] == 2


def test_tutor_group_migration_rejects_existing_students(
    full_dbase: database.DBase,
) -> None:
    """Students cannot be moved to tutor groups automatically."""
    # Arrange
    migrate.downgrade(full_dbase, 3)
    # Act, Assert
    with pytest.raises(database.MigrationError):
        migrate.upgrade(full_dbase)
    assert migrate.current_version(full_dbase) == 3
    assert "forms" in full_dbase.get_table_names()


def test_unknown_target_version(empty_database: database.DBase) -> None:
    """Targets outside the known versions are rejected."""
    # Act, Assert
    with pytest.raises(database.MigrationError):
        migrate.upgrade(empty_database, migrate.LATEST_VERSION + 1)
    with pytest.raises(database.MigrationError):
        migrate.downgrade(empty_database, -1)


def test_relationships_match_schema(empty_database: database.DBase) -> None:
    """The policy table agrees with the declared foreign keys."""
    # Arrange
    conn = empty_database.get_db_connection()
    declared = set()
    for table in empty_database.get_table_names():
        for row in conn.execute(f"PRAGMA foreign_key_list({table});"):
            declared.add(
                (table, row["from"], row["table"], row["to"], row["on_delete"])
            )
    conn.close()
    # Act
    expected = {
        (
            rel.child_table,
            rel.child_column,
            rel.parent_table,
            rel.parent_column,
            rel.on_delete.value,
        )
        for rel in cascades.RELATIONSHIPS
    }
    # Assert
    assert declared == expected


def test_children_of() -> None:
    """Look up the dependents of a table."""
    # Act
    children = cascades.children_of("staff")
    # Assert
    assert {(rel.child_table, rel.on_delete) for rel in children} == {
        ("tutor_groups", cascades.OnDelete.CASCADE),
        ("events", cascades.OnDelete.SET_NULL),
    }


def test_copy_database(full_dbase: database.DBase) -> None:
    """Copy data into a new database at the latest version."""
    # Arrange
    new_path: pathlib.Path = full_dbase.db_path.parent / "copy.db"
    # Act
    newdb = migrate.copy_database(full_dbase, new_path)
    # Assert
    assert migrate.current_version(newdb) == migrate.LATEST_VERSION
    assert newdb.to_dict() == full_dbase.to_dict()


def test_copy_database_needs_latest_version(empty_database: database.DBase) -> None:
    """Old databases must be upgraded before copying."""
    # Arrange
    migrate.downgrade(empty_database, 4)
    # Act, Assert
    with pytest.raises(database.MigrationError):
        migrate.copy_database(
            empty_database, empty_database.db_path.parent / "copy.db"
        )
