"""Delete policy for every relationship in the schema.

The access layer deletes rows through delete_rows(), which walks the table of
relationships below instead of relying on whatever the backing store does on
its own. The CREATE TABLE statements in the migrations declare the same
ON DELETE rules so that direct SQL is held to the same policy.

| child                     | parent        | policy   |
|---------------------------|---------------|----------|
| staff.person_id           | people        | CASCADE  |
| students.person_id        | people        | CASCADE  |
| admins.person_id          | people        | CASCADE  |
| developers.person_id      | people        | CASCADE  |
| tutor_groups.staff_id     | staff         | CASCADE  |
| tutor_groups.house_id     | houses        | CASCADE  |
| students.tutor_group_id   | tutor_groups  | RESTRICT |
| events.owner_id           | staff         | SET NULL |
| participation.event_id    | events        | CASCADE  |
| participation.student_id  | students      | CASCADE  |

A student can never be left without a tutor group, so removing a tutor group
(directly, through its house, or through its leader) is rejected while any
student is assigned to it. Events outlive the staff member who owns them.
"""

import dataclasses
import enum
import logging
import sqlite3

from denim.model import database


logger = logging.getLogger(__name__)


class OnDelete(enum.StrEnum):
    """What happens to child rows when their parent row is deleted."""

    CASCADE = "CASCADE"
    RESTRICT = "RESTRICT"
    SET_NULL = "SET NULL"


@dataclasses.dataclass(frozen=True)
class Relationship:
    """A foreign key from child_table.child_column to parent_table.parent_column."""

    child_table: str
    child_column: str
    parent_table: str
    parent_column: str
    on_delete: OnDelete


RELATIONSHIPS: list[Relationship] = [
    Relationship("staff", "person_id", "people", "person_id", OnDelete.CASCADE),
    Relationship("students", "person_id", "people", "person_id", OnDelete.CASCADE),
    Relationship("admins", "person_id", "people", "person_id", OnDelete.CASCADE),
    Relationship("developers", "person_id", "people", "person_id", OnDelete.CASCADE),
    Relationship("tutor_groups", "staff_id", "staff", "person_id", OnDelete.CASCADE),
    Relationship("tutor_groups", "house_id", "houses", "house_id", OnDelete.CASCADE),
    Relationship(
        "students", "tutor_group_id", "tutor_groups", "tutor_group_id",
        OnDelete.RESTRICT,
    ),
    Relationship("events", "owner_id", "staff", "person_id", OnDelete.SET_NULL),
    Relationship("participation", "event_id", "events", "event_id", OnDelete.CASCADE),
    Relationship(
        "participation", "student_id", "students", "person_id", OnDelete.CASCADE
    ),
]


def children_of(table: str) -> list[Relationship]:
    """Relationships in which table is the parent."""
    return [rel for rel in RELATIONSHIPS if rel.parent_table == table]


def delete_rows(
    conn: sqlite3.Connection, table: str, column: str, value: str | int
) -> int:
    """Delete rows where column = value, applying the policy to dependents.

    Must be called inside DBase.transaction() so that a RESTRICT rejection
    part way through the graph rolls back everything done before it.

    Returns:
        Number of rows deleted from table.

    Raises:
        ConstraintViolationError: If a RESTRICT relationship has dependents.
    """
    rows = conn.execute(
        f"SELECT * FROM {table} WHERE {column} = ?;", (value,)
    ).fetchall()
    for row in rows:
        for rel in children_of(table):
            parent_value = row[rel.parent_column]
            if rel.on_delete is OnDelete.RESTRICT:
                dependent = conn.execute(
                    f"""
                    SELECT 1 FROM {rel.child_table}
                     WHERE {rel.child_column} = ?
                     LIMIT 1;
                    """,
                    (parent_value,),
                ).fetchone()
                if dependent is not None:
                    raise database.ConstraintViolationError(
                        f"Cannot delete {table} row {parent_value}: "
                        f"{rel.child_table}.{rel.child_column} still references it."
                    )
            elif rel.on_delete is OnDelete.SET_NULL:
                conn.execute(
                    f"""
                    UPDATE {rel.child_table}
                       SET {rel.child_column} = NULL
                     WHERE {rel.child_column} = ?;
                    """,
                    (parent_value,),
                )
            else:
                delete_rows(conn, rel.child_table, rel.child_column, parent_value)
    cursor = conn.execute(f"DELETE FROM {table} WHERE {column} = ?;", (value,))
    if cursor.rowcount:
        logger.debug("Deleted %d row(s) from %s", cursor.rowcount, table)
    return cursor.rowcount
