"""People and the role tables that extend them.

A person is stored once in the people table. Each role a person holds is a row
keyed by person_id in that role's own table, so one person can be a member of
staff and a developer at the same time. Students also carry a tutor group.
"""

import dataclasses
import enum
import logging
import sqlite3
import uuid
from typing import Any, Optional

from denim.model import cascades, database


logger = logging.getLogger(__name__)


class Role(enum.StrEnum):
    """Capabilities a person can hold. Values are role table names."""

    STAFF = "staff"
    STUDENT = "students"
    ADMIN = "admins"
    DEVELOPER = "developers"


PERSON_COLUMNS = """
    person_id, first_name, pref_name, surname, email, password_hash,
    current_password_is_default, access_token
"""


@dataclasses.dataclass
class Person:
    """Anyone who can sign in: staff, students, admins and developers."""

    person_id: str
    first_name: str
    pref_name: Optional[str]
    surname: str
    email: str
    password_hash: Optional[str] = None
    current_password_is_default: bool = False
    access_token: Optional[str] = None

    def __post_init__(self) -> None:
        """Sqlite stores booleans as integers."""
        self.current_password_is_default = bool(self.current_password_is_default)

    @property
    def known_as(self) -> str:
        """Preferred name if there is one, otherwise first name."""
        return self.pref_name if self.pref_name else self.first_name

    def display_name(self, roles: Optional[set[Role]] = None) -> str:
        """Name shown to other users.

        Students are shown with only their surname initial.
        """
        if roles is not None and Role.STUDENT in roles:
            return f"{self.known_as} {self.surname[:1]}"
        return f"{self.known_as} {self.surname}"

    @staticmethod
    def get_by_id(dbase: database.DBase, person_id: str) -> "Person | None":
        """Retrieve a Person object by person_id."""
        query = f"""
                SELECT {PERSON_COLUMNS}
                  FROM people
                 WHERE person_id = ?;
        """
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(query, (person_id,)).fetchone()
        conn.close()
        if result is None:
            return None
        return Person(**result)

    @staticmethod
    def get_by_email(dbase: database.DBase, email: str) -> "Person | None":
        """Retrieve a Person object by email address."""
        query = f"""
                SELECT {PERSON_COLUMNS}
                  FROM people
                 WHERE email = ?;
        """
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(query, (email,)).fetchone()
        conn.close()
        if result is None:
            return None
        return Person(**result)

    @staticmethod
    def get_all(dbase: database.DBase) -> list["Person"]:
        """Retrieve every person, ordered by surname."""
        query = f"""
                SELECT {PERSON_COLUMNS}
                  FROM people
              ORDER BY surname, first_name;
        """
        conn = dbase.get_db_connection(as_dict=True)
        people = [Person(**person) for person in conn.execute(query)]
        conn.close()
        return people

    @staticmethod
    def get_all_with_role(dbase: database.DBase, role: Role) -> list["Person"]:
        """Retrieve everyone holding a role."""
        columns = ", ".join(
            f"p.{col.strip()}" for col in PERSON_COLUMNS.split(",")
        )
        query = f"""
                SELECT {columns}
                  FROM people AS p
                  JOIN {Role(role).value} AS r
                    ON r.person_id = p.person_id
              ORDER BY p.surname, p.first_name;
        """
        conn = dbase.get_db_connection(as_dict=True)
        people = [Person(**person) for person in conn.execute(query)]
        conn.close()
        return people


def create_person(
    dbase: database.DBase,
    first_name: str,
    surname: str,
    email: str,
    pref_name: Optional[str] = None,
    password_hash: Optional[str] = None,
    access_token: Optional[str] = None,
    current_password_is_default: bool = False,
) -> str:
    """Add a person to the database.

    An empty preferred name is stored as NULL.

    Returns:
        The generated person_id.

    Raises:
        ConflictError: If another person already has the email address.
    """
    with dbase.transaction() as conn:
        person_id = _insert_person(
            conn,
            {
                "first_name": first_name,
                "pref_name": pref_name,
                "surname": surname,
                "email": email,
                "password_hash": password_hash,
                "current_password_is_default": current_password_is_default,
                "access_token": access_token,
            },
        )
    logger.info("Created person %s", person_id)
    return person_id


def create_student(
    dbase: database.DBase,
    first_name: str,
    surname: str,
    email: str,
    tutor_group_id: str,
    pref_name: Optional[str] = None,
) -> str:
    """Add a person who is a student in a tutor group.

    The person and their student role are written in one transaction, so a
    failure leaves neither behind.

    Returns:
        The generated person_id.

    Raises:
        ConflictError: If another person already has the email address.
        NotFoundError: If the tutor group does not exist.
    """
    with dbase.transaction() as conn:
        group = conn.execute(
            "SELECT 1 FROM tutor_groups WHERE tutor_group_id = ?;",
            (tutor_group_id,),
        ).fetchone()
        if group is None:
            raise database.NotFoundError(f"No tutor group with id {tutor_group_id}.")
        person_id = _insert_person(
            conn,
            {
                "first_name": first_name,
                "pref_name": pref_name,
                "surname": surname,
                "email": email,
                "password_hash": None,
                "current_password_is_default": False,
                "access_token": None,
            },
        )
        conn.execute(
            "INSERT INTO students (person_id, tutor_group_id) VALUES (?, ?);",
            (person_id, tutor_group_id),
        )
    logger.info("Created student %s in tutor group %s", person_id, tutor_group_id)
    return person_id


def _insert_person(conn: sqlite3.Connection, person: dict[str, Any]) -> str:
    """Insert a people row and return its generated person_id."""
    person_id = str(uuid.uuid4())
    query = f"""
            INSERT INTO people ({PERSON_COLUMNS})
                 VALUES (:person_id, :first_name, :pref_name, :surname, :email,
                        :password_hash, :current_password_is_default,
                        :access_token);
    """
    conn.execute(
        query,
        person | {"person_id": person_id, "pref_name": person["pref_name"] or None},
    )
    return person_id


def _person_exists(conn, person_id: str) -> bool:
    query = "SELECT 1 FROM people WHERE person_id = ?;"
    return conn.execute(query, (person_id,)).fetchone() is not None


def attach_role(
    dbase: database.DBase,
    person_id: str,
    role: Role,
    tutor_group_id: Optional[str] = None,
) -> bool:
    """Give a person a role.

    Attaching a role the person already holds changes nothing, including an
    existing student's tutor group. Use
    groups_mod.assign_student_to_tutor_group() to move a student.

    Returns:
        True if the role was added, False if the person already held it.

    Raises:
        NotFoundError: If the person or tutor group does not exist.
        ConstraintViolationError: If role is STUDENT and no tutor group is
            given.
    """
    role = Role(role)
    with dbase.transaction() as conn:
        if not _person_exists(conn, person_id):
            raise database.NotFoundError(f"No person with id {person_id}.")
        held = conn.execute(
            f"SELECT 1 FROM {role.value} WHERE person_id = ?;", (person_id,)
        ).fetchone()
        if held is not None:
            return False
        if role is Role.STUDENT:
            if tutor_group_id is None:
                raise database.ConstraintViolationError(
                    "A student must be assigned to a tutor group."
                )
            group = conn.execute(
                "SELECT 1 FROM tutor_groups WHERE tutor_group_id = ?;",
                (tutor_group_id,),
            ).fetchone()
            if group is None:
                raise database.NotFoundError(
                    f"No tutor group with id {tutor_group_id}."
                )
            conn.execute(
                "INSERT INTO students (person_id, tutor_group_id) VALUES (?, ?);",
                (person_id, tutor_group_id),
            )
        else:
            conn.execute(
                f"INSERT INTO {role.value} (person_id) VALUES (?);", (person_id,)
            )
    logger.info("Attached role %s to person %s", role.name, person_id)
    return True


def detach_role(dbase: database.DBase, person_id: str, role: Role) -> bool:
    """Remove a role from a person, applying the delete policy.

    Returns:
        True if the role was removed, False if the person did not hold it.

    Raises:
        ConstraintViolationError: If removing a staff role would delete a
            tutor group that still has students.
    """
    role = Role(role)
    with dbase.transaction() as conn:
        deleted = cascades.delete_rows(conn, role.value, "person_id", person_id)
    if deleted:
        logger.info("Detached role %s from person %s", role.name, person_id)
    return deleted > 0


def get_roles(dbase: database.DBase, person_id: str) -> set[Role]:
    """Roles held by a person."""
    query = " UNION ALL ".join(
        f"SELECT '{role.value}' AS role FROM {role.value} WHERE person_id = :pid"
        for role in Role
    )
    conn = dbase.get_db_connection()
    roles = {Role(row["role"]) for row in conn.execute(query, {"pid": person_id})}
    conn.close()
    return roles


def delete_person(dbase: database.DBase, person_id: str) -> None:
    """Delete a person and everything that depends on them.

    Role rows, tutor groups the person leads and the person's participation
    records are removed. Events they own are kept with no owner.

    Raises:
        NotFoundError: If the person does not exist.
        ConstraintViolationError: If the person leads a tutor group that still
            has students. Nothing is deleted in that case.
    """
    with dbase.transaction() as conn:
        if not cascades.delete_rows(conn, "people", "person_id", person_id):
            raise database.NotFoundError(f"No person with id {person_id}.")
    logger.info("Deleted person %s", person_id)


def set_password(
    dbase: database.DBase,
    person_id: str,
    password_hash: Optional[str],
    is_default: bool = False,
) -> None:
    """Replace a person's password hash.

    Set is_default for system-assigned passwords that must be changed at the
    next sign in.
    """
    query = """
            UPDATE people
               SET password_hash = :password_hash,
                   current_password_is_default = :is_default
             WHERE person_id = :person_id;
    """
    with dbase.transaction() as conn:
        cursor = conn.execute(
            query,
            {
                "person_id": person_id,
                "password_hash": password_hash,
                "is_default": is_default,
            },
        )
        if cursor.rowcount == 0:
            raise database.NotFoundError(f"No person with id {person_id}.")


def set_access_token(
    dbase: database.DBase, person_id: str, access_token: Optional[str]
) -> None:
    """Store or clear a person's OAuth access token."""
    query = "UPDATE people SET access_token = ? WHERE person_id = ?;"
    with dbase.transaction() as conn:
        cursor = conn.execute(query, (access_token, person_id))
        if cursor.rowcount == 0:
            raise database.NotFoundError(f"No person with id {person_id}.")
