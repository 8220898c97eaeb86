"""Houses and tutor groups.

Every student belongs to exactly one tutor group. A tutor group is led by a
member of staff and belongs to one house, so a student's house is found
through their tutor group.
"""

import dataclasses
import logging
import uuid
from typing import Optional

from denim.model import cascades, database


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class House:
    """A top-level cohort of students."""

    house_id: int
    name: str

    @staticmethod
    def get_by_id(dbase: database.DBase, house_id: int) -> "House | None":
        """Retrieve a single house."""
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(
            "SELECT house_id, name FROM houses WHERE house_id = ?;", (house_id,)
        ).fetchone()
        conn.close()
        return None if result is None else House(**result)

    @staticmethod
    def get_by_name(dbase: database.DBase, name: str) -> "House | None":
        """Retrieve the first house with a name."""
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(
            """
            SELECT house_id, name
              FROM houses
             WHERE name = ?
          ORDER BY house_id
             LIMIT 1;
            """,
            (name,),
        ).fetchone()
        conn.close()
        return None if result is None else House(**result)

    @staticmethod
    def get_all(dbase: database.DBase) -> list["House"]:
        """Retrieve all houses."""
        conn = dbase.get_db_connection(as_dict=True)
        houses = [
            House(**house)
            for house in conn.execute(
                "SELECT house_id, name FROM houses ORDER BY house_id;"
            )
        ]
        conn.close()
        return houses


@dataclasses.dataclass
class TutorGroup:
    """A group of students led by a member of staff."""

    tutor_group_id: str
    staff_id: str
    house_id: int

    @staticmethod
    def get_by_id(
        dbase: database.DBase, tutor_group_id: str
    ) -> "TutorGroup | None":
        """Retrieve a single tutor group."""
        query = """
                SELECT tutor_group_id, staff_id, house_id
                  FROM tutor_groups
                 WHERE tutor_group_id = ?;
        """
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(query, (tutor_group_id,)).fetchone()
        conn.close()
        return None if result is None else TutorGroup(**result)

    @staticmethod
    def get_all(
        dbase: database.DBase, house_id: Optional[int] = None
    ) -> list["TutorGroup"]:
        """Retrieve tutor groups, optionally only those in one house."""
        query = """
                SELECT tutor_group_id, staff_id, house_id
                  FROM tutor_groups
                 WHERE :house_id IS NULL OR house_id = :house_id
              ORDER BY house_id, tutor_group_id;
        """
        conn = dbase.get_db_connection(as_dict=True)
        groups = [
            TutorGroup(**group)
            for group in conn.execute(query, {"house_id": house_id})
        ]
        conn.close()
        return groups

    @staticmethod
    def find(
        dbase: database.DBase, staff_id: str, house_id: int
    ) -> "TutorGroup | None":
        """Retrieve the tutor group a member of staff leads in a house."""
        query = """
                SELECT tutor_group_id, staff_id, house_id
                  FROM tutor_groups
                 WHERE staff_id = ?
                   AND house_id = ?
              ORDER BY tutor_group_id
                 LIMIT 1;
        """
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(query, (staff_id, house_id)).fetchone()
        conn.close()
        return None if result is None else TutorGroup(**result)

    def get_student_ids(self, dbase: database.DBase) -> list[str]:
        """IDs of students in this tutor group."""
        query = """
                SELECT person_id
                  FROM students
                 WHERE tutor_group_id = ?
              ORDER BY person_id;
        """
        conn = dbase.get_db_connection()
        student_ids = [
            row["person_id"] for row in conn.execute(query, (self.tutor_group_id,))
        ]
        conn.close()
        return student_ids


def create_house(dbase: database.DBase, name: str) -> int:
    """Add a house.

    Returns:
        The sequential house_id.
    """
    with dbase.transaction() as conn:
        cursor = conn.execute("INSERT INTO houses (name) VALUES (?);", (name,))
        house_id = cursor.lastrowid
    logger.info("Created house %d (%s)", house_id, name)
    return house_id


def delete_house(dbase: database.DBase, house_id: int) -> None:
    """Delete a house and its tutor groups.

    Raises:
        NotFoundError: If the house does not exist.
        ConstraintViolationError: If any of its tutor groups has students.
    """
    with dbase.transaction() as conn:
        if not cascades.delete_rows(conn, "houses", "house_id", house_id):
            raise database.NotFoundError(f"No house with id {house_id}.")
    logger.info("Deleted house %d", house_id)


def create_tutor_group(dbase: database.DBase, staff_id: str, house_id: int) -> str:
    """Add a tutor group led by a member of staff.

    Returns:
        The generated tutor_group_id.

    Raises:
        NotFoundError: If staff_id is not a member of staff or the house does
            not exist.
    """
    tutor_group_id = str(uuid.uuid4())
    with dbase.transaction() as conn:
        staff = conn.execute(
            "SELECT 1 FROM staff WHERE person_id = ?;", (staff_id,)
        ).fetchone()
        if staff is None:
            raise database.NotFoundError(f"No staff member with id {staff_id}.")
        house = conn.execute(
            "SELECT 1 FROM houses WHERE house_id = ?;", (house_id,)
        ).fetchone()
        if house is None:
            raise database.NotFoundError(f"No house with id {house_id}.")
        conn.execute(
            """
            INSERT INTO tutor_groups (tutor_group_id, staff_id, house_id)
                 VALUES (?, ?, ?);
            """,
            (tutor_group_id, staff_id, house_id),
        )
    logger.info("Created tutor group %s", tutor_group_id)
    return tutor_group_id


def assign_student_to_tutor_group(
    dbase: database.DBase, student_id: str, tutor_group_id: str
) -> None:
    """Move a student into a tutor group.

    Raises:
        NotFoundError: If the student or tutor group does not exist.
    """
    with dbase.transaction() as conn:
        group = conn.execute(
            "SELECT 1 FROM tutor_groups WHERE tutor_group_id = ?;",
            (tutor_group_id,),
        ).fetchone()
        if group is None:
            raise database.NotFoundError(f"No tutor group with id {tutor_group_id}.")
        cursor = conn.execute(
            "UPDATE students SET tutor_group_id = ? WHERE person_id = ?;",
            (tutor_group_id, student_id),
        )
        if cursor.rowcount == 0:
            raise database.NotFoundError(f"No student with id {student_id}.")
    logger.info("Assigned student %s to tutor group %s", student_id, tutor_group_id)


def delete_tutor_group(dbase: database.DBase, tutor_group_id: str) -> None:
    """Delete an empty tutor group.

    Raises:
        NotFoundError: If the tutor group does not exist.
        ConstraintViolationError: If students are still assigned to it.
    """
    with dbase.transaction() as conn:
        deleted = cascades.delete_rows(
            conn, "tutor_groups", "tutor_group_id", tutor_group_id
        )
        if not deleted:
            raise database.NotFoundError(f"No tutor group with id {tutor_group_id}.")
    logger.info("Deleted tutor group %s", tutor_group_id)


def get_student_tutor_group(
    dbase: database.DBase, student_id: str
) -> TutorGroup | None:
    """Tutor group of a student, or None if the person is not a student."""
    query = """
            SELECT t.tutor_group_id, t.staff_id, t.house_id
              FROM students AS s
              JOIN tutor_groups AS t
                ON t.tutor_group_id = s.tutor_group_id
             WHERE s.person_id = ?;
    """
    conn = dbase.get_db_connection(as_dict=True)
    result = conn.execute(query, (student_id,)).fetchone()
    conn.close()
    return None if result is None else TutorGroup(**result)


def get_student_house(dbase: database.DBase, student_id: str) -> House | None:
    """House of a student, found through their tutor group."""
    query = """
            SELECT h.house_id, h.name
              FROM students AS s
              JOIN tutor_groups AS t
                ON t.tutor_group_id = s.tutor_group_id
              JOIN houses AS h
                ON h.house_id = t.house_id
             WHERE s.person_id = ?;
    """
    conn = dbase.get_db_connection(as_dict=True)
    result = conn.execute(query, (student_id,)).fetchone()
    conn.close()
    return None if result is None else House(**result)
