"""Events and student participation.

Event dates are stored in UTC next to the IANA name of the timezone the event
takes place in, so the local time can be rebuilt for display. Participation
links one student to one event and records whether a member of staff has
verified that the student attended.
"""

import dataclasses
import datetime
import enum
import logging
import uuid
from typing import Optional

import dateutil.tz

from denim.model import cascades, database


logger = logging.getLogger(__name__)


class SignUpState(enum.Enum):
    """A student's relationship with an event."""

    NOTHING = 0
    SIGNED_UP = 1
    VERIFIED = 2


def get_timezone(tz: str) -> datetime.tzinfo:
    """Look up a timezone by IANA name.

    Raises:
        ValueError: If the name is not a known timezone.
    """
    tzinfo = dateutil.tz.gettz(tz)
    if not tz or tzinfo is None:
        raise ValueError(f"Unknown timezone {tz!r}.")
    return tzinfo


@dataclasses.dataclass
class Event:
    """Something students can take part in."""

    event_id: str
    name: str
    date: datetime.datetime
    tz: str
    location: Optional[str]
    extra_info: Optional[str]
    owner_id: Optional[str]

    def __init__(
        self,
        event_id: str,
        name: str,
        date: datetime.datetime | str,
        tz: str,
        location: Optional[str] = None,
        extra_info: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        """Ensure date is converted to an aware datetime.datetime.

        Raises:
            ValueError: If tz is not a known timezone.
        """
        tzinfo = get_timezone(tz)
        if isinstance(date, str):
            date = datetime.datetime.fromisoformat(date)
        if date.tzinfo is None:
            date = date.replace(tzinfo=tzinfo)
        self.event_id = event_id
        self.name = name
        self.date = date
        self.tz = tz
        self.location = location
        self.extra_info = extra_info
        self.owner_id = owner_id

    @property
    def zoned_date(self) -> datetime.datetime:
        """Event date and time in the event's own timezone."""
        return self.date.astimezone(get_timezone(self.tz))

    @staticmethod
    def get_by_id(dbase: database.DBase, event_id: str) -> "Event | None":
        """Retrieve a single event."""
        query = """
                SELECT event_id, name, date, tz, location, extra_info, owner_id
                  FROM events
                 WHERE event_id = ?;
        """
        conn = dbase.get_db_connection(as_dict=True)
        result = conn.execute(query, (event_id,)).fetchone()
        conn.close()
        return None if result is None else Event(**result)

    @staticmethod
    def get_all(dbase: database.DBase) -> list["Event"]:
        """Retrieve all events in date order."""
        query = """
                SELECT event_id, name, date, tz, location, extra_info, owner_id
                  FROM events
              ORDER BY date;
        """
        conn = dbase.get_db_connection(as_dict=True)
        events = [Event(**event) for event in conn.execute(query)]
        conn.close()
        return events

    @staticmethod
    def get_future(
        dbase: database.DBase, now: Optional[datetime.datetime] = None
    ) -> list["Event"]:
        """Events after now, soonest first."""
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        query = """
                SELECT event_id, name, date, tz, location, extra_info, owner_id
                  FROM events
                 WHERE date > ?
              ORDER BY date;
        """
        conn = dbase.get_db_connection(as_dict=True)
        events = [Event(**event) for event in conn.execute(query, (now,))]
        conn.close()
        return events

    @staticmethod
    def get_past(
        dbase: database.DBase, now: Optional[datetime.datetime] = None
    ) -> list["Event"]:
        """Events at or before now, most recent first."""
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        query = """
                SELECT event_id, name, date, tz, location, extra_info, owner_id
                  FROM events
                 WHERE date <= ?
              ORDER BY date DESC;
        """
        conn = dbase.get_db_connection(as_dict=True)
        events = [Event(**event) for event in conn.execute(query, (now,))]
        conn.close()
        return events


@dataclasses.dataclass
class Participation:
    """A student signed up to an event."""

    event_id: str
    student_id: str
    is_verified: bool = False

    def __post_init__(self) -> None:
        """Sqlite stores booleans as integers."""
        self.is_verified = bool(self.is_verified)

    @staticmethod
    def get_for_event(
        dbase: database.DBase, event_id: str
    ) -> list["Participation"]:
        """Participation records for an event."""
        query = """
                SELECT event_id, student_id, is_verified
                  FROM participation
                 WHERE event_id = ?
              ORDER BY student_id;
        """
        conn = dbase.get_db_connection(as_dict=True)
        records = [Participation(**row) for row in conn.execute(query, (event_id,))]
        conn.close()
        return records

    @staticmethod
    def get_for_student(
        dbase: database.DBase, student_id: str
    ) -> list["Participation"]:
        """Participation records for a student."""
        query = """
                SELECT event_id, student_id, is_verified
                  FROM participation
                 WHERE student_id = ?
              ORDER BY event_id;
        """
        conn = dbase.get_db_connection(as_dict=True)
        records = [
            Participation(**row) for row in conn.execute(query, (student_id,))
        ]
        conn.close()
        return records


def create_event(
    dbase: database.DBase,
    name: str,
    date: datetime.datetime,
    tz: str,
    location: Optional[str] = None,
    extra_info: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> str:
    """Add an event.

    A naive date is taken to be local time in tz.

    Returns:
        The generated event_id.

    Raises:
        ValueError: If tz is not a known timezone.
        NotFoundError: If owner_id is given and is not a member of staff.
    """
    event = Event(
        str(uuid.uuid4()), name, date, tz, location or None, extra_info or None,
        owner_id,
    )
    query = """
            INSERT INTO events
                        (event_id, name, date, tz, location, extra_info, owner_id)
                 VALUES (:event_id, :name, :date, :tz, :location, :extra_info,
                        :owner_id);
    """
    with dbase.transaction() as conn:
        if owner_id is not None:
            staff = conn.execute(
                "SELECT 1 FROM staff WHERE person_id = ?;", (owner_id,)
            ).fetchone()
            if staff is None:
                raise database.NotFoundError(f"No staff member with id {owner_id}.")
        conn.execute(query, dataclasses.asdict(event))
    logger.info("Created event %s (%s)", event.event_id, name)
    return event.event_id


def delete_event(dbase: database.DBase, event_id: str) -> None:
    """Delete an event and its participation records.

    Raises:
        NotFoundError: If the event does not exist.
    """
    with dbase.transaction() as conn:
        if not cascades.delete_rows(conn, "events", "event_id", event_id):
            raise database.NotFoundError(f"No event with id {event_id}.")
    logger.info("Deleted event %s", event_id)


def record_participation(
    dbase: database.DBase, event_id: str, student_id: str
) -> bool:
    """Sign a student up to an event.

    Recording the same pair twice leaves a single row.

    Returns:
        True if a record was added, False if it already existed.

    Raises:
        NotFoundError: If the event or student does not exist.
    """
    with dbase.transaction() as conn:
        event = conn.execute(
            "SELECT 1 FROM events WHERE event_id = ?;", (event_id,)
        ).fetchone()
        if event is None:
            raise database.NotFoundError(f"No event with id {event_id}.")
        student = conn.execute(
            "SELECT 1 FROM students WHERE person_id = ?;", (student_id,)
        ).fetchone()
        if student is None:
            raise database.NotFoundError(f"No student with id {student_id}.")
        cursor = conn.execute(
            """
            INSERT INTO participation (event_id, student_id)
                 VALUES (?, ?)
            ON CONFLICT (event_id, student_id) DO NOTHING;
            """,
            (event_id, student_id),
        )
        added = cursor.rowcount == 1
    if added:
        logger.info("Student %s signed up to event %s", student_id, event_id)
    return added


def verify_participation(
    dbase: database.DBase, event_id: str, student_id: str
) -> None:
    """Mark a student's participation in an event as verified.

    Raises:
        NotFoundError: If the student is not signed up to the event.
    """
    query = """
            UPDATE participation
               SET is_verified = 1
             WHERE event_id = ?
               AND student_id = ?;
    """
    with dbase.transaction() as conn:
        cursor = conn.execute(query, (event_id, student_id))
        if cursor.rowcount == 0:
            raise database.NotFoundError(
                f"Student {student_id} is not signed up to event {event_id}."
            )
    logger.info("Verified student %s at event %s", student_id, event_id)


def remove_participation(
    dbase: database.DBase, event_id: str, student_id: str
) -> bool:
    """Take a student off an event.

    Returns:
        True if a record was removed.
    """
    query = """
            DELETE FROM participation
                  WHERE event_id = ?
                    AND student_id = ?;
    """
    with dbase.transaction() as conn:
        cursor = conn.execute(query, (event_id, student_id))
    return cursor.rowcount == 1


def sign_up_state(
    dbase: database.DBase, event_id: str, student_id: str
) -> SignUpState | None:
    """Whether a student is signed up to an event and verified.

    Returns None if student_id is not a student.
    """
    conn = dbase.get_db_connection()
    student = conn.execute(
        "SELECT 1 FROM students WHERE person_id = ?;", (student_id,)
    ).fetchone()
    if student is None:
        conn.close()
        return None
    record = conn.execute(
        """
        SELECT is_verified
          FROM participation
         WHERE event_id = ?
           AND student_id = ?;
        """,
        (event_id, student_id),
    ).fetchone()
    conn.close()
    if record is None:
        return SignUpState.NOTHING
    return SignUpState.VERIFIED if record["is_verified"] else SignUpState.SIGNED_UP
