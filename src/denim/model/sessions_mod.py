"""Server-side store for web sign-in sessions.

The session payload is opaque to this module. Expired sessions stay in the
table until purge_expired() runs, but every read treats them as missing.
"""

import datetime
import logging
import secrets
from typing import Optional

from denim import config
from denim.model import database


logger = logging.getLogger(__name__)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _check_aware(expiry_date: datetime.datetime) -> None:
    if expiry_date.tzinfo is None or expiry_date.utcoffset() is None:
        raise ValueError("Session expiry dates must be timezone-aware.")


def create_session(
    dbase: database.DBase,
    session_id: str,
    data: bytes,
    expiry_date: datetime.datetime,
) -> None:
    """Save a session, replacing any session with the same ID.

    Raises:
        ValueError: If expiry_date is naive.
    """
    _check_aware(expiry_date)
    query = """
            INSERT INTO sessions (session_id, data, expiry_date)
                 VALUES (?, ?, ?)
            ON CONFLICT (session_id) DO UPDATE
                    SET data = excluded.data,
                        expiry_date = excluded.expiry_date;
    """
    with dbase.transaction() as conn:
        conn.execute(query, (session_id, data, expiry_date))


def new_session(
    dbase: database.DBase,
    data: bytes,
    lifetime: Optional[datetime.timedelta] = None,
) -> str:
    """Save a session under a newly generated, unused ID.

    The session expires after lifetime, or after the configured
    session_lifetime_hours when lifetime is None.

    Returns:
        The session ID.
    """
    if lifetime is None:
        lifetime = config.settings.session_lifetime
    expiry_date = _utc_now() + lifetime
    with dbase.transaction() as conn:
        while True:
            session_id = secrets.token_urlsafe(32)
            cursor = conn.execute(
                """
                INSERT INTO sessions (session_id, data, expiry_date)
                     VALUES (?, ?, ?)
                ON CONFLICT (session_id) DO NOTHING;
                """,
                (session_id, data, expiry_date),
            )
            if cursor.rowcount == 1:
                break
    return session_id


def get_session(
    dbase: database.DBase,
    session_id: str,
    now: Optional[datetime.datetime] = None,
) -> bytes | None:
    """Session payload, or None if the session is missing or expired."""
    if now is None:
        now = _utc_now()
    _check_aware(now)
    query = """
            SELECT data
              FROM sessions
             WHERE session_id = ?
               AND expiry_date > ?;
    """
    conn = dbase.get_db_connection()
    row = conn.execute(query, (session_id, now)).fetchone()
    conn.close()
    return None if row is None else bytes(row["data"])


def delete_session(dbase: database.DBase, session_id: str) -> None:
    """Delete a session. Does nothing if it does not exist."""
    with dbase.transaction() as conn:
        conn.execute("DELETE FROM sessions WHERE session_id = ?;", (session_id,))


def purge_expired(
    dbase: database.DBase, now: Optional[datetime.datetime] = None
) -> int:
    """Physically remove expired sessions.

    Returns:
        Number of sessions removed.
    """
    if now is None:
        now = _utc_now()
    _check_aware(now)
    with dbase.transaction() as conn:
        cursor = conn.execute(
            "DELETE FROM sessions WHERE expiry_date <= ?;", (now,)
        )
        count = cursor.rowcount
    logger.info("Purged %d expired session(s)", count)
    return count


def count_sessions(dbase: database.DBase) -> int:
    """Number of stored sessions, including expired ones."""
    conn = dbase.get_db_connection()
    row = conn.execute("SELECT COUNT(*) AS total FROM sessions;").fetchone()
    conn.close()
    return row["total"]
