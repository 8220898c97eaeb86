"""Test people and role functionality."""

import concurrent.futures

import pytest

from denim.model import database, events_mod, groups_mod, people_mod
from denim.model.people_mod import Role

from conftest import ADA, ALAN, FOOTBALL, GRACE, JACK, MARY, TED, TUTOR_GROUP_A


def test_create_person(empty_database: database.DBase) -> None:
    """Add a person and read them back."""
    # Act
    person_id = people_mod.create_person(
        empty_database,
        first_name="Jackson",
        surname="Programmerson",
        email="jack@example.org",
        pref_name="Jack",
    )
    # Assert
    person = people_mod.Person.get_by_id(empty_database, person_id)
    assert person is not None
    assert person.email == "jack@example.org"
    assert person.pref_name == "Jack"
    assert person.password_hash is None
    assert person.current_password_is_default is False
    assert people_mod.get_roles(empty_database, person_id) == set()


def test_empty_pref_name_is_null(empty_database: database.DBase) -> None:
    """An empty preferred name is not stored."""
    # Act
    person_id = people_mod.create_person(
        empty_database, "Mary", "Shelley", "mary@example.org", pref_name=""
    )
    # Assert
    person = people_mod.Person.get_by_id(empty_database, person_id)
    assert person is not None
    assert person.pref_name is None


def test_duplicate_email_conflicts(full_dbase: database.DBase) -> None:
    """Two people cannot share an email address."""
    # Act, Assert
    with pytest.raises(database.ConflictError):
        people_mod.create_person(
            full_dbase, "Another", "Ada", "ada.lovelace@school.example"
        )
    assert len(people_mod.Person.get_all(full_dbase)) == 6


def test_get_by_email(full_dbase: database.DBase) -> None:
    """Look a person up by email address."""
    # Act
    person = people_mod.Person.get_by_email(full_dbase, "grace.hopper@school.example")
    missing = people_mod.Person.get_by_email(full_dbase, "nobody@school.example")
    # Assert
    assert person is not None
    assert person.person_id == GRACE
    assert person.access_token == "ya29.test-oauth-token"
    assert missing is None


def test_people_hold_several_roles(full_dbase: database.DBase) -> None:
    """A person can be staff and a developer at once."""
    # Act
    roles = people_mod.get_roles(full_dbase, ADA)
    # Assert
    assert roles == {Role.STAFF, Role.DEVELOPER}
    assert people_mod.get_roles(full_dbase, ALAN) == {Role.ADMIN}
    assert people_mod.get_roles(full_dbase, JACK) == {Role.STUDENT}


def test_attach_role(full_dbase: database.DBase) -> None:
    """Give an admin the staff role."""
    # Act
    added = people_mod.attach_role(full_dbase, ALAN, Role.STAFF)
    # Assert
    assert added
    assert people_mod.get_roles(full_dbase, ALAN) == {Role.ADMIN, Role.STAFF}
    staff_ids = [
        person.person_id
        for person in people_mod.Person.get_all_with_role(full_dbase, Role.STAFF)
    ]
    assert ALAN in staff_ids


def test_attach_held_role_is_noop(full_dbase: database.DBase) -> None:
    """Attaching a role twice changes nothing."""
    # Arrange
    new_group = groups_mod.create_tutor_group(full_dbase, GRACE, 1)
    # Act
    staff_added = people_mod.attach_role(full_dbase, ADA, Role.STAFF)
    student_added = people_mod.attach_role(full_dbase, JACK, Role.STUDENT, new_group)
    # Assert
    assert not staff_added
    assert not student_added
    group = groups_mod.get_student_tutor_group(full_dbase, JACK)
    assert group is not None
    assert group.tutor_group_id == TUTOR_GROUP_A


def test_attach_role_to_missing_person(full_dbase: database.DBase) -> None:
    """Roles need an existing person."""
    # Act, Assert
    with pytest.raises(database.NotFoundError):
        people_mod.attach_role(full_dbase, "no-such-person", Role.ADMIN)


def test_student_needs_tutor_group(full_dbase: database.DBase) -> None:
    """A student cannot be created without a tutor group."""
    # Arrange
    person_id = people_mod.create_person(
        full_dbase, "Percy", "Shelley", "percy@school.example"
    )
    # Act, Assert
    with pytest.raises(database.ConstraintViolationError):
        people_mod.attach_role(full_dbase, person_id, Role.STUDENT)
    with pytest.raises(database.NotFoundError):
        people_mod.attach_role(full_dbase, person_id, Role.STUDENT, "no-such-group")
    assert people_mod.get_roles(full_dbase, person_id) == set()


def test_student_tutor_group_column_is_not_null(full_dbase: database.DBase) -> None:
    """The store itself refuses a student without a tutor group."""
    # Act, Assert
    with pytest.raises(database.ConstraintViolationError):
        with full_dbase.transaction() as conn:
            conn.execute("INSERT INTO students (person_id) VALUES (?);", (ALAN,))


def test_delete_student(full_dbase: database.DBase) -> None:
    """Deleting a student removes their role and participation."""
    # Act
    people_mod.delete_person(full_dbase, JACK)
    # Assert
    assert people_mod.Person.get_by_id(full_dbase, JACK) is None
    assert people_mod.get_roles(full_dbase, JACK) == set()
    assert events_mod.Participation.get_for_student(full_dbase, JACK) == []
    remaining = events_mod.Participation.get_for_event(full_dbase, FOOTBALL)
    assert [record.student_id for record in remaining] == [MARY]


def test_delete_missing_person(full_dbase: database.DBase) -> None:
    """Deleting an unknown person raises NotFoundError."""
    # Act, Assert
    with pytest.raises(database.NotFoundError):
        people_mod.delete_person(full_dbase, "no-such-person")


def test_delete_tutor_with_students_is_rejected(full_dbase: database.DBase) -> None:
    """A tutor whose group has students cannot be deleted."""
    # Act
    with pytest.raises(database.ConstraintViolationError):
        people_mod.delete_person(full_dbase, ADA)
    # Assert
    assert people_mod.Person.get_by_id(full_dbase, ADA) is not None
    assert people_mod.get_roles(full_dbase, ADA) == {Role.STAFF, Role.DEVELOPER}
    assert groups_mod.TutorGroup.get_by_id(full_dbase, TUTOR_GROUP_A) is not None
    event = events_mod.Event.get_by_id(full_dbase, FOOTBALL)
    assert event is not None
    assert event.owner_id == ADA


def test_delete_tutor_after_reassigning_students(full_dbase: database.DBase) -> None:
    """Deleting a staff member removes their empty tutor group only."""
    # Arrange
    new_group = groups_mod.create_tutor_group(full_dbase, GRACE, 1)
    groups_mod.assign_student_to_tutor_group(full_dbase, JACK, new_group)
    groups_mod.assign_student_to_tutor_group(full_dbase, MARY, new_group)
    # Act
    people_mod.delete_person(full_dbase, ADA)
    # Assert
    assert people_mod.Person.get_by_id(full_dbase, ADA) is None
    assert groups_mod.TutorGroup.get_by_id(full_dbase, TUTOR_GROUP_A) is None
    assert people_mod.get_roles(full_dbase, JACK) == {Role.STUDENT}
    assert events_mod.sign_up_state(
        full_dbase, FOOTBALL, JACK
    ) is events_mod.SignUpState.VERIFIED
    event = events_mod.Event.get_by_id(full_dbase, FOOTBALL)
    assert event is not None
    assert event.owner_id is None


def test_detach_role(full_dbase: database.DBase) -> None:
    """Remove one role and keep the others."""
    # Act
    removed = people_mod.detach_role(full_dbase, ADA, Role.DEVELOPER)
    removed_again = people_mod.detach_role(full_dbase, ADA, Role.DEVELOPER)
    # Assert
    assert removed
    assert not removed_again
    assert people_mod.get_roles(full_dbase, ADA) == {Role.STAFF}


def test_set_password(full_dbase: database.DBase) -> None:
    """Replace a password with a default that must be rotated."""
    # Act
    people_mod.set_password(full_dbase, TED, "$2b$12$newhash", is_default=True)
    # Assert
    person = people_mod.Person.get_by_id(full_dbase, TED)
    assert person is not None
    assert person.password_hash == "$2b$12$newhash"
    assert person.current_password_is_default is True
    with pytest.raises(database.NotFoundError):
        people_mod.set_password(full_dbase, "no-such-person", None)


def test_set_access_token(full_dbase: database.DBase) -> None:
    """Store and clear an OAuth token."""
    # Act
    people_mod.set_access_token(full_dbase, ADA, "token-1")
    stored = people_mod.Person.get_by_id(full_dbase, ADA)
    people_mod.set_access_token(full_dbase, ADA, None)
    cleared = people_mod.Person.get_by_id(full_dbase, ADA)
    # Assert
    assert stored is not None and stored.access_token == "token-1"
    assert cleared is not None and cleared.access_token is None


def test_display_name(full_dbase: database.DBase) -> None:
    """Students are shown by surname initial."""
    # Arrange
    jack = people_mod.Person.get_by_id(full_dbase, JACK)
    ada = people_mod.Person.get_by_id(full_dbase, ADA)
    assert jack is not None and ada is not None
    # Act, Assert
    assert jack.display_name(people_mod.get_roles(full_dbase, JACK)) == "Jack P"
    assert jack.display_name() == "Jack Programmerson"
    assert ada.display_name(people_mod.get_roles(full_dbase, ADA)) == "Ada Lovelace"


def test_create_student(full_dbase: database.DBase) -> None:
    """Add a student and their tutor group in one step."""
    # Act
    person_id = people_mod.create_student(
        full_dbase, "Percy", "Shelley", "percy@school.example", TUTOR_GROUP_A
    )
    # Assert
    assert people_mod.get_roles(full_dbase, person_id) == {Role.STUDENT}
    group = groups_mod.get_student_tutor_group(full_dbase, person_id)
    assert group is not None
    assert group.tutor_group_id == TUTOR_GROUP_A


def test_create_student_failure_leaves_nothing(full_dbase: database.DBase) -> None:
    """A rejected student leaves no person row behind."""
    # Act, Assert
    with pytest.raises(database.NotFoundError):
        people_mod.create_student(
            full_dbase, "Percy", "Shelley", "percy@school.example", "no-such-group"
        )
    with pytest.raises(database.ConstraintViolationError):
        people_mod.create_student(
            full_dbase, "Percy", None, "percy@school.example", TUTOR_GROUP_A
        )
    assert people_mod.Person.get_by_email(full_dbase, "percy@school.example") is None
    assert len(people_mod.Person.get_all(full_dbase)) == 6


def test_concurrent_creates_with_same_email(full_dbase: database.DBase) -> None:
    """Exactly one of several simultaneous creates with one email succeeds."""
    # Arrange
    def create(number: int) -> str:
        return people_mod.create_person(
            full_dbase, f"Writer{number}", "Racer", "racer@school.example"
        )

    # Act
    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
        futures = [executor.submit(create, number) for number in range(8)]
    errors = [future.exception() for future in futures]
    # Assert
    assert sum(error is None for error in errors) == 1
    assert all(
        isinstance(error, database.ConflictError)
        for error in errors
        if error is not None
    )
    racers = [
        person
        for person in people_mod.Person.get_all(full_dbase)
        if person.email == "racer@school.example"
    ]
    assert len(racers) == 1
