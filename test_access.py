import pytest

from access import AccessGuard
from errors import (
    AccessDenied,
    EmailTaken,
    InvalidCredentials,
    NotAuthenticated,
    PendingApproval,
    UserNotFound,
    UserRecordMissing,
    USNTaken,
    ValidationFailed,
)
from store import SqlStore


@pytest.fixture
def sql_store(db):
    return SqlStore(db)


@pytest.fixture
def guard(sql_store):
    return AccessGuard(sql_store)


def _register(guard, **overrides):
    fields = {
        "name": "Asha Rao",
        "email": "Asha@Test.edu",
        "usn": "1ck23ec001",
        "phone": "9876543210",
        "password": "secret1",
        "confirm_password": "secret1",
    }
    fields.update(overrides)
    return guard.register(**fields)


def test_register_creates_pending_student(guard):
    user = _register(guard)

    assert user.id.startswith("usr_")
    assert user.email == "asha@test.edu"
    assert user.usn == "1CK23EC001"
    assert user.role == "student"
    assert user.approval_status == "pending"
    assert user.hashed_password != "secret1"


@pytest.mark.parametrize(
    "overrides, field, reason",
    [
        ({"confirm_password": "secret2"}, "confirm_password", "mismatch"),
        ({"password": "abc", "confirm_password": "abc"}, "password", "too_short"),
        ({"usn": "2CK23EC001"}, "usn", "format"),
        ({"usn": "1CK23E0001"}, "usn", "format"),
        ({"phone": "98765"}, "phone", "format"),
        ({"name": "  "}, "name", "required"),
    ],
)
def test_register_validation(guard, overrides, field, reason):
    with pytest.raises(ValidationFailed) as exc:
        _register(guard, **overrides)
    assert (exc.value.field, exc.value.reason) == (field, reason)


def test_register_rejects_duplicates(guard):
    _register(guard)
    with pytest.raises(EmailTaken):
        _register(guard, email="ASHA@test.edu", usn="1CK23EC002")
    with pytest.raises(USNTaken):
        _register(guard, email="other@test.edu", usn="1CK23EC001")


def test_register_race_reports_the_taken_field(guard, monkeypatch):
    _register(guard)
    real_check = guard._ensure_unique
    calls = {"n": 0}

    def blind_first_check(**kwargs):
        calls["n"] += 1
        if calls["n"] > 1:
            return real_check(**kwargs)

    monkeypatch.setattr(guard, "_ensure_unique", blind_first_check)
    with pytest.raises(EmailTaken):
        _register(guard, usn="1CK23EC009")
    assert len(guard.list_users()) == 1


def test_login_and_pending_gate(guard):
    user = _register(guard)

    with pytest.raises(InvalidCredentials):
        guard.login("asha@test.edu", "wrong-password")
    with pytest.raises(InvalidCredentials):
        guard.login("nobody@test.edu", "secret1")

    session = guard.login("ASHA@test.edu", "secret1")
    assert session.user_id == user.id
    assert not session.is_approved

    with pytest.raises(PendingApproval):
        guard.require_role(session.token, "student")
    # the session survives being told to wait
    assert guard.resolve(session.token).id == user.id

    guard.approve_user(user.id)
    assert guard.require_role(session.token, "student").id == user.id


def test_wrong_role_is_denied_with_home(guard):
    user = _register(guard)
    guard.approve_user(user.id)
    session = guard.login("asha@test.edu", "secret1")

    with pytest.raises(AccessDenied) as exc:
        guard.require_role(session.token, "admin")
    assert exc.value.home == "student"


def test_role_is_read_from_the_record_not_the_token(guard):
    user = _register(guard)
    guard.approve_user(user.id)
    session = guard.login("asha@test.edu", "secret1")

    guard.set_role(user.id, "admin")
    assert guard.require_role(session.token, "admin").id == user.id
    with pytest.raises(AccessDenied) as exc:
        guard.require_role(session.token, "student")
    assert exc.value.home == "admin"


def test_missing_or_bad_tokens(guard):
    with pytest.raises(NotAuthenticated):
        guard.require_role(None, "student")
    with pytest.raises(NotAuthenticated):
        guard.resolve("not-a-jwt")


def test_logout_revokes_session(guard):
    _register(guard)
    session = guard.login("asha@test.edu", "secret1")

    guard.logout(session.token)
    with pytest.raises(NotAuthenticated):
        guard.resolve(session.token)
    # logging out twice, or without a session, is harmless
    guard.logout(session.token)
    guard.logout(None)


def test_deleted_user_loses_session(guard, sql_store):
    user = _register(guard)
    session = guard.login("asha@test.edu", "secret1")
    sql_store.delete("users", user.id)

    with pytest.raises(UserRecordMissing):
        guard.require_role(session.token, "student")
    with pytest.raises(NotAuthenticated):
        guard.resolve(session.token)


def test_seed_admin_is_idempotent(guard):
    admin = guard.seed_admin("Admin@Test.edu", "admin@1234")
    again = guard.seed_admin("admin@test.edu", "other-password")

    assert again.id == admin.id
    assert admin.role == "admin"
    assert admin.is_approved
    session = guard.login("admin@test.edu", "admin@1234")
    assert guard.require_role(session.token, "admin").id == admin.id


def test_set_role_rejects_unknown_roles(guard):
    user = _register(guard)
    with pytest.raises(ValidationFailed):
        guard.set_role(user.id, "librarian")


def test_update_profile(guard):
    user = _register(guard)
    _register(guard, email="ravi@test.edu", usn="1CK23EC002")

    updated = guard.update_profile(user.id, name="Asha R", phone="9123456780", usn="1ck23ec001")
    assert (updated.name, updated.phone, updated.usn) == ("Asha R", "9123456780", "1CK23EC001")

    with pytest.raises(USNTaken):
        guard.update_profile(user.id, usn="1CK23EC002")
    with pytest.raises(ValidationFailed):
        guard.update_profile(user.id, phone="12")


def test_change_password(guard):
    user = _register(guard)

    with pytest.raises(InvalidCredentials):
        guard.change_password(user.id, "wrong", "newpass1", "newpass1")
    with pytest.raises(ValidationFailed):
        guard.change_password(user.id, "secret1", "short", "short")

    guard.change_password(user.id, "secret1", "newpass1", "newpass1")
    guard.login("asha@test.edu", "newpass1")


def test_reset_password_needs_matching_usn(guard):
    _register(guard)

    with pytest.raises(UserNotFound):
        guard.reset_password("asha@test.edu", "1CK23EC999", "newpass1", "newpass1")
    with pytest.raises(UserNotFound):
        guard.reset_password("nobody@test.edu", "1CK23EC001", "newpass1", "newpass1")

    guard.reset_password("asha@test.edu", "1ck23ec001", "newpass1", "newpass1")
    guard.login("asha@test.edu", "newpass1")
    with pytest.raises(InvalidCredentials):
        guard.login("asha@test.edu", "secret1")


def test_seed_admin_with_a_new_email_adds_a_second_admin(guard):
    first = guard.seed_admin("first@test.edu", "admin@1234")
    second = guard.seed_admin("second@test.edu", "admin@1234")

    assert first.id != second.id
    assert first.usn == "ADMIN001"
    assert second.usn != first.usn
    assert second.role == "admin"
    assert second.is_approved
    assert guard.login("second@test.edu", "admin@1234").user_id == second.id
