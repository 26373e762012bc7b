import elevate_user
import reset_db
from store import SqlStore


def _add_user(db):
    return SqlStore(db).create(
        "users",
        {
            "name": "Asha Rao",
            "email": "asha@test.edu",
            "usn": "1CK23EC001",
            "phone": "9876543210",
            "hashed_password": "x",
            "role": "student",
            "approval_status": "pending",
        },
    )


def test_elevate_user(db):
    user = _add_user(db)

    assert elevate_user.run("ASHA@test.edu") == 0

    promoted = SqlStore(db).get("users", user.id)
    assert promoted.role == "admin"
    assert promoted.approval_status == "approved"


def test_elevate_unknown_user(db):
    assert elevate_user.run("nobody@test.edu") == 1


def test_reset_db(db):
    _add_user(db)
    db.close()

    reset_db.reset()
    assert SqlStore(db).list("users") == []
