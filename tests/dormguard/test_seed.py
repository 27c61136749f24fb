from dormguard.auth.security import verify_password
from dormguard.core import config
from dormguard.models.user import Role, User
from dormguard.seed import seed_default_admin


def test_seed_creates_default_admin_once(db) -> None:
    created = seed_default_admin(db)

    assert created is not None
    assert created.username == config.DEFAULT_ADMIN_USERNAME
    assert created.role is Role.admin
    assert verify_password(config.DEFAULT_ADMIN_PASSWORD, created.password_hash)

    assert seed_default_admin(db) is None
    assert db.query(User).count() == 1


def test_seed_skips_when_an_admin_exists(db, admin) -> None:
    assert seed_default_admin(db) is None
    assert db.query(User).filter(User.role == Role.admin).count() == 1


def test_seed_ignores_staff_only_databases(db, staff) -> None:
    created = seed_default_admin(db)

    assert created is not None
    assert db.query(User).count() == 2


def test_seed_logs_and_returns_none_when_username_is_taken(db, make_user, caplog) -> None:
    make_user(config.DEFAULT_ADMIN_USERNAME, role=Role.staff)

    with caplog.at_level('ERROR', logger='dormguard.seed'):
        assert seed_default_admin(db) is None

    assert 'already exists' in caplog.text
    assert db.query(User).filter(User.role == Role.admin).count() == 0
    assert db.query(User).count() == 1
