"""Create the default admin account when no admin exists yet.

Usage:
    python -m dormguard.seed
"""
import logging
import sys

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dormguard.auth.security import hash_password
from dormguard.core import config
from dormguard.database import SessionLocal, init_schema, wait_for_database
from dormguard.models.user import Role, User

logger = logging.getLogger(__name__)


def seed_default_admin(db: Session) -> User | None:
    if db.query(User.id).filter(User.role == Role.admin).first() is not None:
        return None

    admin = User(
        username=config.DEFAULT_ADMIN_USERNAME,
        password_hash=hash_password(config.DEFAULT_ADMIN_PASSWORD),
        display_name=config.DEFAULT_ADMIN_DISPLAY_NAME,
        role=Role.admin,
    )
    try:
        db.add(admin)
        db.commit()
    except IntegrityError:
        # The default username is already taken by a non-admin account.
        db.rollback()
        logger.error(
            'Could not create default admin: username %s already exists',
            config.DEFAULT_ADMIN_USERNAME,
        )
        return None
    db.refresh(admin)
    logger.warning(
        'Default admin created: %s. Change its password after the first login.',
        admin.username,
    )
    return admin


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)
    wait_for_database()
    init_schema()
    db = SessionLocal()
    try:
        admin = seed_default_admin(db)
    finally:
        db.close()
    if admin is None:
        print("An admin account already exists; nothing to do.", file=sys.stderr)


if __name__ == "__main__":
    main()
