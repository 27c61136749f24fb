import logging
import time
from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from dormguard.core import config

logger = logging.getLogger(__name__)


def build_database_url() -> str | URL:
    if config.DATABASE_URL:
        return config.DATABASE_URL
    return URL.create(
        "mysql+pymysql",
        username=config.DB_USER,
        password=config.DB_PASSWORD,
        host=config.DB_HOST,
        port=config.DB_PORT,
        database=config.DB_NAME,
        query={"charset": "utf8mb4"},
    )


def _engine_options(url: str | URL) -> dict:
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_recycle": config.DB_POOL_RECYCLE_SECONDS,
        "pool_pre_ping": True,
    }


def enable_sqlite_foreign_keys(bind: Engine) -> None:
    """SQLite leaves foreign keys unenforced unless every connection opts in."""
    if bind.dialect.name != "sqlite":
        return

    @event.listens_for(bind, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


DATABASE_URL = build_database_url()

engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_violation_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def wait_for_database(
    attempts: int = config.DB_CONNECT_ATTEMPTS,
    interval: float = config.DB_CONNECT_INTERVAL_SECONDS,
    bind=None,
) -> None:
    bind = bind or engine
    last_error: SQLAlchemyError | None = None

    for attempt in range(1, attempts + 1):
        try:
            with bind.connect() as connection:
                connection.execute(text('SELECT 1'))
            logger.info('Database connected successfully')
            return
        except SQLAlchemyError as exc:
            last_error = exc
            logger.warning('Waiting for database... (%d/%d)', attempt, attempts)
            if attempt < attempts:
                time.sleep(interval)

    raise RuntimeError(
        f'Database not reachable after {attempts} attempts. Check DB_HOST and credentials.'
    ) from last_error


def ensure_violation_schema(bind=None) -> None:
    global _violation_schema_checked

    if _violation_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _violation_schema_checked:
            return

        inspector = inspect(bind)

        if 'violations' not in inspector.get_table_names():
            _violation_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('violations')}
        migration_steps = [
            ('department', "ALTER TABLE violations ADD COLUMN department VARCHAR(30) NOT NULL DEFAULT ''"),
            ('inspector', "ALTER TABLE violations ADD COLUMN inspector VARCHAR(100) NOT NULL DEFAULT ''"),
            ('photo_path', "ALTER TABLE violations ADD COLUMN photo_path VARCHAR(500) NOT NULL DEFAULT ''"),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    logger.info('Adding missing column violations.%s', column_name)
                    connection.execute(text(statement))

        _violation_schema_checked = True


def init_schema(bind=None) -> None:
    # Import for side effects: registers the tables on Base.metadata.
    from dormguard.models import user, violation  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_violation_schema(bind)
    logger.info('Database migration completed')
