import io
import os

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('JWT_SECRET_KEY', 'test-jwt-secret-key-for-testing-only')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dormguard.auth import jwt_handler  # noqa: E402
from dormguard.auth.security import hash_password  # noqa: E402
from dormguard.core import config  # noqa: E402
from dormguard.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from dormguard.main import app  # noqa: E402
from dormguard.models.user import Role, User  # noqa: E402
from dormguard.models.violation import Violation  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine, tables=[User.__table__, Violation.__table__])
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine, tables=[Violation.__table__, User.__table__])
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch: pytest.MonkeyPatch):
    directory = tmp_path / 'uploads'
    monkeypatch.setattr(config, 'UPLOAD_DIR', str(directory))
    return directory


@pytest.fixture
def client(session_factory, upload_dir):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    def _make_user(username: str, password: str = 'secret1', role: Role = Role.staff, display_name: str = '') -> User:
        with session_factory() as session:
            user = User(
                username=username,
                password_hash=hash_password(password),
                display_name=display_name,
                role=role,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    return _make_user


@pytest.fixture
def admin(make_user) -> User:
    return make_user('boss', 'admin-pass', Role.admin, '管理员')


@pytest.fixture
def staff(make_user) -> User:
    return make_user('duty', 'staff-pass', Role.staff, '值班老师')


def bearer(user: User) -> dict[str, str]:
    return {'Authorization': f'Bearer {jwt_handler.create_access_token(user)}'}


def csrf_headers(client: TestClient) -> dict[str, str]:
    # Any safe request mints a fresh token into the client's cookie jar.
    response = client.get('/health')
    return {config.CSRF_HEADER_NAME: response.cookies[config.CSRF_COOKIE_NAME]}


def image_bytes(image_format: str = 'PNG') -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', (4, 4), color=(200, 30, 30)).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
def csrf(client):
    return lambda: csrf_headers(client)


@pytest.fixture
def png_bytes() -> bytes:
    return image_bytes('PNG')
