from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from dormguard.auth import jwt_handler
from dormguard.core import config
from dormguard.models.user import Claims, Role


def _user(user_id: int = 7, username: str = 'duty', role: Role = Role.staff):
    return SimpleNamespace(id=user_id, username=username, role=role)


@pytest.mark.parametrize('role', [Role.admin, Role.staff])
def test_token_round_trips_identity_and_role(role: Role) -> None:
    token = jwt_handler.create_access_token(_user(role=role))

    claims = jwt_handler.decode_access_token(token)

    assert claims == Claims(user_id=7, username='duty', role=role)


def test_token_expires_after_twenty_four_hours_by_default() -> None:
    token = jwt_handler.create_access_token(_user())

    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    lifetime = payload['exp'] - payload['iat']

    assert config.JWT_EXPIRES_MINUTES == 24 * 60
    assert lifetime == pytest.approx(24 * 60 * 60, abs=1)


def test_expired_token_is_rejected() -> None:
    token = jwt_handler.create_access_token(_user(), expires_delta=timedelta(seconds=-1))

    with pytest.raises(jwt.ExpiredSignatureError):
        jwt_handler.decode_access_token(token)


def test_token_signed_with_another_secret_is_rejected() -> None:
    payload = {
        'sub': '1',
        'username': 'mallory',
        'role': 'admin',
        'exp': datetime.now(timezone.utc) + timedelta(hours=1),
    }
    token = jwt.encode(payload, 'some-other-secret-of-decent-length!', algorithm='HS256')

    with pytest.raises(jwt.InvalidSignatureError):
        jwt_handler.decode_access_token(token)


def test_unknown_role_claim_is_rejected() -> None:
    payload = {
        'sub': '1',
        'username': 'mallory',
        'role': 'superuser',
        'exp': datetime.now(timezone.utc) + timedelta(hours=1),
    }
    token = jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(jwt.InvalidTokenError):
        jwt_handler.decode_access_token(token)


def test_garbage_token_is_rejected() -> None:
    with pytest.raises(jwt.InvalidTokenError):
        jwt_handler.decode_access_token('not-a-token')
