import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dormguard.auth import jwt_handler
from dormguard.auth.dependencies import get_current_claims
from dormguard.auth.security import verify_password
from dormguard.core import config
from dormguard.database import get_db
from dormguard.models.user import Claims, User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = '用户名或密码错误'


class LoginRequest(BaseModel):
    username: str = ''
    password: str = ''


def authenticate(db: Session, username: str, password: str) -> User:
    username = username.strip()
    password = password.strip()
    if not username or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='用户名或密码不能为空')

    try:
        user = db.query(User).filter(User.username == username).first()
    except SQLAlchemyError as exc:
        logger.exception('Login lookup failed')
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='系统错误') from exc

    # Unknown user and wrong password share one message. The equality check keeps
    # the lookup case-sensitive on case-insensitive collations.
    if user is None or user.username != username or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)
    return user


@router.post('/login')
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, data.username, data.password)
    token = jwt_handler.create_access_token(user)

    response = JSONResponse(
        content={
            'token': token,
            'user': {
                'id': user.id,
                'username': user.username,
                'display_name': user.display_name,
                'role': user.role.value,
            },
        }
    )
    response.set_cookie(
        config.TOKEN_COOKIE_NAME,
        token,
        max_age=config.TOKEN_COOKIE_MAX_AGE,
        path='/',
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite='lax',
    )
    logger.info('User %s logged in', user.username)
    return response


@router.post('/logout')
def logout():
    # Stateless: the token itself stays valid until it expires.
    response = JSONResponse(content={'message': '已注销'})
    response.delete_cookie(
        config.TOKEN_COOKIE_NAME,
        path='/',
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite='lax',
    )
    return response


@router.get('/me')
def me(claims: Claims = Depends(get_current_claims)):
    return {
        'user': {
            'id': claims.user_id,
            'username': claims.username,
            'role': claims.role.value,
        }
    }
