import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dormguard.auth.dependencies import require_admin
from dormguard.auth.security import hash_password
from dormguard.database import get_db
from dormguard.models.user import Claims, Role, User

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_USERNAME_LENGTH = 50


def _validate_password(value: str) -> str:
    # Login strips the password too, so both sides hash the same value.
    normalized = value.strip()
    if len(normalized) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
    return normalized


class CreateUserRequest(BaseModel):
    username: str
    password: str
    display_name: str | None = None
    role: Role

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Username is required.')
        if len(normalized) > MAX_USERNAME_LENGTH:
            raise ValueError(f'Username must be {MAX_USERNAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_password(value)

    @field_validator('display_name')
    @classmethod
    def validate_display_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized[:50] or None


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _validate_password(value)


class UserResponse(BaseModel):
    id: int
    username: str
    display_name: str
    role: Role
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def validate_user_id(user_id: int) -> int:
    if user_id < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='无效 ID')
    return user_id


@router.get('')
def list_users(claims: Claims = Depends(require_admin), db: Session = Depends(get_db)):
    del claims
    try:
        users = db.query(User).order_by(User.id.asc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Listing users failed')
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='查询失败') from exc

    return {'data': [UserResponse.model_validate(user) for user in users]}


@router.post('')
def create_user(
    data: CreateUserRequest,
    claims: Claims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        display_name=data.display_name or data.username,
        role=data.role,
    )
    try:
        db.add(user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='用户名已存在') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Creating user failed')
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='创建失败') from exc

    logger.info('User %s (%s) created by %s', data.username, data.role.value, claims.username)
    return {'message': '用户创建成功'}


@router.delete('/{user_id}')
def delete_user(
    user_id: int,
    claims: Claims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    validate_user_id(user_id)
    if user_id == claims.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='不能删除自己')

    try:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='用户不存在')
        db.delete(user)
        db.commit()
    except IntegrityError as exc:
        # Still referenced by violations.created_by.
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='该用户仍有违纪记录，无法删除') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Deleting user %d failed', user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='删除失败') from exc

    logger.info('User %d deleted by %s', user_id, claims.username)
    return {'message': '删除成功'}


@router.post('/{user_id}/reset-password')
def reset_password(
    user_id: int,
    data: ResetPasswordRequest,
    claims: Claims = Depends(require_admin),
    db: Session = Depends(get_db),
):
    validate_user_id(user_id)

    try:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='用户不存在')
        user.password_hash = hash_password(data.password)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Resetting password for user %d failed', user_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='重置失败') from exc

    logger.info('Password of user %d reset by %s', user_id, claims.username)
    return {'message': '密码重置成功'}
