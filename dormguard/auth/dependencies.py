import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dormguard.auth import jwt_handler
from dormguard.core import config
from dormguard.models.user import Claims

security = HTTPBearer(auto_error=False)


def extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str:
    # Cookie wins over the Authorization header.
    token = request.cookies.get(config.TOKEN_COOKIE_NAME, "")
    if not token and credentials is not None and credentials.scheme.lower() == "bearer":
        token = credentials.credentials
    return token


def get_current_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Claims:
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="未登录")

    try:
        return jwt_handler.decode_access_token(token)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="登录已过期") from exc


def get_optional_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Claims | None:
    token = extract_token(request, credentials)
    if not token:
        return None
    try:
        return jwt_handler.decode_access_token(token)
    except jwt.InvalidTokenError:
        return None


def require_admin(claims: Claims = Depends(get_current_claims)) -> Claims:
    if not claims.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="权限不足")
    return claims
