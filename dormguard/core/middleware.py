"""
HTTP middleware: security headers, CSRF double-submit check and access logging.
"""

import logging
import secrets
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from dormguard.core import config

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
CSRF_FORM_FIELD = "csrf_token"
# Room for the text fields sent alongside a full-size photo.
FORM_FIELDS_MARGIN_BYTES = 64 * 1024

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def max_request_bytes() -> int:
    return config.MAX_UPLOAD_BYTES + FORM_FIELDS_MARGIN_BYTES


def declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length", "")
    return int(raw) if raw.isascii() and raw.isdigit() else None


def tokens_match(cookie_token: str, submitted_token: str) -> bool:
    if not cookie_token or not submitted_token:
        return False
    return secrets.compare_digest(cookie_token.encode("utf-8"), submitted_token.encode("utf-8"))


async def read_submitted_token(request: Request) -> str:
    header_token = request.headers.get(config.CSRF_HEADER_NAME, "")
    if header_token:
        return header_token

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(FORM_CONTENT_TYPES):
        return ""

    # Only a body of known, bounded size is buffered here.
    if declared_length(request) is None:
        return ""

    # Cache the raw body first so the route can still parse the form downstream.
    await request.body()
    form = await request.form()
    try:
        value = form.get(CSRF_FORM_FIELD, "")
        return value if isinstance(value, str) else ""
    finally:
        await form.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie protection.

    Safe requests get a fresh token in a readable cookie (also exposed on
    ``request.state.csrf_token`` for templates). Unsafe requests must echo the
    cookie value back in the ``X-CSRF-Token`` header or a ``csrf_token`` form field.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method in SAFE_METHODS:
            token = generate_csrf_token()
            request.state.csrf_token = token
            response = await call_next(request)
            response.set_cookie(
                config.CSRF_COOKIE_NAME,
                token,
                max_age=config.CSRF_COOKIE_MAX_AGE,
                path="/",
                secure=config.COOKIE_SECURE,
                httponly=False,
                samesite="lax",
            )
            return response

        length = declared_length(request)
        if length is not None and length > max_request_bytes():
            return JSONResponse(status_code=413, content={"error": "请求体过大"})

        cookie_token = request.cookies.get(config.CSRF_COOKIE_NAME, "")
        if not cookie_token:
            return JSONResponse(status_code=403, content={"error": "缺少 CSRF token"})

        submitted_token = await read_submitted_token(request)
        if not tokens_match(cookie_token, submitted_token):
            logger.warning("CSRF check failed for %s %s", request.method, request.url.path)
            return JSONResponse(status_code=403, content={"error": "CSRF 验证失败"})

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response
