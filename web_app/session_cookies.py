"""
Server-readable session storage: HttpOnly cookies holding the token pair so
server-rendered pages can see the signed-in session. Also the redirect-target
sanitiser used after sign-in.
"""
from fastapi import Request, Response

from web_app.config import (
    ACCESS_TOKEN_COOKIE,
    IS_PRODUCTION,
    REFRESH_TOKEN_COOKIE,
    SESSION_COOKIE_MAX_AGE,
)


def sanitize_app_path(candidate: str | None) -> str | None:
    """Only same-origin absolute paths: '/x' is kept, '//host', 'http://..' and relative paths are not."""
    if not candidate:
        return None
    if not candidate.startswith("/"):
        return None
    if candidate.startswith("//") or candidate.startswith("/\\"):
        return None
    return candidate


def write_session_cookies(response: Response, *, access_token: str, refresh_token: str) -> None:
    for key, value in ((ACCESS_TOKEN_COOKIE, access_token), (REFRESH_TOKEN_COOKIE, refresh_token)):
        response.set_cookie(
            key=key,
            value=value,
            max_age=SESSION_COOKIE_MAX_AGE,
            path="/",
            secure=IS_PRODUCTION,
            httponly=True,
            samesite="lax",
        )


def has_session_cookies(request: Request) -> bool:
    return bool(request.cookies.get(ACCESS_TOKEN_COOKIE)) and bool(request.cookies.get(REFRESH_TOKEN_COOKIE))
