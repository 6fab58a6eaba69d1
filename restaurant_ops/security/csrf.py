"""Double-submit CSRF protection for cookie-authenticated JSON calls.

Clients read the ``csrf_token`` cookie (or the ``X-CSRF-Token`` response
header) and echo it back in the ``X-CSRF-Token`` request header.
"""

from __future__ import annotations

import secrets

from fastapi import Request

from restaurant_ops.errors import PermissionDenied


CSRF_COOKIE_NAME = 'csrf_token'
CSRF_HEADER_NAME = 'x-csrf-token'
SAFE_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS'})


def install_csrf_cookie_middleware(app) -> None:
    @app.middleware('http')
    async def issue_csrf_token(request: Request, call_next):
        existing = request.cookies.get(CSRF_COOKIE_NAME)
        token = existing or secrets.token_urlsafe(24)
        request.state.csrf_token = token

        response = await call_next(request)
        response.headers[CSRF_HEADER_NAME] = token
        if existing != token:
            settings = request.app.state.settings
            response.set_cookie(
                key=CSRF_COOKIE_NAME,
                value=token,
                httponly=False,
                secure=settings.session_cookie_secure,
                samesite=settings.session_cookie_samesite,
            )
        return response


async def verify_csrf(request: Request) -> None:
    if request.method in SAFE_METHODS or not request.app.state.settings.csrf_enabled:
        return

    sent = request.headers.get(CSRF_HEADER_NAME)
    expected = request.cookies.get(CSRF_COOKIE_NAME)
    if not sent or not expected or not secrets.compare_digest(sent, expected):
        raise PermissionDenied('Invalid CSRF token', code='CSRF_FAILED')
