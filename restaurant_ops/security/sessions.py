from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, Role
from restaurant_ops.config import Settings
from restaurant_ops.errors import error_body
from restaurant_ops.models import LocationSession, User, UserSession, UserSessionType


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def new_session_token() -> str:
    # 48 random bytes, 384 bits of entropy.
    return secrets.token_urlsafe(48)


def create_user_session(
    db: Session,
    settings: Settings,
    user_id: int,
    *,
    ip: str | None,
    user_agent: str | None,
    location_session: LocationSession | None = None,
    device_fingerprint: str | None = None,
    now: datetime | None = None,
) -> tuple[str, UserSession]:
    issued_at = now or _now()
    token = new_session_token()
    user_session = UserSession(
        session_token=token,
        user_id=user_id,
        session_type=UserSessionType.LOCATION_BOUND if location_session else UserSessionType.STANDARD,
        location_session_id=location_session.id if location_session else None,
        location_bound_restaurant_id=location_session.restaurant_id if location_session else None,
        device_fingerprint=device_fingerprint,
        ip_address=ip,
        user_agent=user_agent,
        last_seen_at=issued_at,
        expires_at=issued_at + timedelta(minutes=settings.session_ttl_minutes),
    )
    db.add(user_session)
    db.flush()
    return token, user_session


def revoke_user_session(db: Session, token: str) -> None:
    user_session = db.execute(select(UserSession).where(UserSession.session_token == token)).scalar_one_or_none()
    if not user_session or user_session.revoked_at is not None:
        return
    user_session.revoked_at = _now()


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(UserSession, User)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    user_session, user = row
    now = _now()
    if user_session.revoked_at is not None or user_session.expires_at <= now:
        return None
    if not user.is_active:
        return None

    user_session.last_seen_at = now
    return Principal(
        id=user.id,
        email=user.email,
        role=Role(user.role),
        restaurant_id=user.restaurant_id,
        full_name=user.full_name,
        active=user.is_active,
        session_id=user_session.id,
        location_session_id=user_session.location_session_id,
    )


def set_session_cookie(response: Response, settings: Settings, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        expires=expires_at,
        max_age=settings.session_ttl_minutes * 60,
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        settings = request.app.state.settings
        token = request.cookies.get(settings.session_cookie_name)
        request.state.principal = None
        if token:
            with request.app.state.session_factory() as db:
                try:
                    request.state.principal = load_principal_from_token(db, token)
                    db.commit()
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception('Session lookup failed for %s %s', request.method, request.url.path)
                    return JSONResponse(
                        error_body('Service unavailable', 'SERVICE_UNAVAILABLE'),
                        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    )

        return await call_next(request)
