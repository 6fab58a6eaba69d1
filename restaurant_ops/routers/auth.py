from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, get_current_principal
from restaurant_ops.config import Settings
from restaurant_ops.db import get_db
from restaurant_ops.dependencies import get_client_ip, get_settings, store_failure
from restaurant_ops.errors import AuthenticationFailed, ValidationFailed
from restaurant_ops.models import User, UserRole
from restaurant_ops.schemas import LoginRequest, StaffPinLoginRequest
from restaurant_ops.security.csrf import verify_csrf
from restaurant_ops.security.passwords import verify_password
from restaurant_ops.security.sessions import create_user_session, revoke_user_session, set_session_cookie
from restaurant_ops.services.audit_service import log_audit, log_auth_event
from restaurant_ops.services.location_session_service import serialize_location_session
from restaurant_ops.services.pin_auth_service import (
    PinAuthenticationError,
    authenticate_staff_pin,
    serialize_user,
    validate_pin_login_input,
)

router = APIRouter(prefix='/auth', tags=['auth'])

INVALID_CREDENTIALS = 'Invalid email or password'


def _failed_login(db: Session, *, email: str, reason: str, user_id: int | None, ip, user_agent) -> None:
    log_auth_event(
        db,
        attempted_identifier=email,
        success=False,
        failure_reason=reason,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()


@router.post('/login')
def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = body.email.strip().lower()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    try:
        user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not user:
            _failed_login(db, email=email, reason='UNKNOWN_EMAIL', user_id=None, ip=ip, user_agent=user_agent)
            raise AuthenticationFailed(INVALID_CREDENTIALS)
        if not user.is_active:
            _failed_login(db, email=email, reason='INACTIVE_USER', user_id=user.id, ip=ip, user_agent=user_agent)
            raise AuthenticationFailed(INVALID_CREDENTIALS)
        if user.role == UserRole.STAFF or not verify_password(body.password, user.password_hash):
            _failed_login(db, email=email, reason='BAD_PASSWORD', user_id=user.id, ip=ip, user_agent=user_agent)
            raise AuthenticationFailed(INVALID_CREDENTIALS)

        token, user_session = create_user_session(db, settings, user.id, ip=ip, user_agent=user_agent)
        user.last_login_at = datetime.now(tz=timezone.utc)
        log_auth_event(db, attempted_identifier=email, success=True, user_id=user.id, ip=ip, user_agent=user_agent)
        log_audit(
            db,
            restaurant_id=user.restaurant_id,
            user_id=user.id,
            action='AUTH_LOGIN',
            resource_type='user_session',
            resource_id=user_session.id,
            ip=ip,
        )
        db.commit()
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'login') from exc

    response = JSONResponse(
        {
            'success': True,
            'user': serialize_user(user),
            'expiresAt': user_session.expires_at.isoformat(),
        }
    )
    set_session_cookie(response, settings, token, user_session.expires_at)
    return response


@router.post('/staff-pin-login')
def staff_pin_login(
    body: StaffPinLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        validate_pin_login_input(body.pin, body.location_session_id, body.device_fingerprint)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc

    try:
        result = authenticate_staff_pin(
            db,
            settings,
            pin=body.pin,
            location_session_id=body.location_session_id,
            device_fingerprint=body.device_fingerprint,
            ip=get_client_ip(request),
            user_agent=request.headers.get('user-agent'),
        )
        db.commit()
    except PinAuthenticationError as exc:
        try:
            db.commit()
        except SQLAlchemyError as commit_exc:
            raise store_failure(db, commit_exc, 'staff_pin_login_audit') from commit_exc
        raise AuthenticationFailed(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'staff_pin_login', location_session_id=body.location_session_id) from exc

    response = JSONResponse(
        {
            'success': True,
            'user': serialize_user(result.user),
            'expiresAt': result.user_session.expires_at.isoformat(),
            'locationSession': serialize_location_session(result.location_session),
        }
    )
    set_session_cookie(response, settings, result.token, result.user_session.expires_at)
    return response


@router.post('/logout')
def logout(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: None = Depends(verify_csrf),
):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    try:
        if token:
            revoke_user_session(db, token)
        if principal:
            log_audit(
                db,
                restaurant_id=principal.restaurant_id,
                user_id=principal.id,
                action='AUTH_LOGOUT',
                resource_type='user_session',
                resource_id=principal.session_id,
                ip=get_client_ip(request),
            )
        db.commit()
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'logout') from exc

    response = JSONResponse({'success': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'email': principal.email,
        'role': principal.role.value,
        'full_name': principal.full_name,
        'restaurant_id': principal.restaurant_id,
        'location_session_id': principal.location_session_id,
    }
