"""Staff PIN login on a tablet that a manager has bound to a restaurant.

Staff rosters are small, so the matching user is found by checking the PIN
against every active staff hash in stored order. PINs are not unique across
users; the first match wins. Any index added to speed this up must not be
derived from the PIN itself.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from restaurant_ops.config import Settings
from restaurant_ops.models import LocationSession, User, UserRole, UserSession
from restaurant_ops.security.passwords import verify_pin
from restaurant_ops.security.sessions import create_user_session
from restaurant_ops.services.audit_service import log_audit, log_auth_event
from restaurant_ops.services.location_session_service import get_valid_location_session


logger = logging.getLogger(__name__)

PIN_PATTERN = re.compile(r'[0-9]{4}')
PIN_MASK = '****'


class PinAuthenticationError(Exception):
    pass


class InvalidLocationSession(PinAuthenticationError):
    def __init__(self) -> None:
        super().__init__('Invalid or expired location session')


class InvalidPin(PinAuthenticationError):
    def __init__(self) -> None:
        super().__init__('Invalid PIN')


@dataclass(frozen=True)
class StaffLoginResult:
    user: User
    token: str
    user_session: UserSession
    location_session: LocationSession


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def validate_pin_login_input(pin, location_session_id, device_fingerprint) -> None:
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise ValueError('PIN must be exactly 4 digits')
    if not isinstance(location_session_id, str) or not location_session_id.strip():
        raise ValueError('Location session ID is required')
    if not isinstance(device_fingerprint, str) or not device_fingerprint.strip():
        raise ValueError('Device fingerprint is required')


def find_staff_by_pin(staff: Iterable[User], pin: str) -> User | None:
    for user in staff:
        if verify_pin(pin, user.pin_hash):
            return user
    return None


def _active_staff(db: Session, *, restaurant_id: int) -> list[User]:
    return db.execute(
        select(User)
        .where(
            User.restaurant_id == restaurant_id,
            User.role == UserRole.STAFF,
            User.is_active.is_(True),
            User.pin_hash.is_not(None),
        )
        .order_by(User.id.asc())
    ).scalars().all()


def authenticate_staff_pin(
    db: Session,
    settings: Settings,
    *,
    pin: str,
    location_session_id: str,
    device_fingerprint: str,
    ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> StaffLoginResult:
    validate_pin_login_input(pin, location_session_id, device_fingerprint)
    login_at = now or _now()

    location_session = get_valid_location_session(
        db,
        session_id=location_session_id,
        device_fingerprint=device_fingerprint,
        now=login_at,
    )
    if not location_session:
        log_auth_event(
            db,
            attempted_identifier=PIN_MASK,
            success=False,
            failure_reason='INVALID_LOCATION_SESSION',
            location_session_id=location_session_id[:36],
            ip=ip,
            user_agent=user_agent,
        )
        raise InvalidLocationSession()

    user = find_staff_by_pin(_active_staff(db, restaurant_id=location_session.restaurant_id), pin)
    if not user:
        log_auth_event(
            db,
            attempted_identifier=PIN_MASK,
            success=False,
            failure_reason='INVALID_PIN',
            restaurant_id=location_session.restaurant_id,
            location_session_id=location_session.id,
            ip=ip,
            user_agent=user_agent,
        )
        logger.info('Failed PIN login on location session %s', location_session.id)
        raise InvalidPin()

    token, user_session = create_user_session(
        db,
        settings,
        user.id,
        ip=ip,
        user_agent=user_agent,
        location_session=location_session,
        device_fingerprint=device_fingerprint,
        now=login_at,
    )
    user.last_login_at = login_at
    location_session.last_staff_login_at = login_at
    location_session.last_staff_user_id = user.id
    location_session.updated_at = login_at

    log_auth_event(
        db,
        attempted_identifier=user.email,
        success=True,
        user_id=user.id,
        restaurant_id=location_session.restaurant_id,
        location_session_id=location_session.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        restaurant_id=location_session.restaurant_id,
        user_id=user.id,
        action='AUTH_STAFF_PIN_LOGIN',
        resource_type='user_session',
        resource_id=user_session.id,
        ip=ip,
        metadata={'location_session_id': location_session.id, 'pin': PIN_MASK},
    )
    return StaffLoginResult(user=user, token=token, user_session=user_session, location_session=location_session)


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'role': user.role.value,
        'full_name': user.full_name,
        'full_name_fr': user.full_name_fr,
        'position': user.position,
        'restaurant_id': user.restaurant_id,
    }
