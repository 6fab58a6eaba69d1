from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, assert_restaurant_scope, is_manager_role
from restaurant_ops.config import Settings
from restaurant_ops.models import LocationSession, Restaurant
from restaurant_ops.security.sessions import new_session_token
from restaurant_ops.services.audit_service import log_audit


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def bind_device(
    db: Session,
    settings: Settings,
    *,
    manager: Principal,
    restaurant_id: int,
    device_fingerprint: str,
    name: str,
    location: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> LocationSession:
    if not is_manager_role(manager.role):
        raise PermissionError('Only managers can bind a tablet to a location')
    assert_restaurant_scope(manager, restaurant_id)

    device_fingerprint = (device_fingerprint or '').strip()
    name = (name or '').strip()
    if not device_fingerprint:
        raise ValueError('Device fingerprint is required')
    if not name:
        raise ValueError('Location name is required')

    restaurant = db.execute(
        select(Restaurant).where(Restaurant.id == restaurant_id, Restaurant.is_active.is_(True))
    ).scalar_one_or_none()
    if not restaurant:
        raise LookupError('Restaurant not found')

    bound_at = now or _now()
    # At most one active binding per physical tablet.
    deactivated = db.execute(
        update(LocationSession)
        .where(LocationSession.tablet_device_id == device_fingerprint, LocationSession.is_active.is_(True))
        .values(is_active=False, deactivated_at=bound_at, updated_at=bound_at)
    ).rowcount

    location_session = LocationSession(
        restaurant_id=restaurant.id,
        tablet_device_id=device_fingerprint,
        session_token=new_session_token(),
        name=name,
        location=(location or '').strip() or None,
        ip_address=ip,
        user_agent=user_agent,
        bound_by_user_id=manager.id,
        is_active=True,
        expires_at=bound_at + timedelta(minutes=settings.location_session_ttl_minutes),
        created_at=bound_at,
        updated_at=bound_at,
    )
    db.add(location_session)
    db.flush()

    log_audit(
        db,
        restaurant_id=restaurant.id,
        user_id=manager.id,
        action='LOCATION_SESSION_BOUND',
        resource_type='location_session',
        resource_id=location_session.id,
        ip=ip,
        metadata={'name': location_session.name, 'replaced_sessions': deactivated},
    )
    logger.info(
        'Bound tablet to restaurant %s as location session %s (replaced %s)',
        restaurant.id,
        location_session.id,
        deactivated,
    )
    return location_session


def get_valid_location_session(
    db: Session,
    *,
    session_id: str,
    device_fingerprint: str,
    now: datetime | None = None,
) -> LocationSession | None:
    return db.execute(
        select(LocationSession).where(
            LocationSession.id == session_id,
            LocationSession.tablet_device_id == device_fingerprint,
            LocationSession.is_active.is_(True),
            LocationSession.expires_at > (now or _now()),
        )
    ).scalar_one_or_none()


def deactivate_location_session(
    db: Session,
    *,
    manager: Principal,
    session_id: str,
    ip: str | None = None,
) -> LocationSession:
    if not is_manager_role(manager.role):
        raise PermissionError('Only managers can deactivate a location session')

    location_session = db.execute(select(LocationSession).where(LocationSession.id == session_id)).scalar_one_or_none()
    if not location_session:
        raise LookupError('Location session not found')
    assert_restaurant_scope(manager, location_session.restaurant_id)

    if location_session.is_active:
        now = _now()
        location_session.is_active = False
        location_session.deactivated_at = now
        location_session.updated_at = now
        log_audit(
            db,
            restaurant_id=location_session.restaurant_id,
            user_id=manager.id,
            action='LOCATION_SESSION_DEACTIVATED',
            resource_type='location_session',
            resource_id=location_session.id,
            ip=ip,
        )
    return location_session


def list_active_location_sessions(db: Session, *, restaurant_id: int, now: datetime | None = None) -> list[LocationSession]:
    return db.execute(
        select(LocationSession)
        .where(
            LocationSession.restaurant_id == restaurant_id,
            LocationSession.is_active.is_(True),
            LocationSession.expires_at > (now or _now()),
        )
        .order_by(LocationSession.created_at.desc())
    ).scalars().all()


def serialize_location_session(location_session: LocationSession) -> dict:
    return {
        'id': location_session.id,
        'restaurant_id': location_session.restaurant_id,
        'name': location_session.name,
        'location': location_session.location,
        'is_active': location_session.is_active,
        'expires_at': location_session.expires_at.isoformat(),
        'last_staff_login_at': (
            location_session.last_staff_login_at.isoformat() if location_session.last_staff_login_at else None
        ),
        'last_staff_user_id': location_session.last_staff_user_id,
    }
