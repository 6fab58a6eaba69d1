from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, Role, require_role
from restaurant_ops.config import Settings
from restaurant_ops.db import get_db
from restaurant_ops.dependencies import get_client_ip, get_settings, store_failure
from restaurant_ops.errors import NotFound, PermissionDenied, ValidationFailed
from restaurant_ops.schemas import BindLocationSessionRequest
from restaurant_ops.security.csrf import verify_csrf
from restaurant_ops.services.location_session_service import (
    bind_device,
    deactivate_location_session,
    list_active_location_sessions,
    serialize_location_session,
)

router = APIRouter(prefix='/location-sessions', tags=['location-sessions'])

_managers = require_role(Role.ADMIN, Role.MANAGER)


@router.post('', status_code=201)
def bind_location_session(
    body: BindLocationSessionRequest,
    request: Request,
    principal: Principal = Depends(_managers),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: None = Depends(verify_csrf),
):
    try:
        location_session = bind_device(
            db,
            settings,
            manager=principal,
            restaurant_id=body.restaurant_id or principal.restaurant_id,
            device_fingerprint=body.device_fingerprint,
            name=body.name,
            location=body.location,
            ip=get_client_ip(request),
            user_agent=request.headers.get('user-agent'),
        )
        db.commit()
    except PermissionError as exc:
        db.rollback()
        raise PermissionDenied(str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise ValidationFailed(str(exc)) from exc
    except LookupError as exc:
        db.rollback()
        raise NotFound(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'bind_location_session', restaurant_id=body.restaurant_id) from exc

    return {'success': True, 'locationSession': serialize_location_session(location_session)}


@router.get('')
def list_location_sessions(
    principal: Principal = Depends(_managers),
    db: Session = Depends(get_db),
):
    try:
        sessions = list_active_location_sessions(db, restaurant_id=principal.restaurant_id)
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'list_location_sessions') from exc
    return {'success': True, 'data': [serialize_location_session(item) for item in sessions]}


@router.post('/{session_id}/deactivate')
def deactivate(
    session_id: str,
    request: Request,
    principal: Principal = Depends(_managers),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        location_session = deactivate_location_session(
            db,
            manager=principal,
            session_id=session_id,
            ip=get_client_ip(request),
        )
        db.commit()
    except PermissionError as exc:
        db.rollback()
        raise PermissionDenied(str(exc)) from exc
    except LookupError as exc:
        db.rollback()
        raise NotFound(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'deactivate_location_session', session_id=session_id) from exc

    return {'success': True, 'locationSession': serialize_location_session(location_session)}
