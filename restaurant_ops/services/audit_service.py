from __future__ import annotations

from sqlalchemy.orm import Session

from restaurant_ops.models import AuditLog, AuthEvent


def log_auth_event(
    db: Session,
    *,
    attempted_identifier: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    restaurant_id: int | None = None,
    location_session_id: str | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_identifier=attempted_identifier,
            success=success,
            failure_reason=failure_reason,
            user_id=user_id,
            restaurant_id=restaurant_id,
            location_session_id=location_session_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    restaurant_id: int | None,
    user_id: int | None,
    action: str,
    resource_type: str,
    resource_id: str | int | None = None,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            restaurant_id=restaurant_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip=ip,
            meta=metadata or {},
        )
    )
