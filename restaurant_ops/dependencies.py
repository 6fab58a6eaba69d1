import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.config import Settings
from restaurant_ops.errors import ServiceUnavailable


logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def store_failure(db: Session, exc: SQLAlchemyError, operation: str, **context) -> ServiceUnavailable:
    db.rollback()
    details = ' '.join(f'{key}={value}' for key, value in sorted(context.items()))
    logger.error('Data store failure during %s %s: %s', operation, details, exc.__class__.__name__, exc_info=exc)
    return ServiceUnavailable('Service unavailable')
