"""Application factory.

Run with ``uvicorn --factory restaurant_ops.main:create_app``.
"""

import logging

from fastapi import FastAPI

from restaurant_ops.config import Settings
from restaurant_ops.db import build_engine, build_session_factory
from restaurant_ops.errors import install_error_handlers
from restaurant_ops.logging_setup import configure_logging
from restaurant_ops.routers import auth, equipment, franchise, location_sessions
from restaurant_ops.security.csrf import install_csrf_cookie_middleware
from restaurant_ops.security.headers import install_security_headers
from restaurant_ops.security.sessions import install_auth_session_middleware


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(title='Restaurant Operations API')
    app.state.settings = settings
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)

    install_error_handlers(app)
    install_security_headers(app)
    install_csrf_cookie_middleware(app)
    install_auth_session_middleware(app)

    app.include_router(auth.router)
    app.include_router(location_sessions.router)
    app.include_router(equipment.router)
    app.include_router(franchise.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok', 'environment': settings.environment}

    logger.info('Application configured for %s environment', settings.environment)
    return app
