"""Engine and session wiring.

The engine is built once by ``create_app`` and kept on ``app.state``; request
handlers get sessions through the ``get_db`` dependency.
"""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from restaurant_ops.config import Settings


def build_engine(settings: Settings) -> Engine:
    url = settings.database_url_normalized
    if url.startswith('sqlite'):
        kwargs: dict = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in url or url in {'sqlite://', 'sqlite+pysqlite://'}:
            kwargs['poolclass'] = StaticPool
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        return engine

    return create_engine(url, pool_size=10, max_overflow=20, pool_pre_ping=True, pool_recycle=3600)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
