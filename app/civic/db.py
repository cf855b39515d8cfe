from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.civic.errors import StoreError
from app.civic.realtime import ChangeHub

logger = logging.getLogger(__name__)


def _engine_options(db_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        options.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    return options


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    # Membership and profile cascades rely on FK enforcement.
    @event.listens_for(engine, "connect")
    def _fk_pragma(dbapi_connection, connection_record):  # type: ignore[no-redef]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    """
    Build the engine, the session factory and the change hub, and park them in
    app.extensions. Every session made by the factory announces committed row
    changes through the hub.
    """
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **_engine_options(db_url))
    if db_url.startswith("sqlite"):
        _enable_sqlite_foreign_keys(engine)

    sm = make_sessionmaker(engine)
    hub = ChangeHub()
    hub.install(sm)

    app.extensions.update(
        sqlalchemy_engine=engine,
        sqlalchemy_sessionmaker=sm,
        change_hub=hub,
    )
    logger.debug("Database initialised (%s)", engine.url.render_as_string(hide_password=True))


def change_hub(app: Flask | None = None) -> ChangeHub:
    return (app or current_app).extensions["change_hub"]


def db_session() -> Session:
    """Session bound to the current request; created on first use."""
    s = g.get("db_session")
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is None:
        return
    try:
        s.close()
    except SQLAlchemyError:
        logger.warning("Closing request session failed", exc_info=True)


def commit_or_raise(s: Session, what: str) -> None:
    """Commit the unit of work; on failure roll it back entirely and raise StoreError."""
    try:
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        raise StoreError(f"{what} failed: {e.__class__.__name__}") from e


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Session for scripts and tests: commit on success, roll back on error."""
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
