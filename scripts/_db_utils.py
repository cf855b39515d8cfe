"""Engine/session helpers for one-off scripts (no Flask app, no change hub)."""
from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy import create_engine

from app.civic.db import make_sessionmaker


def script_db_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///civic.db").strip()


def create_script_engine(db_url: str):
    return create_engine(db_url, future=True, pool_pre_ping=True)


@contextmanager
def script_session(db_url: str):
    engine = create_script_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
