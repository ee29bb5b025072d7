# nexus_search/db.py
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from nexus_search import monitoring

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nexus_search.db")


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def reconfigure(url: str):
    """Reconfigure the DB engine and session factory at runtime (for tests)."""
    global engine, SessionLocal
    engine = _make_engine(url)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    # Create tables if they don't exist
    try:
        import nexus_search.models as models  # noqa: F401
        Base.metadata.create_all(bind=engine)
    except Exception:
        # Don't crash the app at import time; the first store call will surface the error
        monitoring.logger.exception("DB init failed", extra={"database_url": DATABASE_URL})


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session that commits on success and rolls back (then re-raises) on error."""
    db: Session = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
