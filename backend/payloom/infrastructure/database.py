"""
Database configuration - SQLAlchemy 2.x (sync)

Services receive a Session explicitly; nothing in payloom talks to a module
level session.
"""

from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from payloom.infrastructure.settings import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local runs) has no server-side pool to size
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for escrow models"""
    pass


def get_db():
    """FastAPI dependency: one session per request, closed afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping_db(db: Session) -> Optional[str]:
    """None when the database answers, else the error text"""
    try:
        db.execute(text("SELECT 1"))
        return None
    except SQLAlchemyError as e:
        db.rollback()
        return str(e)
