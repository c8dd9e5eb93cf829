# venue_booking/infrastructure/db/session.py

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from venue_booking.config import get_settings


# -----------------------------
# Database URL
# -----------------------------
DATABASE_URL = get_settings().database_url


# -----------------------------
# Engine
# -----------------------------
engine: Engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    pool_pre_ping=True,
)


# -----------------------------
# Base Class for Models
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Session Factory
# -----------------------------
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


# -----------------------------
# Context Manager (Non-FastAPI usage)
# -----------------------------
@contextmanager
def get_db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
