"""Database engine setup.

The reporting core only reads. Sessions are short lived: the data access layer
opens one per query so concurrent sub-queries never share a connection.
"""

from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from insights.core.config import settings

raw_url = settings.DATABASE_URL or "sqlite:///./storage/dev.db"

if raw_url.startswith("postgresql"):
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,  # each dashboard call may hold up to nine connections at once
        pool_recycle=3600,
        pool_pre_ping=True,
    )
else:
    if raw_url.startswith("sqlite:///./"):
        Path(raw_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(raw_url, future=True, connect_args={"check_same_thread": False})

SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

