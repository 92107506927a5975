# drive/models/database.py
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from drive.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _create_engine(url: str):
    if url.startswith("sqlite"):
        # Requests are served from a thread pool
        logger.info("Using local SQLite database.")
        return create_engine(url, connect_args={"check_same_thread": False})
    logger.info("Using database at %s", url.split("@")[-1])
    return create_engine(url, pool_pre_ping=True)


engine = _create_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with what every backend stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# DB session dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
