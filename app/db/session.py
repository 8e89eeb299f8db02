"""Database session and engine management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from loguru import logger

from app.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Local development database; SQLite ignores pool sizing.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": 3600,
    }


database_url = str(settings.DATABASE_URL)
engine = create_engine(database_url, **_engine_options(database_url))

# Dispatch reads subscription rows after the campaign commits.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)


def get_db():
    """Yield a database session for one request."""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e))
        db.rollback()
        raise
    finally:
        db.close()
