"""
quiz_engine/database/session.py
Database engine, session factory and request-scoped session management
Fully compatible with FastAPI Depends()
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from quiz_engine.core.config import settings
import logging

# Configure logging for connection issues
logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live on a single shared connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "pool_pre_ping": True,        # Detects broken connections
        "pool_size": 20,              # Max concurrent connections
        "max_overflow": 40,           # Allow temporary overflow
        "pool_timeout": 30,           # Wait up to 30s for a connection
        "connect_args": {
            "connect_timeout": 10,
            "application_name": "quiz-engine-api"
        },
    }


# ------------------------------------------------------------------
# Create the SQLAlchemy engine
# ------------------------------------------------------------------
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,                       # Set to True only in deep debugging
    **_engine_kwargs(settings.DATABASE_URL)
)

# ------------------------------------------------------------------
# Session factory
# ------------------------------------------------------------------
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,           # Prevents attribute expiration after commit
)


# ------------------------------------------------------------------
# Dependency for FastAPI – yields a session and always closes it
# ------------------------------------------------------------------
def get_db():
    """
    FastAPI dependency: provides a database session per request
    Usage in routers:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.debug(f"Request failed, rolling back session: {e!r}")
        db.rollback()
        raise
    finally:
        db.close()
