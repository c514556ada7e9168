# backend/fundledger/database.py
"""
Database connection and session management.

This module configures SQLAlchemy with:
- Connection pooling for production performance
- Environment-aware settings (test vs production)
- Health check capabilities

Pool Configuration (configurable via environment variables):
- DB_POOL_SIZE: Persistent connections (default: 5)
- DB_POOL_MAX_OVERFLOW: Burst capacity (default: 10)
- DB_POOL_RECYCLE: Connection lifetime (default: 3600s)
- DB_POOL_PRE_PING: Health checks (default: True)
"""

import logging
from collections.abc import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

from .config import settings

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    """
    Create SQLAlchemy engine with environment-appropriate configuration.

    Configuration varies by database type:
    - SQLite (test only): StaticPool so an in-memory database is shared
    - PostgreSQL: QueuePool with configurable connection pooling
    """
    if settings.is_sqlite:
        # check_same_thread=False: FastAPI runs sync endpoints in a threadpool
        logger.info("Configuring SQLite database (test mode)")
        return create_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    logger.info(
        "Configuring PostgreSQL database pool: size=%s, max_overflow=%s, recycle=%ss, pre_ping=%s",
        settings.db_pool_size,
        settings.db_pool_max_overflow,
        settings.db_pool_recycle,
        settings.db_pool_pre_ping,
    )

    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=30,
        echo=settings.debug,
    )


engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Yields:
        Session: A SQLAlchemy database session that auto-closes after use.

    Usage:
        @router.get("/items")
        def get_items(db: Annotated[Session, Depends(get_db)]):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from .models import Base

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def check_database_health() -> dict:
    """
    Check database connectivity and pool status.

    Returns:
        dict: Health status with connection info

    Used by the readiness endpoint to verify database availability.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            conn.commit()

        pool_status = {
            "pool_size": engine.pool.size(),
            "checked_in": engine.pool.checkedin(),
            "checked_out": engine.pool.checkedout(),
            "overflow": engine.pool.overflow(),
        } if isinstance(engine.pool, QueuePool) else {}

        return {
            "status": "healthy",
            "database": "sqlite" if settings.is_sqlite else "postgresql",
            "pool": pool_status,
        }
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return {
            "status": "unhealthy",
            "error": str(e),
        }
