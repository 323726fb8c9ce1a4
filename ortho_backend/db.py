"""
Orthodontic Practice Backend - Database Connections & Session Management

Two engines live here:
    engine         - the practice database (Postgres) behind the ORM models
    legacy_engine  - the legacy booking system (MySQL), read with raw SQL
"""
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool
from contextlib import contextmanager
import logging
from .config import DATABASE_URL, LEGACY_DATABASE_URL

logger = logging.getLogger("ortho.db")


def _engine_options(url: str) -> dict:
    """Pool settings per backend; SQLite URLs get a single shared connection."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "poolclass": QueuePool,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 3600,
    }


# Create engines with connection pooling
engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
legacy_engine = create_engine(LEGACY_DATABASE_URL, echo=False, **_engine_options(LEGACY_DATABASE_URL))

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False
)

# Base class for ORM models
Base = declarative_base()


def get_db():
    """
    Dependency for FastAPI routes
    Provides a database session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context():
    """
    Context manager for direct database access
    Usage:
        with get_db_context() as db:
            # perform operations
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.error(f"Database context error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Initialize database - create all tables
    """
    # Register models on Base.metadata
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_connection():
    """
    Verify database connectivity
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False


def check_legacy_connection():
    """
    Verify connectivity to the legacy booking database
    """
    try:
        with legacy_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Legacy booking database connection successful")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Legacy booking database connection failed: {e}")
        return False
