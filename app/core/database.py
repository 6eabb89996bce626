"""
Database Configuration for the License Eligibility Engine
SQLAlchemy engine and session factory, created lazily on first use
"""

from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings


@lru_cache()
def get_engine():
    """Create the database engine (SQLite gets a single shared in-process connection)"""
    settings = get_settings()

    if settings.DATABASE_URL.startswith("sqlite"):
        return create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DEBUG,
        )

    return create_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before use
        echo=settings.DEBUG,  # Log SQL queries in debug mode
    )


@lru_cache()
def get_session_factory():
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """
    Database dependency for FastAPI
    Provides a database session that automatically closes after request
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_database_connection():
    """Test database connection and return status (useful for health checks)"""
    try:
        db = get_session_factory()()
        db.execute(text("SELECT 1"))
        db.close()
        return True, "Database connection successful"
    except Exception as e:
        return False, f"Database connection failed: {str(e)}"


def create_tables(engine=None):
    """Create all tables registered on the declarative base"""
    from app.models.base import Base
    # Import all models to ensure they're registered with Base.metadata
    from app.models import person, application, transaction  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
