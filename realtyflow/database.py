"""
Database configuration and session management.
Uses SQLAlchemy; SQLite for development, PostgreSQL for production.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator
from realtyflow.config import config

if config.DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        config.DATABASE_URL,
        connect_args={"check_same_thread": False}  # SQLite specific
    )
else:
    # PostgreSQL
    engine = create_engine(
        config.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
        echo=config.DEBUG  # Log SQL queries in debug mode
    )

# Every request gets one session; the session's transaction is the atomic
# unit the booking flow commits or rolls back as a whole.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.

    Usage in FastAPI:
        @router.get("/leads")
        def list_leads(db: Session = Depends(get_db)):
            return db.query(DBLead).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database - create all tables.
    Should be called on application startup.
    """
    # Import models so they register on Base.metadata
    from realtyflow import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
