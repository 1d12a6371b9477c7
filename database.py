# database.py
import logging
from contextlib import asynccontextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = DATABASE_URL

# The engine is the main entry point to the database for SQLAlchemy
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # SQLite is used for local runs and tests; one shared connection keeps in-memory data alive
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, pool_size=20, max_overflow=30, pool_timeout=30)

# Each instance of SessionLocal will be a new database session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base will be used to create our database models (the tables)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@asynccontextmanager
async def get_async_db() -> Session:
    """
    An async context manager to handle database sessions automatically.
    Used by background jobs that run outside a request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def initialize_database() -> None:
    """Creates all tables and indexes. Safe to call repeatedly."""
    import models  # noqa: F401  registers the tables on Base.metadata

    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.error("Failed to initialize database", exc_info=True)
        raise
    logger.info("Database initialized successfully")
