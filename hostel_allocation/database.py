# hostel_allocation/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL (SQLite for local runs and tests).
All models are auto-imported here so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from hostel_allocation.config import settings


def build_engine(url: str, **overrides):
    """Create an engine with pool settings suited to the backend in use."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            # Busy timeout: writers wait on each other instead of failing at once
            connect_args={"check_same_thread": False, "timeout": settings.LOCK_TIMEOUT_MS / 1000},
            echo=settings.DB_ECHO,
            **overrides,
        )

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Hand transaction control to SQLAlchemy so "begin" below is the only BEGIN
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            # Take the write lock up front; a deferred read→write upgrade fails without waiting
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_engine(
        url,
        pool_pre_ping=True,          # Auto-reconnect if DB connection drops
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        echo=settings.DB_ECHO,       # Set True to log all SQL queries (debug only)
        **overrides,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from hostel_allocation.models.hostel import Hostel                  # noqa
    from hostel_allocation.models.room import Room                      # noqa
    from hostel_allocation.models.allocation import Allocation          # noqa
    from hostel_allocation.models.payment import AllocationPayment      # noqa

    Base.metadata.create_all(bind=bind or engine)
