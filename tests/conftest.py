# tests/conftest.py
"""Shared fixtures: a throwaway SQLite database per test, seeded with one hostel."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before hostel_allocation.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./hostel_allocation_dev.db")
os.environ.setdefault("API_KEY", "")
os.environ.setdefault("LOG_FILE", "")

import pytest
from sqlalchemy.orm import sessionmaker
from hostel_allocation.config import settings
from hostel_allocation.database import build_engine, create_tables
from tests.factories import add_hostel, add_room


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'hostel.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "CONTENTION_BACKOFF_SECONDS", 0.001)


@pytest.fixture
def seeded(db):
    """One active hostel: room 101 (2 beds) and room 102 (1 bed)."""
    hostel = add_hostel(db)
    r101 = add_room(db, hostel, "101", 2)
    r102 = add_room(db, hostel, "102", 1)
    ids = {"hostel_id": hostel.id, "room_101": r101.id, "room_102": r102.id}
    db.commit()
    return ids
