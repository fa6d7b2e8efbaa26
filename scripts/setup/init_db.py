# scripts/setup/init_db.py
"""
Initialize database: creates all tables and resyncs hostel counters.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from hostel_allocation.database import SessionLocal, create_tables, engine
from hostel_allocation.config import settings
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.services.capacity_store import sync_hostel_counters
from sqlalchemy import inspect, text


def main():
    print("Hostel Allocation DB Initialization")
    print("=" * 40)
    print(f"Database: {engine.url.render_as_string(hide_password=True)}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("Database connection OK")
    except Exception as e:
        print(f"Cannot connect to database: {e}")
        if not settings.is_sqlite:
            print("\nMake sure PostgreSQL is running:")
            print("  sudo systemctl start postgresql")
        sys.exit(1)

    print("\nCreating tables...")
    create_tables()

    tables = sorted(inspect(engine).get_table_names())
    print(f"\nTables in database ({len(tables)} total):")
    for t in tables:
        print(f"   - {t}")

    # Existing deployments may carry counters edited by hand
    db = SessionLocal()
    try:
        hostel_ids = [row[0] for row in db.query(Hostel.id).all()]
        for hostel_id in hostel_ids:
            sync_hostel_counters(db, hostel_id)
        db.commit()
        print(f"\nResynced bed counters for {len(hostel_ids)} hostel(s)")
    finally:
        db.close()

    print("\nDatabase ready! You can now start the backend:")
    print(f"   uvicorn hostel_allocation.main:app --host {settings.BACKEND_HOST} --port {settings.BACKEND_PORT} --reload")


if __name__ == "__main__":
    main()
