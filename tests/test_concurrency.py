# tests/test_concurrency.py
"""Concurrent allocations against one database: the last bed goes to exactly one request."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import threading
import pytest
from sqlalchemy import func
from hostel_allocation.errors import AllocationError, CapacityExhausted, DuplicateAllocation
from hostel_allocation.models.allocation import Allocation
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from hostel_allocation.schemas.allocation import AllocationCreate
from hostel_allocation.services import allocation_engine
from tests.factories import ACTOR, YEAR


def allocate_in_own_session(session_factory, hostel_id, room_id, student_id, barrier=None):
    """Returns the allocation id or the AllocationError raised."""
    session = session_factory()
    try:
        if barrier:
            barrier.wait()
        body = AllocationCreate(student_id=student_id, academic_year=YEAR, hostel_id=hostel_id, room_id=room_id)
        return allocation_engine.allocate(session, body, ACTOR).id
    except AllocationError as exc:
        return exc
    finally:
        session.close()


def run_threads(session_factory, hostel_id, room_id, students):
    barrier = threading.Barrier(len(students))
    results = [None] * len(students)

    def worker(i, student):
        results[i] = allocate_in_own_session(session_factory, hostel_id, room_id, student, barrier)

    threads = [threading.Thread(target=worker, args=(i, s)) for i, s in enumerate(students)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


@pytest.fixture
def last_bed(db, seeded):
    """room_102 has exactly one bed. The fixture session is closed so it holds no lock."""
    db.close()
    return seeded


class TestLastBedRace:
    def test_two_threads_one_bed(self, session_factory, last_bed):
        results = run_threads(session_factory, last_bed["hostel_id"], last_bed["room_102"], ["s-1", "s-2"])

        successes = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if isinstance(r, AllocationError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], CapacityExhausted)

        check = session_factory()
        try:
            room = check.get(Room, last_bed["room_102"])
            hostel = check.get(Hostel, last_bed["hostel_id"])
            assert (room.occupied_beds, room.available_beds) == (1, 0)
            assert (hostel.occupied_beds, hostel.available_beds) == (1, 2)
            assert check.query(func.count(Allocation.id)).scalar() == 1
        finally:
            check.close()

    def test_many_threads_never_oversell(self, session_factory, last_bed):
        students = [f"s-{n}" for n in range(6)]
        results = run_threads(session_factory, last_bed["hostel_id"], last_bed["room_101"], students)

        assert sum(isinstance(r, str) for r in results) == 2
        assert all(isinstance(r, (str, CapacityExhausted)) for r in results)

        check = session_factory()
        try:
            room = check.get(Room, last_bed["room_101"])
            assert (room.occupied_beds, room.available_beds) == (2, 0)
        finally:
            check.close()

    def test_same_student_racing_itself_gets_one_allocation(self, session_factory, last_bed):
        results = run_threads(session_factory, last_bed["hostel_id"], last_bed["room_101"], ["s-1", "s-1"])

        assert sum(isinstance(r, str) for r in results) == 1
        assert sum(isinstance(r, DuplicateAllocation) for r in results) == 1

        check = session_factory()
        try:
            room = check.get(Room, last_bed["room_101"])
            assert room.occupied_beds == 1
        finally:
            check.close()

    @pytest.mark.asyncio
    async def test_gathered_requests_from_event_loop(self, session_factory, last_bed):
        results = await asyncio.gather(
            asyncio.to_thread(allocate_in_own_session, session_factory,
                              last_bed["hostel_id"], last_bed["room_102"], "s-1"),
            asyncio.to_thread(allocate_in_own_session, session_factory,
                              last_bed["hostel_id"], last_bed["room_102"], "s-2"),
        )

        assert sum(isinstance(r, str) for r in results) == 1
        assert sum(isinstance(r, CapacityExhausted) for r in results) == 1
