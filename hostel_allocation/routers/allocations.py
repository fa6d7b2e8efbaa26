# hostel_allocation/routers/allocations.py
"""Allocation lifecycle endpoints. Every write goes through allocation_engine."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from hostel_allocation.database import get_db
from hostel_allocation.dependencies import get_actor_id
from hostel_allocation.models.enums import AllocationStatus
from hostel_allocation.schemas.allocation import (
    AllocationCreate, AllocationOut, CheckInRequest, CheckOutRequest, OverdueSweepRequest,
    PaymentCreate, SuspendRequest, TransferRequest,
)
from hostel_allocation.services import allocation_engine

router = APIRouter()


@router.post("/allocations", response_model=AllocationOut, status_code=201, summary="Allocate a bed")
def allocate(body: AllocationCreate, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """
    Omit room_id to let the engine pick the room with the most free beds
    (optionally of room_type). 409 on DuplicateAllocation / CapacityExhausted.
    """
    return allocation_engine.allocate(db, body, actor_id)


@router.get("/allocations", response_model=list[AllocationOut])
def list_allocations(student_id: Optional[str] = None, hostel_id: Optional[str] = None,
                     room_id: Optional[str] = None, status: Optional[AllocationStatus] = None,
                     academic_year: Optional[str] = None, limit: int = 100, offset: int = 0,
                     db: Session = Depends(get_db)):
    return allocation_engine.list_allocations(db, student_id, hostel_id, room_id, status,
                                              academic_year, limit, offset)


@router.get("/allocations/{allocation_id}", response_model=AllocationOut)
def get_allocation(allocation_id: str, db: Session = Depends(get_db)):
    return allocation_engine.get_allocation(db, allocation_id)


@router.post("/allocations/{allocation_id}/check-in", response_model=AllocationOut)
def check_in(allocation_id: str, body: CheckInRequest, db: Session = Depends(get_db),
             actor_id: str = Depends(get_actor_id)):
    return allocation_engine.check_in(db, allocation_id, actor_id, body.timestamp, body.notes)


@router.post("/allocations/{allocation_id}/check-out", response_model=AllocationOut)
def check_out(allocation_id: str, body: CheckOutRequest, db: Session = Depends(get_db),
              actor_id: str = Depends(get_actor_id)):
    return allocation_engine.check_out(db, allocation_id, actor_id, body.timestamp, body.notes, body.mode)


@router.post("/allocations/{allocation_id}/transfer", response_model=AllocationOut)
def transfer(allocation_id: str, body: TransferRequest, db: Session = Depends(get_db),
             actor_id: str = Depends(get_actor_id)):
    return allocation_engine.transfer(db, allocation_id, body.new_hostel_id, body.new_room_id, body.reason,
                                      body.approved_by, actor_id, body.new_bed_number)


@router.post("/allocations/{allocation_id}/suspend", response_model=AllocationOut)
def suspend(allocation_id: str, body: SuspendRequest, db: Session = Depends(get_db),
            actor_id: str = Depends(get_actor_id)):
    return allocation_engine.suspend(db, allocation_id, body.reason, actor_id)


@router.post("/allocations/{allocation_id}/reactivate", response_model=AllocationOut)
def reactivate(allocation_id: str, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    return allocation_engine.reactivate(db, allocation_id, actor_id)


@router.post("/allocations/{allocation_id}/payments", response_model=AllocationOut)
def record_payment(allocation_id: str, body: PaymentCreate, db: Session = Depends(get_db),
                   actor_id: str = Depends(get_actor_id)):
    return allocation_engine.record_payment(db, allocation_id, body.amount, actor_id, body.payment_date)


@router.post("/allocations/overdue-sweep", summary="Mark overdue balances")
def overdue_sweep(body: OverdueSweepRequest, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """Run from a scheduler once a day; safe to repeat."""
    changed = allocation_engine.mark_overdue_payments(db, actor_id, body.as_of, body.school_id)
    return {"marked_overdue": len(changed), "allocation_ids": changed}
