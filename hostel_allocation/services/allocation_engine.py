# hostel_allocation/services/allocation_engine.py
"""
Allocation Engine: placement of students into beds and the allocation lifecycle.

  allocate  →  check_in  →  transfer / suspend ⇄ reactivate  →  check_out

Every operation runs through run_with_retry(), so the capacity counters, the
ledger row and the payment log change together or not at all. Allocation rows
carry an optimistic-lock version; a lost race is retried a bounded number of
times and then surfaces as Contention.

State machine (status):
  active     → terminated (check_out), suspended, active (transfer)
  suspended  → active (reactivate), suspended (new reason)
  terminated, checked_out → terminal
"""

import re
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from hostel_allocation.errors import (
    CapacityExhausted, DuplicateAllocation, InvalidAmount, InvalidTransition, NotFound, ValidationError,
)
from hostel_allocation.models.allocation import Allocation
from hostel_allocation.models.enums import (
    AllocationStatus, CheckInStatus, CheckOutMode, CheckOutStatus, HostelStatus, PaymentStatus, RoomType,
    LIVE_ALLOCATION_STATUSES, RESERVABLE_ROOM_STATUSES,
)
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.payment import AllocationPayment
from hostel_allocation.models.room import Room
from hostel_allocation.schemas.allocation import AllocationCreate, TransferRecord
from hostel_allocation.services import capacity_store
from hostel_allocation.services.capacity_store import Reservation
from hostel_allocation.services.unit_of_work import run_with_retry
from hostel_allocation.utils.logger import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

_CHECK_OUT_STATUS = {
    CheckOutMode.NORMAL: CheckOutStatus.COMPLETED,
    CheckOutMode.EARLY: CheckOutStatus.EARLY,
    CheckOutMode.FORCED: CheckOutStatus.FORCED,
}


def _money(value) -> Decimal:
    return Decimal(value or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def _natural_key(room_number: str):
    """'2' sorts before '10'; 'A-3' before 'A-12'."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", room_number)]


def derive_payment_status(total_due: Decimal, paid: Decimal, current: str = PaymentStatus.PENDING.value) -> str:
    """
    paid when nothing is outstanding, partial when something but not everything
    has been paid, otherwise the current pending/overdue status is kept.
    Overdue is only ever set by mark_overdue_payments().
    """
    if max(Decimal("0"), total_due - paid) == 0:
        return PaymentStatus.PAID.value
    if paid > 0:
        return PaymentStatus.PARTIAL.value
    return current if current == PaymentStatus.OVERDUE.value else PaymentStatus.PENDING.value


def _is_duplicate_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_live_allocation_per_student_year" in message or "hostel_allocations.student_id" in message


# ── Lookups ──────────────────────────────────────────────────────────────────

def get_allocation(db: Session, allocation_id: str) -> Allocation:
    allocation = db.get(Allocation, allocation_id)
    if not allocation:
        raise NotFound("Allocation", allocation_id)
    return allocation


def _load_for_update(db: Session, allocation_id: str) -> Allocation:
    """Fresh copy of the row, locked FOR UPDATE where the database supports it."""
    allocation = db.get(Allocation, allocation_id, with_for_update=True, populate_existing=True)
    if not allocation:
        raise NotFound("Allocation", allocation_id)
    return allocation


def list_allocations(db: Session, student_id: Optional[str] = None, hostel_id: Optional[str] = None,
                     room_id: Optional[str] = None, status: Optional[AllocationStatus] = None,
                     academic_year: Optional[str] = None, limit: int = 100, offset: int = 0) -> list[Allocation]:
    q = db.query(Allocation)
    if student_id:
        q = q.filter(Allocation.student_id == student_id)
    if hostel_id:
        q = q.filter(Allocation.hostel_id == hostel_id)
    if room_id:
        q = q.filter(Allocation.room_id == room_id)
    if status:
        q = q.filter(Allocation.status == status.value)
    if academic_year:
        q = q.filter(Allocation.academic_year == academic_year)
    return q.order_by(Allocation.allocation_date.desc()).offset(offset).limit(limit).all()


def _ensure_no_live_allocation(db: Session, student_id: str, academic_year: str):
    existing = db.query(Allocation).filter(
        Allocation.student_id == student_id,
        Allocation.academic_year == academic_year,
        Allocation.status.in_(LIVE_ALLOCATION_STATUSES),
    ).first()
    if existing:
        raise DuplicateAllocation(student_id, academic_year, existing.id)


# ── Allocate ─────────────────────────────────────────────────────────────────

def _reserve_best_room(db: Session, hostel: Hostel, room_type: Optional[RoomType]) -> Reservation:
    """
    Pick the room with the most free beds (lowest room number on ties) and
    reserve it. If another request takes the last bed first, fall through to
    the next candidate.
    """
    if hostel.status != HostelStatus.ACTIVE.value:
        raise CapacityExhausted(hostel.id, reason=f"hostel_{hostel.status}")

    q = db.query(Room).filter(
        Room.hostel_id == hostel.id,
        Room.available_beds > 0,
        Room.status.in_(RESERVABLE_ROOM_STATUSES),
    )
    if room_type:
        q = q.filter(Room.room_type == room_type.value)
    candidates = sorted(q.all(), key=lambda r: (-r.available_beds, _natural_key(r.room_number)))

    for room in candidates:
        try:
            return capacity_store.reserve(db, hostel.id, room.id)
        except CapacityExhausted:
            logger.debug(f"[Engine] Room {room.room_number} filled while selecting, trying next")

    raise CapacityExhausted(hostel.id, reason="no_matching_room" if room_type else "no_beds_available")


def _default_rent(hostel: Hostel, room: Room) -> Decimal:
    if room.monthly_rent is not None:
        return _money(room.monthly_rent)
    return _money((hostel.pricing or {}).get("base_rent"))


def _default_deposit(hostel: Hostel) -> Decimal:
    return _money((hostel.pricing or {}).get("security_deposit"))


def allocate(db: Session, request: AllocationCreate, actor_id: str) -> Allocation:
    """
    Place a student in a bed for an academic year.
    Raises DuplicateAllocation, CapacityExhausted, NotFound, ValidationError.
    """
    if request.expected_check_out_date and request.expected_check_in_date \
            and request.expected_check_out_date < request.expected_check_in_date:
        raise ValidationError("Expected check-out is before expected check-in", field="expected_check_out_date")

    def _work():
        _ensure_no_live_allocation(db, request.student_id, request.academic_year)
        hostel = capacity_store.get_hostel(db, request.hostel_id)
        if request.room_id:
            reservation = capacity_store.reserve(db, hostel.id, request.room_id)
        else:
            reservation = _reserve_best_room(db, hostel, request.room_type)
        room = db.get(Room, reservation.room_id)

        terms = request.terms
        monthly_rent = _money(terms.monthly_rent) if terms.monthly_rent is not None else _default_rent(hostel, room)
        deposit = _money(terms.security_deposit) if terms.security_deposit is not None else _default_deposit(hostel)
        paid = _money(terms.paid_amount)
        total_due = monthly_rent + deposit
        now = datetime.utcnow()

        allocation = Allocation(
            student_id=request.student_id,
            academic_year=request.academic_year,
            hostel_id=hostel.id,
            room_id=room.id,
            bed_number=request.bed_number,
            allocation_type=request.allocation_type.value,
            status=AllocationStatus.ACTIVE.value,
            check_in_status=CheckInStatus.PENDING.value,
            check_out_status=CheckOutStatus.PENDING.value,
            allocation_date=now,
            expected_check_in_date=request.expected_check_in_date,
            expected_check_out_date=request.expected_check_out_date,
            monthly_rent=monthly_rent,
            security_deposit=deposit,
            paid_amount=paid,
            outstanding_amount=max(Decimal("0"), total_due - paid),
            payment_status=derive_payment_status(total_due, paid),
            last_payment_date=now if paid > 0 else None,
            next_payment_due=terms.next_payment_due,
            transfer_history=[],
            reservation_token=reservation.token,
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.add(allocation)
        try:
            db.flush()
        except IntegrityError as exc:
            if _is_duplicate_violation(exc):
                raise DuplicateAllocation(request.student_id, request.academic_year) from exc
            raise

        if paid > 0:
            db.add(AllocationPayment(allocation_id=allocation.id, hostel_id=hostel.id,
                                     amount=paid, paid_at=now, recorded_by=actor_id))
        return allocation

    allocation = run_with_retry(db, "allocate", _work, request.student_id)
    logger.info(f"[Engine] Allocated student {allocation.student_id} → room {allocation.room_id} "
                f"({allocation.academic_year}) as {allocation.id}")
    return allocation


# ── Check-in / check-out ─────────────────────────────────────────────────────

def check_in(db: Session, allocation_id: str, actor_id: str,
             timestamp: Optional[datetime] = None, notes: Optional[str] = None) -> Allocation:
    def _work():
        allocation = _load_for_update(db, allocation_id)
        if allocation.status != AllocationStatus.ACTIVE.value:
            raise InvalidTransition(allocation.id, allocation.status, "check_in")
        if allocation.check_in_status == CheckInStatus.COMPLETED.value:
            raise InvalidTransition(allocation.id, "checked_in", "check_in",
                                    message="Allocation is already checked in")
        allocation.actual_check_in_date = timestamp or datetime.utcnow()
        allocation.check_in_status = CheckInStatus.COMPLETED.value
        allocation.check_in_notes = notes
        allocation.updated_by = actor_id
        return allocation

    allocation = run_with_retry(db, "check_in", _work, allocation_id)
    logger.info(f"[Engine] Check-in {allocation_id} at {allocation.actual_check_in_date}")
    return allocation


def check_out(db: Session, allocation_id: str, actor_id: str, timestamp: Optional[datetime] = None,
              notes: Optional[str] = None, mode: CheckOutMode = CheckOutMode.NORMAL) -> Allocation:
    """Terminal transition: ends the stay and gives the bed back."""
    mode = CheckOutMode(mode)

    def _work():
        allocation = _load_for_update(db, allocation_id)
        if allocation.status != AllocationStatus.ACTIVE.value:
            raise InvalidTransition(allocation.id, allocation.status, "check_out")

        capacity_store.release(db, Reservation.held_by(allocation))
        allocation.reservation_token = None
        allocation.actual_check_out_date = timestamp or datetime.utcnow()
        allocation.check_out_status = _CHECK_OUT_STATUS[mode].value
        allocation.check_out_notes = notes
        if allocation.check_in_status in (CheckInStatus.PENDING.value, CheckInStatus.SCHEDULED.value):
            allocation.check_in_status = CheckInStatus.CANCELLED.value
        allocation.status = AllocationStatus.TERMINATED.value
        allocation.updated_by = actor_id
        return allocation

    allocation = run_with_retry(db, "check_out", _work, allocation_id)
    logger.info(f"[Engine] Check-out {allocation_id} ({mode.value}), bed in room {allocation.room_id} released")
    return allocation


# ── Transfer ─────────────────────────────────────────────────────────────────

def transfer(db: Session, allocation_id: str, new_hostel_id: str, new_room_id: str, reason: str,
             approved_by: str, actor_id: str, new_bed_number: Optional[str] = None) -> Allocation:
    """
    Move an active allocation to another room. The new bed is reserved before
    the old one is released; if the reservation fails nothing changes.
    """
    def _work():
        allocation = _load_for_update(db, allocation_id)
        if allocation.status != AllocationStatus.ACTIVE.value:
            raise InvalidTransition(allocation.id, allocation.status, "transfer")
        if allocation.hostel_id == new_hostel_id and allocation.room_id == new_room_id:
            raise ValidationError("Allocation is already in that room", field="new_room_id", room_id=new_room_id)

        new_reservation = capacity_store.reserve(db, new_hostel_id, new_room_id)
        record = TransferRecord(
            from_hostel_id=allocation.hostel_id,
            from_room_id=allocation.room_id,
            from_bed_number=allocation.bed_number,
            to_hostel_id=new_hostel_id,
            to_room_id=new_room_id,
            to_bed_number=new_bed_number,
            transfer_date=datetime.utcnow(),
            reason=reason,
            approved_by=approved_by,
            status=AllocationStatus.TRANSFERRED,
        )
        capacity_store.release(db, Reservation.held_by(allocation))

        # New list object so the JSON column is flagged dirty
        allocation.transfer_history = [*(allocation.transfer_history or []), record.model_dump(mode="json")]
        allocation.hostel_id = new_hostel_id
        allocation.room_id = new_room_id
        allocation.bed_number = new_bed_number
        allocation.reservation_token = new_reservation.token
        allocation.status = AllocationStatus.ACTIVE.value
        allocation.updated_by = actor_id
        return allocation

    allocation = run_with_retry(db, "transfer", _work, allocation_id)
    logger.info(f"[Engine] Transferred {allocation_id} → hostel {new_hostel_id} room {new_room_id} "
                f"(approved by {approved_by})")
    return allocation


# ── Suspend / reactivate ─────────────────────────────────────────────────────

def _append_note(allocation: Allocation, line: str):
    stamp = datetime.utcnow().isoformat(timespec="seconds")
    allocation.internal_notes = "\n".join(filter(None, [allocation.internal_notes, f"{line} ({stamp})"]))


def suspend(db: Session, allocation_id: str, reason: str, actor_id: str) -> Allocation:
    """
    Hold the bed but take the allocation out of active use. Allowed from any
    live state; suspending again replaces the recorded reason.
    """
    def _work():
        allocation = _load_for_update(db, allocation_id)
        if allocation.status not in LIVE_ALLOCATION_STATUSES:
            raise InvalidTransition(allocation.id, allocation.status, "suspend")
        allocation.status = AllocationStatus.SUSPENDED.value
        allocation.suspension_reason = reason
        _append_note(allocation, f"Suspended by {actor_id}: {reason}")
        allocation.updated_by = actor_id
        return allocation

    allocation = run_with_retry(db, "suspend", _work, allocation_id)
    logger.info(f"[Engine] Suspended {allocation_id}: {reason}")
    return allocation


def reactivate(db: Session, allocation_id: str, actor_id: str) -> Allocation:
    def _work():
        allocation = _load_for_update(db, allocation_id)
        if allocation.status != AllocationStatus.SUSPENDED.value:
            raise InvalidTransition(allocation.id, allocation.status, "reactivate")
        allocation.status = AllocationStatus.ACTIVE.value
        allocation.suspension_reason = None
        _append_note(allocation, f"Reactivated by {actor_id}")
        allocation.updated_by = actor_id
        return allocation

    allocation = run_with_retry(db, "reactivate", _work, allocation_id)
    logger.info(f"[Engine] Reactivated {allocation_id}")
    return allocation


# ── Payments ─────────────────────────────────────────────────────────────────

def record_payment(db: Session, allocation_id: str, amount, actor_id: str,
                   payment_date: Optional[datetime] = None) -> Allocation:
    """Add a payment to the ledger and recompute outstanding balance and status."""
    try:
        value = _money(amount)
        # NaN survives quantize and cannot be ordered
        valid = value.is_finite() and value > 0
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise InvalidAmount(allocation_id, amount) from exc
    if not valid:
        raise InvalidAmount(allocation_id, amount)

    def _work():
        allocation = _load_for_update(db, allocation_id)
        paid_at = payment_date or datetime.utcnow()
        allocation.paid_amount = _money(allocation.paid_amount) + value
        allocation.outstanding_amount = max(Decimal("0"), allocation.total_due - allocation.paid_amount)
        allocation.payment_status = derive_payment_status(
            allocation.total_due, allocation.paid_amount, allocation.payment_status
        )
        allocation.last_payment_date = paid_at
        allocation.updated_by = actor_id
        db.add(AllocationPayment(allocation_id=allocation.id, hostel_id=allocation.hostel_id,
                                 amount=value, paid_at=paid_at, recorded_by=actor_id))
        return allocation

    allocation = run_with_retry(db, "record_payment", _work, allocation_id)
    logger.info(f"[Engine] Payment {value} on {allocation_id}: outstanding {allocation.outstanding_amount} "
                f"({allocation.payment_status})")
    return allocation


def mark_overdue_payments(db: Session, actor_id: str, as_of: Optional[date] = None,
                          school_id: Optional[str] = None) -> list[str]:
    """
    Reconciliation pass: live allocations with a balance whose next_payment_due
    is before ``as_of`` (default today) become overdue. Returns the IDs changed.
    """
    as_of = as_of or date.today()

    def _work():
        q = db.query(Allocation).filter(
            Allocation.status.in_(LIVE_ALLOCATION_STATUSES),
            Allocation.outstanding_amount > 0,
            Allocation.next_payment_due.isnot(None),
            Allocation.next_payment_due < as_of,
            Allocation.payment_status != PaymentStatus.OVERDUE.value,
        )
        if school_id:
            q = q.join(Hostel, Hostel.id == Allocation.hostel_id).filter(Hostel.school_id == school_id)
        changed = []
        for allocation in q.with_for_update().all():
            allocation.payment_status = PaymentStatus.OVERDUE.value
            allocation.updated_by = actor_id
            changed.append(allocation.id)
        return changed

    changed = run_with_retry(db, "mark_overdue_payments", _work, school_id)
    logger.info(f"[Engine] Overdue sweep as of {as_of}: {len(changed)} allocation(s) marked overdue")
    return changed
