# hostel_allocation/services/reporting_service.py
"""
Reporting Aggregator: read-only projections over hostels, rooms and the
allocation ledger. Plain SELECTs, no row locks, so reports never hold up
allocation traffic.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session
from hostel_allocation.config import settings
from hostel_allocation.models.allocation import Allocation
from hostel_allocation.models.enums import (
    AllocationStatus, CheckInStatus, HostelStatus, PaymentStatus, LIVE_ALLOCATION_STATUSES,
)
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.payment import AllocationPayment
from hostel_allocation.models.room import Room


@dataclass(frozen=True)
class ReportPeriod:
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def start_dt(self) -> Optional[datetime]:
        return datetime.combine(self.start, datetime.min.time()) if self.start else None

    @property
    def end_dt(self) -> Optional[datetime]:
        # End date is inclusive
        return datetime.combine(self.end + timedelta(days=1), datetime.min.time()) if self.end else None

    def as_dict(self) -> dict:
        return {
            "start_date": self.start.isoformat() if self.start else "All time",
            "end_date": self.end.isoformat() if self.end else "Present",
        }


def _dec(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _rate(part, whole) -> float:
    return round(float(part) / float(whole) * 100, 2) if whole else 0.0


def _within(column, period: ReportPeriod):
    clauses = []
    if period.start_dt:
        clauses.append(column >= period.start_dt)
    if period.end_dt:
        clauses.append(column < period.end_dt)
    return and_(*clauses) if clauses else None


def _filtered(q, column, period: ReportPeriod):
    condition = _within(column, period)
    return q.filter(condition) if condition is not None else q


def _school_hostels(db: Session, school_id: str, active_only: bool = False) -> list[Hostel]:
    q = db.query(Hostel).filter(Hostel.school_id == school_id)
    if active_only:
        q = q.filter(Hostel.status == HostelStatus.ACTIVE.value)
    return q.order_by(Hostel.hostel_name).all()


def occupancy_statistics(db: Session, school_id: str) -> dict:
    """Capacity and occupancy across every hostel of a school."""
    hostels = _school_hostels(db, school_id)
    hostel_ids = [h.id for h in hostels]

    total = sum(h.total_beds for h in hostels)
    occupied = sum(h.occupied_beds for h in hostels)
    available = sum(h.available_beds for h in hostels)

    rooms_by_status = dict(
        db.query(Room.status, func.count(Room.id))
        .filter(Room.hostel_id.in_(hostel_ids))
        .group_by(Room.status)
        .all()
    ) if hostel_ids else {}
    allocations_by_status = dict(
        db.query(Allocation.status, func.count(Allocation.id))
        .filter(Allocation.hostel_id.in_(hostel_ids))
        .group_by(Allocation.status)
        .all()
    ) if hostel_ids else {}

    return {
        "school_id": school_id,
        "total_hostels": len(hostels),
        "active_hostels": sum(1 for h in hostels if h.status == HostelStatus.ACTIVE.value),
        "total_rooms": sum(h.total_rooms for h in hostels),
        "total_capacity": total,
        "total_occupied": occupied,
        "total_available": available,
        "occupancy_rate": _rate(occupied, total),
        "by_type": dict(Counter(h.hostel_type for h in hostels)),
        "by_status": dict(Counter(h.status for h in hostels)),
        "rooms_by_status": rooms_by_status,
        "allocations_by_status": allocations_by_status,
    }


def utilization_report(db: Session, school_id: str, period: Optional[ReportPeriod] = None) -> dict:
    """
    Per-hostel utilization for active hostels: current occupancy plus the
    allocation, check-in and check-out activity inside the period.
    """
    period = period or ReportPeriod()
    hostels = _school_hostels(db, school_id, active_only=True)

    rows = []
    for h in hostels:
        base = db.query(func.count(Allocation.id)).filter(Allocation.hostel_id == h.id)
        allocated = _filtered(base, Allocation.allocation_date, period).scalar()
        checked_in = _filtered(
            base.filter(Allocation.check_in_status == CheckInStatus.COMPLETED.value),
            Allocation.actual_check_in_date, period,
        ).scalar()
        checked_out = _filtered(
            base.filter(Allocation.actual_check_out_date.isnot(None)),
            Allocation.actual_check_out_date, period,
        ).scalar()
        monthly_rent_roll = db.query(func.coalesce(func.sum(Allocation.monthly_rent), 0)).filter(
            Allocation.hostel_id == h.id,
            Allocation.status.in_(LIVE_ALLOCATION_STATUSES),
        ).scalar()
        rows.append({
            "id": h.id,
            "name": h.hostel_name,
            "code": h.hostel_code,
            "type": h.hostel_type,
            "capacity": h.total_beds,
            "occupied": h.occupied_beds,
            "available": h.available_beds,
            "occupancy_rate": h.occupancy_rate,
            "allocations_in_period": allocated,
            "check_ins_in_period": checked_in,
            "check_outs_in_period": checked_out,
            "monthly_rent_roll": _dec(monthly_rent_roll),
        })

    capacity = sum(r["capacity"] for r in rows)
    occupied = sum(r["occupied"] for r in rows)
    return {
        "school_id": school_id,
        "hostels": rows,
        "summary": {
            "total_capacity": capacity,
            "total_occupied": occupied,
            "total_available": sum(r["available"] for r in rows),
            "overall_occupancy_rate": _rate(occupied, capacity),
            "total_monthly_rent_roll": sum((r["monthly_rent_roll"] for r in rows), Decimal("0")),
        },
        "period": period.as_dict(),
    }


def revenue_report(db: Session, school_id: str, period: Optional[ReportPeriod] = None) -> dict:
    """
    Collected revenue (payment log inside the period), current outstanding
    balances, and the monthly rent roll against what full occupancy would bring.
    """
    period = period or ReportPeriod()
    hostels = _school_hostels(db, school_id)

    by_hostel = []
    for h in hostels:
        collected = _filtered(
            db.query(func.coalesce(func.sum(AllocationPayment.amount), 0))
            .filter(AllocationPayment.hostel_id == h.id),
            AllocationPayment.paid_at, period,
        ).scalar()
        outstanding, rent_roll = db.query(
            func.coalesce(func.sum(Allocation.outstanding_amount), 0),
            # Only live allocations contribute to the recurring rent roll
            func.coalesce(func.sum(
                case((Allocation.status.in_(LIVE_ALLOCATION_STATUSES), Allocation.monthly_rent), else_=0)
            ), 0),
        ).filter(Allocation.hostel_id == h.id).one()

        base_rent = Decimal(str((h.pricing or {}).get("base_rent") or 0))
        potential = sum(
            (Decimal(r.monthly_rent if r.monthly_rent is not None else base_rent) * r.total_beds
             for r in db.query(Room).filter(Room.hostel_id == h.id).all()),
            Decimal("0"),
        )
        by_hostel.append({
            "id": h.id,
            "name": h.hostel_name,
            "collected": _dec(collected),
            "outstanding": _dec(outstanding),
            "monthly_rent_roll": _dec(rent_roll),
            "potential_monthly_revenue": potential,
            "occupancy_rate": h.occupancy_rate,
            "efficiency": _rate(rent_roll, potential),
        })

    hostel_ids = [h.id for h in hostels]
    payment_status_counts = dict(
        db.query(Allocation.payment_status, func.count(Allocation.id))
        .filter(Allocation.hostel_id.in_(hostel_ids), Allocation.status.in_(LIVE_ALLOCATION_STATUSES))
        .group_by(Allocation.payment_status)
        .all()
    ) if hostel_ids else {}

    total_collected = sum((h["collected"] for h in by_hostel), Decimal("0"))
    return {
        "school_id": school_id,
        "summary": {
            "total_collected": total_collected,
            "total_outstanding": sum((h["outstanding"] for h in by_hostel), Decimal("0")),
            "monthly_rent_roll": sum((h["monthly_rent_roll"] for h in by_hostel), Decimal("0")),
            "potential_monthly_revenue": sum((h["potential_monthly_revenue"] for h in by_hostel), Decimal("0")),
            "average_collected_per_hostel": (total_collected / len(by_hostel)).quantize(Decimal("0.01"))
            if by_hostel else Decimal("0"),
        },
        "by_hostel": by_hostel,
        "payment_status": {s.value: payment_status_counts.get(s.value, 0) for s in PaymentStatus},
        "period": period.as_dict(),
    }


def dashboard(db: Session, school_id: str, today: Optional[date] = None) -> dict:
    """Summary plus the counts an operator acts on today."""
    today = today or date.today()
    stats = occupancy_statistics(db, school_id)
    hostels = _school_hostels(db, school_id, active_only=True)
    hostel_ids = [h.id for h in hostels]

    low = [h.id for h in hostels if h.total_beds and h.occupancy_rate < settings.LOW_OCCUPANCY_THRESHOLD]
    high = [h.id for h in hostels if h.total_beds and h.occupancy_rate >= settings.HIGH_OCCUPANCY_THRESHOLD]

    live = db.query(func.count(Allocation.id)).filter(
        Allocation.hostel_id.in_(hostel_ids),
        Allocation.status == AllocationStatus.ACTIVE.value,
    )
    horizon = today + timedelta(days=settings.UPCOMING_CHECKOUT_DAYS)
    upcoming_checkouts = live.filter(
        Allocation.expected_check_out_date.isnot(None),
        Allocation.expected_check_out_date >= today,
        Allocation.expected_check_out_date <= horizon,
    ).scalar() if hostel_ids else 0
    pending_check_ins = live.filter(
        or_(Allocation.check_in_status == CheckInStatus.PENDING.value,
            Allocation.check_in_status == CheckInStatus.SCHEDULED.value),
    ).scalar() if hostel_ids else 0
    overdue = live.filter(Allocation.payment_status == PaymentStatus.OVERDUE.value).scalar() if hostel_ids else 0

    since = datetime.combine(today - timedelta(days=7), datetime.min.time())
    recent = db.query(func.count(Allocation.id)).filter(
        Allocation.hostel_id.in_(hostel_ids), Allocation.allocation_date >= since,
    ).scalar() if hostel_ids else 0

    return {
        "summary": stats,
        "alerts": {
            "low_occupancy_hostels": low,
            "high_occupancy_hostels": high,
            "upcoming_check_outs": upcoming_checkouts,
            "pending_check_ins": pending_check_ins,
            "overdue_payments": overdue,
        },
        "recent_activity": {"new_allocations_last_7_days": recent},
    }
