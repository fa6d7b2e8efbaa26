# hostel_allocation/models/allocation.py
"""
Allocation ledger table: one row per placement of a student for an academic year.
Written only by allocation_engine. ``version`` is SQLAlchemy's optimistic-lock
column: a concurrent write to the same row raises StaleDataError on flush.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Numeric, JSON, ForeignKey, Index, text
from hostel_allocation.database import Base
from hostel_allocation.models.enums import (
    AllocationStatus, AllocationType, CheckInStatus, CheckOutStatus, PaymentStatus,
    LIVE_ALLOCATION_STATUSES,
)

_LIVE_STATUS_SQL = "status IN ({})".format(", ".join(f"'{s}'" for s in LIVE_ALLOCATION_STATUSES))


class Allocation(Base):
    __tablename__ = "hostel_allocations"
    __table_args__ = (
        # At most one live allocation per student per academic year
        Index(
            "uq_live_allocation_per_student_year", "student_id", "academic_year",
            unique=True,
            postgresql_where=text(_LIVE_STATUS_SQL),
            sqlite_where=text(_LIVE_STATUS_SQL),
        ),
        Index("ix_allocations_hostel_room", "hostel_id", "room_id"),
        Index("ix_allocations_student_status", "student_id", "status"),
        Index("ix_allocations_year_status", "academic_year", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(36), nullable=False)
    hostel_id = Column(String(36), ForeignKey("hostels.id"), nullable=False)
    room_id = Column(String(36), ForeignKey("rooms.id"), nullable=False)
    bed_number = Column(String(10))
    academic_year = Column(String(20), nullable=False)

    allocation_type = Column(String(20), nullable=False, default=AllocationType.REGULAR.value)
    status = Column(String(20), nullable=False, default=AllocationStatus.ACTIVE.value)
    check_in_status = Column(String(20), nullable=False, default=CheckInStatus.PENDING.value)
    check_out_status = Column(String(20), nullable=False, default=CheckOutStatus.PENDING.value)

    allocation_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    expected_check_in_date = Column(Date)
    actual_check_in_date = Column(DateTime)
    expected_check_out_date = Column(Date)
    actual_check_out_date = Column(DateTime)

    monthly_rent = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    security_deposit = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    outstanding_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    last_payment_date = Column(DateTime)
    next_payment_due = Column(Date)

    transfer_history = Column(JSON, nullable=False, default=list)   # append-only
    check_in_notes = Column(Text)
    check_out_notes = Column(Text)
    suspension_reason = Column(Text)
    internal_notes = Column(Text)

    reservation_token = Column(String(36))   # Held capacity reservation; cleared on release
    version = Column(Integer, nullable=False)

    created_by = Column(String(36), nullable=False)
    updated_by = Column(String(36))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_due(self) -> Decimal:
        return Decimal(self.monthly_rent or 0) + Decimal(self.security_deposit or 0)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_ALLOCATION_STATUSES

    @property
    def is_checked_in(self) -> bool:
        return self.check_in_status == CheckInStatus.COMPLETED.value

    def __repr__(self):
        return f"<Allocation {self.id} student={self.student_id} room={self.room_id} status={self.status}>"
