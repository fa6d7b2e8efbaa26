# hostel_allocation/schemas/allocation.py
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from hostel_allocation.models.enums import (
    AllocationStatus, AllocationType, CheckInStatus, CheckOutMode, CheckOutStatus, PaymentStatus, RoomType,
)


class FinancialTerms(BaseModel):
    """Omitted rent/deposit fall back to the room rate, then the hostel pricing policy."""
    monthly_rent: Optional[Decimal] = Field(default=None, ge=0)
    security_deposit: Optional[Decimal] = Field(default=None, ge=0)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    next_payment_due: Optional[date] = None


class AllocationCreate(BaseModel):
    student_id: str = Field(min_length=1)
    academic_year: str = Field(pattern=r"^\d{4}-\d{4}$")
    hostel_id: str
    room_id: Optional[str] = None
    room_type: Optional[RoomType] = None      # Only used when room_id is omitted
    bed_number: Optional[str] = Field(default=None, max_length=10)
    allocation_type: AllocationType = AllocationType.REGULAR
    expected_check_in_date: Optional[date] = None
    expected_check_out_date: Optional[date] = None
    terms: FinancialTerms = FinancialTerms()


class CheckInRequest(BaseModel):
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


class CheckOutRequest(BaseModel):
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None
    mode: CheckOutMode = CheckOutMode.NORMAL


class TransferRequest(BaseModel):
    new_hostel_id: str
    new_room_id: str
    new_bed_number: Optional[str] = Field(default=None, max_length=10)
    reason: str = Field(min_length=1)
    approved_by: str = Field(min_length=1)


class SuspendRequest(BaseModel):
    reason: str = Field(min_length=1)


class PaymentCreate(BaseModel):
    # Sign is checked by the engine so non-positive amounts surface as InvalidAmount
    amount: Decimal
    payment_date: Optional[datetime] = None


class OverdueSweepRequest(BaseModel):
    as_of: Optional[date] = None
    school_id: Optional[str] = None


class TransferRecord(BaseModel):
    from_hostel_id: str
    from_room_id: str
    from_bed_number: Optional[str] = None
    to_hostel_id: str
    to_room_id: str
    to_bed_number: Optional[str] = None
    transfer_date: datetime
    reason: str
    approved_by: str
    status: AllocationStatus = AllocationStatus.TRANSFERRED


class AllocationOut(BaseModel):
    id: str
    student_id: str
    hostel_id: str
    room_id: str
    bed_number: Optional[str]
    academic_year: str
    allocation_type: AllocationType
    status: AllocationStatus
    check_in_status: CheckInStatus
    check_out_status: CheckOutStatus
    allocation_date: datetime
    expected_check_in_date: Optional[date]
    actual_check_in_date: Optional[datetime]
    expected_check_out_date: Optional[date]
    actual_check_out_date: Optional[datetime]
    monthly_rent: Decimal
    security_deposit: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    payment_status: PaymentStatus
    last_payment_date: Optional[datetime]
    next_payment_due: Optional[date]
    transfer_history: list[TransferRecord]
    suspension_reason: Optional[str]

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: str
    allocation_id: str
    amount: Decimal
    paid_at: datetime
    recorded_by: str

    class Config:
        from_attributes = True
