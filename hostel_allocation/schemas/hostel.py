# hostel_allocation/schemas/hostel.py
"""
Hostel and room request/response bodies, plus the typed structs stored in
the hostels.facilities / rules / pricing JSON columns.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal
from hostel_allocation.models.enums import FacilityType, HostelStatus, HostelType, RoomStatus, RoomType


# ── Structs stored as JSON on the hostel row ─────────────────────────────────

class OperatingHours(BaseModel):
    open: str                 # "HH:MM"
    close: str
    days: list[str] = []


class Facility(BaseModel):
    type: FacilityType
    name: str
    description: Optional[str] = None
    is_available: bool = True
    operating_hours: Optional[OperatingHours] = None


class HostelRules(BaseModel):
    check_in_time: str = "14:00"
    check_out_time: str = "11:00"
    visitors_allowed: bool = True
    smoking_allowed: bool = False
    alcohol_allowed: bool = False
    pets_allowed: bool = False
    cooking_allowed: bool = False
    curfew_time: Optional[str] = None
    noise_policy: Optional[str] = None
    additional_rules: list[str] = []


class Discount(BaseModel):
    type: Literal["scholarship", "early_payment", "long_term", "sibling"]
    percentage: Decimal = Field(gt=0, le=100)
    description: Optional[str] = None


class PricingPolicy(BaseModel):
    base_rent: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "USD"
    billing_cycle: Literal["monthly", "quarterly", "semesterly", "yearly"] = "monthly"
    security_deposit: Decimal = Field(default=Decimal("0"), ge=0)
    maintenance_fee: Decimal = Field(default=Decimal("0"), ge=0)
    utilities_included: bool = False
    meal_plan_available: bool = False
    meal_plan_cost: Optional[Decimal] = None
    discounts: list[Discount] = []


# ── Hostels ──────────────────────────────────────────────────────────────────

class HostelCreate(BaseModel):
    school_id: str
    hostel_name: str = Field(min_length=1, max_length=200)
    hostel_code: str = Field(min_length=1, max_length=20)
    hostel_type: HostelType = HostelType.MIXED
    floors: int = Field(default=1, ge=1)
    building_number: Optional[str] = None
    warden_id: Optional[str] = None
    warden_name: Optional[str] = None
    warden_contact: Optional[str] = None
    facilities: list[Facility] = []
    rules: HostelRules = HostelRules()
    pricing: PricingPolicy = PricingPolicy()
    amenities: list[str] = []
    description: Optional[str] = None

    @field_validator("hostel_code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class HostelUpdate(BaseModel):
    """Partial update. Code, status and counters are not editable here."""
    hostel_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    hostel_type: Optional[HostelType] = None
    floors: Optional[int] = Field(default=None, ge=1)
    warden_id: Optional[str] = None
    warden_name: Optional[str] = None
    warden_contact: Optional[str] = None
    rules: Optional[HostelRules] = None
    pricing: Optional[PricingPolicy] = None
    amenities: Optional[list[str]] = None
    description: Optional[str] = None


class HostelOut(BaseModel):
    id: str
    school_id: str
    hostel_name: str
    hostel_code: str
    hostel_type: HostelType
    status: HostelStatus
    floors: int
    total_rooms: int
    total_beds: int
    occupied_beds: int
    available_beds: int
    occupancy_rate: float
    facilities: list[Facility]
    rules: HostelRules
    pricing: PricingPolicy
    amenities: list[str]
    description: Optional[str]
    warden_name: Optional[str]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class HostelStatusUpdate(BaseModel):
    status: HostelStatus


class AvailableHostelFilters(BaseModel):
    hostel_type: Optional[HostelType] = None
    min_available_beds: Optional[int] = Field(default=None, ge=1)
    facility: Optional[FacilityType] = None


class AvailabilityOut(BaseModel):
    hostel_id: str
    total: int
    occupied: int
    available: int


# ── Rooms ────────────────────────────────────────────────────────────────────

class RoomCreate(BaseModel):
    room_number: str = Field(min_length=1, max_length=20)
    floor: int = Field(default=0, ge=0)
    room_type: RoomType = RoomType.DOUBLE
    total_beds: int = Field(ge=1, le=50)
    monthly_rent: Optional[Decimal] = Field(default=None, ge=0)


class RoomOut(BaseModel):
    id: str
    hostel_id: str
    room_number: str
    floor: int
    room_type: RoomType
    status: RoomStatus
    total_beds: int
    occupied_beds: int
    available_beds: int
    monthly_rent: Optional[Decimal]

    class Config:
        from_attributes = True


class RoomCapacityUpdate(BaseModel):
    total_beds: int = Field(ge=0, le=50)


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


# ── Bulk operations ──────────────────────────────────────────────────────────

class FacilityBulkItem(BaseModel):
    hostel_id: str
    facilities: list[Facility]


class StatusBulkItem(BaseModel):
    hostel_id: str
    status: HostelStatus


class BulkItemFailure(BaseModel):
    hostel_id: str
    kind: str
    detail: str


class BulkUpdateReport(BaseModel):
    succeeded: list[str] = []
    failed: list[BulkItemFailure] = []

    @property
    def partial(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)
