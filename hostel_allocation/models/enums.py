# hostel_allocation/models/enums.py
"""
String enums shared by models, schemas and services.
Columns store the ``.value`` so rows stay readable in plain SQL.
"""

import enum


class HostelType(str, enum.Enum):
    BOYS = "boys"
    GIRLS = "girls"
    MIXED = "mixed"
    INTERNATIONAL = "international"
    VIP = "vip"
    STAFF = "staff"
    GUEST = "guest"


class HostelStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_MAINTENANCE = "under_maintenance"
    CLOSED = "closed"
    DECOMMISSIONED = "decommissioned"


class RoomType(str, enum.Enum):
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    QUADRUPLE = "quadruple"
    SUITE = "suite"
    DORMITORY = "dormitory"
    STUDIO = "studio"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    UNDER_MAINTENANCE = "under_maintenance"
    OUT_OF_ORDER = "out_of_order"
    QUARANTINE = "quarantine"


# Rooms in these states may take new occupants
RESERVABLE_ROOM_STATUSES = (RoomStatus.AVAILABLE.value, RoomStatus.OCCUPIED.value, RoomStatus.RESERVED.value)


class FacilityType(str, enum.Enum):
    WIFI = "wifi"
    LAUNDRY = "laundry"
    GYM = "gym"
    STUDY_ROOM = "study_room"
    COMMON_ROOM = "common_room"
    KITCHEN = "kitchen"
    DINING_HALL = "dining_hall"
    SECURITY = "security"
    PARKING = "parking"
    GARDEN = "garden"
    SWIMMING_POOL = "swimming_pool"
    LIBRARY = "library"
    COMPUTER_LAB = "computer_lab"
    MEDICAL_ROOM = "medical_room"
    PRAYER_ROOM = "prayer_room"
    GAMES_ROOM = "games_room"
    TV_ROOM = "tv_room"
    STORE = "store"
    CAFETERIA = "cafeteria"


class AllocationType(str, enum.Enum):
    REGULAR = "regular"
    TEMPORARY = "temporary"
    EMERGENCY = "emergency"
    MEDICAL = "medical"
    DISCIPLINARY = "disciplinary"
    ACADEMIC = "academic"


class AllocationStatus(str, enum.Enum):
    ACTIVE = "active"
    CHECKED_OUT = "checked_out"
    TRANSFERRED = "transferred"
    TERMINATED = "terminated"
    SUSPENDED = "suspended"


# A live allocation holds a bed; at most one per (student, academic year)
LIVE_ALLOCATION_STATUSES = (AllocationStatus.ACTIVE.value, AllocationStatus.SUSPENDED.value)
TERMINAL_ALLOCATION_STATUSES = (AllocationStatus.TERMINATED.value, AllocationStatus.CHECKED_OUT.value)


class CheckInStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CheckOutStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"
    COMPLETED = "completed"
    EARLY = "early"
    FORCED = "forced"


class CheckOutMode(str, enum.Enum):
    NORMAL = "normal"
    EARLY = "early"
    FORCED = "forced"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
