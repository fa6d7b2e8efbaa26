# hostel_allocation/models/hostel.py
"""
Hostels table, the top level of the capacity hierarchy.
Bed counters are the sum of the hostel's rooms and are only written by
capacity_store; facilities/rules/pricing are validated JSON structs
(see schemas/hostel.py).
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, CheckConstraint, UniqueConstraint, Index
from hostel_allocation.database import Base
from hostel_allocation.models.enums import HostelStatus, HostelType


class Hostel(Base):
    __tablename__ = "hostels"
    __table_args__ = (
        UniqueConstraint("school_id", "hostel_code", name="uq_hostel_code_per_school"),
        CheckConstraint("occupied_beds >= 0 AND available_beds >= 0", name="ck_hostel_beds_non_negative"),
        CheckConstraint("occupied_beds + available_beds = total_beds", name="ck_hostel_beds_balance"),
        Index("ix_hostels_school_status", "school_id", "status"),
        Index("ix_hostels_school_type", "school_id", "hostel_type"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id = Column(String(36), nullable=False, index=True)
    hostel_name = Column(String(200), nullable=False)
    hostel_code = Column(String(20), nullable=False)
    hostel_type = Column(String(20), nullable=False, default=HostelType.MIXED.value)
    status = Column(String(20), nullable=False, default=HostelStatus.ACTIVE.value)
    floors = Column(Integer, nullable=False, default=1)
    building_number = Column(String(20))

    total_rooms = Column(Integer, nullable=False, default=0)
    total_beds = Column(Integer, nullable=False, default=0)
    occupied_beds = Column(Integer, nullable=False, default=0)
    available_beds = Column(Integer, nullable=False, default=0)

    warden_id = Column(String(36))
    warden_name = Column(String(100))
    warden_contact = Column(String(20))

    facilities = Column(JSON, nullable=False, default=list)
    rules = Column(JSON, nullable=False, default=dict)
    pricing = Column(JSON, nullable=False, default=dict)
    amenities = Column(JSON, nullable=False, default=list)
    description = Column(Text)

    created_by = Column(String(36), nullable=False)
    updated_by = Column(String(36))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def occupancy_rate(self) -> float:
        if not self.total_beds:
            return 0.0
        return round(self.occupied_beds / self.total_beds * 100, 2)

    @property
    def is_full(self) -> bool:
        return self.available_beds == 0

    @property
    def base_rent(self):
        return (self.pricing or {}).get("base_rent")

    def __repr__(self):
        return f"<Hostel {self.hostel_code} beds={self.occupied_beds}/{self.total_beds} status={self.status}>"
