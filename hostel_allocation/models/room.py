# hostel_allocation/models/room.py
"""
Rooms table, the contended resource.
Each reservation/release is a conditional UPDATE on this row that also bumps
``version``; the CHECK constraints make an oversold room unrepresentable.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, CheckConstraint, UniqueConstraint
from hostel_allocation.database import Base
from hostel_allocation.models.enums import RoomStatus, RoomType


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("hostel_id", "room_number", name="uq_room_number_per_hostel"),
        CheckConstraint("occupied_beds >= 0 AND available_beds >= 0", name="ck_room_beds_non_negative"),
        CheckConstraint("occupied_beds + available_beds = total_beds", name="ck_room_beds_balance"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hostel_id = Column(String(36), ForeignKey("hostels.id", ondelete="CASCADE"), nullable=False, index=True)
    room_number = Column(String(20), nullable=False)
    floor = Column(Integer, nullable=False, default=0)
    room_type = Column(String(20), nullable=False, default=RoomType.DOUBLE.value)
    status = Column(String(20), nullable=False, default=RoomStatus.AVAILABLE.value)

    total_beds = Column(Integer, nullable=False, default=0)
    occupied_beds = Column(Integer, nullable=False, default=0)
    available_beds = Column(Integer, nullable=False, default=0)
    monthly_rent = Column(Numeric(10, 2))    # Overrides hostel pricing.base_rent when set
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Room {self.room_number} hostel={self.hostel_id} beds={self.occupied_beds}/{self.total_beds}>"
