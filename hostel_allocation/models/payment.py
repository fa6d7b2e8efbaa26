# hostel_allocation/models/payment.py
"""
Append-only payment log. One row per recordPayment call.
Used by reporting_service for period revenue.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey
from hostel_allocation.database import Base


class AllocationPayment(Base):
    __tablename__ = "allocation_payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    allocation_id = Column(String(36), ForeignKey("hostel_allocations.id"), nullable=False, index=True)
    hostel_id = Column(String(36), nullable=False, index=True)   # Placement at time of payment
    amount = Column(Numeric(10, 2), nullable=False)
    paid_at = Column(DateTime, nullable=False, index=True)
    recorded_by = Column(String(36), nullable=False)

    def __repr__(self):
        return f"<AllocationPayment {self.id} allocation={self.allocation_id} amount={self.amount}>"
