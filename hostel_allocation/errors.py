# hostel_allocation/errors.py
"""
Typed error taxonomy for the allocation subsystem.

Every error is recoverable by the caller and carries a ``kind`` plus the
offending IDs in ``details`` so the HTTP layer (or any other transport) can
render an actionable message without leaking storage internals.
"""

from typing import Any, Dict, Optional


class AllocationError(Exception):
    """Base class for every domain error raised by the services."""

    kind = "AllocationError"
    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "detail": self.message, **self.details}

    def __repr__(self):
        return f"<{self.kind} {self.message!r} {self.details}>"


class NotFound(AllocationError):
    kind = "NotFound"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} '{entity_id}' not found",
            {"entity": entity, "id": str(entity_id)},
        )


class DuplicateAllocation(AllocationError):
    kind = "DuplicateAllocation"
    http_status = 409

    def __init__(self, student_id: str, academic_year: str, existing_id: Optional[str] = None):
        details = {"student_id": student_id, "academic_year": academic_year}
        if existing_id:
            details["existing_allocation_id"] = existing_id
        super().__init__(
            f"Student {student_id} already holds an allocation for {academic_year}",
            details,
        )


class CapacityExhausted(AllocationError):
    kind = "CapacityExhausted"
    http_status = 409

    def __init__(self, hostel_id: str, room_id: Optional[str] = None, reason: str = "no_beds_available"):
        target = f"room {room_id}" if room_id else f"hostel {hostel_id}"
        super().__init__(
            f"No bed available in {target}",
            {"hostel_id": hostel_id, "room_id": room_id, "reason": reason},
        )


class InvalidTransition(AllocationError):
    kind = "InvalidTransition"
    http_status = 409

    def __init__(self, entity_id: str, current: str, attempted: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot {attempted} while {current}",
            {"id": entity_id, "current_state": current, "attempted": attempted},
        )


class InvalidAmount(AllocationError):
    kind = "InvalidAmount"
    http_status = 422

    def __init__(self, allocation_id: str, amount: Any):
        super().__init__(
            f"Payment amount must be positive, got {amount}",
            {"allocation_id": allocation_id, "amount": str(amount)},
        )


class Contention(AllocationError):
    kind = "Contention"
    http_status = 503

    def __init__(self, operation: str, attempts: int, target_id: Optional[str] = None):
        super().__init__(
            f"{operation} gave up after {attempts} conflicting attempts",
            {"operation": operation, "attempts": attempts, "id": target_id},
        )


class Timeout(AllocationError):
    kind = "Timeout"
    http_status = 504

    def __init__(self, operation: str, limit_seconds: float, target_id: Optional[str] = None):
        super().__init__(
            f"{operation} exceeded its {limit_seconds}s deadline and was rolled back",
            {"operation": operation, "limit_seconds": limit_seconds, "id": target_id},
        )


class ValidationError(AllocationError):
    kind = "ValidationError"
    http_status = 422

    def __init__(self, message: str, field: Optional[str] = None, **details):
        if field:
            details["field"] = field
        super().__init__(message, details)
