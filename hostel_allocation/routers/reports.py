# hostel_allocation/routers/reports.py
"""Read-only occupancy, utilization and revenue reports."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import date
from hostel_allocation.database import get_db
from hostel_allocation.errors import ValidationError
from hostel_allocation.services import reporting_service
from hostel_allocation.services.reporting_service import ReportPeriod

router = APIRouter()


def _period(start_date: date = None, end_date: date = None) -> ReportPeriod:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date is before start_date", field="end_date")
    return ReportPeriod(start=start_date, end=end_date)


@router.get("/schools/{school_id}/reports/occupancy", summary="Occupancy statistics")
def occupancy_statistics(school_id: str, db: Session = Depends(get_db)):
    return reporting_service.occupancy_statistics(db, school_id)


@router.get("/schools/{school_id}/reports/utilization", summary="Per-hostel utilization")
def utilization_report(school_id: str, period: ReportPeriod = Depends(_period), db: Session = Depends(get_db)):
    return reporting_service.utilization_report(db, school_id, period)


@router.get("/schools/{school_id}/reports/revenue", summary="Collected and outstanding revenue")
def revenue_report(school_id: str, period: ReportPeriod = Depends(_period), db: Session = Depends(get_db)):
    return reporting_service.revenue_report(db, school_id, period)


@router.get("/schools/{school_id}/dashboard", summary="Hostel dashboard")
def dashboard(school_id: str, db: Session = Depends(get_db)):
    return reporting_service.dashboard(db, school_id)
