# routers/v1/reports.py
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from deps.auth import get_current_user
from models import User
from schemas import OutstandingReport
from services import reports as svc
from services.company import company_profile
from services.report_export import (
    MANIFEST_COLUMNS,
    MARGIN_COLUMNS,
    OUTSTANDING_COLUMNS,
    SALES_COLUMNS,
    XLSX_MEDIA_TYPE,
    workbook_bytes,
    workbook_for,
)

router = APIRouter(prefix="/reports", tags=["reports"])

ReportFormat = Literal["json", "xlsx"]


def _xlsx(db: Session, title: str, filename: str, columns, rows, totals=None):
    wb = workbook_for(title, columns, rows, totals=totals, company=company_profile(db))
    return StreamingResponse(
        workbook_bytes(wb),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}.xlsx"'},
    )


@router.get("/outstanding")
def outstanding(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    format: ReportFormat = Query("json"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    report = svc.list_outstanding(db, date_from=date_from, date_to=date_to)
    if format == "xlsx":
        return _xlsx(
            db, "Outstanding Receivables", "outstanding", OUTSTANDING_COLUMNS,
            report["items"], {"remaining_amount": report["total_remaining"]},
        )
    return OutstandingReport(**report)


@router.get("/margin")
def margin(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    destination: Optional[str] = Query(None),
    format: ReportFormat = Query("json"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    report = svc.margin_report(db, date_from=date_from, date_to=date_to, destination=destination)
    if format == "xlsx":
        s = report["summary"]
        totals = {
            "total_nominal": s["total_nominal"],
            "total_operational": s["total_operational"],
            "margin": s["total_margin"],
        }
        return _xlsx(db, "Margin per DBL", "margin", MARGIN_COLUMNS, report["items"], totals)
    return report


@router.get("/manifests")
def manifests(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    format: ReportFormat = Query("json"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    report = svc.manifest_report(db, date_from=date_from, date_to=date_to)
    if format == "xlsx":
        return _xlsx(db, "DBL Summary", "manifests", MANIFEST_COLUMNS, report["items"], report["summary"])
    return report


@router.get("/sales")
def sales(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    customer_id: Optional[int] = Query(None),
    format: ReportFormat = Query("json"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    report = svc.sales_report(db, date_from=date_from, date_to=date_to, customer_id=customer_id)
    if format == "xlsx":
        return _xlsx(db, "Sales per Customer", "sales", SALES_COLUMNS, report["items"], report["summary"])
    return report


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.dashboard_stats(db)
