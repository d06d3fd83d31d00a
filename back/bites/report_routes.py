from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlmodel import Session

from . import models, sales_service
from .db import get_session
from .pdf_generator import generate_monthly_sales_pdf
from .permissions import Permissions
from .security import PermissionChecker

router = APIRouter()


def _monthly_report(session: Session, month: str | None) -> dict:
    try:
        return sales_service.monthly_report(session, month)
    except ValueError:
        raise HTTPException(status_code=400, detail="Month must be in YYYY-MM format")


@router.get("/sales")
def sales_dashboard(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.REPORTS_READ))],
    session: Session = Depends(get_session),
) -> dict:
    """Dashboard totals, top sellers and the last seven days of sales."""
    return sales_service.sales_dashboard(session)


@router.get("/reports/monthly")
def monthly_report(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.REPORTS_READ))],
    session: Session = Depends(get_session),
    month: str | None = None,
) -> dict:
    return _monthly_report(session, month)


@router.get("/reports/monthly/pdf")
def monthly_report_pdf(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.REPORTS_READ))],
    session: Session = Depends(get_session),
    month: str | None = None,
):
    """Download the monthly sales report as a PDF."""
    report = _monthly_report(session, month)
    pdf_buffer = generate_monthly_sales_pdf(report)
    filename = f"sales-report-{report['month']}.pdf"
    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
