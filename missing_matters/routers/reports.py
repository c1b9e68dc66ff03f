from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from missing_matters.database import get_db
from missing_matters.logging_config import get_logger
from missing_matters.schemas.report import ReportStatusResponse
from missing_matters.services.report_service import (
    ReportNotFoundError,
    ReportPhoneMismatchError,
    ReportStoreError,
    get_report_status,
)

logger = get_logger("reports")

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/status", response_model=ReportStatusResponse)
def check_report_status(
    reference_number: Optional[str] = Query(default=None, alias="referenceNumber"),
    phone: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Status of a lost item report, looked up by its reference number."""

    if not reference_number:
        return JSONResponse(status_code=400, content={"error": "Reference number is required"})

    try:
        report = get_report_status(db, reference_number.strip().upper(), phone)
    except ReportNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Report not found"})
    except ReportPhoneMismatchError:
        return JSONResponse(status_code=403, content={"error": "Phone number does not match report"})
    except ReportStoreError as exc:
        logger.error(f"Report status lookup failed: {exc}")
        return JSONResponse(status_code=500, content={"error": "Server error"})

    return ReportStatusResponse(
        reference_number=report.reference_number,
        status=report.status or "PENDING",
        report_date=report.reported_at or report.created_at,
        last_updated=report.updated_at or report.reported_at or report.created_at,
        potential_match_count=len(report.potential_matches or []),
    )
