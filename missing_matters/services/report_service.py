import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from missing_matters.logging_config import get_logger
from missing_matters.models import LostReport
from missing_matters.schemas.session import ChatSession, LostItemReport
from missing_matters.services.result import Result
from missing_matters.services.session_reducer import normalize_phone
from missing_matters.services.state_machine import ReportStatus

logger = get_logger("report_service")

REFERENCE_PREFIX = "REF-"
_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

ReportWriter = Callable[[ChatSession, LostItemReport], Result[LostReport]]
ReferenceCheck = Callable[[str], bool]

_reference_lock = threading.Lock()
_last_reference_ms = 0


class ReportStoreError(Exception):
    pass


class ReportNotFoundError(Exception):
    def __init__(self, reference_number: str):
        self.reference_number = reference_number
        super().__init__(f"Report not found: {reference_number}")


class ReportPhoneMismatchError(Exception):
    def __init__(self, reference_number: str):
        self.reference_number = reference_number
        super().__init__(f"Phone number does not match report {reference_number}")


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_reference_number(now_ms: Optional[int] = None) -> str:
    """Build a reference code from the current time in milliseconds."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{REFERENCE_PREFIX}{to_base36(now_ms)}"


def _next_reference_ms(now_ms: int) -> int:
    # Strictly increasing within the process, so same-millisecond reports differ
    global _last_reference_ms
    with _reference_lock:
        now_ms = max(now_ms, _last_reference_ms + 1)
        _last_reference_ms = now_ms
        return now_ms


def allocate_reference_number(is_taken: Optional[ReferenceCheck] = None) -> str:
    """Reserve a reference code not yet issued by this process or known to the store."""
    now_ms = _next_reference_ms(time.time_ns() // 1_000_000)
    reference = generate_reference_number(now_ms)
    while is_taken is not None and is_taken(reference):
        now_ms = _next_reference_ms(now_ms + 1)
        reference = generate_reference_number(now_ms)
    return reference


def finalize_report(
    report: LostItemReport,
    now: Optional[datetime] = None,
    is_taken: Optional[ReferenceCheck] = None,
) -> bool:
    """Assign reference number and PENDING status once.

    Returns True only on the call that assigned the reference number.
    """
    if report.reference_number:
        return False
    report.reference_number = allocate_reference_number(is_taken)
    if report.status is None:
        report.status = ReportStatus.PENDING
    report.reported_at = now or datetime.now(timezone.utc)
    return True


def store_lost_report(db: Session, session: ChatSession, report: LostItemReport) -> Result[LostReport]:
    """Append a finalized report to the lost_reports collection."""
    if not report.reference_number:
        return Result.failure("Report has no reference number", "not_finalized")

    try:
        now = datetime.now(timezone.utc)
        row = LostReport(
            reference_number=report.reference_number,
            user_identity=session.user_identity,
            description=report.description,
            name=report.name,
            phone=report.phone,
            location=report.location,
            time_lost=report.time_lost,
            images=list(report.images),
            status=(report.status or ReportStatus.PENDING).value,
            potential_matches=[],
            reported_at=report.reported_at or now,
            created_at=now,
        )
        db.add(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Failed to store lost report {report.reference_number}: {exc}")
        return Result.from_exception(exc, "report_store_error")

    logger.info(
        "Lost report stored",
        extra={"context": {"reference_number": report.reference_number, "user_identity": session.user_identity}},
    )
    return Result.success(row)


def get_report_by_reference(db: Session, reference_number: str) -> Optional[LostReport]:
    try:
        return db.query(LostReport).filter(LostReport.reference_number == reference_number).first()
    except SQLAlchemyError as exc:
        raise ReportStoreError(str(exc)) from exc


def get_report_status(db: Session, reference_number: str, phone: Optional[str] = None) -> LostReport:
    """Look up a report, verifying the reporter's phone when one is given."""
    report = get_report_by_reference(db, reference_number)
    if report is None:
        raise ReportNotFoundError(reference_number)

    if phone and report.phone != normalize_phone(phone):
        raise ReportPhoneMismatchError(reference_number)

    return report


def reference_exists(db: Session, reference_number: str) -> bool:
    """True when a stored report already uses the reference number."""
    try:
        return get_report_by_reference(db, reference_number) is not None
    except ReportStoreError as exc:
        logger.warning(f"Reference lookup failed for {reference_number}: {exc}")
        return False
