"""Admin endpoints for operating conversation sessions."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from missing_matters.config import settings
from missing_matters.database import get_db
from missing_matters.logging_config import get_logger
from missing_matters.schemas.admin import ResetSessionResponse
from missing_matters.services.session_service import SessionStoreError, normalize_identity, reset_session

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_CHANNEL_PREFIX = "whatsapp:"


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        return
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def address_from_phone(phone: str) -> str:
    """Accept a bare phone or a full channel address."""
    phone = phone.strip()
    if ":" in phone:
        return phone
    if not phone.startswith("+"):
        phone = f"+{phone}"
    return f"{DEFAULT_CHANNEL_PREFIX}{phone}"


@router.api_route("/reset-session", methods=["GET", "POST"], response_model=ResetSessionResponse)
def reset_user_session(
    phone: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Reset a user's conversation to its initial state."""
    _require_admin_token(x_admin_token)

    if not phone or not phone.strip() or not normalize_identity(phone):
        return JSONResponse(status_code=400, content={"error": "Phone number is required"})

    address = address_from_phone(phone)
    try:
        session = reset_session(db, address)
    except SessionStoreError as exc:
        logger.error(f"Admin reset failed for {normalize_identity(address)}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Failed to reset session"})

    logger.info("Session reset by admin", extra={"context": {"user_identity": session.user_identity}})
    return ResetSessionResponse(
        success=True,
        message=f"Session for {phone.strip()} has been reset",
        user_identity=session.user_identity,
    )
