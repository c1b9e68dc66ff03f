import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from missing_matters.config import settings
from missing_matters.logging_config import get_logger
from missing_matters.models import SessionRecord
from missing_matters.schemas.session import ChatSession, HistoryEntry, MediaItem
from missing_matters.services.state_machine import DEFAULT_FLOW, ConversationFlow, coerce_flow

logger = get_logger("session_service")


class SessionStoreError(Exception):
    pass


class SessionConflictError(SessionStoreError):
    def __init__(self, user_identity: str, expected_version: int):
        self.user_identity = user_identity
        self.expected_version = expected_version
        super().__init__(f"Session {user_identity} changed since version {expected_version}")


def normalize_identity(raw_address: str) -> str:
    """Stable store key for a channel address: alphanumerics only."""
    return re.sub(r"[^A-Za-z0-9]", "", raw_address or "")


def new_session(raw_address: str, display_name: Optional[str] = None) -> ChatSession:
    now = datetime.now(timezone.utc)
    return ChatSession(
        user_identity=normalize_identity(raw_address),
        raw_address=raw_address,
        display_name=display_name,
        current_flow=DEFAULT_FLOW,
        first_contact_at=now,
        last_message_at=now,
    )


def build_reset_session(session: ChatSession) -> ChatSession:
    """Fresh session keeping identity, name and first-contact time."""
    return ChatSession(
        user_identity=session.user_identity,
        raw_address=session.raw_address,
        display_name=session.display_name,
        current_flow=DEFAULT_FLOW,
        first_contact_at=session.first_contact_at,
        last_message_at=datetime.now(timezone.utc),
        version=session.version,
    )


def _record_to_session(record: SessionRecord) -> ChatSession:
    data = dict(record.data or {})
    data.setdefault("user_identity", record.user_identity)
    data.setdefault("raw_address", record.raw_address)
    data["current_flow"] = coerce_flow(data.get("current_flow") or record.current_flow).value
    data["version"] = record.version
    return ChatSession.model_validate(data)


def load_session(db: Session, user_identity: str) -> Optional[ChatSession]:
    try:
        record = db.get(SessionRecord, user_identity)
    except SQLAlchemyError as exc:
        raise SessionStoreError(f"Failed to load session {user_identity}: {exc}") from exc

    if record is None:
        return None

    try:
        return _record_to_session(record)
    except ValidationError as exc:
        raise SessionStoreError(f"Corrupt session document {user_identity}: {exc}") from exc


def get_or_create_session(db: Session, raw_address: str, display_name: Optional[str] = None) -> ChatSession:
    """Load the session for an address, or build a new unsaved one."""
    session = load_session(db, normalize_identity(raw_address))
    if session is None:
        session = new_session(raw_address, display_name)
        logger.info("Session created", extra={"context": {"user_identity": session.user_identity}})
    elif display_name and not session.display_name:
        session.display_name = display_name
    return session


def save_session(db: Session, session: ChatSession) -> ChatSession:
    """Persist the session if nobody else saved it since it was loaded.

    Raises SessionConflictError when the stored version moved on.
    """
    now = datetime.now(timezone.utc)
    data = session.model_dump(mode="json", exclude={"version"})
    expected_version = session.version

    try:
        if expected_version == 0:
            record = SessionRecord(
                user_identity=session.user_identity,
                raw_address=session.raw_address,
                current_flow=session.current_flow.value,
                data=data,
                version=1,
                created_at=session.first_contact_at or now,
                updated_at=now,
            )
            db.add(record)
            db.flush()
        else:
            result = db.execute(
                update(SessionRecord)
                .where(
                    SessionRecord.user_identity == session.user_identity,
                    SessionRecord.version == expected_version,
                )
                .values(
                    raw_address=session.raw_address,
                    current_flow=session.current_flow.value,
                    data=data,
                    version=expected_version + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                raise SessionConflictError(session.user_identity, expected_version)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SessionConflictError(session.user_identity, expected_version) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise SessionStoreError(f"Failed to save session {session.user_identity}: {exc}") from exc

    session.version = expected_version + 1
    return session


def reset_session(db: Session, raw_address: str) -> ChatSession:
    """Administrative reset: replace the stored session with its reset form."""
    session = get_or_create_session(db, raw_address)
    reset = build_reset_session(session)
    return save_session(db, reset)


def append_history(session: ChatSession, role: str, text: str, limit: Optional[int] = None) -> None:
    """Append to the conversation history, keeping only the newest entries."""
    limit = limit or settings.history_limit
    session.conversation_history.append(HistoryEntry(role=role, text=text))
    if len(session.conversation_history) > limit:
        session.conversation_history = session.conversation_history[-limit:]


def record_media(session: ChatSession, media_url: str) -> None:
    """Log received media; attach it to the report while one is being collected."""
    session.media_items.append(MediaItem(reference=media_url))
    report = session.open_report()
    if session.current_flow == ConversationFlow.LOST_ITEM_REPORT and report is not None:
        report.images.append(media_url)
