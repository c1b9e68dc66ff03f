from datetime import datetime, timezone
from functools import partial

from sqlalchemy.orm import Session

from missing_matters.logging_config import SessionLoggerAdapter, get_logger
from missing_matters.schemas.webhook import InboundMessage
from missing_matters.services.capabilities import Capabilities
from missing_matters.services.intent_service import classify_intent
from missing_matters.services.report_service import reference_exists, store_lost_report
from missing_matters.services.response_service import (
    APOLOGY_RESPONSE,
    MEDIA_ACK_PREFIX,
    RESET_RESPONSE,
    generate_response,
)
from missing_matters.services.session_reducer import reduce_session
from missing_matters.services.session_service import (
    SessionStoreError,
    append_history,
    build_reset_session,
    get_or_create_session,
    normalize_identity,
    record_media,
    save_session,
)
from missing_matters.services.state_machine import is_reset_command

logger = get_logger("webhook_service")


def process_inbound_message(db: Session, inbound: InboundMessage, capabilities: Capabilities) -> str:
    """Run one inbound message through the conversation and return the reply text."""
    log = SessionLoggerAdapter(logger, {"user_identity": normalize_identity(inbound.sender)})
    log.info("Inbound message", context={"has_media": inbound.has_media, "length": len(inbound.body)})

    # 1. Load or create session
    session = get_or_create_session(db, inbound.sender, inbound.profile_name)

    # 2. Reset short-circuits everything else
    if is_reset_command(inbound.body):
        session = build_reset_session(session)
        reply = RESET_RESPONSE
        log.info("Session reset by user")
    else:
        # 3. Media
        if inbound.has_media:
            record_media(session, inbound.media_url)

        # 4. Classify and advance the flow
        classified = classify_intent(inbound.body, session, capabilities.llm)
        reduce_session(session, classified, inbound.body)

        # 5. Reply
        reply = generate_response(
            inbound.body,
            session,
            llm=capabilities.llm,
            report_writer=partial(store_lost_report, db),
            reference_taken=partial(reference_exists, db),
        )
        if inbound.has_media:
            reply = f"{MEDIA_ACK_PREFIX} {reply}"

        append_history(session, "user", inbound.body)
        append_history(session, "assistant", reply)

    # 6. Persist; the reply goes out even if the save fails
    session.last_message_at = datetime.now(timezone.utc)
    try:
        save_session(db, session)
    except SessionStoreError as exc:
        log.error(f"Session not saved: {exc}", context={"flow": session.current_flow.value})

    log.info("Reply ready", context={"flow": session.current_flow.value})
    return reply


def handle_inbound_message(db: Session, inbound: InboundMessage, capabilities: Capabilities) -> str:
    """Like process_inbound_message, but any failure becomes the apology reply."""
    try:
        return process_inbound_message(db, inbound, capabilities)
    except Exception:
        logger.exception(
            "Error processing WhatsApp message",
            extra={"context": {"user_identity": normalize_identity(inbound.sender)}},
        )
        return APOLOGY_RESPONSE
