"""Intent-driven session transitions.

Each transition receives the session and the raw message text and mutates the
session in place. The orchestrator owns the session for the duration of one
request, so nothing else writes to it concurrently.
"""

import re
from typing import Callable, Optional

from missing_matters.logging_config import get_logger
from missing_matters.schemas.session import ChatSession, LostItemReport
from missing_matters.services.intent_service import ClassifiedIntent, Intent
from missing_matters.services.state_machine import FIELD_FLOWS, ConversationFlow

logger = get_logger("session_reducer")

Transition = Callable[[ChatSession, str], None]


def normalize_phone(raw: str) -> str:
    """Normalize a phone number to +<digits>.

    Ten-digit numbers without a "+" get the default +1 country code. Other
    countries must be sent with their own "+" prefix.
    """
    phone = (raw or "").strip()
    digits = re.sub(r"\D", "", phone)
    if phone.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def align_report_flow(session: ChatSession) -> None:
    """Point the flow at the field the open report is waiting for."""
    report = session.open_report()
    if report is None:
        return
    next_field = report.next_missing_field()
    session.current_flow = FIELD_FLOWS[next_field] if next_field else ConversationFlow.LOST_ITEM_REPORT


def start_report(session: ChatSession) -> LostItemReport:
    """Ensure an open report exists and enter the reporting flow.

    An open report keeps its fields; the flow resumes at its next missing field.
    """
    report = session.open_report()
    if report is None:
        report = LostItemReport()
        session.lost_item_report = report
    align_report_flow(session)
    return report


def _greeting(session: ChatSession, text: str) -> None:
    if session.has_active_report() or session.current_flow == ConversationFlow.VERIFICATION:
        return
    session.current_flow = ConversationFlow.INITIAL_GREETING


def _item_description(session: ChatSession, text: str) -> None:
    if session.current_flow not in (ConversationFlow.LOST_ITEM_REPORT, None):
        return
    session.ensure_report().description = text.strip()
    session.current_flow = ConversationFlow.COLLECTING_CONTACT_INFO


def _location(session: ChatSession, text: str) -> None:
    report = session.open_report()
    if report is not None:
        report.location = text.strip()


def _name(session: ChatSession, text: str) -> None:
    name = text.strip()
    session.display_name = name
    report = session.open_report()
    if report is not None:
        report.name = name


def _phone(session: ChatSession, text: str) -> None:
    phone = normalize_phone(text)
    session.phone = phone
    report = session.open_report()
    if report is not None:
        report.phone = phone


def _time_lost(session: ChatSession, text: str) -> None:
    report = session.open_report()
    if report is not None:
        report.time_lost = text.strip()


def _company_info(session: ChatSession, text: str) -> None:
    session.current_flow = ConversationFlow.COMPANY_INFO


def _help(session: ChatSession, text: str) -> None:
    session.current_flow = ConversationFlow.HELP


TRANSITIONS: dict[Intent, Transition] = {
    Intent.GREETING: _greeting,
    Intent.PROVIDE_ITEM_DESCRIPTION: _item_description,
    Intent.PROVIDE_LOCATION: _location,
    Intent.PROVIDE_NAME: _name,
    Intent.PROVIDE_PHONE: _phone,
    Intent.PROVIDE_TIME: _time_lost,
    Intent.LEARN_ABOUT_COMPANY: _company_info,
    Intent.REQUEST_HELP: _help,
}


def get_transition(intent: Intent) -> Optional[Transition]:
    return TRANSITIONS.get(intent)


def reduce_session(session: ChatSession, classified: ClassifiedIntent, message_text: str) -> ChatSession:
    """Apply a classified intent to the session."""
    previous_flow = session.current_flow

    if classified.intent == Intent.REPORT_LOST_ITEM:
        start_report(session)

    transition = get_transition(classified.intent)
    if transition is not None:
        transition(session, message_text or "")

    if session.current_flow != previous_flow:
        logger.info(
            "Flow changed",
            extra={
                "context": {
                    "user_identity": session.user_identity,
                    "intent": classified.intent.value,
                    "from_flow": previous_flow.value,
                    "to_flow": session.current_flow.value,
                }
            },
        )
    return session
