import time
from typing import Optional

import httpx

from missing_matters.logging_config import get_logger
from missing_matters.schemas.session import ChatSession, LostItemReport
from missing_matters.services.capabilities import LLMCapability
from missing_matters.services.report_service import ReferenceCheck, ReportWriter, finalize_report
from missing_matters.services.result import Result
from missing_matters.services.session_reducer import align_report_flow
from missing_matters.services.state_machine import FIELD_FLOWS, REPORT_FLOWS, ConversationFlow

logger = get_logger("response_service")

LLM_TEMPERATURE = 0.7
LLM_MAX_TOKENS = 300
LLM_HISTORY_WINDOW = 6

COMPANY_DESCRIPTION = """PMatts Private Limited is a technology company building smart infrastructure, \
digital transformation and security solutions. Founded in 2010, it operates offices in 12 countries and \
runs PMatts Catalysts, an innovation arm working on AI, ML, IoT and blockchain. Its clients span finance, \
healthcare, retail and transportation."""

PRODUCT_DESCRIPTION = """Missing Matters is the PMatts lost-and-found platform. It works in three steps: \
(1) the owner reports a lost item with details and optional photos, (2) an AI matching system compares it \
with every found item on record, (3) a matched item is placed in a smart box the owner opens with a claim code. \
Missing Matters has returned over 25,000 items, with an average recovery time of 48 hours, in 15 cities \
and more than 50 transport hubs and shopping centres, backed by 24/7 support."""

BEHAVIOR_POLICY = """Rules:
- Only talk about lost items, Missing Matters and PMatts. Politely steer anything else back.
- Keep replies brief: two or three sentences.
- Be warm and empathetic; losing something is stressful.
- Ask exactly one question per reply.
- Never use bullet points or numbered lists."""

FLOW_GUIDANCE = {
    ConversationFlow.INITIAL_GREETING: "Greet the user and offer to help report a lost item or explain the service.",
    ConversationFlow.LOST_ITEM_REPORT: "The user is reporting a lost item. Collect what is missing, one field at a time.",
    ConversationFlow.COLLECTING_CONTACT_INFO: "Collect the user's contact details for the report.",
    ConversationFlow.COMPANY_INFO: "The user wants to know about the company or the service.",
    ConversationFlow.VERIFICATION: "The user is verifying ownership of a found item; ask for their reference number.",
    ConversationFlow.HELP: "The user asked for help; explain what you can do for them.",
}

FIELD_LABELS = {
    "description": "item description",
    "name": "full name",
    "phone": "phone number",
    "location": "where it was lost",
}

APOLOGY_RESPONSE = "I apologize, but I encountered an error processing your message. Please try again later."
RESET_RESPONSE = (
    "Your conversation has been reset. 👋 Hi! I'm the Missing Matters assistant. "
    "I can help you report a lost item or tell you about our service. What would you like to do?"
)
MEDIA_ACK_PREFIX = "Thank you for sharing the image. This will help us identify your item better."


def _name_or_default(session: ChatSession) -> str:
    return session.display_name or "there"


# === PROMPT CONSTRUCTION ===


def build_flow_block(session: ChatSession) -> str:
    lines = [
        f"Current conversation stage: {session.current_flow.value}",
        FLOW_GUIDANCE.get(session.current_flow, ""),
    ]

    report = session.lost_item_report
    if report is not None:
        collected = [
            f"{FIELD_LABELS.get(field_name, field_name)}: {getattr(report, field_name)}"
            for field_name in ("description", "name", "phone", "location", "time_lost")
            if getattr(report, field_name)
        ]
        if collected:
            lines.append("Already collected: " + "; ".join(collected) + ".")
        next_field = report.next_missing_field()
        if next_field:
            lines.append(f"Ask next for: {FIELD_LABELS[next_field]}.")
        if report.reference_number:
            lines.append(f"The report is submitted with reference number {report.reference_number}.")

    if session.display_name:
        lines.append(f"The user's name is {session.display_name}.")
    return "\n".join(line for line in lines if line)


def build_system_prompt(session: ChatSession) -> str:
    return "\n\n".join(
        [
            "You are the WhatsApp assistant for Missing Matters.",
            COMPANY_DESCRIPTION,
            PRODUCT_DESCRIPTION,
            BEHAVIOR_POLICY,
            build_flow_block(session),
        ]
    )


def build_llm_messages(message_text: str, session: ChatSession) -> list[dict]:
    messages = [{"role": "system", "content": build_system_prompt(session)}]
    for entry in session.conversation_history[-LLM_HISTORY_WINDOW:]:
        messages.append({"role": entry.role, "content": entry.text})
    messages.append({"role": "user", "content": message_text})
    return messages


def generate_with_llm(message_text: str, session: ChatSession, llm: LLMCapability) -> Result[str]:
    llm_start = time.monotonic()
    try:
        response = llm.provider.generate(
            build_llm_messages(message_text, session),
            model=llm.model,
            temperature=LLM_TEMPERATURE,
            max_tokens=LLM_MAX_TOKENS,
            timeout_seconds=llm.response_timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        logger.warning(f"Response LLM timeout after {llm.response_timeout_seconds}s: {exc}")
        return Result.from_exception(exc, "llm_timeout")
    except Exception as exc:
        logger.error(f"Response LLM error: {exc}")
        return Result.from_exception(exc, "llm_error")

    logger.info(
        "Timing",
        extra={
            "context": {
                "stage": "response_llm_ms",
                "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                "model_name": llm.model,
            }
        },
    )

    content = (response.content or "").strip()
    if not content:
        return Result.failure("LLM returned empty content", "llm_empty")
    return Result.success(content)


# === FALLBACK TEMPLATES ===


def _ask_for_field(session: ChatSession, field_name: str) -> str:
    session.current_flow = FIELD_FLOWS[field_name]
    name = _name_or_default(session)
    if field_name == "description":
        return "I'm sorry to hear you've lost something. Could you please describe the item you've lost?"
    if field_name == "name":
        return "Thank you for the details. Could you please tell me your full name?"
    if field_name == "phone":
        return f"Thanks, {name}. What phone number can we reach you on?"
    return "Got it. Where do you think you lost the item?"


def _complete_report(
    session: ChatSession,
    report: LostItemReport,
    report_writer: Optional[ReportWriter],
    reference_taken: Optional[ReferenceCheck] = None,
) -> str:
    if finalize_report(report, is_taken=reference_taken) and report_writer is not None:
        try:
            result = report_writer(session, report)
            if not result.ok:
                logger.error(
                    "Lost report not stored",
                    extra={"context": {"reference_number": report.reference_number, "error": result.error}},
                )
        except Exception as exc:
            logger.error(f"Report writer failed for {report.reference_number}: {exc}")

    session.current_flow = ConversationFlow.INITIAL_GREETING
    name = report.name or _name_or_default(session)
    return (
        f"Thank you, {name}. Your lost item report has been submitted. "
        f"Your reference number is {report.reference_number}. "
        "We'll message you here as soon as we find a match."
    )


def _report_response(
    session: ChatSession,
    report_writer: Optional[ReportWriter],
    reference_taken: Optional[ReferenceCheck] = None,
) -> str:
    report = session.ensure_report()
    next_field = report.next_missing_field()
    if next_field is not None:
        return _ask_for_field(session, next_field)
    return _complete_report(session, report, report_writer, reference_taken)


def generate_fallback_response(
    session: ChatSession,
    report_writer: Optional[ReportWriter] = None,
    reference_taken: Optional[ReferenceCheck] = None,
) -> str:
    """Deterministic reply keyed by the current flow."""
    flow = session.current_flow
    name = _name_or_default(session)

    if flow in REPORT_FLOWS:
        return _report_response(session, report_writer, reference_taken)

    if flow == ConversationFlow.COMPANY_INFO:
        return f"{COMPANY_DESCRIPTION}\n\n{PRODUCT_DESCRIPTION}\n\nWould you like to report a lost item?"

    if flow == ConversationFlow.HELP:
        return (
            f"Of course, {name}. I can help you report a lost item, check on a report you've already made, "
            "or tell you about Missing Matters. What do you need?"
        )

    if flow == ConversationFlow.VERIFICATION:
        return "To verify a found item, please send the reference number you received when you reported it."

    return (
        f"👋 Hi {name}! Welcome to Missing Matters. I'm here to help you recover lost items "
        "or tell you about our services. Have you lost something?"
    )


def needs_finalization(session: ChatSession) -> bool:
    report = session.lost_item_report
    return (
        session.current_flow in REPORT_FLOWS
        and report is not None
        and report.is_complete()
        and not report.reference_number
    )


def generate_response(
    message_text: str,
    session: ChatSession,
    llm: Optional[LLMCapability] = None,
    report_writer: Optional[ReportWriter] = None,
    reference_taken: Optional[ReferenceCheck] = None,
) -> str:
    """Produce the reply text. Never raises."""
    try:
        # A just-completed report is always confirmed with its reference number
        if llm is not None and llm.configured and not needs_finalization(session):
            result = generate_with_llm(message_text, session, llm)
            if result.ok:
                if session.current_flow in REPORT_FLOWS:
                    align_report_flow(session)
                return result.value
            logger.info("Using template response", extra={"context": {"reason": result.error_code}})
    except Exception as exc:
        logger.error(f"Response generation error: {exc}")

    return generate_fallback_response(session, report_writer, reference_taken)
