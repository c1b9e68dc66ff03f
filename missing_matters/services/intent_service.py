import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from missing_matters.logging_config import get_logger
from missing_matters.schemas.session import ChatSession
from missing_matters.services.capabilities import LLMCapability
from missing_matters.services.state_machine import ConversationFlow

logger = get_logger("intent_service")


class Intent(str, Enum):
    GREETING = "greeting"
    GOODBYE = "goodbye"
    REPORT_LOST_ITEM = "report_lost_item"
    PROVIDE_ITEM_DESCRIPTION = "provide_item_description"
    PROVIDE_LOCATION = "provide_location"
    PROVIDE_CONTACT_INFO = "provide_contact_info"
    PROVIDE_NAME = "provide_name"
    PROVIDE_PHONE = "provide_phone"
    PROVIDE_EMAIL = "provide_email"
    PROVIDE_TIME = "provide_time"
    LEARN_ABOUT_COMPANY = "learn_about_company"
    REQUEST_HELP = "request_help"
    CONFIRM = "confirm"
    DENY = "deny"
    GENERAL_QUERY = "general_query"


class IntentSource(str, Enum):
    RULE = "rule"
    LLM = "llm"
    DEFAULT = "default"


# Labels the language model may answer with
LLM_INTENTS = (
    Intent.GREETING,
    Intent.GOODBYE,
    Intent.REPORT_LOST_ITEM,
    Intent.PROVIDE_ITEM_DESCRIPTION,
    Intent.PROVIDE_LOCATION,
    Intent.PROVIDE_CONTACT_INFO,
    Intent.PROVIDE_TIME,
    Intent.LEARN_ABOUT_COMPANY,
    Intent.REQUEST_HELP,
    Intent.CONFIRM,
    Intent.DENY,
    Intent.GENERAL_QUERY,
)

LOST_ITEM_KEYWORDS = ("lost", "missing", "find", "can't find", "misplaced")
COMPANY_KEYWORDS = ("about", "company", "pmatts", "service", "missing matters")
GREETING_EXACT = {"hi", "hello", "hey", "greetings", "hi there"}
DESCRIPTION_STOP_WORDS = {"help", "hi", "hello"}

PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")

LOST_ITEM_CONFIDENCE = 0.9
DESCRIPTION_CONFIDENCE = 0.8
COMPANY_CONFIDENCE = 0.85
GREETING_CONFIDENCE = 0.95
CONTACT_CONFIDENCE = 0.9
NAME_CONFIDENCE = 0.7
LLM_CONFIDENCE = 0.75
DEFAULT_CONFIDENCE = 0.5

CLASSIFY_PROMPT = """Classify the user's message sent to a lost-and-found assistant.
Answer with ONLY one label from this list:
{labels}

Current conversation stage: {flow}

Message: {message}

Label:"""


@dataclass(frozen=True)
class ClassifiedIntent:
    intent: Intent
    confidence: float
    source: IntentSource


def _normalize(message: str | None) -> str:
    return (message or "").strip().lower()


def _contains_any(normalized: str, keywords) -> bool:
    return any(keyword in normalized for keyword in keywords)


def is_phone_like(text: str) -> bool:
    return PHONE_PATTERN.match(text.strip()) is not None


def is_email_like(text: str) -> bool:
    return "@" in text and "." in text


def _classify_contact_info(normalized: str, session: ChatSession) -> Optional[ClassifiedIntent]:
    if is_phone_like(normalized):
        return ClassifiedIntent(Intent.PROVIDE_PHONE, CONTACT_CONFIDENCE, IntentSource.RULE)
    if is_email_like(normalized):
        return ClassifiedIntent(Intent.PROVIDE_EMAIL, CONTACT_CONFIDENCE, IntentSource.RULE)

    report = session.open_report()
    if report is not None and report.next_missing_field() == "location" and len(normalized) > 2:
        return ClassifiedIntent(Intent.PROVIDE_LOCATION, NAME_CONFIDENCE, IntentSource.RULE)

    if 2 < len(normalized) < 50:
        return ClassifiedIntent(Intent.PROVIDE_NAME, NAME_CONFIDENCE, IntentSource.RULE)
    return None


def classify_by_rules(message: str, session: ChatSession) -> Optional[ClassifiedIntent]:
    """Apply the deterministic rules in order. Returns None when no rule matches."""
    normalized = _normalize(message)
    if not normalized:
        return None

    if _contains_any(normalized, LOST_ITEM_KEYWORDS):
        return ClassifiedIntent(Intent.REPORT_LOST_ITEM, LOST_ITEM_CONFIDENCE, IntentSource.RULE)

    if session.current_flow == ConversationFlow.LOST_ITEM_REPORT and len(normalized) > 3:
        words = set(re.findall(r"[a-z']+", normalized))
        if not words & DESCRIPTION_STOP_WORDS:
            return ClassifiedIntent(Intent.PROVIDE_ITEM_DESCRIPTION, DESCRIPTION_CONFIDENCE, IntentSource.RULE)

    if _contains_any(normalized, COMPANY_KEYWORDS):
        return ClassifiedIntent(Intent.LEARN_ABOUT_COMPANY, COMPANY_CONFIDENCE, IntentSource.RULE)

    if normalized in GREETING_EXACT:
        return ClassifiedIntent(Intent.GREETING, GREETING_CONFIDENCE, IntentSource.RULE)

    if session.current_flow == ConversationFlow.COLLECTING_CONTACT_INFO:
        return _classify_contact_info(normalized, session)

    return None


def parse_llm_label(raw: str) -> Optional[Intent]:
    """Map a model answer onto the allowed labels. Anything else is ignored."""
    answer = _normalize(raw).strip(" .\"'`")
    for intent in LLM_INTENTS:
        if answer == intent.value:
            return intent
    # Longest labels first so "provide_contact_info" wins over shorter overlaps
    for intent in sorted(LLM_INTENTS, key=lambda item: len(item.value), reverse=True):
        if intent.value in answer:
            return intent
    return None


def classify_with_llm(message: str, session: ChatSession, llm: LLMCapability) -> Optional[Intent]:
    """Ask the language model for a label. Returns None on any failure."""
    prompt = CLASSIFY_PROMPT.format(
        labels="\n".join(f"- {intent.value}" for intent in LLM_INTENTS),
        flow=session.current_flow.value,
        message=message,
    )

    llm_start = time.monotonic()
    try:
        response = llm.provider.generate(
            [{"role": "user", "content": prompt}],
            model=llm.model,
            temperature=0.0,
            max_tokens=10,
            timeout_seconds=llm.intent_timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        logger.warning(f"Intent LLM timeout after {llm.intent_timeout_seconds}s: {exc}")
        return None
    except Exception as exc:
        logger.error(f"Intent LLM error: {exc}")
        return None

    logger.info(
        "Timing",
        extra={
            "context": {
                "stage": "intent_llm_ms",
                "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                "model_name": llm.model,
            }
        },
    )

    intent = parse_llm_label(response.content)
    if intent is None:
        logger.warning(f"Intent LLM returned unknown label: {response.content!r}")
    return intent


def classify_intent(message: str, session: ChatSession, llm: Optional[LLMCapability] = None) -> ClassifiedIntent:
    """Classify a user message. Never raises."""
    try:
        classified = classify_by_rules(message, session)
        if classified is None and llm is not None and llm.configured:
            intent = classify_with_llm(message, session, llm)
            if intent is not None:
                classified = ClassifiedIntent(intent, LLM_CONFIDENCE, IntentSource.LLM)
    except Exception as exc:
        logger.error(f"Intent classification error: {exc}")
        classified = None

    if classified is None:
        classified = ClassifiedIntent(Intent.GENERAL_QUERY, DEFAULT_CONFIDENCE, IntentSource.DEFAULT)

    logger.info(
        "Intent classified",
        extra={
            "context": {
                "intent": classified.intent.value,
                "confidence": classified.confidence,
                "source": classified.source.value,
                "flow": session.current_flow.value,
            }
        },
    )
    return classified
