import re
from enum import Enum


class ConversationFlow(str, Enum):
    INITIAL_GREETING = "initial_greeting"
    LOST_ITEM_REPORT = "lost_item_report"
    COLLECTING_CONTACT_INFO = "collecting_contact_info"
    COMPANY_INFO = "company_info"
    VERIFICATION = "verification"
    HELP = "help"


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"
    UNCLAIMED = "UNCLAIMED"


DEFAULT_FLOW = ConversationFlow.INITIAL_GREETING

# Flows in which the fallback templates keep asking for report fields
REPORT_FLOWS = {ConversationFlow.LOST_ITEM_REPORT, ConversationFlow.COLLECTING_CONTACT_INFO}

# Required report fields, in the order they are requested
REQUIRED_REPORT_FIELDS = ("description", "name", "phone", "location")

# Flow to hold while the given field is being requested
FIELD_FLOWS = {
    "description": ConversationFlow.LOST_ITEM_REPORT,
    "name": ConversationFlow.COLLECTING_CONTACT_INFO,
    "phone": ConversationFlow.COLLECTING_CONTACT_INFO,
    "location": ConversationFlow.COLLECTING_CONTACT_INFO,
}

RESET_PATTERN = re.compile(r"\b(reset|restart|start over|clear|begin again|new chat)\b", re.IGNORECASE)


def is_reset_command(message: str | None) -> bool:
    """Check if the user asked to start the conversation over."""
    if not message:
        return False
    return RESET_PATTERN.search(message) is not None


def coerce_flow(value: str | None) -> ConversationFlow:
    """Map a stored flow value to the enum, falling back to the initial flow."""
    if not value:
        return DEFAULT_FLOW
    try:
        return ConversationFlow(value)
    except ValueError:
        return DEFAULT_FLOW
