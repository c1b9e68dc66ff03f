from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from missing_matters.services.state_machine import DEFAULT_FLOW, REQUIRED_REPORT_FIELDS, ConversationFlow, ReportStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(BaseModel):
    role: Literal["user", "assistant"]
    text: str
    created_at: datetime = Field(default_factory=utcnow)


class MediaItem(BaseModel):
    reference: str
    received_at: datetime = Field(default_factory=utcnow)


class LostItemReport(BaseModel):
    description: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    time_lost: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    reference_number: Optional[str] = None
    status: Optional[ReportStatus] = None
    reported_at: Optional[datetime] = None

    def next_missing_field(self) -> Optional[str]:
        """Return the first required field that is still empty."""
        for field_name in REQUIRED_REPORT_FIELDS:
            if not getattr(self, field_name):
                return field_name
        return None

    def is_complete(self) -> bool:
        return self.next_missing_field() is None


class ChatSession(BaseModel):
    user_identity: str
    raw_address: str
    display_name: Optional[str] = None
    phone: Optional[str] = None
    conversation_history: list[HistoryEntry] = Field(default_factory=list)
    current_flow: ConversationFlow = DEFAULT_FLOW
    lost_item_report: Optional[LostItemReport] = None
    media_items: list[MediaItem] = Field(default_factory=list)
    first_contact_at: datetime = Field(default_factory=utcnow)
    last_message_at: Optional[datetime] = None
    version: int = 0

    def ensure_report(self) -> LostItemReport:
        if self.lost_item_report is None:
            self.lost_item_report = LostItemReport()
        return self.lost_item_report

    def has_active_report(self) -> bool:
        return self.lost_item_report is not None and not self.lost_item_report.reference_number

    def open_report(self) -> Optional[LostItemReport]:
        """The report still accepting field updates, if any."""
        return self.lost_item_report if self.has_active_report() else None
