from missing_matters.schemas.admin import ResetSessionResponse
from missing_matters.schemas.report import ReportStatusResponse
from missing_matters.schemas.session import ChatSession, HistoryEntry, LostItemReport, MediaItem
from missing_matters.schemas.webhook import InboundMessage

__all__ = [
    "ChatSession",
    "HistoryEntry",
    "LostItemReport",
    "MediaItem",
    "InboundMessage",
    "ResetSessionResponse",
    "ReportStatusResponse",
]
