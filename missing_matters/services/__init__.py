from missing_matters.services.result import Result
from missing_matters.services.state_machine import (
    DEFAULT_FLOW,
    REPORT_FLOWS,
    ConversationFlow,
    ReportStatus,
    coerce_flow,
    is_reset_command,
)
