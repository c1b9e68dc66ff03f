from missing_matters.models.lost_report import LostReport
from missing_matters.models.session import SessionRecord

__all__ = [
    "SessionRecord",
    "LostReport",
]
