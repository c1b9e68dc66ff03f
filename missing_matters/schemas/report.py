from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReportStatusResponse(BaseModel):
    reference_number: str = Field(serialization_alias="referenceNumber")
    status: str
    report_date: Optional[datetime] = Field(default=None, serialization_alias="reportDate")
    last_updated: Optional[datetime] = Field(default=None, serialization_alias="lastUpdated")
    potential_match_count: int = Field(default=0, serialization_alias="potentialMatchCount")
