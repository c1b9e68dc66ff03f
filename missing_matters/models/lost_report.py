import uuid

from sqlalchemy import JSON, Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from missing_matters.database import Base


class LostReport(Base):
    __tablename__ = "lost_reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_number = Column(Text, nullable=False, unique=True, index=True)
    user_identity = Column(Text, nullable=False, index=True)
    description = Column(Text)
    name = Column(Text)
    phone = Column(Text)
    location = Column(Text)
    time_lost = Column(Text)
    images = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    status = Column(Text, nullable=False, default="PENDING")  # PENDING, CLAIMED, UNCLAIMED
    potential_matches = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    reported_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True))
