from sqlalchemy import JSON, Column, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from missing_matters.database import Base


class SessionRecord(Base):
    __tablename__ = "sessions"

    user_identity = Column(Text, primary_key=True)
    raw_address = Column(Text, nullable=False)
    current_flow = Column(Text, nullable=False, default="initial_greeting")
    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True))
