from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float
from sqlalchemy.sql import func
from deflection.core.database import Base

class DeflectionLog(Base):
    __tablename__ = "deflection_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    state = Column(String, nullable=False, index=True)  # GATED_OUT | AUTO_RESOLVED | ESCALATED | FOLLOW_UP | FAILED
    reason = Column(Text, nullable=False)

    # Evaluation & monitoring fields
    confidence_score = Column(Float, nullable=True)
    requires_human = Column(Boolean, default=False)
    complexity = Column(String, nullable=True)
    provider = Column(String, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    cost = Column(Float, nullable=True)
    response_time_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
