from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, Float
from sqlalchemy.sql import func
from deflection.core.database import Base

class AIResponse(Base):
    __tablename__ = "ai_responses"

    id = Column(Integer, primary_key=True, index=True)
    # One stored response per ticket; reprocessing never creates a second row.
    ticket_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=False, index=True)

    response_content = Column(Text, nullable=False)
    response_type = Column(String, nullable=False)  # auto_resolve | follow_up | escalate
    confidence_score = Column(Float, nullable=False)
    reasoning = Column(Text, nullable=True)
    suggested_actions = Column(JSON, default=[])
    estimated_resolution_minutes = Column(Integer, nullable=True)
    follow_up_required = Column(Boolean, default=False)
    escalation_reason = Column(Text, nullable=True)

    state = Column(String, nullable=False, index=True)  # AUTO_RESOLVED | ESCALATED | FOLLOW_UP
    requires_human = Column(Boolean, default=False)
    sent_to_customer = Column(Boolean, default=False)

    knowledge_entry_ids = Column(JSON, default=[])
    template_ids = Column(JSON, default=[])

    tokens_used = Column(Integer, default=0)
    cost = Column(Float, default=0.0)
    provider = Column(String, nullable=True)
    response_time_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
