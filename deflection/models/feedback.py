from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean
from sqlalchemy.sql import func
from deflection.core.database import Base

class CustomerFeedback(Base):
    __tablename__ = "customer_feedback"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    satisfaction_score = Column(Integer, nullable=False)  # 1..5
    response_helpful = Column(Boolean, default=False)
    would_recommend = Column(Boolean, default=False)
    resolution_status = Column(String, nullable=True)  # resolved | partially_resolved | unresolved
    category = Column(String, nullable=True)
    feedback_text = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
