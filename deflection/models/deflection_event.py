from sqlalchemy import Column, Integer, String, DateTime, Float
from sqlalchemy.sql import func
from deflection.core.database import Base

class DeflectionEvent(Base):
    __tablename__ = "deflection_events"

    id = Column(Integer, primary_key=True, index=True)
    # Append-only, at most one per ticket
    ticket_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    deflection_type = Column(String, nullable=False)  # auto_response | faq_match | template_match
    confidence_score = Column(Float, nullable=False)
    template_used = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
