from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, Float
from sqlalchemy.sql import func
from deflection.core.database import Base

class DeflectionSettingsRecord(Base):
    __tablename__ = "deflection_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)

    auto_response_enabled = Column(Boolean, default=True)
    confidence_threshold = Column(Float, nullable=False)
    escalation_threshold = Column(Float, nullable=False)
    response_language = Column(String, default="en")
    business_hours_only = Column(Boolean, default=False)
    excluded_categories = Column(JSON, default=[])
    escalation_keywords = Column(JSON, default=[])
    custom_instructions = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
