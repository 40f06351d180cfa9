from sqlalchemy import Column, Integer, String, Date, DateTime, Float, UniqueConstraint
from sqlalchemy.sql import func
from deflection.core.database import Base

class DailyMetrics(Base):
    __tablename__ = "daily_metrics"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_metrics_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    tickets_processed = Column(Integer, default=0)
    tickets_deflected = Column(Integer, default=0)
    deflection_rate = Column(Float, default=0.0)  # ratio in [0, 1]
    avg_response_time = Column(Float, default=0.0)  # seconds
    avg_satisfaction = Column(Float, default=0.0)
    cost_savings = Column(Float, default=0.0)
    roi_percentage = Column(Float, default=0.0)

    agent_efficiency = Column(Float, default=0.0)
    hours_saved = Column(Float, default=0.0)
    customer_retention_rate = Column(Float, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
