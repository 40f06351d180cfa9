from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from deflection.core.database import Base

class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    conversation_id = Column(String, nullable=True, index=True)
    subject = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True)
    priority = Column(String, nullable=True)

    # open -> resolved (auto) | pending (follow-up) | closed (customer confirmed)
    status = Column(String, default="open", index=True)

    embedding = Column(JSON, nullable=True)
    embedding_source = Column(String, nullable=True)  # "openai" or "simulated"

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
