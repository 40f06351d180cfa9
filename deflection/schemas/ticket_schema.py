from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional


class ConversationMessage(BaseModel):
    role: Literal["customer", "agent", "bot"] = "customer"
    content: str
    created_at: Optional[datetime] = None


class TicketIn(BaseModel):
    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    conversation_id: Optional[str] = None
    subject: Optional[str] = None
    content: str
    customer_email: str
    category: Optional[str] = None
    priority: Optional[str] = None
    created_at: datetime
    # Earlier messages in the same conversation, oldest first
    conversation_history: List[ConversationMessage] = []


class TicketResponse(BaseModel):
    id: str
    user_id: str
    conversation_id: Optional[str] = None
    subject: Optional[str] = None
    content: str
    customer_email: str
    category: Optional[str] = None
    priority: Optional[str] = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
