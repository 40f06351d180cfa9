from pydantic import BaseModel, Field
from typing import List, Literal, Optional

ResolutionStatus = Literal["resolved", "partially_resolved", "unresolved"]


class FeedbackIn(BaseModel):
    ticket_id: str
    satisfaction_score: int = Field(ge=1, le=5)
    response_helpful: bool
    would_recommend: bool = False
    resolution_status: Optional[ResolutionStatus] = None
    category: Optional[str] = None
    feedback_text: Optional[str] = None


class FeedbackResult(BaseModel):
    feedback_id: int
    ticket_id: str
    updated_knowledge_entries: int
    updated_templates: int
    next_actions: List[str]
