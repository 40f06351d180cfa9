from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional

ResponseType = Literal["auto_resolve", "follow_up", "escalate"]


class DeflectionState(str, Enum):
    RECEIVED = "RECEIVED"
    GATED_OUT = "GATED_OUT"
    ANALYZED = "ANALYZED"
    AUTO_RESOLVED = "AUTO_RESOLVED"
    ESCALATED = "ESCALATED"
    FOLLOW_UP = "FOLLOW_UP"
    # A collaborator or store failure stopped the pass before a decision
    FAILED = "FAILED"


class GeneratedResponse(BaseModel):
    content: str = Field(min_length=1)
    type: ResponseType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    suggested_actions: List[str] = []
    estimated_resolution_minutes: Optional[int] = Field(default=None, ge=0)
    follow_up_needed: bool = False
    escalation_reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class DeflectionResult(BaseModel):
    ticket_id: str
    should_respond: bool
    state: DeflectionState
    reason: str
    response: Optional[GeneratedResponse] = None
    requires_human: bool = False
    tokens_used: int = 0
    cost: float = 0.0
    simulated_embeddings: bool = False
    degraded_sources: List[str] = []
    # True when the ticket had already been analyzed and the stored outcome was returned
    replayed: bool = False


class ProcessingStats(BaseModel):
    processed: int = 0
    deflected: int = 0
    escalated: int = 0
    follow_up: int = 0
    gated: int = 0
    failed: int = 0
    replayed: int = 0


class BatchProcessResponse(BaseModel):
    results: List[DeflectionResult]
    stats: ProcessingStats


class AIResponseOut(BaseModel):
    ticket_id: str
    response_content: str
    response_type: str
    confidence_score: float
    reasoning: Optional[str] = None
    suggested_actions: Optional[list] = []
    follow_up_required: bool
    escalation_reason: Optional[str] = None
    state: str
    sent_to_customer: bool
    knowledge_entry_ids: Optional[list] = []
    template_ids: Optional[list] = []
    tokens_used: int
    cost: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
