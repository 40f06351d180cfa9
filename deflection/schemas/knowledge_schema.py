from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class KnowledgeEntryIn(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    tags: List[str] = []
    category: str = "general"


class KnowledgeEntryResponse(BaseModel):
    id: int
    title: str
    content: str
    tags: Optional[list] = []
    category: str
    is_active: bool
    success_rate: float
    usage_count: int

    model_config = ConfigDict(from_attributes=True)


class TemplateIn(BaseModel):
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    keywords: List[str] = []
    category: str = "general"


class TemplateResponse(BaseModel):
    id: int
    name: str
    content: str
    keywords: Optional[list] = []
    category: str
    is_active: bool
    success_rate: float
    usage_count: int

    model_config = ConfigDict(from_attributes=True)


class BatchFailureOut(BaseModel):
    start: int
    end: int
    error: str


class BackfillResponse(BaseModel):
    status: str
    embedding_source: str
    knowledge_entries_embedded: int
    tickets_embedded: int
    failures: List[BatchFailureOut]
