from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class DeflectionSettings(BaseModel):
    auto_response_enabled: bool = True
    confidence_threshold: float = Field(ge=0.0, le=1.0)
    escalation_threshold: float = Field(ge=0.0, le=1.0)
    response_language: str = "en"
    business_hours_only: bool = False
    excluded_categories: List[str] = []
    escalation_keywords: List[str] = []
    custom_instructions: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class SettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""
    auto_response_enabled: Optional[bool] = None
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    escalation_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    response_language: Optional[str] = None
    business_hours_only: Optional[bool] = None
    excluded_categories: Optional[List[str]] = None
    escalation_keywords: Optional[List[str]] = None
    custom_instructions: Optional[str] = None
