from pydantic import BaseModel, ConfigDict, Field
from datetime import date as date_type, datetime
from typing import Dict, List, Literal, Optional


class DailyMetricsResponse(BaseModel):
    user_id: str
    date: date_type
    tickets_processed: int
    tickets_deflected: int
    deflection_rate: float
    avg_response_time: float
    avg_satisfaction: float
    cost_savings: float
    roi_percentage: float
    agent_efficiency: float
    hours_saved: float
    customer_retention_rate: float

    model_config = ConfigDict(from_attributes=True)


class ResultsSummary(BaseModel):
    user_id: str
    days: int
    total_tickets: int
    total_deflected: int
    deflection_rate: float
    total_cost_savings: float
    avg_satisfaction: float
    avg_roi: float
    trends: Dict[str, float]


class VariantIn(BaseModel):
    name: str = Field(min_length=1)
    configuration: dict = {}
    traffic_percentage: float = Field(gt=0.0, le=100.0)


class ABTestCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    test_type: Literal["template", "threshold", "prompt"] = "template"
    variants: List[VariantIn]


class VariantResponse(BaseModel):
    id: int
    name: str
    configuration: Optional[dict] = {}
    traffic_percentage: float

    model_config = ConfigDict(from_attributes=True)


class ABTestResponse(BaseModel):
    id: int
    user_id: str
    name: str
    test_type: str
    status: str
    winner_variant_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    variants: List[VariantResponse] = []


class ImpressionIn(BaseModel):
    variant_id: int
    ticket_id: str


class ConversionIn(BaseModel):
    variant_id: int
    ticket_id: str
    conversion_type: str = "resolved"


class VariantResult(BaseModel):
    variant_id: int
    name: str
    impressions: int
    conversions: int
    conversion_rate: float  # percent


class ABTestResults(BaseModel):
    test_id: int
    status: str
    variants: List[VariantResult]
    winner_variant_id: Optional[int] = None
