from fastapi import APIRouter, Depends
from sqlalchemy import func as sqlfunc, select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from deflection.api.dependencies import get_db, get_store
from deflection.models.log_record import DeflectionLog
from deflection.services.store import DeflectionStore

router = APIRouter()


class DeflectionLogResponse(BaseModel):
    id: int
    ticket_id: str
    user_id: str
    state: str
    reason: str
    confidence_score: Optional[float] = None
    requires_human: Optional[bool] = None
    complexity: Optional[str] = None
    provider: Optional[str] = None
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    response_time_ms: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EvaluationMetrics(BaseModel):
    total_passes: int
    by_state: Dict[str, int]
    deflect_rate: float
    avg_confidence: Optional[float]
    avg_response_time_ms: Optional[float]
    total_cost: float


@router.get("/logs", response_model=List[DeflectionLogResponse])
async def get_deflection_logs(limit: int = 50, store: DeflectionStore = Depends(get_store)):
    """Retrieve recent deflection passes for diagnostics and review."""
    return await store.list_logs(limit)


@router.get("/evaluation", response_model=EvaluationMetrics)
async def get_evaluation_metrics(db: AsyncSession = Depends(get_db)):
    """Compute aggregate evaluation metrics from the deflection logs."""
    rows = await db.execute(
        select(DeflectionLog.state, sqlfunc.count(DeflectionLog.id)).group_by(DeflectionLog.state)
    )
    by_state = {state: count for state, count in rows.all()}
    total = sum(by_state.values())

    avg_conf = (await db.execute(
        select(sqlfunc.avg(DeflectionLog.confidence_score)).where(DeflectionLog.confidence_score.isnot(None))
    )).scalar()
    avg_time = (await db.execute(
        select(sqlfunc.avg(DeflectionLog.response_time_ms)).where(DeflectionLog.response_time_ms.isnot(None))
    )).scalar()
    total_cost = (await db.execute(select(sqlfunc.sum(DeflectionLog.cost)))).scalar() or 0.0

    deflected = by_state.get("AUTO_RESOLVED", 0)
    return EvaluationMetrics(
        total_passes=total,
        by_state=by_state,
        deflect_rate=round(deflected / total * 100, 1) if total > 0 else 0,
        avg_confidence=round(avg_conf, 4) if avg_conf else None,
        avg_response_time_ms=round(avg_time, 0) if avg_time else None,
        total_cost=total_cost,
    )
