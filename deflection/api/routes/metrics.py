from datetime import date

from fastapi import APIRouter, Depends, Query

from deflection.api.dependencies import get_store
from deflection.schemas.metrics_schema import DailyMetricsResponse, ResultsSummary
from deflection.services.metrics_service import compute_daily_metrics, get_results_summary
from deflection.services.store import DeflectionStore

router = APIRouter()


@router.post("/{user_id}/metrics/daily/{day}", response_model=DailyMetricsResponse)
async def recompute_daily_metrics(user_id: str, day: date, store: DeflectionStore = Depends(get_store)):
    """(Re)compute the rollup for one day. Safe to call repeatedly."""
    return await compute_daily_metrics(store, user_id, day)


@router.get("/{user_id}/metrics/summary", response_model=ResultsSummary)
async def results_summary(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    store: DeflectionStore = Depends(get_store),
):
    return await get_results_summary(store, user_id, days)
