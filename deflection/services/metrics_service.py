"""
Metrics Aggregator
Daily per-user rollups (upserted, safe to recompute) and the multi-day
results summary built on top of them.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence
import logging

from deflection.core.config import settings
from deflection.models.feedback import CustomerFeedback
from deflection.models.metrics import DailyMetrics
from deflection.schemas.metrics_schema import ResultsSummary
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)

# Agent time saved per deflected ticket
HOURS_SAVED_PER_DEFLECTION = 0.1
TREND_WINDOW_DAYS = 7


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def compute_rollup(
    *,
    tickets_processed: int,
    tickets_deflected: int,
    avg_response_time_ms: Optional[float],
    feedback: Sequence[CustomerFeedback],
    flat_rate_per_ticket: float = settings.FLAT_RATE_PER_TICKET,
    monthly_cost: float = settings.MONTHLY_COST,
) -> Dict[str, float]:
    deflection_rate = tickets_deflected / tickets_processed if tickets_processed else 0.0
    cost_savings = tickets_deflected * flat_rate_per_ticket
    roi = (cost_savings - monthly_cost) / monthly_cost * 100 if monthly_cost else 0.0

    if feedback:
        avg_satisfaction = sum(f.satisfaction_score for f in feedback) / len(feedback)
        retention = sum(1 for f in feedback if f.would_recommend) / len(feedback) * 100
    else:
        avg_satisfaction = 0.0
        retention = 0.0

    return {
        "tickets_processed": tickets_processed,
        "tickets_deflected": tickets_deflected,
        "deflection_rate": deflection_rate,
        "avg_response_time": (avg_response_time_ms or 0.0) / 1000,
        "avg_satisfaction": avg_satisfaction,
        "cost_savings": cost_savings,
        "roi_percentage": roi,
        "agent_efficiency": min(100.0, deflection_rate * 100 + avg_satisfaction * 10),
        "hours_saved": tickets_deflected * HOURS_SAVED_PER_DEFLECTION,
        "customer_retention_rate": retention,
    }


async def compute_daily_metrics(store: DeflectionStore, user_id: str, day: date) -> DailyMetrics:
    start, end = day_bounds(day)

    values = compute_rollup(
        tickets_processed=await store.count_tickets(user_id, start, end),
        tickets_deflected=await store.count_deflections(user_id, start, end),
        avg_response_time_ms=await store.avg_response_time_ms(user_id, start, end),
        feedback=await store.list_feedback(user_id, start, end),
    )
    row = await store.upsert_daily_metrics(user_id, day, **values)
    logger.info(
        "Daily metrics %s %s: processed=%s deflected=%s rate=%.3f roi=%.1f%%",
        user_id, day, values["tickets_processed"], values["tickets_deflected"],
        values["deflection_rate"], values["roi_percentage"],
    )
    return row


def percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def _window_totals(rows: List[DailyMetrics]) -> Dict[str, float]:
    processed = sum(r.tickets_processed or 0 for r in rows)
    deflected = sum(r.tickets_deflected or 0 for r in rows)
    rated = [r.avg_satisfaction for r in rows if r.avg_satisfaction]
    return {
        "deflection_rate": deflected / processed if processed else 0.0,
        "cost_savings": sum(r.cost_savings or 0.0 for r in rows),
        "avg_satisfaction": sum(rated) / len(rated) if rated else 0.0,
        "tickets_processed": float(processed),
    }


async def get_results_summary(
    store: DeflectionStore,
    user_id: str,
    days: int = 30,
    today: Optional[date] = None,
) -> ResultsSummary:
    today = today or datetime.now(timezone.utc).date()
    rows = await store.list_daily_metrics(user_id, today - timedelta(days=days - 1), today)

    total_tickets = sum(r.tickets_processed or 0 for r in rows)
    total_deflected = sum(r.tickets_deflected or 0 for r in rows)
    rated = [r.avg_satisfaction for r in rows if r.avg_satisfaction]

    # Last 7 days vs. the 7 before them
    recent_start = today - timedelta(days=TREND_WINDOW_DAYS - 1)
    previous_start = recent_start - timedelta(days=TREND_WINDOW_DAYS)
    trend_rows = await store.list_daily_metrics(user_id, previous_start, today)
    recent = _window_totals([r for r in trend_rows if r.date >= recent_start])
    previous = _window_totals([r for r in trend_rows if r.date < recent_start])

    return ResultsSummary(
        user_id=user_id,
        days=days,
        total_tickets=total_tickets,
        total_deflected=total_deflected,
        deflection_rate=total_deflected / total_tickets if total_tickets else 0.0,
        total_cost_savings=sum(r.cost_savings or 0.0 for r in rows),
        avg_satisfaction=sum(rated) / len(rated) if rated else 0.0,
        avg_roi=sum(r.roi_percentage or 0.0 for r in rows) / len(rows) if rows else 0.0,
        trends={key: round(percent_change(recent[key], previous[key]), 2) for key in recent},
    )
