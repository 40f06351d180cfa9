"""
A/B testing
Variant assignment, per-ticket impression/conversion recording and winner
selection using a flat percentage-point gap.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
import hashlib
import logging

from deflection.core.config import settings
from deflection.core.errors import ABTestNotFound, ValidationError
from deflection.models.ab_test import ABTest, ABTestVariant
from deflection.schemas.metrics_schema import (
    ABTestCreate,
    ABTestResponse,
    ABTestResults,
    VariantResponse,
    VariantResult,
)
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)


def conversion_rate(impressions: int, conversions: int) -> float:
    """Percentage of impressions that converted."""
    return conversions / impressions * 100 if impressions else 0.0


def pick_winner(rates: Dict[int, float], min_gap: float = settings.AB_SIGNIFICANCE_POINTS) -> Optional[int]:
    """
    Variant with the highest rate, provided best minus worst exceeds `min_gap`
    percentage points. Fewer than two variants never produce a winner.
    """
    if len(rates) < 2:
        return None
    best = max(rates, key=lambda vid: rates[vid])
    gap = rates[best] - min(rates.values())
    return best if gap > min_gap else None


def assign_variant(test_id: int, variants: List[ABTestVariant], ticket_id: str) -> ABTestVariant:
    """Deterministic traffic-weighted bucket for a ticket."""
    if not variants:
        raise ValidationError("Test has no variants")
    digest = hashlib.sha256(f"{test_id}:{ticket_id}".encode("utf-8")).hexdigest()
    bucket = int(digest[:8], 16) % 10000 / 100  # [0, 100)
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_percentage
        if bucket < cumulative:
            return variant
    return variants[-1]


def _to_response(test: ABTest, variants: List[ABTestVariant]) -> ABTestResponse:
    return ABTestResponse(
        id=test.id,
        user_id=test.user_id,
        name=test.name,
        test_type=test.test_type,
        status=test.status,
        winner_variant_id=test.winner_variant_id,
        start_date=test.start_date,
        end_date=test.end_date,
        variants=[VariantResponse.model_validate(v) for v in variants],
    )


async def create_test(store: DeflectionStore, user_id: str, payload: ABTestCreate) -> ABTestResponse:
    if len(payload.variants) < 2:
        raise ValidationError("An A/B test needs at least two variants")
    total = sum(v.traffic_percentage for v in payload.variants)
    if abs(total - 100.0) > 0.01:
        raise ValidationError(f"Variant traffic must sum to 100 (got {total})")

    test = await store.create_ab_test(
        user_id,
        name=payload.name,
        description=payload.description,
        test_type=payload.test_type,
        variants=[v.model_dump() for v in payload.variants],
    )
    logger.info("Created A/B test %s '%s' with %s variants", test.id, test.name, len(payload.variants))
    return _to_response(test, await store.list_variants(test.id))


async def _load(store: DeflectionStore, test_id: int) -> tuple[ABTest, List[ABTestVariant]]:
    test = await store.get_ab_test(test_id)
    if test is None:
        raise ABTestNotFound(test_id)
    return test, await store.list_variants(test_id)


async def start_test(store: DeflectionStore, test_id: int) -> ABTestResponse:
    test, variants = await _load(store, test_id)
    if test.status == "completed":
        raise ValidationError("Completed tests cannot be restarted")
    test.status = "active"
    test.start_date = datetime.now(timezone.utc)
    await store.commit()
    return _to_response(test, variants)


async def _check_variant(store: DeflectionStore, test_id: int, variant_id: int) -> None:
    _, variants = await _load(store, test_id)
    if variant_id not in {v.id for v in variants}:
        raise ValidationError(f"Variant {variant_id} does not belong to test {test_id}")


async def record_impression(store: DeflectionStore, test_id: int, variant_id: int, ticket_id: str) -> bool:
    await _check_variant(store, test_id, variant_id)
    return await store.add_impression(test_id, variant_id, ticket_id)


async def record_conversion(store: DeflectionStore, test_id: int, variant_id: int, ticket_id: str, conversion_type: str = "resolved") -> bool:
    await _check_variant(store, test_id, variant_id)
    return await store.add_conversion(test_id, variant_id, ticket_id, conversion_type)


async def get_results(store: DeflectionStore, test_id: int) -> ABTestResults:
    test, variants = await _load(store, test_id)
    counts = await store.variant_counts(test_id)

    results = []
    for v in variants:
        impressions, conversions = counts.get(v.id, (0, 0))
        results.append(VariantResult(
            variant_id=v.id,
            name=v.name,
            impressions=impressions,
            conversions=conversions,
            conversion_rate=round(conversion_rate(impressions, conversions), 2),
        ))
    return ABTestResults(test_id=test.id, status=test.status, variants=results, winner_variant_id=test.winner_variant_id)


async def determine_winner(store: DeflectionStore, test_id: int) -> ABTestResults:
    results = await get_results(store, test_id)
    winner = pick_winner({v.variant_id: v.conversion_rate for v in results.variants})
    if winner is None:
        logger.info("A/B test %s: no significant winner yet", test_id)
        return results

    test = await store.get_ab_test(test_id)
    test.winner_variant_id = winner
    test.status = "completed"
    test.end_date = datetime.now(timezone.utc)
    await store.commit()
    logger.info("A/B test %s completed, winner variant %s", test_id, winner)
    return results.model_copy(update={"status": "completed", "winner_variant_id": winner})
