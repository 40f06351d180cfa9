"""Feedback loop, daily rollups and A/B testing."""
from datetime import date
from types import SimpleNamespace

import pytest

from conftest import make_ticket
from deflection.core.errors import ABTestNotFound, TicketNotFound, ValidationError
from deflection.models.ab_test import ABTestVariant
from deflection.schemas.feedback_schema import FeedbackIn
from deflection.schemas.metrics_schema import ABTestCreate, VariantIn
from deflection.services import ab_test_service
from deflection.services.feedback_service import (
    determine_next_actions,
    feedback_outcome,
    record_customer_feedback,
    update_success_rate,
)
from deflection.services.metrics_service import compute_daily_metrics, compute_rollup, get_results_summary, percent_change


def _feedback(**overrides) -> FeedbackIn:
    data = {"ticket_id": "T-1001", "satisfaction_score": 5, "response_helpful": True}
    data.update(overrides)
    return FeedbackIn(**data)


class TestSuccessRate:
    def test_first_observation_sets_rate(self):
        assert update_success_rate(0.0, 0, 1.0) == 1.0

    def test_ewma_weights_new_outcome(self):
        assert update_success_rate(1.0, 1, 0.0, alpha=0.2) == pytest.approx(0.8)
        assert update_success_rate(0.5, 10, 1.0, alpha=0.2) == pytest.approx(0.6)

    def test_stays_in_unit_interval(self):
        rate, count = 0.0, 0
        for outcome in [1.0, 0.0, 1.0, 1.0, 0.0, 0.0, 1.0]:
            rate = update_success_rate(rate, count, outcome)
            count += 1
            assert 0.0 <= rate <= 1.0

    @pytest.mark.parametrize("score, helpful, expected", [(5, True, 1.0), (4, True, 1.0), (3, True, 0.0), (5, False, 0.0)])
    def test_outcome(self, score, helpful, expected):
        assert feedback_outcome(_feedback(satisfaction_score=score, response_helpful=helpful)) == expected


class TestNextActions:
    def test_unhappy_unresolved(self):
        actions = determine_next_actions(_feedback(satisfaction_score=1, response_helpful=False, resolution_status="unresolved"))
        assert actions == [
            "escalate_to_human_agent", "analyze_failure_pattern",
            "schedule_follow_up", "provide_additional_resources",
        ]

    def test_happy_resolved_promoter(self):
        actions = determine_next_actions(_feedback(resolution_status="resolved", would_recommend=True))
        assert actions == ["close_ticket", "request_review_or_testimonial"]

    def test_nothing_to_do(self):
        assert determine_next_actions(_feedback(satisfaction_score=3)) == ["no_action_required"]


class TestFeedbackLoop:
    @pytest.mark.asyncio
    async def test_feedback_updates_sources_and_closes_ticket(self, engine, store):
        entry = await store.add_knowledge_entry(
            "acct-1", title="Resetting your password", content="Open Settings > Security to reset a password."
        )
        await engine.process_ticket(make_ticket())

        result = await record_customer_feedback(store, _feedback(resolution_status="resolved"))

        assert result.updated_knowledge_entries == 1
        assert "close_ticket" in result.next_actions
        assert (entry.success_rate, entry.usage_count) == (1.0, 1)
        assert (await store.get_ticket("T-1001")).status == "closed"

        await record_customer_feedback(store, _feedback(satisfaction_score=2, response_helpful=False))
        assert entry.success_rate == pytest.approx(0.8)
        assert entry.usage_count == 2

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, store):
        with pytest.raises(TicketNotFound):
            await record_customer_feedback(store, _feedback(ticket_id="missing"))


class TestRollup:
    def test_rates_savings_and_roi(self):
        feedback = [
            SimpleNamespace(satisfaction_score=5, would_recommend=True),
            SimpleNamespace(satisfaction_score=3, would_recommend=False),
        ]
        values = compute_rollup(tickets_processed=100, tickets_deflected=40, avg_response_time_ms=1500, feedback=feedback)

        assert values["deflection_rate"] == pytest.approx(0.4)
        assert values["cost_savings"] == 1000
        assert values["roi_percentage"] == pytest.approx((1000 - 99) / 99 * 100)
        assert values["avg_response_time"] == pytest.approx(1.5)
        assert values["avg_satisfaction"] == pytest.approx(4.0)
        assert values["customer_retention_rate"] == pytest.approx(50.0)
        assert values["agent_efficiency"] == pytest.approx(80.0)
        assert values["hours_saved"] == pytest.approx(4.0)

    def test_no_tickets(self):
        values = compute_rollup(tickets_processed=0, tickets_deflected=0, avg_response_time_ms=None, feedback=[])
        assert values["deflection_rate"] == 0.0
        assert values["cost_savings"] == 0
        assert values["roi_percentage"] == pytest.approx(-100.0)

    def test_percent_change(self):
        assert percent_change(15, 10) == pytest.approx(50.0)
        assert percent_change(5, 0) == 100.0
        assert percent_change(0, 0) == 0.0

    @pytest.mark.asyncio
    async def test_daily_recompute_is_idempotent(self, store):
        await store.ensure_ticket(make_ticket())
        day = date(2026, 10, 14)

        first = await compute_daily_metrics(store, "acct-1", day)
        second = await compute_daily_metrics(store, "acct-1", day)

        assert first.id == second.id
        assert second.tickets_processed == 1
        assert len(await store.list_daily_metrics("acct-1", day, day)) == 1

    @pytest.mark.asyncio
    async def test_summary_and_trends(self, store):
        older = compute_rollup(tickets_processed=10, tickets_deflected=2, avg_response_time_ms=None, feedback=[])
        recent = compute_rollup(tickets_processed=10, tickets_deflected=5, avg_response_time_ms=None, feedback=[])
        await store.upsert_daily_metrics("acct-1", date(2026, 10, 3), **older)
        await store.upsert_daily_metrics("acct-1", date(2026, 10, 12), **recent)

        summary = await get_results_summary(store, "acct-1", days=30, today=date(2026, 10, 14))

        assert (summary.total_tickets, summary.total_deflected) == (20, 7)
        assert summary.deflection_rate == pytest.approx(0.35)
        assert summary.total_cost_savings == pytest.approx(175.0)
        assert summary.trends["deflection_rate"] == pytest.approx(150.0)
        assert summary.trends["tickets_processed"] == 0.0


class TestABTesting:
    def test_winner_needs_more_than_five_points(self):
        assert ab_test_service.pick_winner({1: 90.0, 2: 84.0}) == 1
        assert ab_test_service.pick_winner({1: 90.0, 2: 94.0}) == 2
        assert ab_test_service.pick_winner({1: 90.0, 2: 85.0}) is None
        assert ab_test_service.pick_winner({1: 90.0}) is None

    def test_eight_point_gap_wins_three_does_not(self):
        assert ab_test_service.pick_winner({1: 42.0, 2: 50.0}) == 2
        assert ab_test_service.pick_winner({1: 47.0, 2: 50.0}) is None

    def test_conversion_rate_is_percent(self):
        assert ab_test_service.conversion_rate(50, 42) == pytest.approx(84.0)
        assert ab_test_service.conversion_rate(0, 0) == 0.0

    def test_assignment_is_deterministic_and_weighted(self):
        variants = [ABTestVariant(id=1, name="A", traffic_percentage=50), ABTestVariant(id=2, name="B", traffic_percentage=50)]
        picks = [ab_test_service.assign_variant(7, variants, f"T-{i}").id for i in range(200)]
        assert picks == [ab_test_service.assign_variant(7, variants, f"T-{i}").id for i in range(200)]
        assert set(picks) == {1, 2}

    @pytest.mark.asyncio
    async def test_create_requires_full_traffic(self, store):
        payload = ABTestCreate(name="tone", variants=[VariantIn(name="A", traffic_percentage=50), VariantIn(name="B", traffic_percentage=30)])
        with pytest.raises(ValidationError):
            await ab_test_service.create_test(store, "acct-1", payload)

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store):
        payload = ABTestCreate(name="tone", variants=[VariantIn(name="A", traffic_percentage=50), VariantIn(name="B", traffic_percentage=50)])
        test = await ab_test_service.create_test(store, "acct-1", payload)
        a, b = (v.id for v in test.variants)
        assert (await ab_test_service.start_test(store, test.id)).status == "active"

        for i in range(10):
            assert await ab_test_service.record_impression(store, test.id, a, f"A-{i}") is True
            assert await ab_test_service.record_impression(store, test.id, b, f"B-{i}") is True
        for i in range(8):
            await ab_test_service.record_conversion(store, test.id, a, f"A-{i}")
        for i in range(3):
            await ab_test_service.record_conversion(store, test.id, b, f"B-{i}")
        assert await ab_test_service.record_impression(store, test.id, a, "A-0") is False

        results = await ab_test_service.determine_winner(store, test.id)

        rates = {v.variant_id: v.conversion_rate for v in results.variants}
        assert rates == {a: 80.0, b: 30.0}
        assert results.winner_variant_id == a
        assert results.status == "completed"

    @pytest.mark.asyncio
    async def test_unknown_test(self, store):
        with pytest.raises(ABTestNotFound):
            await ab_test_service.get_results(store, 999)
