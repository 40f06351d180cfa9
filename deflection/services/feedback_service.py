"""
Feedback Loop
Stores customer feedback and folds it into the success rates of the knowledge
entries and templates that the ticket's response was built from.
"""
from typing import List
import logging

from deflection.core.config import settings
from deflection.core.errors import TicketNotFound
from deflection.schemas.feedback_schema import FeedbackIn, FeedbackResult
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)

SATISFIED_SCORE = 4
DISSATISFIED_SCORE = 2


def feedback_outcome(feedback: FeedbackIn) -> float:
    """1.0 when the customer found the answer helpful and rated it 4+, else 0.0."""
    return 1.0 if feedback.response_helpful and feedback.satisfaction_score >= SATISFIED_SCORE else 0.0


def update_success_rate(current: float, usage_count: int, outcome: float, alpha: float = settings.SUCCESS_RATE_ALPHA) -> float:
    """
    Exponentially weighted moving average of outcomes.

    The first observation (usage_count == 0) sets the rate outright; after
    that each new outcome carries weight `alpha`.
    """
    if usage_count <= 0:
        return outcome
    updated = alpha * outcome + (1 - alpha) * (current or 0.0)
    return min(1.0, max(0.0, updated))


def determine_next_actions(feedback: FeedbackIn) -> List[str]:
    actions: List[str] = []

    if feedback.satisfaction_score <= DISSATISFIED_SCORE:
        actions += ["escalate_to_human_agent", "analyze_failure_pattern"]

    if feedback.resolution_status == "unresolved":
        actions += ["schedule_follow_up", "provide_additional_resources"]
    elif feedback.resolution_status == "partially_resolved":
        actions.append("schedule_follow_up_check")
    elif feedback.resolution_status == "resolved":
        actions.append("close_ticket")
        if feedback.satisfaction_score >= SATISFIED_SCORE and feedback.would_recommend:
            actions.append("request_review_or_testimonial")

    return actions or ["no_action_required"]


async def record_customer_feedback(store: DeflectionStore, feedback: FeedbackIn) -> FeedbackResult:
    ticket = await store.get_ticket(feedback.ticket_id)
    if ticket is None:
        raise TicketNotFound(feedback.ticket_id)

    row = await store.add_feedback(
        ticket_id=ticket.id,
        user_id=ticket.user_id,
        satisfaction_score=feedback.satisfaction_score,
        response_helpful=feedback.response_helpful,
        would_recommend=feedback.would_recommend,
        resolution_status=feedback.resolution_status,
        category=feedback.category or ticket.category,
        feedback_text=feedback.feedback_text,
    )

    outcome = feedback_outcome(feedback)
    entries, templates = [], []
    response = await store.get_ai_response(ticket.id)
    if response is not None:
        entries = await store.get_knowledge_entries(response.knowledge_entry_ids or [])
        templates = await store.get_templates(response.template_ids or [])
        for item in [*entries, *templates]:
            item.success_rate = update_success_rate(item.success_rate, item.usage_count or 0, outcome)
            item.usage_count = (item.usage_count or 0) + 1
        await store.commit()

    if feedback.resolution_status == "resolved":
        await store.set_ticket_status(ticket.id, "closed")

    logger.info(
        "Feedback for ticket %s: score=%s helpful=%s -> outcome=%.1f, updated %s entries / %s templates",
        ticket.id, feedback.satisfaction_score, feedback.response_helpful, outcome, len(entries), len(templates),
    )

    return FeedbackResult(
        feedback_id=row.id,
        ticket_id=ticket.id,
        updated_knowledge_entries=len(entries),
        updated_templates=len(templates),
        next_actions=determine_next_actions(feedback),
    )
