"""
Webhook events
Dispatch over the closed set of event variants. Adding a variant without a
branch here raises instead of being ignored.
"""
from typing import Literal
import logging

from deflection.schemas.event_schema import (
    ConversationClosed,
    ConversationReplied,
    EventOutcome,
    FeedbackSubmitted,
    TicketCreated,
    WebhookEvent,
)
from deflection.services.engine import DeflectionEngine
from deflection.services.feedback_service import record_customer_feedback
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)

EventPriority = Literal["priority", "normal", "low"]

URGENT_TERMS = ["urgent", "emergency", "critical", "down", "broken", "not working"]


def event_priority(event: WebhookEvent) -> EventPriority:
    """Queue priority for an incoming event; ticket-bearing events may be bumped by urgent wording."""
    if isinstance(event, (TicketCreated, ConversationReplied)):
        text = f"{event.ticket.subject or ''} {event.ticket.content}".lower()
        if event.ticket.priority == "priority" or any(term in text for term in URGENT_TERMS):
            return "priority"
        return "normal" if isinstance(event, TicketCreated) else "low"
    return "low"


async def handle_event(event: WebhookEvent, engine: DeflectionEngine, store: DeflectionStore) -> EventOutcome:
    if isinstance(event, (TicketCreated, ConversationReplied)):
        result = await engine.process_ticket(event.ticket)
        return EventOutcome(
            topic=event.topic,
            status=result.state.value,
            ticket_id=event.ticket.id,
            detail=result.reason,
        )

    if isinstance(event, ConversationClosed):
        ticket = await store.set_ticket_status(event.ticket_id, "closed")
        return EventOutcome(
            topic=event.topic,
            status="closed" if ticket else "ignored",
            ticket_id=event.ticket_id,
            detail=None if ticket else "Unknown ticket",
        )

    if isinstance(event, FeedbackSubmitted):
        result = await record_customer_feedback(store, event.feedback)
        return EventOutcome(
            topic=event.topic,
            status="recorded",
            ticket_id=result.ticket_id,
            detail=", ".join(result.next_actions),
        )

    raise TypeError(f"Unhandled webhook event type: {type(event).__name__}")
