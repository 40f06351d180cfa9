"""Webhook event priority and dispatch."""
import pytest
from pydantic import TypeAdapter

from conftest import make_ticket
from deflection.schemas.event_schema import (
    ConversationClosed,
    ConversationReplied,
    FeedbackSubmitted,
    TicketCreated,
    WebhookEvent,
)
from deflection.schemas.feedback_schema import FeedbackIn
from deflection.services.event_service import event_priority, handle_event


class TestEventPriority:
    def test_new_ticket_is_normal(self):
        assert event_priority(TicketCreated(ticket=make_ticket())) == "normal"

    def test_urgent_wording_is_priority(self):
        event = TicketCreated(ticket=make_ticket(content="Checkout is broken for every customer"))
        assert event_priority(event) == "priority"

    def test_reply_is_low(self):
        assert event_priority(ConversationReplied(ticket=make_ticket())) == "low"

    def test_closed_is_low(self):
        assert event_priority(ConversationClosed(ticket_id="T-1001", user_id="acct-1")) == "low"

    def test_discriminated_by_topic(self):
        event = TypeAdapter(WebhookEvent).validate_python(
            {"topic": "conversation.closed", "ticket_id": "T-1001", "user_id": "acct-1"}
        )
        assert isinstance(event, ConversationClosed)


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_ticket_created_runs_a_pass(self, engine, store):
        outcome = await handle_event(TicketCreated(ticket=make_ticket()), engine, store)
        assert outcome.status == "AUTO_RESOLVED"
        assert outcome.ticket_id == "T-1001"

    @pytest.mark.asyncio
    async def test_close_and_feedback(self, engine, store):
        await engine.process_ticket(make_ticket())

        closed = await handle_event(ConversationClosed(ticket_id="T-1001", user_id="acct-1"), engine, store)
        assert closed.status == "closed"

        fb = FeedbackIn(ticket_id="T-1001", satisfaction_score=5, response_helpful=True)
        recorded = await handle_event(FeedbackSubmitted(feedback=fb), engine, store)
        assert recorded.status == "recorded"

    @pytest.mark.asyncio
    async def test_closing_unknown_ticket_is_ignored(self, engine, store):
        outcome = await handle_event(ConversationClosed(ticket_id="nope", user_id="acct-1"), engine, store)
        assert outcome.status == "ignored"

    @pytest.mark.asyncio
    async def test_unknown_event_type_raises(self, engine, store):
        with pytest.raises(TypeError):
            await handle_event(object(), engine, store)
