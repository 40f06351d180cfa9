from pydantic import BaseModel, Field
from typing import Annotated, Literal, Optional, Union

from deflection.schemas.feedback_schema import FeedbackIn
from deflection.schemas.ticket_schema import TicketIn


class TicketCreated(BaseModel):
    topic: Literal["ticket.created"] = "ticket.created"
    ticket: TicketIn


class ConversationReplied(BaseModel):
    topic: Literal["conversation.replied"] = "conversation.replied"
    # The reply is analyzed as its own ticket, linked by conversation_id
    ticket: TicketIn


class ConversationClosed(BaseModel):
    topic: Literal["conversation.closed"] = "conversation.closed"
    ticket_id: str
    user_id: str


class FeedbackSubmitted(BaseModel):
    topic: Literal["feedback.submitted"] = "feedback.submitted"
    feedback: FeedbackIn


WebhookEvent = Annotated[
    Union[TicketCreated, ConversationReplied, ConversationClosed, FeedbackSubmitted],
    Field(discriminator="topic"),
]


class WebhookEnvelope(BaseModel):
    event: WebhookEvent


class EventOutcome(BaseModel):
    topic: str
    status: str
    ticket_id: Optional[str] = None
    detail: Optional[str] = None
