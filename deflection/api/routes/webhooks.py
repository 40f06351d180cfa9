import logging

from fastapi import APIRouter, Depends, HTTPException

from deflection.api.dependencies import get_engine, get_store
from deflection.core.errors import TicketNotFound
from deflection.schemas.event_schema import EventOutcome, WebhookEnvelope
from deflection.services.engine import DeflectionEngine
from deflection.services.event_service import event_priority, handle_event
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events", response_model=EventOutcome)
async def receive_event(
    envelope: WebhookEnvelope,
    engine: DeflectionEngine = Depends(get_engine),
    store: DeflectionStore = Depends(get_store),
):
    event = envelope.event
    logger.info("Webhook event %s (priority=%s)", event.topic, event_priority(event))
    try:
        return await handle_event(event, engine, store)
    except TicketNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
