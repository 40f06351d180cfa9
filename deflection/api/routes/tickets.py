from typing import List

from fastapi import APIRouter, Depends, HTTPException

from deflection.api.dependencies import get_engine, get_store
from deflection.schemas.response_schema import AIResponseOut, BatchProcessResponse, DeflectionResult
from deflection.schemas.ticket_schema import TicketIn, TicketResponse
from deflection.services.engine import DeflectionEngine
from deflection.services.store import DeflectionStore

router = APIRouter()

MAX_BATCH = 100


@router.post("/process", response_model=DeflectionResult)
async def process_ticket(ticket: TicketIn, engine: DeflectionEngine = Depends(get_engine)):
    """Run one ticket through the deflection pipeline."""
    return await engine.process_ticket(ticket)


@router.post("/process-batch", response_model=BatchProcessResponse)
async def process_batch(tickets: List[TicketIn], engine: DeflectionEngine = Depends(get_engine)):
    if len(tickets) > MAX_BATCH:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BATCH} tickets per batch")
    results, stats = await engine.process_many(tickets)
    return BatchProcessResponse(results=results, stats=stats)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, store: DeflectionStore = Depends(get_store)):
    ticket = await store.get_ticket(ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.get("/{ticket_id}/response", response_model=AIResponseOut)
async def get_ticket_response(ticket_id: str, store: DeflectionStore = Depends(get_store)):
    """Stored AI response for a ticket, for audit."""
    row = await store.get_ai_response(ticket_id)
    if not row:
        raise HTTPException(status_code=404, detail="No response stored for this ticket")
    return row
