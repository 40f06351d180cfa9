from fastapi import APIRouter, Depends, HTTPException

from deflection.api.dependencies import get_store
from deflection.core.errors import TicketNotFound
from deflection.schemas.feedback_schema import FeedbackIn, FeedbackResult
from deflection.services.feedback_service import record_customer_feedback
from deflection.services.store import DeflectionStore

router = APIRouter()


@router.post("/", response_model=FeedbackResult)
async def submit_feedback(feedback: FeedbackIn, store: DeflectionStore = Depends(get_store)):
    try:
        return await record_customer_feedback(store, feedback)
    except TicketNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
