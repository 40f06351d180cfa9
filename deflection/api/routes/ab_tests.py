from fastapi import APIRouter, Depends, HTTPException

from deflection.api.dependencies import get_store
from deflection.core.errors import ABTestNotFound, ValidationError
from deflection.schemas.metrics_schema import ABTestCreate, ABTestResponse, ABTestResults, ConversionIn, ImpressionIn
from deflection.services import ab_test_service
from deflection.services.store import DeflectionStore

router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ABTestNotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.post("/users/{user_id}/ab-tests", response_model=ABTestResponse)
async def create_test(user_id: str, payload: ABTestCreate, store: DeflectionStore = Depends(get_store)):
    try:
        return await ab_test_service.create_test(store, user_id, payload)
    except ValidationError as e:
        raise _http_error(e)


@router.post("/ab-tests/{test_id}/start", response_model=ABTestResponse)
async def start_test(test_id: int, store: DeflectionStore = Depends(get_store)):
    try:
        return await ab_test_service.start_test(store, test_id)
    except (ABTestNotFound, ValidationError) as e:
        raise _http_error(e)


@router.post("/ab-tests/{test_id}/impressions")
async def record_impression(test_id: int, payload: ImpressionIn, store: DeflectionStore = Depends(get_store)):
    try:
        created = await ab_test_service.record_impression(store, test_id, payload.variant_id, payload.ticket_id)
    except (ABTestNotFound, ValidationError) as e:
        raise _http_error(e)
    return {"recorded": created}


@router.post("/ab-tests/{test_id}/conversions")
async def record_conversion(test_id: int, payload: ConversionIn, store: DeflectionStore = Depends(get_store)):
    try:
        created = await ab_test_service.record_conversion(
            store, test_id, payload.variant_id, payload.ticket_id, payload.conversion_type
        )
    except (ABTestNotFound, ValidationError) as e:
        raise _http_error(e)
    return {"recorded": created}


@router.get("/ab-tests/{test_id}/results", response_model=ABTestResults)
async def get_results(test_id: int, store: DeflectionStore = Depends(get_store)):
    try:
        return await ab_test_service.get_results(store, test_id)
    except ABTestNotFound as e:
        raise _http_error(e)


@router.post("/ab-tests/{test_id}/winner", response_model=ABTestResults)
async def determine_winner(test_id: int, store: DeflectionStore = Depends(get_store)):
    try:
        return await ab_test_service.determine_winner(store, test_id)
    except ABTestNotFound as e:
        raise _http_error(e)
