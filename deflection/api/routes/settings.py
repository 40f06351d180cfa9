from fastapi import APIRouter, Depends, HTTPException

from deflection.api.dependencies import get_store
from deflection.core.errors import ValidationError
from deflection.schemas.settings_schema import DeflectionSettings, SettingsUpdate
from deflection.services import settings_service
from deflection.services.store import DeflectionStore

router = APIRouter()


@router.get("/{user_id}/settings", response_model=DeflectionSettings)
async def get_settings(user_id: str, store: DeflectionStore = Depends(get_store)):
    try:
        return await settings_service.get_settings(store, user_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{user_id}/settings", response_model=DeflectionSettings)
async def update_settings(user_id: str, update: SettingsUpdate, store: DeflectionStore = Depends(get_store)):
    try:
        return await settings_service.update_settings(store, user_id, update)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{user_id}/settings/reset", response_model=DeflectionSettings)
async def reset_settings(user_id: str, store: DeflectionStore = Depends(get_store)):
    return await settings_service.reset_to_defaults(store, user_id)


@router.post("/{user_id}/settings/optimize-volume", response_model=DeflectionSettings)
async def optimize_for_volume(user_id: str, store: DeflectionStore = Depends(get_store)):
    try:
        return await settings_service.optimize_for_volume(store, user_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
