from typing import List

from fastapi import APIRouter, Depends

from deflection.api.dependencies import get_embeddings, get_store
from deflection.rag.embeddings import EmbeddingProvider
from deflection.schemas.knowledge_schema import (
    BackfillResponse,
    BatchFailureOut,
    KnowledgeEntryIn,
    KnowledgeEntryResponse,
    TemplateIn,
    TemplateResponse,
)
from deflection.services.backfill_service import backfill_embeddings
from deflection.services.store import DeflectionStore

router = APIRouter()


@router.post("/{user_id}/knowledge", response_model=KnowledgeEntryResponse)
async def add_knowledge_entry(user_id: str, entry: KnowledgeEntryIn, store: DeflectionStore = Depends(get_store)):
    return await store.add_knowledge_entry(user_id, **entry.model_dump())


@router.get("/{user_id}/knowledge", response_model=List[KnowledgeEntryResponse])
async def list_knowledge_entries(user_id: str, store: DeflectionStore = Depends(get_store)):
    return await store.list_knowledge_entries(user_id, active_only=False)


@router.post("/{user_id}/templates", response_model=TemplateResponse)
async def add_template(user_id: str, template: TemplateIn, store: DeflectionStore = Depends(get_store)):
    return await store.add_template(user_id, **template.model_dump())


@router.get("/{user_id}/templates", response_model=List[TemplateResponse])
async def list_templates(user_id: str, store: DeflectionStore = Depends(get_store)):
    return await store.list_templates(user_id, active_only=False)


@router.post("/{user_id}/embeddings/backfill", response_model=BackfillResponse)
async def backfill(
    user_id: str,
    store: DeflectionStore = Depends(get_store),
    embeddings: EmbeddingProvider = Depends(get_embeddings),
):
    """
    Embed knowledge entries and resolved tickets that have no vector yet.
    Partial failures are returned, not raised.
    """
    report = await backfill_embeddings(store, embeddings, user_id)
    return BackfillResponse(
        status=report.status,
        embedding_source=report.embedding_source,
        knowledge_entries_embedded=report.knowledge_entries_embedded,
        tickets_embedded=report.tickets_embedded,
        failures=[BatchFailureOut(start=f.start, end=f.end, error=f.error) for f in report.failures],
    )
