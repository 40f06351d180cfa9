from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deflection.core.database import SessionLocal
from deflection.rag.embeddings import EmbeddingProvider, get_embedding_provider
from deflection.services.delivery import get_delivery_client
from deflection.services.engine import DeflectionEngine
from deflection.services.llm_router import LangChainTextGenerator
from deflection.services.store import DeflectionStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency Injection function to get a database session.
    The session is closed after the request is finished.
    """
    async with SessionLocal() as db:
        yield db


def get_store(db: AsyncSession = Depends(get_db)) -> DeflectionStore:
    return DeflectionStore(db)


def get_embeddings() -> EmbeddingProvider:
    return get_embedding_provider()


@lru_cache(maxsize=1)
def get_engine() -> DeflectionEngine:
    # Each ticket opens its own session from the factory
    return DeflectionEngine(
        session_factory=SessionLocal,
        text_generator=LangChainTextGenerator(),
        embeddings=get_embedding_provider(),
        delivery=get_delivery_client(),
    )
