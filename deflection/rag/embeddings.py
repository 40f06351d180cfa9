"""
Embedding collaborator
Real (OpenAI) and simulated providers behind one interface, plus the batched
embedding helper used by backfills.
"""
import asyncio
import hashlib
import logging
import math
import random
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Protocol

from deflection.core.config import settings
from deflection.core.errors import EmbeddingError

logger = logging.getLogger(__name__)


def clean_text(text: str, max_chars: int = settings.EMBEDDING_MAX_CHARS) -> str:
    """Collapse whitespace and truncate to what the embedding model accepts."""
    return re.sub(r"\s+", " ", text).strip()[:max_chars]


class EmbeddingProvider(Protocol):
    source: str
    simulated: bool

    async def embed(self, text: str) -> List[float]: ...

    async def embed_many(self, texts: List[str]) -> List[List[float]]: ...


class OpenAIEmbeddingProvider:
    """text-embedding-3-small through the async OpenAI client."""

    source = "openai"
    simulated = False

    def __init__(
        self,
        api_key: str,
        model: str = settings.EMBEDDING_MODEL,
        dimensions: int = settings.EMBEDDING_DIMENSIONS,
        timeout: float = settings.EMBEDDING_TIMEOUT_SECONDS,
    ):
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        cleaned = [clean_text(t) for t in texts]
        if not cleaned or any(not t for t in cleaned):
            raise EmbeddingError("Cannot embed empty text")

        try:
            response = await asyncio.wait_for(
                self.client.embeddings.create(model=self.model, input=cleaned, dimensions=self.dimensions),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding request timed out after {self.timeout}s") from e
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        data = sorted(response.data, key=lambda d: d.index)
        vectors = [list(d.embedding) for d in data]
        for v in vectors:
            if len(v) != self.dimensions:
                raise EmbeddingError(f"Expected {self.dimensions} dimensions, got {len(v)}")

        logger.debug("Embedded %s text(s), %s tokens", len(vectors), getattr(response.usage, "total_tokens", "?"))
        return vectors


class SimulatedEmbeddingProvider:
    """
    Deterministic stand-in used when no embedding service is configured.

    Vectors are uniform in [-1, 1) and seeded from the cleaned text, so equal
    texts get equal vectors. They carry no semantic signal; callers must check
    `simulated` before trusting similarity scores.
    """

    source = "simulated"
    simulated = True

    def __init__(self, dimensions: int = settings.EMBEDDING_DIMENSIONS):
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(clean_text(text).encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        return [rng.random() * 2 - 1 for _ in range(self.dimensions)]

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        return [await self.embed(t) for t in texts]


@lru_cache(maxsize=1)
def get_embedding_provider() -> EmbeddingProvider:
    if settings.OPENAI_API_KEY:
        return OpenAIEmbeddingProvider(api_key=settings.OPENAI_API_KEY)
    logger.warning("OPENAI_API_KEY is not set; using simulated embeddings (no semantic similarity).")
    return SimulatedEmbeddingProvider()


# ── Batching ──────────────────────────────────────────────────────────────────

@dataclass
class BatchFailure:
    start: int
    end: int
    error: str


@dataclass
class BatchEmbeddingResult:
    source: str
    vectors: List[Optional[List[float]]]
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for v in self.vectors if v is not None)

    @property
    def partial(self) -> bool:
        return bool(self.failures) and self.succeeded > 0


async def embed_in_batches(
    provider: EmbeddingProvider,
    texts: List[str],
    *,
    batch_size: int = settings.EMBEDDING_BATCH_SIZE,
    delay_seconds: float = settings.EMBEDDING_BATCH_DELAY_SECONDS,
) -> BatchEmbeddingResult:
    """
    Embed `texts` in chunks of at most `batch_size`.

    A failed chunk leaves None at its positions and is reported in `failures`;
    chunks that succeeded are kept.
    """
    batch_size = max(1, min(batch_size, 100))
    result = BatchEmbeddingResult(source=provider.source, vectors=[None] * len(texts))
    total_batches = math.ceil(len(texts) / batch_size)

    for batch_num, start in enumerate(range(0, len(texts), batch_size), start=1):
        end = min(start + batch_size, len(texts))
        try:
            vectors = await provider.embed_many(texts[start:end])
            result.vectors[start:end] = vectors
            logger.info("Embedding batch %s/%s done (%s texts)", batch_num, total_batches, end - start)
        except EmbeddingError as e:
            logger.error("Embedding batch %s/%s failed: %s", batch_num, total_batches, e)
            result.failures.append(BatchFailure(start=start, end=end, error=str(e)))

        if batch_num < total_batches and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

    return result
