"""
Embedding backfill
Embeds knowledge entries and resolved tickets that have no stored vector yet.
Batches that fail are reported; rows from successful batches are saved.
"""
from dataclasses import dataclass, field
from typing import List
import logging

from deflection.rag.embeddings import BatchFailure, EmbeddingProvider, embed_in_batches
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    embedding_source: str
    knowledge_entries_embedded: int = 0
    tickets_embedded: int = 0
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.failures:
            return "success"
        if self.knowledge_entries_embedded or self.tickets_embedded:
            return "partial"
        return "failed"


async def _embed_rows(store: DeflectionStore, provider: EmbeddingProvider, rows: list, texts: List[str], report: BackfillReport) -> int:
    if not rows:
        return 0
    result = await embed_in_batches(provider, texts)
    saved = 0
    for row, vector in zip(rows, result.vectors):
        if vector is None:
            continue
        row.embedding = vector
        row.embedding_source = result.source
        saved += 1
    await store.commit()
    report.failures.extend(result.failures)
    return saved


async def backfill_embeddings(store: DeflectionStore, provider: EmbeddingProvider, user_id: str) -> BackfillReport:
    report = BackfillReport(embedding_source=provider.source)

    entries = [
        e for e in await store.list_knowledge_entries(user_id, active_only=False)
        if not e.embedding or e.embedding_source != provider.source
    ]
    report.knowledge_entries_embedded = await _embed_rows(
        store, provider, entries, [f"{e.title}\n{e.content}" for e in entries], report
    )

    tickets = await store.tickets_missing_embeddings(user_id, provider.source)
    report.tickets_embedded = await _embed_rows(
        store, provider, tickets, [f"{t.subject or ''} {t.content}" for t in tickets], report
    )

    logger.info(
        "Embedding backfill for %s (%s): %s entries, %s tickets, %s failed batch(es)",
        user_id, provider.source, report.knowledge_entries_embedded, report.tickets_embedded, len(report.failures),
    )
    return report
