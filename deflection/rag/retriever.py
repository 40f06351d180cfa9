from dataclasses import dataclass, field
from typing import List, Optional
import logging

from deflection.core.config import settings
from deflection.core.errors import EmbeddingError
from deflection.models.knowledge import KnowledgeEntry, ResponseTemplate
from deflection.models.ticket import Ticket
from deflection.rag.embeddings import EmbeddingProvider, SimulatedEmbeddingProvider
from deflection.rag.keywords import bm25_rank, extract_keywords, keyword_hits, rank_by_success
from deflection.rag.similarity import find_similar
from deflection.schemas.ticket_schema import TicketIn
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)


@dataclass
class SimilarTicket:
    ticket_id: str
    subject: Optional[str]
    content: str
    resolution: str
    score: float
    method: str  # "embedding" | "keyword"


@dataclass
class RetrievalContext:
    keywords: List[str]
    knowledge_entries: List[KnowledgeEntry] = field(default_factory=list)
    templates: List[ResponseTemplate] = field(default_factory=list)
    similar_tickets: List[SimilarTicket] = field(default_factory=list)
    customer_history: List[Ticket] = field(default_factory=list)
    embedding_source: Optional[str] = None
    simulated_embeddings: bool = False
    degraded_sources: List[str] = field(default_factory=list)


def ticket_text(ticket: TicketIn) -> str:
    return f"{ticket.subject or ''} {ticket.content}".strip()


class KnowledgeRetriever:
    """
    Keyword + embedding retrieval over one user's knowledge base, templates
    and resolved tickets.

    Store errors propagate to the caller. An embedding failure switches the
    query vector to the simulated provider and is reported in
    `degraded_sources`.
    """

    def __init__(self, store: DeflectionStore, embeddings: EmbeddingProvider):
        self.store = store
        self.embeddings = embeddings

    async def retrieve(self, ticket: TicketIn) -> RetrievalContext:
        text = ticket_text(ticket)
        ctx = RetrievalContext(keywords=extract_keywords(text))

        query_vector = await self._embed_query(text, ctx)

        ctx.knowledge_entries = await self.search_knowledge(ticket, ctx.keywords, query_vector, ctx.embedding_source)
        ctx.templates = await self.search_templates(ticket, ctx.keywords)
        ctx.similar_tickets = await self.find_similar_tickets(ticket, query_vector, ctx.embedding_source)
        ctx.customer_history = await self.store.get_customer_history(
            ticket.user_id, ticket.customer_email, ticket.id, settings.MAX_CUSTOMER_HISTORY
        )

        logger.info(
            "Retrieval for ticket %s: keywords=%s knowledge=%s templates=%s similar=%s history=%s source=%s",
            ticket.id,
            len(ctx.keywords),
            len(ctx.knowledge_entries),
            len(ctx.templates),
            len(ctx.similar_tickets),
            len(ctx.customer_history),
            ctx.embedding_source,
        )
        return ctx

    async def _embed_query(self, text: str, ctx: RetrievalContext) -> Optional[List[float]]:
        provider = self.embeddings
        try:
            vector = await provider.embed(text)
        except EmbeddingError as e:
            logger.warning("Embedding collaborator unavailable (%s); using simulated vector", e)
            ctx.degraded_sources.append("embedding")
            provider = SimulatedEmbeddingProvider()
            vector = await provider.embed(text)

        ctx.embedding_source = provider.source
        ctx.simulated_embeddings = provider.simulated
        return vector

    async def search_knowledge(
        self,
        ticket: TicketIn,
        keywords: List[str],
        query_vector: Optional[List[float]] = None,
        source: Optional[str] = None,
    ) -> List[KnowledgeEntry]:
        entries = await self.store.list_knowledge_entries(ticket.user_id, ticket.category)
        if not entries:
            return []

        matched: dict[int, KnowledgeEntry] = {}

        # ── Keyword path ──
        for entry in entries:
            if keyword_hits(keywords, title=entry.title, content=entry.content, tags=entry.tags or []):
                matched[entry.id] = entry

        # ── Embedding path (only vectors from the same provider are comparable) ──
        if query_vector is not None:
            candidates = [
                (e, e.embedding) for e in entries
                if e.embedding and e.embedding_source == source
            ]
            for entry, score in find_similar(query_vector, candidates):
                logger.info("  Knowledge [%s] similarity=%.4f title=%s", entry.id, score, entry.title[:60])
                matched.setdefault(entry.id, entry)

        return rank_by_success(
            [(e, e.success_rate, e.usage_count) for e in matched.values()],
            settings.MAX_KNOWLEDGE_RESULTS,
        )

    async def search_templates(self, ticket: TicketIn, keywords: List[str]) -> List[ResponseTemplate]:
        templates = await self.store.list_templates(ticket.user_id, ticket.category)
        scored = [
            (t, keyword_hits(keywords, title=t.name, content=t.content, tags=t.keywords or []))
            for t in templates
        ]
        # Keyword-matching templates first, then by track record
        scored.sort(key=lambda pair: (pair[1] > 0, pair[0].success_rate or 0.0, pair[0].usage_count or 0), reverse=True)
        return [t for t, _ in scored[: settings.MAX_TEMPLATE_RESULTS]]

    async def find_similar_tickets(
        self,
        ticket: TicketIn,
        query_vector: Optional[List[float]] = None,
        source: Optional[str] = None,
    ) -> List[SimilarTicket]:
        resolved = await self.store.get_resolved_tickets(ticket.user_id, ticket.id)
        if not resolved:
            return []

        limit = settings.MAX_SIMILAR_TICKETS
        results: List[SimilarTicket] = []

        if query_vector is not None:
            candidates = [
                ((t, resolution), t.embedding) for t, resolution in resolved
                if t.embedding and t.embedding_source == source
            ]
            for (t, resolution), score in find_similar(query_vector, candidates, max_results=limit):
                results.append(SimilarTicket(t.id, t.subject, t.content, resolution, score, "embedding"))

        if results:
            return results

        # Keyword fallback when no comparable vectors clear the threshold
        documents = [((t, resolution), f"{t.subject or ''} {t.content}") for t, resolution in resolved]
        for (t, resolution), score in bm25_rank(ticket_text(ticket), documents, limit):
            results.append(SimilarTicket(t.id, t.subject, t.content, resolution, score, "keyword"))
        return results
