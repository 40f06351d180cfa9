"""
Deflection Engine
Runs one ticket through Gate -> Retriever -> Generator -> Router -> Accountant
and persists the outcome. Every failure inside a pass becomes a negative
DeflectionResult; nothing escapes to the caller.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from deflection.core.config import settings
from deflection.core.errors import DeflectionError, GenerationError, ValidationError
from deflection.models.ai_response import AIResponse
from deflection.rag.embeddings import EmbeddingProvider
from deflection.rag.generator import GenerationResult, ResponseGenerator
from deflection.rag.retriever import KnowledgeRetriever, RetrievalContext
from deflection.schemas.response_schema import (
    DeflectionResult,
    DeflectionState,
    GeneratedResponse,
    ProcessingStats,
)
from deflection.schemas.settings_schema import DeflectionSettings
from deflection.schemas.ticket_schema import TicketIn
from deflection.services import settings_service
from deflection.services.cost import calculate_usage
from deflection.services.delivery import DeliveryClient, DeliveryError
from deflection.services.llm_router import TextGenerator
from deflection.services.preflight import run_preflight
from deflection.services.router import route_response
from deflection.services.store import DeflectionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_ERRORS = (SQLAlchemyError, asyncio.TimeoutError, DeflectionError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe(e: BaseException) -> str:
    return str(e) or type(e).__name__


def _stored_response(row: AIResponse) -> GeneratedResponse:
    return GeneratedResponse(
        content=row.response_content,
        type=row.response_type,
        confidence=row.confidence_score,
        reasoning=row.reasoning or "",
        suggested_actions=row.suggested_actions or [],
        estimated_resolution_minutes=row.estimated_resolution_minutes,
        follow_up_needed=bool(row.follow_up_required),
        escalation_reason=row.escalation_reason,
    )


def tally(results: List[DeflectionResult]) -> ProcessingStats:
    stats = ProcessingStats(processed=len(results))
    for r in results:
        # A replay reports an earlier pass; its deflection was counted there
        if r.replayed:
            stats.replayed += 1
        elif r.state == DeflectionState.AUTO_RESOLVED:
            stats.deflected += 1
        elif r.state == DeflectionState.ESCALATED:
            stats.escalated += 1
        elif r.state == DeflectionState.FOLLOW_UP:
            stats.follow_up += 1
        elif r.state == DeflectionState.GATED_OUT:
            stats.gated += 1
        else:
            stats.failed += 1
    return stats


class DeflectionEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        text_generator: TextGenerator,
        embeddings: EmbeddingProvider,
        delivery: DeliveryClient,
        *,
        clock: Callable[[], datetime] = _utcnow,
        store_timeout: float = settings.STORE_TIMEOUT_SECONDS,
        delivery_timeout: float = settings.DELIVERY_TIMEOUT_SECONDS,
    ):
        self.session_factory = session_factory
        self.generator = ResponseGenerator(text_generator)
        self.embeddings = embeddings
        self.delivery = delivery
        self.clock = clock
        self.store_timeout = store_timeout
        self.delivery_timeout = delivery_timeout

    async def _timed(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        return await asyncio.wait_for(coro, timeout=timeout or self.store_timeout)

    # ── Public API ────────────────────────────────────────────────────────────

    async def process_ticket(self, ticket: TicketIn) -> DeflectionResult:
        start_time = time.time()
        async with self.session_factory() as db:
            store = DeflectionStore(db)
            generation: Optional[GenerationResult] = None
            try:
                result, generation = await self._run(store, ticket)
            except STAGE_ERRORS as e:
                logger.error("Deflection pass for ticket %s failed: %s", ticket.id, e)
                await db.rollback()
                result = DeflectionResult(
                    ticket_id=ticket.id,
                    should_respond=False,
                    state=DeflectionState.FAILED,
                    reason=f"Processing failed: {_describe(e)}",
                )

            elapsed = int((time.time() - start_time) * 1000)
            logger.info(
                "Ticket %s -> %s (should_respond=%s): %s [%sms]",
                ticket.id, result.state.value, result.should_respond, result.reason, elapsed,
            )
            await self._audit(store, ticket, result, generation, elapsed)
        return result

    async def process_many(self, tickets: List[TicketIn]) -> Tuple[List[DeflectionResult], ProcessingStats]:
        """Process tickets concurrently; each gets its own session and its own result."""
        outcomes = await asyncio.gather(*(self.process_ticket(t) for t in tickets), return_exceptions=True)

        results: List[DeflectionResult] = []
        for ticket, outcome in zip(tickets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Unexpected error processing ticket %s", ticket.id, exc_info=outcome)
                outcome = DeflectionResult(
                    ticket_id=ticket.id,
                    should_respond=False,
                    state=DeflectionState.FAILED,
                    reason=f"Processing failed: {_describe(outcome)}",
                )
            results.append(outcome)

        stats = tally(results)
        logger.info("Batch processed: %s", stats.model_dump())
        return results, stats

    # ── Pass ──────────────────────────────────────────────────────────────────

    async def _run(self, store: DeflectionStore, ticket: TicketIn) -> Tuple[DeflectionResult, Optional[GenerationResult]]:
        # Already analyzed: replay the stored outcome instead of generating again
        existing = await self._timed(store.get_ai_response(ticket.id))
        if existing is not None:
            return await self._replay(store, existing), None

        await self._timed(store.ensure_ticket(ticket))

        # Settings
        try:
            config = await self._timed(settings_service.get_settings(store, ticket.user_id))
        except ValidationError as e:
            return self._failed(ticket, f"Invalid settings: {e}"), None
        logger.debug("Settings for user %s: %s", ticket.user_id, settings_service.describe_settings(config))

        # LAYER 1: Preflight gate
        gate = run_preflight(ticket, config, now=self.clock())
        if not gate.proceed:
            return DeflectionResult(
                ticket_id=ticket.id,
                should_respond=False,
                state=DeflectionState.GATED_OUT,
                reason=gate.reason,
            ), None

        # LAYER 2: Retrieval
        retriever = KnowledgeRetriever(store, self.embeddings)
        ctx = await self._timed(
            retriever.retrieve(ticket),
            timeout=self.store_timeout + settings.EMBEDDING_TIMEOUT_SECONDS,
        )

        # LAYER 3: Generation
        try:
            generation = await self.generator.generate(ticket, ctx, config)
        except GenerationError as e:
            return self._failed(ticket, f"Generation failed: {e}", ctx), None

        # LAYER 4: Routing + cost
        result = await self._route_and_persist(store, ticket, config, ctx, generation)
        return result, generation

    async def _route_and_persist(
        self,
        store: DeflectionStore,
        ticket: TicketIn,
        config: DeflectionSettings,
        ctx: RetrievalContext,
        generation: GenerationResult,
    ) -> DeflectionResult:
        response = generation.response
        decision = route_response(response, generation.requires_human, config)
        usage = calculate_usage(generation.tokens_used)

        row, created = await self._timed(store.save_ai_response(
            ticket.id,
            user_id=ticket.user_id,
            response_content=response.content,
            response_type=response.type,
            confidence_score=response.confidence,
            reasoning=response.reasoning,
            suggested_actions=list(response.suggested_actions),
            estimated_resolution_minutes=response.estimated_resolution_minutes,
            follow_up_required=decision.state == DeflectionState.FOLLOW_UP or response.follow_up_needed,
            escalation_reason=response.escalation_reason,
            # AUTO_RESOLVED is only written once the reply has been delivered
            state=(DeflectionState.ANALYZED if decision.can_deflect else decision.state).value,
            requires_human=generation.requires_human,
            sent_to_customer=False,
            knowledge_entry_ids=[e.id for e in ctx.knowledge_entries],
            template_ids=[t.id for t in ctx.templates],
            tokens_used=usage.tokens_used,
            cost=usage.cost,
            provider=generation.provider,
            response_time_ms=generation.response_time_ms,
        ))
        if not created:
            # A concurrent pass for the same ticket got there first
            return await self._replay(store, row)

        result = DeflectionResult(
            ticket_id=ticket.id,
            should_respond=decision.can_deflect,
            state=decision.state,
            reason=decision.reason,
            response=response,
            requires_human=generation.requires_human,
            tokens_used=usage.tokens_used,
            cost=usage.cost,
            simulated_embeddings=ctx.simulated_embeddings,
            degraded_sources=list(ctx.degraded_sources),
        )

        if decision.state == DeflectionState.AUTO_RESOLVED:
            return await self._dispatch(store, ticket, ctx, result)
        if decision.state == DeflectionState.FOLLOW_UP:
            await self._timed(store.set_ticket_status(ticket.id, "pending"))
        # ESCALATED: ticket stays open for a human
        return result

    async def _dispatch(
        self,
        store: DeflectionStore,
        ticket: TicketIn,
        ctx: RetrievalContext,
        result: DeflectionResult,
    ) -> DeflectionResult:
        try:
            await asyncio.wait_for(
                self.delivery.send(ticket, result.response.content),
                timeout=self.delivery_timeout,
            )
        except (DeliveryError, asyncio.TimeoutError) as e:
            logger.error("Delivery failed for ticket %s: %s", ticket.id, e)
            await self._timed(store.set_response_state(ticket.id, DeflectionState.ESCALATED.value, sent=False))
            return result.model_copy(update={
                "should_respond": False,
                "state": DeflectionState.ESCALATED,
                "reason": f"Delivery failed - escalating to human: {_describe(e)}",
            })

        try:
            await self._timed(store.complete_deflection(
                ticket.id,
                user_id=ticket.user_id,
                confidence_score=result.response.confidence,
                template_used=ctx.templates[0].name if ctx.templates else None,
            ))
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            # Nothing was committed: the response stays ANALYZED and unsent
            logger.error("Ticket %s was delivered but its outcome could not be recorded: %s", ticket.id, e)
            raise
        return result

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _replay(self, store: DeflectionStore, row: AIResponse) -> DeflectionResult:
        state = DeflectionState(row.state)
        if row.sent_to_customer and await self._timed(store.get_deflection_event(row.ticket_id)) is None:
            # Delivered without its event (an interrupted earlier pass): record it now
            logger.warning("Ticket %s was sent but has no deflection event; recording it", row.ticket_id)
            templates = await self._timed(store.get_templates(row.template_ids or []))
            await self._timed(store.complete_deflection(
                row.ticket_id,
                user_id=row.user_id,
                confidence_score=row.confidence_score,
                template_used=templates[0].name if templates else None,
            ))
            state = DeflectionState.AUTO_RESOLVED

        return DeflectionResult(
            ticket_id=row.ticket_id,
            should_respond=bool(row.sent_to_customer) and state == DeflectionState.AUTO_RESOLVED,
            state=state,
            reason="Ticket already analyzed",
            response=_stored_response(row),
            requires_human=bool(row.requires_human),
            tokens_used=row.tokens_used or 0,
            cost=row.cost or 0.0,
            replayed=True,
        )

    def _failed(self, ticket: TicketIn, reason: str, ctx: Optional[RetrievalContext] = None) -> DeflectionResult:
        return DeflectionResult(
            ticket_id=ticket.id,
            should_respond=False,
            state=DeflectionState.FAILED,
            reason=reason,
            simulated_embeddings=ctx.simulated_embeddings if ctx else False,
            degraded_sources=list(ctx.degraded_sources) if ctx else [],
        )

    async def _audit(
        self,
        store: DeflectionStore,
        ticket: TicketIn,
        result: DeflectionResult,
        generation: Optional[GenerationResult],
        elapsed_ms: int,
    ) -> None:
        try:
            await self._timed(store.add_log(
                ticket_id=ticket.id,
                user_id=ticket.user_id,
                state=result.state.value,
                reason=result.reason,
                confidence_score=result.response.confidence if result.response else None,
                requires_human=result.requires_human,
                complexity=generation.assessment.complexity if generation else None,
                provider=generation.provider if generation else None,
                tokens_used=result.tokens_used,
                cost=result.cost,
                response_time_ms=elapsed_ms,
            ))
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error("Could not write audit log for ticket %s: %s", ticket.id, e)
