"""
Data store
All reads and writes the engine, feedback loop and metrics aggregator need,
expressed over one AsyncSession. Nothing outside this module builds queries.
"""
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deflection.models.ab_test import ABTest, ABTestConversion, ABTestImpression, ABTestVariant
from deflection.models.ai_response import AIResponse
from deflection.models.deflection_event import DeflectionEvent
from deflection.models.deflection_settings import DeflectionSettingsRecord
from deflection.models.feedback import CustomerFeedback
from deflection.models.knowledge import KnowledgeEntry, ResponseTemplate
from deflection.models.log_record import DeflectionLog
from deflection.models.metrics import DailyMetrics
from deflection.models.ticket import Ticket
from deflection.schemas.settings_schema import DeflectionSettings
from deflection.schemas.ticket_schema import TicketIn

logger = logging.getLogger(__name__)

RESOLVED_STATUSES = ("resolved", "closed")
AUTO_RESOLVED_STATE = "AUTO_RESOLVED"


def as_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are assumed to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeflectionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Settings ──────────────────────────────────────────────────────────────

    async def get_settings_record(self, user_id: str) -> Optional[DeflectionSettingsRecord]:
        result = await self.db.execute(
            select(DeflectionSettingsRecord).where(DeflectionSettingsRecord.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def save_settings(self, user_id: str, config: DeflectionSettings) -> DeflectionSettingsRecord:
        existing = await self.get_settings_record(user_id)
        payload = config.model_dump()
        if existing:
            for k, v in payload.items():
                setattr(existing, k, v)
            await self.db.commit()
            await self.db.refresh(existing)
            return existing

        record = DeflectionSettingsRecord(user_id=user_id, **payload)
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    # ── Tickets ───────────────────────────────────────────────────────────────

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return await self.db.get(Ticket, ticket_id)

    async def ensure_ticket(self, ticket: TicketIn) -> Ticket:
        """Insert the ticket if unseen. An existing row is never overwritten."""
        existing = await self.get_ticket(ticket.id)
        if existing:
            return existing

        row = Ticket(
            id=ticket.id,
            user_id=ticket.user_id,
            conversation_id=ticket.conversation_id,
            subject=ticket.subject,
            content=ticket.content,
            customer_email=ticket.customer_email,
            category=ticket.category,
            priority=ticket.priority,
            status="open",
            created_at=as_utc(ticket.created_at),
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another pass inserted it first
            await self.db.rollback()
            existing = await self.get_ticket(ticket.id)
            if existing is None:
                raise
            return existing
        return row

    async def set_ticket_status(self, ticket_id: str, status: str) -> Optional[Ticket]:
        ticket = await self.get_ticket(ticket_id)
        if ticket is None:
            return None
        ticket.status = status
        await self.db.commit()
        return ticket

    async def get_customer_history(self, user_id: str, customer_email: str, exclude_ticket_id: str, limit: int) -> List[Ticket]:
        result = await self.db.execute(
            select(Ticket)
            .where(
                Ticket.user_id == user_id,
                Ticket.customer_email == customer_email,
                Ticket.id != exclude_ticket_id,
            )
            .order_by(Ticket.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_resolved_tickets(
        self,
        user_id: str,
        exclude_ticket_id: str,
        min_satisfaction: int = 4,
        limit: int = 200,
    ) -> List[Tuple[Ticket, str]]:
        """
        Resolved/closed tickets whose average customer satisfaction is at least
        `min_satisfaction`, paired with the stored response that resolved them.
        """
        satisfied = (
            select(CustomerFeedback.ticket_id)
            .group_by(CustomerFeedback.ticket_id)
            .having(func.avg(CustomerFeedback.satisfaction_score) >= min_satisfaction)
        )
        result = await self.db.execute(
            select(Ticket, AIResponse.response_content)
            .join(AIResponse, AIResponse.ticket_id == Ticket.id)
            .where(
                Ticket.user_id == user_id,
                Ticket.id != exclude_ticket_id,
                Ticket.status.in_(RESOLVED_STATUSES),
                Ticket.id.in_(satisfied),
            )
            .order_by(Ticket.created_at.desc())
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def tickets_missing_embeddings(self, user_id: str, source: str) -> List[Ticket]:
        """Resolved tickets with no vector, or a vector from a provider other than `source`."""
        result = await self.db.execute(
            select(Ticket).where(
                Ticket.user_id == user_id,
                Ticket.status.in_(RESOLVED_STATUSES),
                or_(
                    Ticket.embedding.is_(None),
                    Ticket.embedding_source.is_(None),
                    Ticket.embedding_source != source,
                ),
            )
        )
        return list(result.scalars().all())

    # ── Knowledge base ────────────────────────────────────────────────────────

    async def list_knowledge_entries(self, user_id: str, category: Optional[str] = None, active_only: bool = True) -> List[KnowledgeEntry]:
        stmt = select(KnowledgeEntry).where(KnowledgeEntry.user_id == user_id)
        if active_only:
            stmt = stmt.where(KnowledgeEntry.is_active == True)  # noqa: E712
        if category:
            stmt = stmt.where(or_(KnowledgeEntry.category == category, KnowledgeEntry.category == "general"))
        result = await self.db.execute(stmt.order_by(KnowledgeEntry.id))
        return list(result.scalars().all())

    async def list_templates(self, user_id: str, category: Optional[str] = None, active_only: bool = True) -> List[ResponseTemplate]:
        stmt = select(ResponseTemplate).where(ResponseTemplate.user_id == user_id)
        if active_only:
            stmt = stmt.where(ResponseTemplate.is_active == True)  # noqa: E712
        if category:
            stmt = stmt.where(or_(ResponseTemplate.category == category, ResponseTemplate.category == "general"))
        result = await self.db.execute(stmt.order_by(ResponseTemplate.id))
        return list(result.scalars().all())

    async def get_knowledge_entries(self, ids: Iterable[int]) -> List[KnowledgeEntry]:
        ids = list(ids)
        if not ids:
            return []
        result = await self.db.execute(select(KnowledgeEntry).where(KnowledgeEntry.id.in_(ids)))
        return list(result.scalars().all())

    async def get_templates(self, ids: Iterable[int]) -> List[ResponseTemplate]:
        ids = list(ids)
        if not ids:
            return []
        result = await self.db.execute(select(ResponseTemplate).where(ResponseTemplate.id.in_(ids)))
        return list(result.scalars().all())

    async def add_knowledge_entry(self, user_id: str, **fields) -> KnowledgeEntry:
        entry = KnowledgeEntry(user_id=user_id, success_rate=0.0, usage_count=0, is_active=True, **fields)
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def add_template(self, user_id: str, **fields) -> ResponseTemplate:
        template = ResponseTemplate(user_id=user_id, success_rate=0.0, usage_count=0, is_active=True, **fields)
        self.db.add(template)
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def commit(self) -> None:
        await self.db.commit()

    # ── Responses & events ────────────────────────────────────────────────────

    async def get_ai_response(self, ticket_id: str) -> Optional[AIResponse]:
        result = await self.db.execute(select(AIResponse).where(AIResponse.ticket_id == ticket_id))
        return result.scalar_one_or_none()

    async def save_ai_response(self, ticket_id: str, **payload) -> Tuple[AIResponse, bool]:
        """
        Insert the response for a ticket unless one exists.

        Returns (row, created). An existing row is returned untouched: a
        response is written once per ticket and never edited afterwards.
        """
        existing = await self.get_ai_response(ticket_id)
        if existing:
            return existing, False

        row = AIResponse(ticket_id=ticket_id, **payload)
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_ai_response(ticket_id)
            if existing is None:
                raise
            return existing, False
        await self.db.refresh(row)
        return row, True

    async def set_response_state(self, ticket_id: str, state: str, *, sent: bool) -> None:
        """Record the delivery outcome. The generated content itself is never changed."""
        row = await self.get_ai_response(ticket_id)
        if row is not None:
            row.state = state
            row.sent_to_customer = sent
            await self.db.commit()

    async def get_deflection_event(self, ticket_id: str) -> Optional[DeflectionEvent]:
        result = await self.db.execute(select(DeflectionEvent).where(DeflectionEvent.ticket_id == ticket_id))
        return result.scalar_one_or_none()

    async def complete_deflection(
        self,
        ticket_id: str,
        *,
        user_id: str,
        confidence_score: float,
        template_used: Optional[str] = None,
    ) -> None:
        """
        Mark the response sent, resolve the ticket and record the deflection
        event in one commit. Safe to repeat: an existing event is kept.
        """
        row = await self.get_ai_response(ticket_id)
        if row is not None:
            row.state = AUTO_RESOLVED_STATE
            row.sent_to_customer = True

        ticket = await self.get_ticket(ticket_id)
        if ticket is not None and ticket.status not in RESOLVED_STATUSES:
            ticket.status = "resolved"

        if await self.get_deflection_event(ticket_id) is None:
            self.db.add(DeflectionEvent(
                ticket_id=ticket_id,
                user_id=user_id,
                deflection_type="auto_response",
                confidence_score=confidence_score,
                template_used=template_used,
            ))

        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    # ── Feedback ──────────────────────────────────────────────────────────────

    async def add_feedback(self, **fields) -> CustomerFeedback:
        row = CustomerFeedback(**fields)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return row

    # ── Range queries for metrics ─────────────────────────────────────────────

    async def count_tickets(self, user_id: str, start: datetime, end: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Ticket.id)).where(
                Ticket.user_id == user_id, Ticket.created_at >= start, Ticket.created_at < end
            )
        )
        return result.scalar() or 0

    async def count_deflections(self, user_id: str, start: datetime, end: datetime) -> int:
        result = await self.db.execute(
            select(func.count(DeflectionEvent.id)).where(
                DeflectionEvent.user_id == user_id,
                DeflectionEvent.created_at >= start,
                DeflectionEvent.created_at < end,
            )
        )
        return result.scalar() or 0

    async def avg_response_time_ms(self, user_id: str, start: datetime, end: datetime) -> Optional[float]:
        result = await self.db.execute(
            select(func.avg(AIResponse.response_time_ms)).where(
                AIResponse.user_id == user_id,
                AIResponse.response_time_ms.isnot(None),
                AIResponse.created_at >= start,
                AIResponse.created_at < end,
            )
        )
        return result.scalar()

    async def list_feedback(self, user_id: str, start: datetime, end: datetime) -> List[CustomerFeedback]:
        result = await self.db.execute(
            select(CustomerFeedback).where(
                CustomerFeedback.user_id == user_id,
                CustomerFeedback.created_at >= start,
                CustomerFeedback.created_at < end,
            )
        )
        return list(result.scalars().all())

    async def upsert_daily_metrics(self, user_id: str, day: date, **values) -> DailyMetrics:
        result = await self.db.execute(
            select(DailyMetrics).where(DailyMetrics.user_id == user_id, DailyMetrics.date == day)
        )
        existing = result.scalar_one_or_none()
        if existing:
            for k, v in values.items():
                setattr(existing, k, v)
            await self.db.commit()
            await self.db.refresh(existing)
            return existing

        row = DailyMetrics(user_id=user_id, date=day, **values)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return row

    async def list_daily_metrics(self, user_id: str, start: date, end: date) -> List[DailyMetrics]:
        """Rows with start <= date <= end, oldest first."""
        result = await self.db.execute(
            select(DailyMetrics)
            .where(DailyMetrics.user_id == user_id, DailyMetrics.date >= start, DailyMetrics.date <= end)
            .order_by(DailyMetrics.date)
        )
        return list(result.scalars().all())

    # ── A/B tests ─────────────────────────────────────────────────────────────

    async def create_ab_test(self, user_id: str, *, name: str, description: Optional[str], test_type: str, variants: List[dict]) -> ABTest:
        test = ABTest(user_id=user_id, name=name, description=description, test_type=test_type, status="draft")
        self.db.add(test)
        await self.db.flush()
        for v in variants:
            self.db.add(ABTestVariant(test_id=test.id, **v))
        await self.db.commit()
        await self.db.refresh(test)
        return test

    async def get_ab_test(self, test_id: int) -> Optional[ABTest]:
        return await self.db.get(ABTest, test_id)

    async def list_variants(self, test_id: int) -> List[ABTestVariant]:
        result = await self.db.execute(
            select(ABTestVariant).where(ABTestVariant.test_id == test_id).order_by(ABTestVariant.id)
        )
        return list(result.scalars().all())

    async def _insert_once(self, model, **fields) -> bool:
        result = await self.db.execute(select(model.id).filter_by(**{k: fields[k] for k in ("test_id", "variant_id", "ticket_id")}))
        if result.first() is not None:
            return False
        self.db.add(model(**fields))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    async def add_impression(self, test_id: int, variant_id: int, ticket_id: str) -> bool:
        return await self._insert_once(ABTestImpression, test_id=test_id, variant_id=variant_id, ticket_id=ticket_id)

    async def add_conversion(self, test_id: int, variant_id: int, ticket_id: str, conversion_type: str) -> bool:
        return await self._insert_once(
            ABTestConversion,
            test_id=test_id,
            variant_id=variant_id,
            ticket_id=ticket_id,
            conversion_type=conversion_type,
        )

    async def variant_counts(self, test_id: int) -> dict[int, Tuple[int, int]]:
        """variant_id -> (impressions, conversions)."""
        imp = await self.db.execute(
            select(ABTestImpression.variant_id, func.count(ABTestImpression.id))
            .where(ABTestImpression.test_id == test_id)
            .group_by(ABTestImpression.variant_id)
        )
        conv = await self.db.execute(
            select(ABTestConversion.variant_id, func.count(ABTestConversion.id))
            .where(ABTestConversion.test_id == test_id)
            .group_by(ABTestConversion.variant_id)
        )
        impressions = dict(imp.all())
        conversions = dict(conv.all())
        return {
            vid: (impressions.get(vid, 0), conversions.get(vid, 0))
            for vid in set(impressions) | set(conversions)
        }

    # ── Audit log ─────────────────────────────────────────────────────────────

    async def add_log(self, **fields) -> DeflectionLog:
        row = DeflectionLog(**fields)
        self.db.add(row)
        await self.db.commit()
        return row

    async def list_logs(self, limit: int = 50) -> List[DeflectionLog]:
        result = await self.db.execute(
            select(DeflectionLog).order_by(DeflectionLog.created_at.desc(), DeflectionLog.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
