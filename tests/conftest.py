"""
Shared fixtures: a throwaway SQLite database per test, deterministic
collaborator stubs and ticket/response factories.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

import deflection.main  # noqa: F401  (registers every model)
from deflection.core.database import build_session_factory, create_tables
from deflection.rag.embeddings import SimulatedEmbeddingProvider
from deflection.schemas.ticket_schema import TicketIn
from deflection.services.delivery import DeliveryError
from deflection.services.engine import DeflectionEngine
from deflection.services.llm_router import GenerationOutput
from deflection.services.store import DeflectionStore

# Wednesday, inside business hours
FIXED_NOW = datetime(2026, 10, 14, 10, 30, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════
# Collaborator stubs
# ═══════════════════════════════════════════════════════════════════════


def make_payload(**overrides) -> dict:
    payload = {
        "content": "To reset your password, open Settings > Security and click 'Reset password'.",
        "type": "auto_resolve",
        "confidence": 0.95,
        "reasoning": "Knowledge base article covers password resets exactly.",
        "suggested_actions": ["send_reset_link"],
        "estimated_resolution_minutes": 5,
        "follow_up_needed": False,
        "escalation_reason": None,
    }
    payload.update(overrides)
    return payload


class StubTextGenerator:
    """Returns a fixed payload (or raises) and records every prompt it saw."""

    def __init__(self, payload: Optional[dict] = None, tokens: int = 1000, error: Optional[Exception] = None, raw: Optional[str] = None):
        self.payload = payload or make_payload()
        self.tokens = tokens
        self.error = error
        self.raw = raw
        self.calls: list[tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationOutput:
        self.calls.append((system_prompt, user_prompt))
        if self.error:
            raise self.error
        text = self.raw if self.raw is not None else json.dumps(self.payload)
        return GenerationOutput(text=text, tokens_used=self.tokens, provider="stub")


class RecordingDelivery:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send(self, ticket: TicketIn, response_content: str) -> None:
        if self.fail:
            raise DeliveryError("helpdesk unavailable")
        self.sent.append((ticket.id, response_content))


def make_ticket(**overrides) -> TicketIn:
    data = {
        "id": "T-1001",
        "user_id": "acct-1",
        "conversation_id": "conv-1",
        "subject": "Password reset",
        "content": "How do I reset my password? I forgot it and cannot log in.",
        "customer_email": "dana@example.com",
        "category": "account",
        "priority": "normal",
        "created_at": FIXED_NOW,
    }
    data.update(overrides)
    return TicketIn(**data)


# ═══════════════════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'deflection.db'}", poolclass=NullPool)
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory):
    async with session_factory() as db:
        yield DeflectionStore(db)


# ═══════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture
def text_generator():
    return StubTextGenerator()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def engine(session_factory, text_generator, delivery):
    return DeflectionEngine(
        session_factory=session_factory,
        text_generator=text_generator,
        embeddings=SimulatedEmbeddingProvider(),
        delivery=delivery,
        clock=lambda: FIXED_NOW,
    )
