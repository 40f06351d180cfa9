import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import List

from pydantic import ValidationError as SchemaError

from deflection.core.config import settings
from deflection.core.errors import GenerationError
from deflection.rag.keywords import render_template
from deflection.rag.retriever import RetrievalContext
from deflection.schemas.response_schema import GeneratedResponse
from deflection.schemas.settings_schema import DeflectionSettings
from deflection.schemas.ticket_schema import TicketIn
from deflection.services.complexity import ComplexityAssessment, analyze_complexity
from deflection.services.llm_router import TextGenerator

logger = logging.getLogger(__name__)

# ── shared system prompt ──────────────────────────────────────────────────────
_SYSTEM_PROMPT = """You are an expert customer support agent for a SaaS company. You analyze support tickets and decide whether they can be answered automatically.

CONFIDENCE SCORING:
- 0.9-1.0: The knowledge base or a resolved ticket answers this exactly. Auto-resolve.
- 0.7-0.89: Strong match with minor gaps. Auto-resolve with a clear answer.
- 0.5-0.69: Partial match. Provide guidance and ask for follow-up.
- 0.3-0.49: Weak match. Escalate with a holding response.
- 0.0-0.29: No relevant information. Escalate.

ALWAYS ESCALATE (type "escalate") for:
- Security incidents or account compromise
- Billing disputes and refund requests
- Account termination requests
- Complaints about staff or service quality
- Legal threats or legal questions
- Technical issues that need the development team
- Angry or abusive language

RESPONSE RULES:
1. Base the answer only on the knowledge base, templates and resolved tickets provided.
2. Be concise, friendly and actionable. Use numbered steps for procedures.
3. Never invent policies, prices, links or timelines.
4. Reply in this language: {language}.
{custom_instructions}
OUTPUT FORMAT:
Return ONLY a JSON object with exactly these keys:
{{"content": str, "type": "auto_resolve" | "follow_up" | "escalate", "confidence": float between 0 and 1,
  "reasoning": str, "suggested_actions": [str], "estimated_resolution_minutes": int | null,
  "follow_up_needed": bool, "escalation_reason": str | null}}
"""


@dataclass
class GenerationResult:
    response: GeneratedResponse
    assessment: ComplexityAssessment
    tokens_used: int
    provider: str
    response_time_ms: int

    @property
    def requires_human(self) -> bool:
        return self.assessment.requires_human


def build_system_prompt(config: DeflectionSettings) -> str:
    custom = f"\nADDITIONAL INSTRUCTIONS FROM THE TEAM:\n{config.custom_instructions}\n" if config.custom_instructions else ""
    return _SYSTEM_PROMPT.format(language=config.response_language, custom_instructions=custom)


def build_context(ticket: TicketIn, ctx: RetrievalContext, assessment: ComplexityAssessment) -> str:
    """Render the ticket and everything retrieved for it as one prompt body."""
    parts: List[str] = [
        "CUSTOMER SUPPORT TICKET:",
        f"Subject: {ticket.subject or '(none)'}",
        f"Category: {ticket.category or 'general'}",
        f"Priority: {ticket.priority or 'normal'}",
        f"Estimated complexity: {assessment.complexity}",
        f"Message: {ticket.content}",
    ]

    if ticket.conversation_history:
        parts.append("\nCONVERSATION HISTORY:")
        for msg in ticket.conversation_history:
            parts.append(f"{msg.role}: {msg.content}")

    if ctx.customer_history:
        parts.append("\nCUSTOMER HISTORY:")
        for t in ctx.customer_history:
            parts.append(f"- [{t.status}] {t.subject or t.content[:80]}")

    if ctx.knowledge_entries:
        parts.append("\nRELEVANT KNOWLEDGE BASE:")
        for e in ctx.knowledge_entries:
            parts.append(
                f"- {e.title} (success rate {round((e.success_rate or 0) * 100)}%, used {e.usage_count or 0} times)\n  {e.content}"
            )

    if ctx.templates:
        variables = {
            "customer_email": ticket.customer_email,
            "ticket_subject": ticket.subject or "",
            "category": ticket.category or "general",
        }
        parts.append("\nAVAILABLE TEMPLATES:")
        for t in ctx.templates:
            parts.append(f"- {t.name}:\n  {render_template(t.content, variables)}")

    if ctx.similar_tickets:
        parts.append("\nSIMILAR RESOLVED TICKETS:")
        for s in ctx.similar_tickets:
            parts.append(f"- Issue: {s.subject or s.content[:120]}\n  Resolution: {s.resolution}")

    return "\n".join(parts)


def parse_response(text: str) -> GeneratedResponse:
    """Extract the JSON object from model output and validate it."""
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise GenerationError("Model output contains no JSON object")

    try:
        payload = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise GenerationError(f"Model output is not valid JSON: {e}") from e

    try:
        return GeneratedResponse.model_validate(payload)
    except SchemaError as e:
        raise GenerationError(f"Model output does not match response schema: {e.error_count()} error(s)") from e


class ResponseGenerator:
    def __init__(self, text_generator: TextGenerator, timeout: float = settings.LLM_REQUEST_TIMEOUT_SECONDS * 2):
        self.text_generator = text_generator
        self.timeout = timeout

    async def generate(self, ticket: TicketIn, ctx: RetrievalContext, config: DeflectionSettings) -> GenerationResult:
        """
        One text-generation call for the ticket.

        Raises GenerationError when the collaborator fails, exceeds `timeout`,
        or returns something that is not a valid GeneratedResponse.
        """
        assessment = analyze_complexity(ticket.content, ticket.subject)
        system_prompt = build_system_prompt(config)
        user_prompt = build_context(ticket, ctx, assessment)

        start_time = time.time()
        try:
            output = await asyncio.wait_for(
                self.text_generator.generate(system_prompt, user_prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Text generation timed out after {self.timeout}s") from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Text generation failed: {e}") from e
        elapsed = int((time.time() - start_time) * 1000)

        response = parse_response(output.text)
        logger.info(
            "Generated %s response for ticket %s: confidence=%.2f complexity=%s provider=%s tokens=%s",
            response.type, ticket.id, response.confidence, assessment.complexity, output.provider, output.tokens_used,
        )

        return GenerationResult(
            response=response,
            assessment=assessment,
            tokens_used=output.tokens_used,
            provider=output.provider,
            response_time_ms=elapsed,
        )
