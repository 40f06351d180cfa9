"""Response generation: parsing, prompt assembly, failures and complexity."""
import asyncio
import json

import pytest

from conftest import StubTextGenerator, make_payload, make_ticket
from deflection.core.errors import GenerationError
from deflection.rag.generator import ResponseGenerator, build_context, build_system_prompt, parse_response
from deflection.rag.retriever import RetrievalContext, SimilarTicket
from deflection.schemas.ticket_schema import ConversationMessage
from deflection.services.complexity import analyze_complexity
from deflection.services.settings_service import default_settings


class TestParseResponse:
    def test_bare_json(self):
        response = parse_response(json.dumps(make_payload()))
        assert response.type == "auto_resolve"
        assert response.confidence == 0.95

    def test_fenced_json_with_chatter(self):
        text = "Here you go:\n```json\n" + json.dumps(make_payload(type="follow_up", confidence=0.6)) + "\n```"
        response = parse_response(text)
        assert response.type == "follow_up"

    @pytest.mark.parametrize(
        "text",
        [
            "I cannot help with that.",
            "{not json}",
            json.dumps(make_payload(confidence=1.4)),
            json.dumps(make_payload(type="maybe")),
            json.dumps(make_payload(content="")),
        ],
    )
    def test_invalid_output_raises(self, text):
        with pytest.raises(GenerationError):
            parse_response(text)


class TestPromptAssembly:
    def test_system_prompt_carries_language_and_instructions(self):
        config = default_settings().model_copy(update={"response_language": "es", "custom_instructions": "Sign as Team Acme."})
        prompt = build_system_prompt(config)
        assert "language: es" in prompt
        assert "Sign as Team Acme." in prompt
        assert '"confidence"' in prompt

    def test_context_sections(self):
        ticket = make_ticket(conversation_history=[ConversationMessage(role="customer", content="Earlier I asked about SSO")])
        ctx = RetrievalContext(
            keywords=["password"],
            similar_tickets=[SimilarTicket("T-1", "Reset", "reset pw", "Use the reset link", 0.91, "embedding")],
        )
        text = build_context(ticket, ctx, analyze_complexity(ticket.content, ticket.subject))
        assert "CUSTOMER SUPPORT TICKET:" in text
        assert "CONVERSATION HISTORY:" in text
        assert "Earlier I asked about SSO" in text
        assert "SIMILAR RESOLVED TICKETS:" in text
        assert "RELEVANT KNOWLEDGE BASE:" not in text


class TestResponseGenerator:
    @pytest.mark.asyncio
    async def test_success(self):
        stub = StubTextGenerator(tokens=640)
        result = await ResponseGenerator(stub).generate(make_ticket(), RetrievalContext(keywords=[]), default_settings())
        assert result.response.confidence == 0.95
        assert result.tokens_used == 640
        assert result.provider == "stub"
        assert len(stub.calls) == 1

    @pytest.mark.asyncio
    async def test_collaborator_error_becomes_generation_error(self):
        stub = StubTextGenerator(error=RuntimeError("All configured LLM providers failed."))
        with pytest.raises(GenerationError, match="providers failed"):
            await ResponseGenerator(stub).generate(make_ticket(), RetrievalContext(keywords=[]), default_settings())

    @pytest.mark.asyncio
    async def test_timeout_becomes_generation_error(self):
        class SlowGenerator:
            async def generate(self, system_prompt, user_prompt):
                await asyncio.sleep(5)

        with pytest.raises(GenerationError, match="timed out"):
            await ResponseGenerator(SlowGenerator(), timeout=0.01).generate(
                make_ticket(), RetrievalContext(keywords=[]), default_settings()
            )

    @pytest.mark.asyncio
    async def test_unparsable_output(self):
        stub = StubTextGenerator(raw="Sorry, something went wrong")
        with pytest.raises(GenerationError):
            await ResponseGenerator(stub).generate(make_ticket(), RetrievalContext(keywords=[]), default_settings())


class TestComplexity:
    def test_high_with_refund_requires_human(self):
        a = analyze_complexity("I want a refund, you charged me twice")
        assert a.complexity == "high"
        assert a.requires_human is True
        assert a.signals["high"] >= 2

    def test_high_without_money_or_legal_terms(self):
        a = analyze_complexity("The API integration returns an error on every call")
        assert a.complexity == "high"
        assert a.requires_human is False

    def test_medium(self):
        a = analyze_complexity("Can you explain how to configure notifications?")
        assert a.complexity == "medium"
        assert a.signals["high"] == 0 and a.signals["medium"] >= 1

    def test_low(self):
        a = analyze_complexity("Thanks, that worked great!")
        assert a.complexity == "low"
        assert a.requires_human is False

    def test_assessment_carries_only_routing_fields(self):
        a = analyze_complexity("Thanks for the quick help")
        assert set(vars(a)) == {"complexity", "requires_human", "signals"}
