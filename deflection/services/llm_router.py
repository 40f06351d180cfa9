from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal, Protocol, Tuple

from langchain_core.prompts import ChatPromptTemplate

from deflection.core.config import settings

logger = logging.getLogger(__name__)

Provider = Literal["vertex", "groq"]
ProviderPreference = Literal["auto", "vertex", "groq"]


@dataclass(frozen=True)
class GenerationOutput:
    text: str
    tokens_used: int
    provider: str


class TextGenerator(Protocol):
    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationOutput: ...


@lru_cache(maxsize=8)
def _vertex_chat_llm(*, max_output_tokens: int, temperature: float) -> Any:
    from langchain_google_vertexai import ChatVertexAI

    return ChatVertexAI(
        model_name=settings.VERTEX_LLM_MODEL,
        project=settings.GCP_PROJECT_ID,
        location=settings.GCP_LOCATION,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        timeout=float(settings.LLM_REQUEST_TIMEOUT_SECONDS),
        max_retries=0,
    )


@lru_cache(maxsize=8)
def _groq_chat_llm(*, max_output_tokens: int, temperature: float) -> Any:
    from langchain_groq import ChatGroq

    if not settings.GROQ_API_KEY:
        raise RuntimeError("GROQ_API_KEY is not set; Groq fallback is unavailable.")

    return ChatGroq(
        model=settings.GROQ_FALLBACK_MODEL,
        api_key=settings.GROQ_API_KEY,
        temperature=temperature,
        max_tokens=max_output_tokens,
        timeout=float(settings.LLM_REQUEST_TIMEOUT_SECONDS),
        max_retries=0,
    )


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        # Some providers return content blocks
        return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
    return str(content)


def _tokens_used(message: Any) -> int:
    usage = getattr(message, "usage_metadata", None) or {}
    return int(usage.get("total_tokens", 0) or 0)


async def ainvoke_with_fallback(
    prompt: ChatPromptTemplate,
    variables: dict,
    *,
    max_output_tokens: int = settings.LLM_MAX_OUTPUT_TOKENS,
    temperature: float = settings.LLM_TEMPERATURE,
    provider_preference: ProviderPreference = "auto",
) -> Tuple[str, int, Provider]:
    """Invoke an LLM with Vertex/Groq, honoring a preferred provider order.

    Returns: (text, tokens_used, provider_used)
    """
    order: list[Provider]
    if provider_preference == "groq":
        order = ["groq", "vertex"]
    else:
        order = ["vertex", "groq"]

    last_err: Exception | None = None
    for provider in order:
        try:
            llm = (
                _vertex_chat_llm(max_output_tokens=max_output_tokens, temperature=temperature)
                if provider == "vertex"
                else _groq_chat_llm(max_output_tokens=max_output_tokens, temperature=temperature)
            )
            chain = prompt | llm
            message = await asyncio.wait_for(
                chain.ainvoke(variables),
                timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
            )
            return _message_text(message), _tokens_used(message), provider
        except Exception as e:
            last_err = e
            logger.warning("%s LLM call failed; trying next provider. error=%s", provider, str(e))

    raise RuntimeError("All configured LLM providers failed.") from last_err


class LangChainTextGenerator:
    """TextGenerator backed by Vertex AI with a Groq fallback."""

    def __init__(self, provider_preference: ProviderPreference = "auto"):
        self.provider_preference = provider_preference
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", "{system}"),
            ("human", "{context}"),
        ])

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationOutput:
        text, tokens, provider = await ainvoke_with_fallback(
            self.prompt,
            {"system": system_prompt, "context": user_prompt},
            provider_preference=self.provider_preference,
        )
        return GenerationOutput(text=text, tokens_used=tokens, provider=provider)
