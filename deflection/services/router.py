"""
Confidence Router
Turns a scored GeneratedResponse into a terminal state. Pure.
"""
from dataclasses import dataclass

from deflection.schemas.response_schema import DeflectionState, GeneratedResponse
from deflection.schemas.settings_schema import DeflectionSettings


@dataclass(frozen=True)
class RouteDecision:
    state: DeflectionState
    can_deflect: bool
    reason: str


def can_deflect(response: GeneratedResponse, requires_human: bool, config: DeflectionSettings) -> bool:
    return (
        response.type == "auto_resolve"
        and response.confidence >= config.confidence_threshold
        and not requires_human
    )


def route_response(response: GeneratedResponse, requires_human: bool, config: DeflectionSettings) -> RouteDecision:
    pct = round(response.confidence * 100)

    if can_deflect(response, requires_human, config):
        return RouteDecision(DeflectionState.AUTO_RESOLVED, True, "High confidence AI response generated")

    if requires_human:
        detail = response.escalation_reason or "ticket involves billing, refund or legal matters"
        return RouteDecision(DeflectionState.ESCALATED, False, f"Requires human review - escalating to human: {detail}")

    if response.confidence < config.escalation_threshold:
        return RouteDecision(DeflectionState.ESCALATED, False, f"Low confidence ({pct}%) - escalating to human")

    return RouteDecision(DeflectionState.FOLLOW_UP, False, f"Medium confidence ({pct}%) - follow-up required")
