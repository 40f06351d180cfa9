"""
Ticket complexity heuristic
Keyword lists that classify a ticket as low/medium/high and flag the ones a
human must handle regardless of model confidence.
"""
from dataclasses import dataclass
from typing import Dict, Literal, Optional

Complexity = Literal["low", "medium", "high"]

HIGH_COMPLEXITY_TERMS = [
    # Billing & account lifecycle
    "refund", "billing", "payment", "charge", "cancel", "subscription", "delete",
    # Legal & privacy
    "gdpr", "privacy", "legal", "lawyer", "sue", "complaint",
    # Strong negative sentiment
    "angry", "frustrated", "terrible", "awful", "worst", "hate",
    # Technical faults
    "bug", "error", "crash", "broken", "not working", "issue",
    "technical", "api", "integration", "development", "code",
]

MEDIUM_COMPLEXITY_TERMS = [
    "how to", "setup", "configure", "settings", "account", "profile",
    "feature", "function", "help", "support", "question", "explain",
]

LOW_COMPLEXITY_TERMS = [
    "thank", "thanks", "hello", "hi", "greeting", "welcome",
    "simple", "quick", "easy", "basic",
]

# High complexity plus any of these always needs a human
HUMAN_REQUIRED_TERMS = ["refund", "billing", "legal"]


@dataclass(frozen=True)
class ComplexityAssessment:
    complexity: Complexity
    requires_human: bool
    signals: Dict[str, int]


def _count(text: str, terms: list[str]) -> int:
    return sum(1 for t in terms if t in text)


def analyze_complexity(content: str, subject: Optional[str] = None) -> ComplexityAssessment:
    text = f"{subject or ''} {content}".lower()

    high = _count(text, HIGH_COMPLEXITY_TERMS)
    medium = _count(text, MEDIUM_COMPLEXITY_TERMS)
    low = _count(text, LOW_COMPLEXITY_TERMS)

    complexity: Complexity
    if high > 0:
        complexity = "high"
    elif medium > 0:
        complexity = "medium"
    else:
        complexity = "low"

    requires_human = complexity == "high" and any(t in text for t in HUMAN_REQUIRED_TERMS)

    return ComplexityAssessment(
        complexity=complexity,
        requires_human=requires_human,
        signals={"high": high, "medium": medium, "low": low},
    )
