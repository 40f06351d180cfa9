"""
Preflight Gate
Decides whether a ticket is eligible for automated handling before any
retrieval or model call is made. Pure: no I/O, no side effects.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import logging

from deflection.schemas.settings_schema import DeflectionSettings
from deflection.schemas.ticket_schema import TicketIn

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Limits
# ──────────────────────────────────────────────

MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 5000

# Mon-Fri, [09:00, 17:00) UTC
BUSINESS_DAYS = range(0, 5)
BUSINESS_START_HOUR = 9
BUSINESS_END_HOUR = 17

TOP_PRIORITY = "priority"


@dataclass(frozen=True)
class PreflightResult:
    proceed: bool
    reason: str


def is_business_hours(now: datetime) -> bool:
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.weekday() in BUSINESS_DAYS and BUSINESS_START_HOUR <= now.hour < BUSINESS_END_HOUR


def _contains_escalation_keyword(ticket: TicketIn, keywords: list[str]) -> Optional[str]:
    text = f"{ticket.subject or ''} {ticket.content}".lower()
    for kw in keywords:
        kw = kw.strip().lower()
        if kw and kw in text:
            return kw
    return None


def run_preflight(ticket: TicketIn, config: DeflectionSettings, now: Optional[datetime] = None) -> PreflightResult:
    """
    Evaluate the eligibility checks in a fixed order and stop at the first failure.

    `now` defaults to the current UTC time and is only consulted when
    business_hours_only is set.
    """
    # 1. Master switch
    if not config.auto_response_enabled:
        return PreflightResult(proceed=False, reason="Auto-response disabled")

    # 2. Business hours
    if config.business_hours_only:
        current = now or datetime.now(timezone.utc)
        if not is_business_hours(current):
            return PreflightResult(proceed=False, reason="Outside business hours")

    # 3. Excluded categories
    if ticket.category and ticket.category in config.excluded_categories:
        return PreflightResult(proceed=False, reason=f'Category "{ticket.category}" is excluded')

    # 4. Escalation keywords in subject or content
    matched = _contains_escalation_keyword(ticket, config.escalation_keywords)
    if matched:
        logger.info("Preflight: ticket %s matched escalation keyword '%s'", ticket.id, matched)
        return PreflightResult(proceed=False, reason="Contains escalation keyword")

    # 5. Top-tier priority always goes to a human
    if ticket.priority == TOP_PRIORITY:
        return PreflightResult(proceed=False, reason="High priority ticket - human escalation required")

    # 6/7. Content length
    if len(ticket.content) < MIN_CONTENT_LENGTH:
        return PreflightResult(proceed=False, reason="Ticket content too short for automated response")
    if len(ticket.content) > MAX_CONTENT_LENGTH:
        return PreflightResult(proceed=False, reason="Ticket content too long for automated response")

    return PreflightResult(proceed=True, reason="Eligible for automated response")
