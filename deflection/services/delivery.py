import logging
from typing import Optional, Protocol

import httpx

from deflection.core.config import settings
from deflection.schemas.ticket_schema import TicketIn

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    pass


class DeliveryClient(Protocol):
    async def send(self, ticket: TicketIn, response_content: str) -> None: ...


class LoggingDeliveryClient:
    """Used when no helpdesk endpoint is configured: the reply is only logged."""

    async def send(self, ticket: TicketIn, response_content: str) -> None:
        logger.info(
            "Delivery (log only) ticket=%s conversation=%s chars=%s",
            ticket.id, ticket.conversation_id, len(response_content),
        )


class WebhookDeliveryClient:
    """POSTs the final reply to the helpdesk integration endpoint."""

    def __init__(self, url: str, timeout: float = settings.DELIVERY_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    async def send(self, ticket: TicketIn, response_content: str) -> None:
        payload = {
            "ticket_id": ticket.id,
            "conversation_id": ticket.conversation_id,
            "customer_email": ticket.customer_email,
            "response_content": response_content,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Delivery to {self.url} failed: {e}") from e


def get_delivery_client(url: Optional[str] = settings.DELIVERY_WEBHOOK_URL) -> DeliveryClient:
    if url:
        return WebhookDeliveryClient(url)
    return LoggingDeliveryClient()
