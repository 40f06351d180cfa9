"""
Error taxonomy for the deflection engine.

Preflight and routing outcomes are ordinary return values. The exceptions here
cover genuine failures: bad settings, collaborator failures and malformed
embedding comparisons.
"""


class DeflectionError(Exception):
    """Base class for all engine errors."""


class ValidationError(DeflectionError):
    """Settings are malformed or contradictory and must not be applied."""


class GenerationError(DeflectionError):
    """The text-generation call failed, timed out, or returned unparsable output."""


class EmbeddingError(DeflectionError):
    """The embedding collaborator failed or returned a vector of the wrong size."""


class DimensionMismatch(DeflectionError):
    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class TicketNotFound(DeflectionError):
    def __init__(self, ticket_id: str):
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class ABTestNotFound(DeflectionError):
    def __init__(self, test_id: int):
        super().__init__(f"A/B test {test_id} not found")
        self.test_id = test_id
