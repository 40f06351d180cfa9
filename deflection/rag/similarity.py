import logging
import math
from typing import List, Sequence, Tuple, TypeVar

from deflection.core.config import settings
from deflection.core.errors import DimensionMismatch

logger = logging.getLogger(__name__)

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def find_similar(
    target: Sequence[float],
    candidates: List[Tuple[T, Sequence[float]]],
    threshold: float = settings.SIMILARITY_THRESHOLD,
    max_results: int = settings.MAX_SIMILAR_RESULTS,
) -> List[Tuple[T, float]]:
    """
    Candidates whose similarity to `target` is >= threshold, best first.

    A candidate whose vector length differs from the target is skipped and the
    rest are still scored.
    """
    scored: List[Tuple[T, float]] = []
    for item, vector in candidates:
        try:
            score = cosine_similarity(target, vector)
        except DimensionMismatch as e:
            logger.warning("Skipping similarity candidate: %s", e)
            continue
        if score >= threshold:
            scored.append((item, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:max_results]
