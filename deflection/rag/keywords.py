"""
Keyword retrieval
Keyword extraction plus matching/ranking of knowledge entries, templates and
resolved tickets. Everything here works on rows already loaded from the store.
"""
import re
from typing import List, Sequence, Tuple, TypeVar

from rank_bm25 import BM25Okapi

from deflection.core.config import settings

T = TypeVar("T")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "must", "can",
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their", "this", "that", "these", "those",
    "am", "being", "having", "doing", "ought",
})

MIN_KEYWORD_LENGTH = 3


def _tokenize(text: str) -> List[str]:
    text = text.lower()
    text = re.sub(r"[^\w\s]", " ", text)
    return text.split()


def extract_keywords(text: str, limit: int = settings.MAX_KEYWORDS) -> List[str]:
    """Lowercased, de-duplicated content words in first-occurrence order."""
    seen: set[str] = set()
    keywords: List[str] = []
    for token in _tokenize(text):
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords


def keyword_hits(keywords: Sequence[str], *, title: str, content: str, tags: Sequence[str] = ()) -> int:
    """Number of keywords found in the title/content text or equal to a tag."""
    haystack = f"{title} {content}".lower()
    tag_set = {t.lower() for t in tags or []}
    return sum(1 for kw in keywords if kw in haystack or kw in tag_set)


def rank_by_success(matches: List[Tuple[T, float, int]], limit: int) -> List[T]:
    """Order (item, success_rate, usage_count) triples by success rate, then usage."""
    ordered = sorted(matches, key=lambda m: (m[1] or 0.0, m[2] or 0), reverse=True)
    return [item for item, _, _ in ordered[:limit]]


def bm25_rank(query: str, documents: List[Tuple[T, str]], k: int) -> List[Tuple[T, float]]:
    """
    BM25 scores of `documents` against `query`, highest first.

    Documents sharing no token with the query are dropped. BM25Okapi floors
    the IDF of very common terms, so on tiny corpora a raw score alone is not
    a usable relevance cut-off.
    """
    if not documents:
        return []
    query_tokens = [t for t in _tokenize(query) if t not in STOP_WORDS]
    if not query_tokens:
        return []

    corpus = [_tokenize(text) for _, text in documents]
    if not any(corpus):
        return []
    bm25 = BM25Okapi(corpus)
    scores = bm25.get_scores(query_tokens)
    query_set = set(query_tokens)

    candidates = []
    for i, tokens in enumerate(corpus):
        overlap = len(query_set.intersection(tokens))
        if overlap:
            candidates.append((documents[i][0], float(scores[i]), overlap))

    candidates.sort(key=lambda c: (c[2], c[1]), reverse=True)
    return [(item, score) for item, score, _ in candidates[:k]]


def render_template(content: str, variables: dict) -> str:
    """Substitute {{name}} placeholders; unknown placeholders are left as-is."""
    def _sub(match: re.Match) -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return re.sub(r"\{\{\s*(\w+)\s*\}\}", _sub, content)
