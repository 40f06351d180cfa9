"""Keyword extraction, matching and ranking."""
from types import SimpleNamespace

from deflection.rag.keywords import (
    bm25_rank,
    extract_keywords,
    keyword_hits,
    rank_by_success,
    render_template,
)


class TestExtractKeywords:
    def test_strips_punctuation_and_stop_words(self):
        assert extract_keywords("How do I reset my password?!") == ["how", "reset", "password"]

    def test_keeps_first_occurrence_order_without_duplicates(self):
        assert extract_keywords("Invoice missing; invoice PDF missing too") == ["invoice", "missing", "pdf", "too"]

    def test_caps_at_fifteen(self):
        text = " ".join(f"word{i}" for i in range(40))
        keywords = extract_keywords(text)
        assert len(keywords) == 15
        assert keywords[0] == "word0"

    def test_empty_text(self):
        assert extract_keywords("   ...   ") == []


class TestMatching:
    def test_hits_in_title_content_and_tags(self):
        kws = ["password", "reset", "sso"]
        assert keyword_hits(kws, title="Password help", content="Use the reset link", tags=["SSO"]) == 3

    def test_no_hits(self):
        assert keyword_hits(["refund"], title="Password help", content="Reset link") == 0

    def test_rank_by_success_then_usage(self):
        a = SimpleNamespace(name="a")
        b = SimpleNamespace(name="b")
        c = SimpleNamespace(name="c")
        ranked = rank_by_success([(a, 0.5, 10), (b, 0.9, 1), (c, 0.5, 20)], limit=2)
        assert [x.name for x in ranked] == ["b", "c"]


class TestBM25:
    def test_ranks_overlapping_documents_only(self):
        docs = [
            ("reset", "password reset email never arrived"),
            ("billing", "invoice shows wrong amount"),
            ("export", "export contacts to csv"),
        ]
        ranked = bm25_rank("reset email for my password", docs, k=3)
        assert [item for item, _ in ranked] == ["reset"]

    def test_empty_inputs(self):
        assert bm25_rank("anything", [], k=3) == []
        assert bm25_rank("the and of", [("a", "some text")], k=3) == []


class TestRenderTemplate:
    def test_substitutes_known_placeholders(self):
        out = render_template("Hi {{ customer_email }}, about {{ticket_subject}}", {"customer_email": "a@b.c", "ticket_subject": "login"})
        assert out == "Hi a@b.c, about login"

    def test_leaves_unknown_placeholders(self):
        assert render_template("Order {{order_id}}", {}) == "Order {{order_id}}"
