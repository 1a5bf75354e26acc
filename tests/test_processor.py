"""
Tokenizer Tests

Covers text extraction from HTML and structured content, normalization,
term capping and content hashing.
"""

from linkrec_server.content.models import SourceDocument
from linkrec_server.indexing.processor import (
    ContentProcessor,
    extract_text,
    strip_html,
)


class TestTextExtraction:

    def test_strip_html_drops_tags_and_scripts(self):
        text = strip_html("<p>Hello <b>world</b></p><script>var x = 1;</script><style>p {}</style>")
        assert "Hello" in text
        assert "world" in text
        assert "var" not in text
        assert "{}" not in text

    def test_strip_html_decodes_entities(self):
        assert "fish & chips" in strip_html("<p>fish &amp; chips</p>")

    def test_extract_text_walks_structured_content(self):
        content = {
            "blocks": [
                {"html": "<b>solar</b> panels"},
                {"items": ["roof", {"caption": "battery storage"}]},
            ],
            "width": 12,
        }
        text = extract_text(content)
        for word in ("solar", "panels", "roof", "battery", "storage"):
            assert word in text

    def test_extract_text_none(self):
        assert extract_text(None) == ""


class TestPreprocessText:

    def setup_method(self):
        self.processor = ContentProcessor()

    def test_removes_urls_emails_and_numbers(self):
        tokens = self.processor.preprocess_text(
            "Visit https://example.com or mail me@example.com in 2024 Modular-Buildings!"
        )
        assert tokens == ["visit", "mail", "modular", "buildings"]

    def test_drops_stopwords_and_short_tokens(self):
        tokens = self.processor.preprocess_text("The cat is on the big mat and they were there")
        assert tokens == ["cat", "big", "mat"]

    def test_contractions_and_possessives(self):
        tokens = self.processor.preprocess_text("Don't forget the company's brochures")
        assert tokens == ["forget", "company", "brochures"]

    def test_curly_apostrophes(self):
        tokens = self.processor.preprocess_text("We’re sure it won’t rain on Smith’s site")
        assert tokens == ["sure", "rain", "smith", "site"]

    def test_drops_overlong_tokens(self):
        assert self.processor.preprocess_text("a" * 51 + " valid") == ["valid"]

    def test_no_stemming(self):
        assert self.processor.preprocess_text("building buildings") == ["building", "buildings"]

    def test_extra_stopwords(self):
        processor = ContentProcessor(extra_stopwords=["Modular"])
        assert processor.preprocess_text("modular office") == ["office"]


class TestTermCounting:

    def test_top_terms_breaks_ties_alphabetically(self):
        counts = {"beta": 2, "alpha": 2, "gamma": 1}
        assert ContentProcessor.top_terms(counts, 2) == {"alpha": 2, "beta": 2}

    def test_top_terms_zero_limit(self):
        assert ContentProcessor.top_terms({"alpha": 1}, 0) == {}

    def test_content_hash_ignores_case_and_whitespace(self):
        assert ContentProcessor.content_hash("Hello  World\n") == ContentProcessor.content_hash(
            "hello world"
        )
        assert ContentProcessor.content_hash("hello") != ContentProcessor.content_hash("world")


class TestProcess:

    def test_title_counts_twice_and_terms_are_capped(self):
        page = SourceDocument(
            id=7,
            slug="modular-buildings",
            title="Modular Buildings",
            content="<p>modular office</p>",
        )
        processed = ContentProcessor().process(page, max_terms=2)

        assert processed.page_id == "7"
        assert processed.url == "/modular-buildings"
        assert processed.title == "Modular Buildings"
        assert processed.word_count == 6
        assert processed.term_counts == {"modular": 3, "buildings": 2}
        assert processed.distinct_terms == 3

    def test_meta_fields_are_used(self):
        page = SourceDocument(
            id="a",
            slug="x",
            title="Ignored",
            meta_title="Prefab Homes",
            meta_description="Affordable housing",
        )
        processed = ContentProcessor().process(page, max_terms=10)

        assert processed.title == "Prefab Homes"
        assert processed.term_counts == {
            "prefab": 2,
            "homes": 2,
            "affordable": 1,
            "housing": 1,
        }
        assert "ignored" not in processed.term_counts

    def test_empty_page(self):
        page = SourceDocument(id="e", slug="empty")
        processed = ContentProcessor().process(page, max_terms=10)
        assert processed.word_count == 0
        assert processed.term_counts == {}
