# tests/test_content_analysis.py
import pytest

from adaptive_rag.analysis import detectors
from adaptive_rag.analysis.classifier import (
    ContentClassifier,
    assess_complexity,
    calculate_confidence,
    detect_content_type,
    fallback_analysis,
    recommend_chunking,
)
from adaptive_rag.models import (
    ChunkingMethod,
    Complexity,
    ContentType,
    EmbeddingModel,
    StructuralProfile,
)


class TestDetectors:
    """Individual structural scans."""

    def test_html_signal(self):
        assert detectors.looks_like_html("<p>hi</p>")
        assert not detectors.looks_like_html("plain words")

    def test_structured_signal(self):
        assert detectors.looks_like_structured('{"a": 1}')
        assert detectors.looks_like_structured("---\ntitle: x\n---")
        assert not detectors.looks_like_structured("just a sentence")

    def test_mixed_needs_two_signals(self):
        assert detectors.looks_like_mixed("<b>x</b>\n---\nkey: value")
        assert not detectors.looks_like_mixed("word " * 50)

    def test_headings(self):
        text = "<h1>Main Title Here</h1>\n## Second heading\nINTRODUCTION SECTION\n# Tiny"

        headings = detectors.extract_headings(text)

        assert "Main Title Here" in headings
        assert "Second heading" in headings
        assert "INTRODUCTION SECTION" in headings
        assert "Tiny" not in headings

    def test_sections_group_paragraphs(self):
        paragraph = "This paragraph is long enough to count towards a section of text."
        text = "\n\n".join([paragraph] * 6)

        assert len(detectors.extract_sections(text)) == 2

    def test_feature_flags(self):
        assert detectors.detect_tables("| a | b |")
        assert detectors.detect_lists("- item one\n- item two")
        assert detectors.detect_code("use `pip install`")
        assert detectors.detect_images("![alt](pic.png)")
        assert not detectors.detect_code("no code here")

    def test_count_links(self):
        text = '<a href="x">x</a> and [y](http://y.com)'

        assert detectors.count_links(text) == 2

    def test_count_words_ignores_tags(self):
        assert detectors.count_words("<p>one two</p> three") == 3

    def test_language(self):
        assert detectors.detect_language("the cat and the dog sat in the sun") == "en"
        assert detectors.detect_language("el perro y la casa de que en un") == "es"
        assert detectors.detect_language("xyz qwv") == "en"

    def test_domain(self):
        assert detectors.extract_domain("https://docs.example.com/page") == "docs.example.com"
        assert detectors.extract_domain(None) == "unknown"
        assert detectors.extract_domain("not a url") == "unknown"

    def test_syllables(self):
        assert detectors.estimate_syllables("cat") == 1
        assert detectors.estimate_syllables("reading") == 2

    def test_readability_bounds(self, complex_html, simple_text):
        assert detectors.readability_score("") == 50.0
        assert detectors.readability_score(complex_html) == 0.0
        assert detectors.readability_score(simple_text) == 100.0


class TestContentType:

    def test_metadata_hint_wins(self):
        assert detect_content_type("plain text", metadata={"type": "pdf"}) == ContentType.PDF

    def test_url_extension(self):
        assert detect_content_type("plain text", url="https://x.com/report.PDF") == ContentType.PDF
        assert detect_content_type("plain text", url="https://x.com/index.htm") == ContentType.HTML

    def test_sniffing_order(self):
        assert detect_content_type("<div>x</div>") == ContentType.HTML
        assert detect_content_type('{"key": "value"}') == ContentType.STRUCTURED
        assert detect_content_type("short plain text") == ContentType.TEXT


class TestComplexity:

    def test_simple(self):
        assert assess_complexity(100, 1, 0, False, False, 80) == Complexity.SIMPLE

    def test_medium_threshold(self):
        # 1 (words) + 2 (readability 45)
        assert assess_complexity(600, 0, 0, False, False, 45) == Complexity.MEDIUM

    def test_complex_threshold(self):
        # 3 (words) + 3 (readability)
        assert assess_complexity(6000, 0, 0, False, False, 10) == Complexity.COMPLEX

    def test_code_and_tables_count(self):
        assert assess_complexity(100, 0, 0, True, True, 80) == Complexity.MEDIUM


class TestConfidence:

    def _profile(self, **fields):
        base = dict(content_type=ContentType.TEXT, complexity=Complexity.SIMPLE)
        base.update(fields)
        return StructuralProfile(**base)

    def test_base(self):
        assert calculate_confidence(self._profile()) == 0.8

    def test_mixed_and_complex_penalties(self):
        profile = self._profile(content_type=ContentType.MIXED, complexity=Complexity.COMPLEX)

        assert calculate_confidence(profile) == pytest.approx(0.5)

    def test_structure_bonus(self):
        profile = self._profile(section_count=4, heading_count=3)

        assert calculate_confidence(profile) == pytest.approx(0.9)


class TestRecommendation:

    def test_structured_uses_large_embeddings(self):
        profile = StructuralProfile(
            content_type=ContentType.STRUCTURED,
            complexity=Complexity.MEDIUM,
            readability_score=60,
        )

        recommendation = recommend_chunking(profile)

        assert recommendation.chunking_method == ChunkingMethod.SEMANTIC
        assert recommendation.embedding_model == EmbeddingModel.LARGE
        assert recommendation.chunk_overlap == 300

    def test_low_readability_shrinks_chunks(self):
        profile = StructuralProfile(
            content_type=ContentType.HTML,
            complexity=Complexity.COMPLEX,
            section_count=8,
            readability_score=10,
        )

        recommendation = recommend_chunking(profile)

        assert recommendation.chunking_method == ChunkingMethod.SECTION
        assert recommendation.chunk_size == 819
        assert "low readability" in recommendation.reasoning


class TestContentClassifier:

    def test_complex_html(self, complex_html):
        analysis = ContentClassifier().classify(complex_html)

        profile = analysis.profile

        assert profile.content_type == ContentType.HTML
        assert profile.complexity == Complexity.COMPLEX
        assert profile.word_count > 5000
        assert profile.heading_count == 8
        assert analysis.confidence == pytest.approx(0.8)
        assert analysis.content_hash is not None
        assert analysis.cached is False

    def test_simple_text(self, simple_text):
        analysis = ContentClassifier().classify(simple_text)

        assert analysis.profile.content_type == ContentType.TEXT
        assert analysis.profile.complexity == Complexity.SIMPLE
        assert analysis.profile.word_count == 300
        assert analysis.recommendation.chunking_method == ChunkingMethod.SENTENCE

    def test_url_domain(self):
        analysis = ContentClassifier().classify("Some text.", url="https://news.example.org/a")

        assert analysis.profile.domain == "news.example.org"

    def test_invalid_content_falls_back(self):
        analysis = ContentClassifier().classify(None)

        assert analysis.confidence == 0.3
        assert analysis.profile.content_type == ContentType.TEXT
        assert analysis.profile.complexity == Complexity.MEDIUM
        assert analysis.recommendation.chunking_method == ChunkingMethod.PARAGRAPH

    def test_confidence_always_in_range(self, complex_html, simple_text):
        classifier = ContentClassifier()

        samples = [complex_html, simple_text, "{}", "<b>x</b>\n---\nk: v", "a"]

        for sample in samples:
            assert 0.3 <= classifier.classify(sample).confidence <= 1.0

    def test_fallback_analysis(self):
        analysis = fallback_analysis("two words", reason="broken")

        assert analysis.confidence == 0.3
        assert analysis.profile.word_count == 2
        assert analysis.recommendation.reasoning == "broken"
