# adaptive_rag/analysis/classifier.py

import logging
import time
from typing import Any, Dict, Optional

from adaptive_rag.analysis import detectors
from adaptive_rag.config import FALLBACK_CONFIDENCE
from adaptive_rag.errors import ClassificationFailure
from adaptive_rag.memory.shared_store import hash_content
from adaptive_rag.models import (
    ChunkingMethod,
    ChunkingRecommendation,
    Complexity,
    ContentAnalysis,
    ContentType,
    EmbeddingModel,
    StructuralProfile,
)

logger = logging.getLogger(__name__)


BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 1.0

LOW_READABILITY = 40


def fallback_analysis(content: str = "", reason: str = "Fallback strategy due to analysis error") -> ContentAnalysis:
    """Fixed low-confidence analysis used whenever classification fails."""

    return ContentAnalysis(
        profile=StructuralProfile(
            content_type=ContentType.TEXT,
            complexity=Complexity.MEDIUM,
            word_count=detectors.count_words(content) if isinstance(content, str) else 0,
        ),
        confidence=FALLBACK_CONFIDENCE,
        recommendation=ChunkingRecommendation(
            chunking_method=ChunkingMethod.PARAGRAPH,
            embedding_model=EmbeddingModel.SMALL,
            chunk_size=1024,
            chunk_overlap=150,
            reasoning=reason,
        ),
        processing_time_ms=0.0,
    )


def detect_content_type(
    content: str,
    url: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ContentType:
    """Metadata hint, then URL extension, then content sniffing."""

    hint = None
    if metadata:
        hint = metadata.get("type") or metadata.get("content_type")

    if hint in (ContentType.PDF.value, ContentType.HTML.value):
        return ContentType(hint)

    if url:
        extension = url.rsplit(".", 1)[-1].lower() if "." in url else ""
        if extension == "pdf":
            return ContentType.PDF
        if extension in ("html", "htm"):
            return ContentType.HTML

    if detectors.looks_like_html(content):
        return ContentType.HTML
    if detectors.looks_like_structured(content):
        return ContentType.STRUCTURED
    if detectors.looks_like_mixed(content):
        return ContentType.MIXED

    return ContentType.TEXT


def assess_complexity(
    word_count: int,
    sections: int,
    headings: int,
    tables: bool,
    code: bool,
    readability: float,
) -> Complexity:

    points = 0

    if word_count > 5000:
        points += 3
    elif word_count > 2000:
        points += 2
    elif word_count > 500:
        points += 1

    if sections > 10:
        points += 2
    elif sections > 5:
        points += 1

    if headings > 15:
        points += 2
    elif headings > 8:
        points += 1

    if tables:
        points += 1
    if code:
        points += 2

    # lower readability = harder text
    if readability < 30:
        points += 3
    elif readability < 50:
        points += 2
    elif readability < 70:
        points += 1

    if points >= 6:
        return Complexity.COMPLEX
    if points >= 3:
        return Complexity.MEDIUM
    return Complexity.SIMPLE


def calculate_confidence(profile: StructuralProfile) -> float:

    confidence = BASE_CONFIDENCE

    if profile.content_type == ContentType.MIXED:
        confidence -= 0.2

    if profile.complexity == Complexity.COMPLEX:
        confidence -= 0.1

    if profile.section_count > 3 and profile.heading_count > 2:
        confidence += 0.1

    return round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence)), 4)


def recommend_chunking(profile: StructuralProfile) -> ChunkingRecommendation:

    content_type = profile.content_type

    if content_type == ContentType.HTML:
        embedding = EmbeddingModel.SMALL
        if profile.section_count > 5:
            method, size, overlap = ChunkingMethod.SECTION, 1024, 150
            reasoning = "HTML with multiple sections - use section-based chunking"
        else:
            method, size, overlap = ChunkingMethod.PARAGRAPH, 512, 100
            reasoning = "Simple HTML content - use paragraph-based chunking"

    elif content_type == ContentType.PDF:
        embedding = EmbeddingModel.LARGE
        if profile.has_tables:
            method, size, overlap = ChunkingMethod.SEMANTIC, 2048, 200
            reasoning = "PDF with tables - use semantic chunking to preserve table structure"
        else:
            method, size, overlap = ChunkingMethod.PARAGRAPH, 1024, 150
            reasoning = "PDF content - use paragraph-based chunking"

    elif content_type == ContentType.STRUCTURED:
        embedding = EmbeddingModel.LARGE
        method, size, overlap = ChunkingMethod.SEMANTIC, 2048, 300
        reasoning = "Structured data - use semantic chunking to preserve data relationships"

    else:
        embedding = EmbeddingModel.SMALL
        if profile.complexity == Complexity.COMPLEX:
            method, size, overlap = ChunkingMethod.SEMANTIC, 1536, 200
            reasoning = "Complex text content - use semantic chunking for better context"
        elif profile.complexity == Complexity.MEDIUM:
            method, size, overlap = ChunkingMethod.PARAGRAPH, 1024, 150
            reasoning = "Medium complexity text - use paragraph-based chunking"
        else:
            method, size, overlap = ChunkingMethod.SENTENCE, 512, 100
            reasoning = "Simple text content - use sentence-based chunking"

    if profile.readability_score < LOW_READABILITY:
        size = int(size * 0.8)
        reasoning += " (reduced chunk size due to low readability)"

    return ChunkingRecommendation(
        chunking_method=method,
        embedding_model=embedding,
        chunk_size=size,
        chunk_overlap=overlap,
        reasoning=reasoning,
    )


class ContentClassifier:
    """
    Raw content → StructuralProfile + chunking recommendation.

    Never raises: any internal failure yields fallback_analysis().
    """

    def classify(
        self,
        content: str,
        url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ContentAnalysis:

        start_time = time.perf_counter()

        try:

            profile = self.build_profile(content, url, metadata)

            analysis = ContentAnalysis(
                profile=profile,
                confidence=calculate_confidence(profile),
                recommendation=recommend_chunking(profile),
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                content_hash=hash_content(content),
            )

        except Exception as e:

            logger.error(
                "Content classification failed, using fallback profile",
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "content_length": len(content) if isinstance(content, str) else None,
                },
                exc_info=True,
            )

            return fallback_analysis(content)

        logger.info(
            "Content classified",
            extra={
                "content_type": analysis.profile.content_type.value,
                "complexity": analysis.profile.complexity.value,
                "word_count": analysis.profile.word_count,
                "confidence": analysis.confidence,
            },
        )

        return analysis

    def build_profile(
        self,
        content: str,
        url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StructuralProfile:

        if not isinstance(content, str):
            raise ClassificationFailure(f"content must be str, got {type(content).__name__}")

        sections = detectors.extract_sections(content)
        headings = detectors.extract_headings(content)
        tables = detectors.detect_tables(content)
        code = detectors.detect_code(content)
        word_count = detectors.count_words(content)
        readability = detectors.readability_score(content)

        complexity = assess_complexity(
            word_count=word_count,
            sections=len(sections),
            headings=len(headings),
            tables=tables,
            code=code,
            readability=readability,
        )

        return StructuralProfile(
            content_type=detect_content_type(content, url, metadata),
            complexity=complexity,
            has_tables=tables,
            has_lists=detectors.detect_lists(content),
            has_code=code,
            has_images=detectors.detect_images(content),
            section_count=len(sections),
            heading_count=len(headings),
            headings=tuple(headings),
            link_count=detectors.count_links(content),
            word_count=word_count,
            language=detectors.detect_language(content),
            domain=detectors.extract_domain(url),
            readability_score=readability,
        )
