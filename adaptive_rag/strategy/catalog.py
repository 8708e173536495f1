# adaptive_rag/strategy/catalog.py

"""
Static catalog of processing strategies.

Built once at import time; entries are frozen models and the registry is
never mutated afterwards. Lookups go through StrategyName so a typo fails
loudly instead of silently returning nothing.
"""

from enum import Enum
from typing import Dict, List, Union

from adaptive_rag.errors import UnknownStrategyError
from adaptive_rag.models import (
    ChunkingMethod as C,
    Complexity as X,
    ContentType as T,
    EmbeddingModel as E,
    PerformanceProfile as P,
    StrategyDescriptor,
    StructuralProfile,
    VectorStoreKind as V,
)


class StrategyName(str, Enum):
    HTML_FAST = "html-fast"
    HTML_COMPREHENSIVE = "html-comprehensive"
    PDF_STRUCTURED = "pdf-structured"
    PDF_SIMPLE = "pdf-simple"
    TEXT_SEMANTIC = "text-semantic"
    TEXT_PARAGRAPH = "text-paragraph"
    TEXT_SENTENCE = "text-sentence"
    STRUCTURED_DATA = "structured-data"
    MIXED_CONTENT = "mixed-content"
    MOBILE_OPTIMIZED = "mobile-optimized"
    OFFLINE_PROCESSING = "offline-processing"


def _strategy(key: StrategyName, **fields) -> StrategyDescriptor:
    return StrategyDescriptor(key=key.value, **fields)


# Insertion order matters: validation substitutes the first compatible entry.
_CATALOG: Dict[StrategyName, StrategyDescriptor] = {
    StrategyName.HTML_FAST: _strategy(
        StrategyName.HTML_FAST,
        name="HTML Fast Processing",
        description="Optimized for simple HTML content with good structure",
        chunking_method=C.PARAGRAPH, chunk_size=512, chunk_overlap=100,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=300, content_types=(T.HTML,), complexity_levels=(X.SIMPLE,),
        performance_profile=P.FAST,
        reasoning="Fast processing for simple HTML content",
    ),
    StrategyName.HTML_COMPREHENSIVE: _strategy(
        StrategyName.HTML_COMPREHENSIVE,
        name="HTML Comprehensive Analysis",
        description="Deep analysis for complex HTML with multiple sections",
        chunking_method=C.SECTION, chunk_size=1536, chunk_overlap=200,
        embedding_model=E.LARGE, vector_store=V.FAISS, device_optimized=False,
        max_tokens=600, content_types=(T.HTML,), complexity_levels=(X.COMPLEX,),
        performance_profile=P.COMPREHENSIVE,
        reasoning="Comprehensive analysis for complex HTML structures",
    ),
    StrategyName.PDF_STRUCTURED: _strategy(
        StrategyName.PDF_STRUCTURED,
        name="PDF Structured Processing",
        description="Specialized for PDF documents with tables and complex layouts",
        chunking_method=C.SEMANTIC, chunk_size=2048, chunk_overlap=300,
        embedding_model=E.LARGE, vector_store=V.FAISS, device_optimized=False,
        max_tokens=800, content_types=(T.PDF,), complexity_levels=(X.MEDIUM, X.COMPLEX),
        performance_profile=P.COMPREHENSIVE,
        reasoning="Semantic chunking preserves PDF structure and relationships",
    ),
    StrategyName.PDF_SIMPLE: _strategy(
        StrategyName.PDF_SIMPLE,
        name="PDF Simple Processing",
        description="Basic processing for simple PDF documents",
        chunking_method=C.PARAGRAPH, chunk_size=1024, chunk_overlap=150,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=400, content_types=(T.PDF,), complexity_levels=(X.SIMPLE,),
        performance_profile=P.BALANCED,
        reasoning="Balanced approach for simple PDF content",
    ),
    StrategyName.TEXT_SEMANTIC: _strategy(
        StrategyName.TEXT_SEMANTIC,
        name="Text Semantic Analysis",
        description="Semantic chunking for complex text content",
        chunking_method=C.SEMANTIC, chunk_size=1536, chunk_overlap=200,
        embedding_model=E.LARGE, vector_store=V.FAISS, device_optimized=False,
        max_tokens=600, content_types=(T.TEXT,), complexity_levels=(X.COMPLEX,),
        performance_profile=P.COMPREHENSIVE,
        reasoning="Semantic understanding for complex text relationships",
    ),
    StrategyName.TEXT_PARAGRAPH: _strategy(
        StrategyName.TEXT_PARAGRAPH,
        name="Text Paragraph Processing",
        description="Paragraph-based chunking for medium complexity text",
        chunking_method=C.PARAGRAPH, chunk_size=1024, chunk_overlap=150,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=400, content_types=(T.TEXT,), complexity_levels=(X.MEDIUM,),
        performance_profile=P.BALANCED,
        reasoning="Efficient paragraph-based processing for medium complexity",
    ),
    StrategyName.TEXT_SENTENCE: _strategy(
        StrategyName.TEXT_SENTENCE,
        name="Text Sentence Processing",
        description="Sentence-based chunking for simple text content",
        chunking_method=C.SENTENCE, chunk_size=512, chunk_overlap=100,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=200, content_types=(T.TEXT,), complexity_levels=(X.SIMPLE,),
        performance_profile=P.FAST,
        reasoning="Fast sentence-based processing for simple content",
    ),
    StrategyName.STRUCTURED_DATA: _strategy(
        StrategyName.STRUCTURED_DATA,
        name="Structured Data Processing",
        description="Specialized for JSON, XML, and structured data formats",
        chunking_method=C.SEMANTIC, chunk_size=2048, chunk_overlap=400,
        embedding_model=E.LARGE, vector_store=V.FAISS, device_optimized=False,
        max_tokens=800, content_types=(T.STRUCTURED,), complexity_levels=(X.MEDIUM, X.COMPLEX),
        performance_profile=P.COMPREHENSIVE,
        reasoning="Preserves data structure and relationships in structured content",
    ),
    StrategyName.MIXED_CONTENT: _strategy(
        StrategyName.MIXED_CONTENT,
        name="Mixed Content Processing",
        description="Adaptive processing for content with multiple formats",
        chunking_method=C.SEMANTIC, chunk_size=1536, chunk_overlap=200,
        embedding_model=E.LARGE, vector_store=V.FAISS, device_optimized=False,
        max_tokens=600, content_types=(T.MIXED,), complexity_levels=(X.MEDIUM, X.COMPLEX),
        performance_profile=P.COMPREHENSIVE,
        reasoning="Adaptive processing for diverse content types",
    ),
    StrategyName.MOBILE_OPTIMIZED: _strategy(
        StrategyName.MOBILE_OPTIMIZED,
        name="Mobile Optimized",
        description="Optimized for mobile devices with limited resources",
        chunking_method=C.SENTENCE, chunk_size=256, chunk_overlap=50,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=150, content_types=(T.HTML, T.TEXT, T.PDF), complexity_levels=(X.SIMPLE, X.MEDIUM),
        performance_profile=P.FAST,
        reasoning="Mobile-optimized for limited processing power and memory",
    ),
    StrategyName.OFFLINE_PROCESSING: _strategy(
        StrategyName.OFFLINE_PROCESSING,
        name="Offline Processing",
        description="Local processing without cloud dependencies",
        chunking_method=C.PARAGRAPH, chunk_size=512, chunk_overlap=100,
        embedding_model=E.SMALL, vector_store=V.MEMORY, device_optimized=True,
        max_tokens=200, content_types=(T.HTML, T.TEXT, T.PDF), complexity_levels=(X.SIMPLE, X.MEDIUM),
        performance_profile=P.FAST,
        reasoning="Offline processing for privacy and connectivity constraints",
    ),
}


def get_strategy(name: Union[StrategyName, str]) -> StrategyDescriptor:
    """Look a strategy up by catalog key (e.g. "mobile-optimized")."""

    try:
        key = StrategyName(name)
    except ValueError:
        raise UnknownStrategyError(name) from None

    return _CATALOG[key]


def get_strategy_by_display_name(name: str) -> StrategyDescriptor:

    for strategy in _CATALOG.values():
        if strategy.name == name:
            return strategy

    raise UnknownStrategyError(name)


def all_strategies() -> List[StrategyDescriptor]:
    return list(_CATALOG.values())


def fallback_strategy(is_mobile: bool) -> StrategyDescriptor:
    if is_mobile:
        return get_strategy(StrategyName.MOBILE_OPTIMIZED)
    return get_strategy(StrategyName.TEXT_PARAGRAPH)


def estimate_memory_mb(strategy: StrategyDescriptor, profile: StructuralProfile) -> float:
    """Rough footprint: service base + chunks + embedding tier + vector store."""

    base = 50.0
    chunks = (profile.word_count / strategy.chunk_size) * 0.1
    embedding = 200.0 if strategy.uses_large_embeddings else 100.0
    vector_store = 150.0 if strategy.vector_store == V.FAISS else 50.0

    return base + chunks + embedding + vector_store
