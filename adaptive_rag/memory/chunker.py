# adaptive_rag/memory/chunker.py

import logging
import re
from typing import List

from adaptive_rag.config import MAX_DOCUMENT_CHARACTERS
from adaptive_rag.models import ChunkingMethod

logger = logging.getLogger(__name__)


# Boundaries tried in order, coarsest first
SEPARATORS = {
    ChunkingMethod.SENTENCE: ["(?<=[.!?]) ", "\n", " "],
    ChunkingMethod.PARAGRAPH: ["\n\n", "\n", "(?<=[.!?]) ", " "],
    ChunkingMethod.SECTION: ["\n\n\n", "\n\n", "\n", "(?<=[.!?]) "],
    ChunkingMethod.SEMANTIC: ["\n\n\n", "\n\n", "\n", "(?<=[.!?]) ", " "],
}


def _split_units(text: str, separators: List[str], size: int) -> List[str]:
    """Recursively split until every unit fits in `size` characters."""

    if len(text) <= size:
        return [text]

    if not separators:
        return [text[i:i + size] for i in range(0, len(text), size)]

    head, rest = separators[0], separators[1:]
    parts = [p for p in re.split(head, text) if p.strip()]

    if len(parts) <= 1:
        return _split_units(text, rest, size)

    units = []
    for part in parts:
        units.extend(_split_units(part, rest, size))

    return units


def chunk_text(
    text: str,
    size: int,
    overlap: int,
    method: ChunkingMethod = ChunkingMethod.PARAGRAPH,
) -> List[str]:
    """
    Bounded, method-aware chunker (sizes in characters).

    Architecture contract:
    chunker → embedder → vector index

    Guarantees:
    • deterministic chunk generation
    • no empty chunks
    • chunk length bounded by size plus the carried overlap
    """

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    text = text.strip()

    if len(text) > MAX_DOCUMENT_CHARACTERS:
        logger.warning(
            "Text exceeds max character limit, truncating",
            extra={
                "original_length": len(text),
                "max_allowed": MAX_DOCUMENT_CHARACTERS,
            },
        )
        text = text[:MAX_DOCUMENT_CHARACTERS]

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ValueError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    units = _split_units(text, SEPARATORS[ChunkingMethod(method)], size)

    chunks = []
    current = ""

    for unit in units:

        unit = unit.strip()
        if not unit:
            continue

        candidate = f"{current} {unit}".strip() if current else unit

        if len(candidate) <= size:
            current = candidate
            continue

        if current:
            chunks.append(current)
            tail = current[-overlap:] if overlap else ""
            current = f"{tail} {unit}".strip() if tail else unit
        else:
            current = unit

    if current:
        chunks.append(current)

    logger.info(
        "Chunking completed",
        extra={
            "method": ChunkingMethod(method).value,
            "characters": len(text),
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(chunks),
        },
    )

    return chunks
