# adaptive_rag/memory/embedder.py

"""
Embedding wrapper with batching.

Architecture contract:
chunker → embedder → vector index

Guarantees:
• Always returns numpy float32 array
• Always normalized (cosine-ready)
• Batched processing
• Embedding model chosen per strategy
"""

import logging
from typing import List, Optional

import numpy as np
from openai import OpenAI

from adaptive_rag.config import EMBEDDING_DIMENSIONS, MAX_CHUNKS_PER_DOCUMENT
from adaptive_rag.models import EmbeddingModel

logger = logging.getLogger(__name__)

DEFAULT_EMBED_BATCH_SIZE = 32


class Embedder:
    """
    OpenAI embedding generator bound to one embedding tier.
    """

    def __init__(self, model: EmbeddingModel = EmbeddingModel.SMALL, client: Optional[OpenAI] = None):

        model = EmbeddingModel(model)

        if model.value not in EMBEDDING_DIMENSIONS:
            raise ValueError(f"Unsupported embedding model: {model.value}")

        self._model = model
        self._dimension = EMBEDDING_DIMENSIONS[model.value]

        # client creation is lazy so construction never needs an API key
        self._client = client

        logger.info(
            "Embedder initialized",
            extra={"model": model.value, "dimension": self._dimension},
        )

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def embed(self, texts: List[str], batch_size: int = DEFAULT_EMBED_BATCH_SIZE) -> np.ndarray:

        if not texts:
            logger.warning("Empty embedding request")
            return np.empty((0, self._dimension), dtype="float32")

        if len(texts) > MAX_CHUNKS_PER_DOCUMENT:
            raise ValueError(
                f"Chunk count exceeds MAX_CHUNKS_PER_DOCUMENT "
                f"({MAX_CHUNKS_PER_DOCUMENT})"
            )

        total = len(texts)

        logger.info(
            "Embedding started",
            extra={"chunks": total, "batch_size": batch_size, "model": self._model.value},
        )

        try:

            batches = []

            for start in range(0, total, batch_size):

                response = self.client.embeddings.create(
                    model=self._model.value,
                    input=texts[start:start + batch_size],
                )

                batch = np.array(
                    [item.embedding for item in response.data],
                    dtype="float32",
                )

                norms = np.linalg.norm(batch, axis=1, keepdims=True)
                batches.append(batch / np.clip(norms, 1e-10, None))

            embeddings = np.vstack(batches)

        except Exception as e:

            logger.error(
                "Embedding generation failed",
                extra={"error": str(e), "model": self._model.value},
            )

            raise RuntimeError(f"Embedding generation failed: {e}") from e

        logger.info(
            "Embedding completed",
            extra={"chunks": total, "dimension": self._dimension},
        )

        return embeddings

    def get_dimension(self) -> int:
        return self._dimension

    def health_check(self) -> dict:
        return {
            "model": self._model.value,
            "dimension": self._dimension,
            "provider": "openai",
            "status": "healthy",
        }
