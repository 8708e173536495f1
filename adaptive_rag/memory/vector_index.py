# adaptive_rag/memory/vector_index.py

import logging
from typing import Dict, List

import faiss
import numpy as np

from adaptive_rag.config import TOP_K
from adaptive_rag.models import VectorStoreKind

logger = logging.getLogger(__name__)


def _ensure_matrix(embeddings) -> np.ndarray:

    if isinstance(embeddings, list):
        embeddings = np.array(embeddings, dtype="float32")

    if embeddings.ndim == 1:
        embeddings = embeddings.reshape(1, -1)

    return embeddings.astype("float32", copy=False)


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    return vectors / np.clip(norms, 1e-10, None)


class VectorIndex:
    """
    Per-request chunk index. Inner product over normalized vectors,
    i.e. cosine similarity.
    """

    kind = VectorStoreKind.MEMORY

    def __init__(self, dim: int):

        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._dim = dim
        self._chunks: List[str] = []
        self._matrix = np.empty((0, dim), dtype="float32")

    def __len__(self):
        return len(self._chunks)

    def add(self, embeddings, chunks: List[str]):

        embeddings = _normalize(_ensure_matrix(embeddings))

        if embeddings.shape[0] != len(chunks):
            raise ValueError(
                f"Embedding count ({embeddings.shape[0]}) does not match chunk count ({len(chunks)})"
            )

        if embeddings.shape[0] and embeddings.shape[1] != self._dim:
            raise ValueError(f"Expected dimension {self._dim}, got {embeddings.shape[1]}")

        self._add_vectors(embeddings)
        self._chunks.extend(chunks)

    def query(self, embedding, top_k: int = TOP_K) -> List[Dict]:

        if not self._chunks:
            return []

        query = _normalize(_ensure_matrix(embedding))
        k = min(top_k, len(self._chunks))

        scores, indices = self._search(query, k)

        results = []

        for score, idx in zip(scores, indices):
            if idx < 0:
                continue
            results.append({
                "text": self._chunks[idx],
                "chunk_idx": int(idx),
                "similarity_score": float(score),
            })

        return results

    def get_stats(self) -> Dict:
        return {"kind": self.kind.value, "total_chunks": len(self._chunks), "dimension": self._dim}

    # numpy backend

    def _add_vectors(self, vectors: np.ndarray):
        self._matrix = np.vstack([self._matrix, vectors])

    def _search(self, query: np.ndarray, k: int):
        similarities = self._matrix @ query[0]
        order = np.argsort(-similarities, kind="stable")[:k]
        return similarities[order], order


class FaissVectorIndex(VectorIndex):

    kind = VectorStoreKind.FAISS

    def __init__(self, dim: int):
        super().__init__(dim)
        self._index = faiss.IndexFlatIP(dim)

    def _add_vectors(self, vectors: np.ndarray):
        self._index.add(vectors)

    def _search(self, query: np.ndarray, k: int):
        scores, indices = self._index.search(query, k)
        return scores[0], indices[0]


def create_index(kind: VectorStoreKind, dim: int) -> VectorIndex:

    kind = VectorStoreKind(kind)

    index = FaissVectorIndex(dim) if kind == VectorStoreKind.FAISS else VectorIndex(dim)

    logger.debug("Vector index created", extra={"kind": kind.value, "dimension": dim})

    return index
