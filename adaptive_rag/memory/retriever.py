# adaptive_rag/memory/retriever.py
from typing import Dict, List


def retrieve(question: str, embedder, index, top_k: int = 5) -> List[Dict]:
    """
    Embed the question and return up to top_k distinct chunks, best first.

    Overlapping chunkers can emit the same text twice; only the first
    (highest scoring) copy is kept. Each hit gains a 1-based "rank".
    """

    if top_k <= 0:
        raise ValueError("top_k must be positive")

    query_embedding = embedder.embed([question])

    hits = index.query(query_embedding, top_k=top_k * 2)

    seen = set()
    results = []

    for hit in hits:
        key = hit["text"].strip()
        if key in seen:
            continue
        seen.add(key)
        results.append({**hit, "rank": len(results) + 1})
        if len(results) == top_k:
            break

    return results
