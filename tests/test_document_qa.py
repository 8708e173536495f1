# tests/test_document_qa.py
import threading

import numpy as np
import pytest

from adaptive_rag.errors import DelegateFailure
from adaptive_rag.memory.chunker import chunk_text
from adaptive_rag.memory.vector_index import FaissVectorIndex, VectorIndex, create_index
from adaptive_rag.models import ChunkingMethod, VectorStoreKind
from adaptive_rag.memory.retriever import retrieve
from adaptive_rag.prompts.prompt_builder import build_strategy_prompt
from adaptive_rag.prompts.system_prompts import REFUSAL_MESSAGE
from adaptive_rag.strategy import catalog
from adaptive_rag.strategy.catalog import StrategyName
from adaptive_rag.workflow.document_qa import DocumentQADelegate, answer_from_chunks


# ============================================================
# MOCKS
# ============================================================

class MockEmbedder:
    """Every text maps to the same unit vector, so similarity is always 1."""

    def __init__(self, model=None, dim=8):
        self.model = model
        self.dim = dim
        self.calls = 0

    def embed(self, texts):
        self.calls += 1
        vectors = np.zeros((len(texts), self.dim), dtype="float32")
        vectors[:, 0] = 1.0
        return vectors

    def get_dimension(self):
        return self.dim


class FailingEmbedder(MockEmbedder):
    def embed(self, texts):
        raise RuntimeError("embedding service down")


class MockLLM:

    def __init__(self, answer="The cat sat on the mat."):
        self.answer = answer
        self.prompts = []
        self.max_tokens = []

    def generate(self, prompt, max_tokens=500):
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        return self.answer


class FailingLLM:
    def generate(self, prompt, max_tokens=500):
        raise RuntimeError("rate limited")


def _chunk(text, score, idx=0):
    return {"text": text, "chunk_idx": idx, "similarity_score": score}


# ============================================================
# CHUNKER
# ============================================================

class TestChunker:

    def test_empty_text(self):
        assert chunk_text("", 100, 10) == []
        assert chunk_text("   ", 100, 10) == []

    def test_short_text_single_chunk(self):
        assert chunk_text("One sentence only.", 100, 10) == ["One sentence only."]

    def test_chunks_are_bounded(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(200))

        chunks = chunk_text(text, 200, 40, ChunkingMethod.SENTENCE)

        assert len(chunks) > 1
        assert all(chunk.strip() for chunk in chunks)
        assert all(len(chunk) <= 200 + 40 + 1 for chunk in chunks)

    def test_deterministic(self):
        text = "\n\n".join(f"Paragraph {i}. " * 20 for i in range(10))

        assert chunk_text(text, 300, 50) == chunk_text(text, 300, 50)

    def test_overlap_carried(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(50))

        chunks = chunk_text(text, 120, 20, ChunkingMethod.SENTENCE)

        assert chunks[1].startswith(chunks[0][-20:].strip())

    @pytest.mark.parametrize("size,overlap", [(0, 0), (100, -1), (100, 100)])
    def test_invalid_parameters(self, size, overlap):
        with pytest.raises(ValueError):
            chunk_text("Some text to chunk.", size, overlap)


# ============================================================
# VECTOR INDEX
# ============================================================

class TestVectorIndex:

    def test_factory(self):
        assert isinstance(create_index(VectorStoreKind.MEMORY, 4), VectorIndex)
        assert isinstance(create_index(VectorStoreKind.FAISS, 4), FaissVectorIndex)

    @pytest.mark.parametrize("kind", [VectorStoreKind.MEMORY, VectorStoreKind.FAISS])
    def test_cosine_ranking(self, kind):
        index = create_index(kind, 3)
        index.add(np.array([[1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype="float32"), ["a", "b", "c"])

        results = index.query(np.array([1, 0, 0], dtype="float32"), top_k=2)

        assert [r["text"] for r in results] == ["a", "c"]
        assert results[0]["similarity_score"] == pytest.approx(1.0)

    def test_empty_index(self):
        assert create_index(VectorStoreKind.MEMORY, 3).query([1.0, 0.0, 0.0]) == []

    def test_mismatched_counts(self):
        index = create_index(VectorStoreKind.MEMORY, 3)

        with pytest.raises(ValueError):
            index.add(np.ones((2, 3), dtype="float32"), ["only one"])

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            create_index(VectorStoreKind.MEMORY, 0)


class TestRetriever:

    def test_duplicates_dropped_and_ranked(self):
        index = create_index(VectorStoreKind.MEMORY, 3)
        vectors = np.array([[1, 0, 0], [1, 0, 0], [0.6, 0.8, 0]], dtype="float32")
        index.add(vectors, ["same", "same ", "other"])
        embedder = MockEmbedder(dim=3)

        results = retrieve("Q?", embedder, index, top_k=2)

        assert [r["text"].strip() for r in results] == ["same", "other"]
        assert [r["rank"] for r in results] == [1, 2]

    def test_invalid_top_k(self):
        with pytest.raises(ValueError):
            retrieve("Q?", MockEmbedder(), create_index(VectorStoreKind.MEMORY, 8), top_k=0)


# ============================================================
# PROMPT
# ============================================================

class TestPrompt:

    def test_prompt_contents(self):
        strategy = catalog.get_strategy(StrategyName.MOBILE_OPTIMIZED)

        prompt = build_strategy_prompt("Where?", [_chunk("On the mat.", 0.91)], strategy)

        assert "[Context 1 | Confidence: 0.910]" in prompt
        assert "On the mat." in prompt
        assert "Where?" in prompt
        assert REFUSAL_MESSAGE in prompt
        assert "small screen" in prompt
        assert prompt.endswith("FINAL ANSWER:")

    def test_comprehensive_guidance(self):
        strategy = catalog.get_strategy(StrategyName.HTML_COMPREHENSIVE)

        prompt = build_strategy_prompt("Why?", [_chunk("Because.", 0.8)], strategy)

        assert "small screen" not in prompt


# ============================================================
# ANSWERING
# ============================================================

class TestAnswerFromChunks:

    def setup_method(self):
        self.strategy = catalog.get_strategy(StrategyName.TEXT_PARAGRAPH)

    def test_no_context_refuses(self):
        result = answer_from_chunks("Q?", [], self.strategy, MockLLM())

        assert result.refused is True
        assert result.confidence_score == 0.0

    def test_low_similarity_refuses(self):
        llm = MockLLM()

        result = answer_from_chunks("Q?", [_chunk("x", 0.4)], self.strategy, llm)

        assert result.refused is True
        assert result.confidence_score == pytest.approx(0.4)
        assert llm.prompts == []

    def test_answer_uses_strategy_token_budget(self):
        llm = MockLLM()

        result = answer_from_chunks("Q?", [_chunk("x", 0.9, idx=3)], self.strategy, llm, chunks_created=7)

        assert result.refused is False
        assert result.answer == llm.answer
        assert result.chunks_created == 7
        assert result.sources == [{"chunk_idx": 3, "similarity_score": 0.9}]
        assert llm.max_tokens == [self.strategy.max_tokens]

    def test_llm_error_refuses(self):
        result = answer_from_chunks("Q?", [_chunk("x", 0.9)], self.strategy, FailingLLM())

        assert result.refused is True
        assert "LLM generation failed" in result.reasoning


# ============================================================
# DELEGATE
# ============================================================

class TestDocumentQADelegate:

    CONTENT = "\n\n".join(f"The cat sat on mat number {i}. It was a comfortable mat." for i in range(30))

    @pytest.mark.parametrize("key", [StrategyName.TEXT_PARAGRAPH, StrategyName.TEXT_SEMANTIC])
    def test_execute(self, key):
        llm = MockLLM()
        delegate = DocumentQADelegate(llm_client=llm, embedder_factory=MockEmbedder)
        strategy = catalog.get_strategy(key)

        result = delegate.execute(self.CONTENT, "Where did the cat sit?", strategy, threading.Event())

        assert result.refused is False
        assert result.chunks_created >= 1
        assert 1 <= len(result.sources) <= 5
        assert llm.max_tokens == [strategy.max_tokens]

    def test_embedder_reused_per_model(self):
        delegate = DocumentQADelegate(llm_client=MockLLM(), embedder_factory=MockEmbedder)
        strategy = catalog.get_strategy(StrategyName.TEXT_PARAGRAPH)

        delegate.execute(self.CONTENT, "Q?", strategy, threading.Event())
        delegate.execute(self.CONTENT, "Q?", strategy, threading.Event())

        embedder = delegate.embedder_for(strategy.embedding_model)
        assert embedder.calls == 4

    def test_cancelled_before_start(self):
        delegate = DocumentQADelegate(llm_client=MockLLM(), embedder_factory=MockEmbedder)
        cancel_event = threading.Event()
        cancel_event.set()

        with pytest.raises(DelegateFailure):
            delegate.execute(self.CONTENT, "Q?", catalog.get_strategy(StrategyName.TEXT_PARAGRAPH), cancel_event)

    def test_embedding_error(self):
        delegate = DocumentQADelegate(llm_client=MockLLM(), embedder_factory=FailingEmbedder)

        with pytest.raises(DelegateFailure):
            delegate.execute(self.CONTENT, "Q?", catalog.get_strategy(StrategyName.TEXT_PARAGRAPH), threading.Event())

    def test_empty_content(self):
        delegate = DocumentQADelegate(llm_client=MockLLM(), embedder_factory=MockEmbedder)

        with pytest.raises(DelegateFailure):
            delegate.execute("   ", "Q?", catalog.get_strategy(StrategyName.TEXT_PARAGRAPH), threading.Event())
