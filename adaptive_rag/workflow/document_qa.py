# adaptive_rag/workflow/document_qa.py

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol

from adaptive_rag.config import SIMILARITY_THRESHOLD, TOP_K
from adaptive_rag.errors import DelegateFailure
from adaptive_rag.llm.client import LLMClient
from adaptive_rag.memory.chunker import chunk_text
from adaptive_rag.memory.embedder import Embedder
from adaptive_rag.memory.retriever import retrieve
from adaptive_rag.memory.vector_index import create_index
from adaptive_rag.models import EmbeddingModel, ExecutionResult, StrategyDescriptor
from adaptive_rag.prompts.prompt_builder import build_strategy_prompt

logger = logging.getLogger(__name__)


class ExecutionDelegate(Protocol):
    """
    Runs the chosen strategy against one document.

    Implementations must poll `cancel_event` and stop early once it is set.
    """

    def execute(
        self,
        content: str,
        question: str,
        strategy: StrategyDescriptor,
        cancel_event: threading.Event,
    ) -> ExecutionResult:
        ...


def _check_cancelled(cancel_event: threading.Event, step: str):
    if cancel_event.is_set():
        raise DelegateFailure(f"Execution cancelled before {step}")


def answer_from_chunks(
    question: str,
    context_chunks: List[Dict],
    strategy: StrategyDescriptor,
    llm_client,
    chunks_created: int = 0,
) -> ExecutionResult:
    """
    Answer with confidence-based refusal over already retrieved chunks.
    """

    sources = [
        {"chunk_idx": c["chunk_idx"], "similarity_score": c["similarity_score"]}
        for c in context_chunks
    ]

    if not context_chunks:
        return ExecutionResult(
            answer="I don't have any information in the document to answer this question.",
            chunks_created=chunks_created,
            refused=True,
            confidence_score=0.0,
            reasoning="No relevant context found in document",
        )

    top_similarity = context_chunks[0]["similarity_score"]

    if top_similarity < SIMILARITY_THRESHOLD:
        return ExecutionResult(
            answer=(
                f"I don't have enough confident information in the document to answer this question. "
                f"The most relevant content has only {top_similarity:.2%} confidence, "
                f"which is below the {SIMILARITY_THRESHOLD:.0%} threshold."
            ),
            sources=sources,
            chunks_created=chunks_created,
            refused=True,
            confidence_score=max(0.0, top_similarity),
            reasoning=f"Top similarity score ({top_similarity:.3f}) below threshold ({SIMILARITY_THRESHOLD})",
        )

    prompt = build_strategy_prompt(question, context_chunks, strategy)

    try:
        answer = llm_client.generate(prompt, max_tokens=strategy.max_tokens)
    except Exception as e:
        logger.error(
            "Answer generation failed",
            extra={"strategy": strategy.name, "error": str(e)},
        )
        return ExecutionResult(
            answer="I encountered an error while processing your question. Please try again.",
            sources=sources,
            chunks_created=chunks_created,
            refused=True,
            confidence_score=top_similarity,
            reasoning=f"LLM generation failed: {str(e)}",
        )

    return ExecutionResult(
        answer=answer,
        sources=sources,
        chunks_created=chunks_created,
        refused=False,
        confidence_score=top_similarity,
    )


class DocumentQADelegate:
    """
    Default delegate: chunk → embed → index → retrieve → generate,
    every step parameterized by the chosen strategy.
    """

    def __init__(
        self,
        llm_client=None,
        embedder_factory: Optional[Callable[[EmbeddingModel], Embedder]] = None,
        top_k: int = TOP_K,
    ):
        self._llm_client = llm_client
        self._embedder_factory = embedder_factory or Embedder
        self._embedders: Dict[EmbeddingModel, Embedder] = {}
        self._top_k = top_k
        self._lock = threading.Lock()

    @property
    def llm_client(self):
        # built on first use so the service starts without an API key
        if self._llm_client is None:
            self._llm_client = LLMClient()
        return self._llm_client

    def embedder_for(self, model: EmbeddingModel) -> Embedder:
        with self._lock:
            if model not in self._embedders:
                self._embedders[model] = self._embedder_factory(model)
            return self._embedders[model]

    def execute(
        self,
        content: str,
        question: str,
        strategy: StrategyDescriptor,
        cancel_event: threading.Event,
    ) -> ExecutionResult:

        logger.info(
            "Execution started",
            extra={"strategy": strategy.name, "question_length": len(question)},
        )

        _check_cancelled(cancel_event, "chunking")

        chunks = chunk_text(
            content,
            size=strategy.chunk_size,
            overlap=strategy.chunk_overlap,
            method=strategy.chunking_method,
        )

        if not chunks:
            raise DelegateFailure("No chunks produced from content")

        _check_cancelled(cancel_event, "embedding")

        embedder = self.embedder_for(strategy.embedding_model)

        try:
            embeddings = embedder.embed(chunks)
        except (RuntimeError, ValueError) as e:
            raise DelegateFailure(str(e)) from e

        _check_cancelled(cancel_event, "indexing")

        index = create_index(strategy.vector_store, embedder.get_dimension())
        index.add(embeddings, chunks)

        _check_cancelled(cancel_event, "retrieval")

        try:
            context_chunks = retrieve(question, embedder, index, top_k=self._top_k)
        except RuntimeError as e:
            raise DelegateFailure(str(e)) from e

        _check_cancelled(cancel_event, "generation")

        result = answer_from_chunks(
            question,
            context_chunks,
            strategy,
            self.llm_client,
            chunks_created=len(chunks),
        )

        logger.info(
            "Execution completed",
            extra={
                "strategy": strategy.name,
                "chunks_created": len(chunks),
                "refused": result.refused,
                "confidence_score": result.confidence_score,
            },
        )

        return result
