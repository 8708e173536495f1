# adaptive_rag/services.py

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from adaptive_rag.analysis.classifier import ContentClassifier
from adaptive_rag.config import CoordinatorConfig, load_coordinator_config
from adaptive_rag.memory.shared_store import SharedMemoryStore
from adaptive_rag.observability.metrics import MetricsTracker
from adaptive_rag.observability.posthog_client import PostHogClient
from adaptive_rag.strategy.selector import StrategySelector
from adaptive_rag.workflow.coordinator import WorkflowCoordinator
from adaptive_rag.workflow.document_qa import DocumentQADelegate

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once per application."""

    memory_store: SharedMemoryStore
    classifier: ContentClassifier
    selector: StrategySelector
    coordinator: WorkflowCoordinator
    metrics: MetricsTracker
    analytics: Optional[PostHogClient] = None

    def start(self):
        self.memory_store.start()

    def close(self):
        self.coordinator.close()
        self.memory_store.close()
        if self.analytics is not None:
            self.analytics.shutdown()


def build_services(
    config: Optional[CoordinatorConfig] = None,
    clock: Callable[[], float] = time.time,
    delegate=None,
    analytics: Optional[PostHogClient] = None,
    use_default_delegate: bool = True,
    classifier: Optional[ContentClassifier] = None,
) -> Services:
    """
    Wire the store, classifier, selector and coordinator together.

    The default delegate answers questions through OpenAI; pass
    use_default_delegate=False for classification and selection only.
    """

    memory_store = SharedMemoryStore(clock=clock)
    classifier = classifier or ContentClassifier()
    selector = StrategySelector(memory_store)
    metrics = MetricsTracker()

    if delegate is None and use_default_delegate:
        delegate = DocumentQADelegate()

    coordinator = WorkflowCoordinator(
        memory_store=memory_store,
        classifier=classifier,
        selector=selector,
        delegate=delegate,
        config=config or load_coordinator_config(),
        metrics=metrics,
        analytics=analytics,
    )

    logger.info(
        "Services built",
        extra={"delegate": type(delegate).__name__ if delegate else None},
    )

    return Services(
        memory_store=memory_store,
        classifier=classifier,
        selector=selector,
        coordinator=coordinator,
        metrics=metrics,
        analytics=analytics,
    )
