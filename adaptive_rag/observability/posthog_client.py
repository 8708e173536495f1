# adaptive_rag/observability/posthog_client.py

"""
Product analytics for workflows.

Logging stays the source of truth; these events only summarize outcomes
(completed, fallback, error) per user, session or workflow. With no
POSTHOG_API_KEY the client is inert.
"""

import logging
import os
from typing import Any, Dict, Optional

from posthog import Posthog


logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://app.posthog.com"

EVENT_WORKFLOW_COMPLETED = "adaptive_rag_workflow_completed"
EVENT_WORKFLOW_FALLBACK = "adaptive_rag_workflow_fallback"
EVENT_ERROR = "adaptive_rag_error"


class PostHogClient:

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        self._client: Optional[Posthog] = None

        api_key = api_key or os.getenv("POSTHOG_API_KEY")

        if not api_key:
            logger.warning("Analytics disabled: POSTHOG_API_KEY not set")
            return

        host = host or os.getenv("POSTHOG_HOST", DEFAULT_HOST)

        try:
            self._client = Posthog(project_api_key=api_key, host=host, timeout=5, flush_interval=1)
        except Exception as e:
            logger.error("Analytics client could not be created", extra={"error": str(e), "host": host})
            return

        logger.info("Analytics enabled", extra={"host": host})

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def capture(self, distinct_id: str, event: str, properties: Dict[str, Any]):
        """
        Send one event. Delivery problems are logged and never reach the caller.
        """

        if self._client is None:
            return

        try:
            self._client.capture(distinct_id=distinct_id, event=event, properties=properties)
        except Exception as e:
            logger.warning("Analytics event dropped", extra={"event": event, "error": str(e)})

    # ------------------------------------------------------------
    # workflow outcomes
    # ------------------------------------------------------------

    def track_workflow_completed(
        self,
        distinct_id: str,
        workflow_id: str,
        strategy: str,
        content_type: str,
        complexity: str,
        confidence: float,
        latency_ms: float,
        cached: bool,
    ):

        self.capture(
            distinct_id,
            EVENT_WORKFLOW_COMPLETED,
            {
                "workflow_id": workflow_id,
                "strategy": strategy,
                "content_type": content_type,
                "complexity": complexity,
                "confidence": round(confidence, 4),
                "latency_ms": round(latency_ms, 2),
                "analysis_cached": cached,
            },
        )

    def track_fallback(self, distinct_id: str, workflow_id: str, stage: str, error_type: str, strategy: str):

        self.capture(
            distinct_id,
            EVENT_WORKFLOW_FALLBACK,
            {"workflow_id": workflow_id, "failed_stage": stage, "error_type": error_type, "fallback_strategy": strategy},
        )

    def track_error(self, distinct_id: str, error_type: str, error_message: str, endpoint: str):

        # messages can carry document text, keep them short
        self.capture(
            distinct_id,
            EVENT_ERROR,
            {"error_type": error_type, "error_message": error_message[:200], "source": endpoint},
        )

    def shutdown(self):

        if self._client is None:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("Analytics shutdown failed", extra={"error": str(e)})
