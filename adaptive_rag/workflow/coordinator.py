# adaptive_rag/workflow/coordinator.py

"""
Workflow coordinator.

Architecture contract:
memory lookup / classifier → selector → validation → delegate → recording

Guarantees:
• Every stage call is bounded by timeout_seconds
• Non-timeout stage errors are retried up to max_retries
• With fallback_on_error, process() always returns a completed result
• Every workflow writes one strategy_performance observation
"""

import logging
import threading
import time
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from adaptive_rag.analysis.classifier import ContentClassifier, fallback_analysis
from adaptive_rag.config import (
    CLASSIFICATION_CONFIDENCE_WEIGHT,
    COORDINATION_PENALTY,
    FALLBACK_CONFIDENCE,
    MIN_WORKFLOW_CONFIDENCE,
    SELECTION_CONFIDENCE_WEIGHT,
    STAGE_WORKERS,
    VALIDATION_MEMORY_SHARE,
    WORKFLOW_RETENTION,
    CoordinatorConfig,
    load_coordinator_config,
)
from adaptive_rag.errors import StageTimeout, WorkflowFailure
from adaptive_rag.memory.shared_store import SharedMemoryStore
from adaptive_rag.models import (
    ContentAnalysis,
    DeviceConstraints,
    ExecutionResult,
    MemoryKind,
    MessageKind,
    MessageMetadata,
    MessagePriority,
    StrategyDescriptor,
    StrategyPerformanceMemory,
    StrategySelection,
    StructuralProfile,
    UserPreferences,
    VectorStoreKind,
    WorkflowMessage,
    WorkflowResult,
    WorkflowState,
)
from adaptive_rag.observability.logger import set_level
from adaptive_rag.observability.metrics import MetricsTracker
from adaptive_rag.strategy import catalog
from adaptive_rag.strategy.catalog import StrategyName
from adaptive_rag.strategy.selector import (
    StrategySelector,
    estimate_performance,
    fallback_selection,
)

logger = logging.getLogger(__name__)


# Message endpoints
COORDINATOR = "workflow_coordinator"
CLASSIFIER = "content_classifier"
SELECTOR = "strategy_selector"
SHARED_MEMORY = "shared_memory"
DELEGATE = "execution_delegate"
VALIDATOR = "strategy_validation"

WORKFLOW_HISTORY_KEY = "workflow_history"


# ============================================================
# HELPERS
# ============================================================

def compose_confidence(classification: float, selection: float) -> float:

    score = (
        CLASSIFICATION_CONFIDENCE_WEIGHT * classification
        + SELECTION_CONFIDENCE_WEIGHT * selection
        - COORDINATION_PENALTY
    )

    return round(max(MIN_WORKFLOW_CONFIDENCE, min(1.0, score)), 4)


def merge_preferences(
    stored: Optional[UserPreferences],
    explicit: Optional[UserPreferences],
) -> Optional[UserPreferences]:
    """Explicit values win; stored values fill the gaps."""

    if stored is None:
        return explicit

    if explicit is None:
        return stored

    overrides = explicit.model_dump(exclude_none=True)

    if not overrides.get("preferred_strategies"):
        overrides.pop("preferred_strategies", None)

    return stored.model_copy(update=overrides)


def _identity(metadata: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    return metadata.get("user_id"), metadata.get("session_id")


class _Workflow:

    def __init__(self, workflow_id: str):
        self.id = workflow_id
        self.messages: List[WorkflowMessage] = []
        self.state = WorkflowState.STARTED
        self.stage = "start"
        self.started = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


# ============================================================
# COORDINATOR
# ============================================================

class WorkflowCoordinator:

    def __init__(
        self,
        memory_store: SharedMemoryStore,
        classifier: Optional[ContentClassifier] = None,
        selector: Optional[StrategySelector] = None,
        delegate=None,
        config: Optional[CoordinatorConfig] = None,
        metrics: Optional[MetricsTracker] = None,
        analytics=None,
    ):

        self._memory = memory_store
        self._classifier = classifier or ContentClassifier()
        self._selector = selector or StrategySelector(memory_store)
        self._delegate = delegate
        self._config = config or load_coordinator_config()
        self._metrics = metrics or MetricsTracker()
        self._analytics = analytics

        self._executor = ThreadPoolExecutor(
            max_workers=STAGE_WORKERS,
            thread_name_prefix="workflow-stage",
        )

        self._lock = threading.Lock()
        self._active: Dict[str, _Workflow] = {}
        self._finished: "OrderedDict[str, List[WorkflowMessage]]" = OrderedDict()

        logger.info(
            "Workflow coordinator initialized",
            extra={
                "timeout_seconds": self._config.timeout_seconds,
                "max_retries": self._config.max_retries,
                "fallback_on_error": self._config.fallback_on_error,
                "parallel": self._config.enable_parallel_processing,
                "delegate": type(delegate).__name__ if delegate else None,
            },
        )

    # ============================================================
    # PUBLIC ENTRY POINT
    # ============================================================

    def process(
        self,
        content: str,
        device: DeviceConstraints,
        question: Optional[str] = None,
        url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        preferences: Optional[UserPreferences] = None,
    ) -> WorkflowResult:

        metadata = metadata or {}
        run = self._begin()

        logger.info(
            "Workflow started",
            extra={
                "workflow_id": run.id,
                "content_length": len(content) if isinstance(content, str) else None,
                "device_class": device.device_class,
                "has_question": bool(question),
            },
        )

        try:
            return self._run(run, content, device, question, url, metadata, preferences)
        except Exception as e:
            return self._handle_failure(run, content, device, metadata, e)
        finally:
            self._finish(run)

    def _run(
        self,
        run: _Workflow,
        content: str,
        device: DeviceConstraints,
        question: Optional[str],
        url: Optional[str],
        metadata: Dict[str, Any],
        preferences: Optional[UserPreferences],
    ) -> WorkflowResult:

        config = self._config
        user_id, session_id = _identity(metadata)

        preference_future = None
        if config.enable_parallel_processing and (user_id or session_id):
            preference_future = self._executor.submit(self._lookup_preferences, user_id, session_id)

        # -------- classification --------
        self._transition(run, WorkflowState.CLASSIFYING, "classification")
        analysis = self._classify(run, content, url, metadata)

        if preference_future is not None:
            stored = preference_future.result(timeout=config.timeout_seconds)
        else:
            stored = self._lookup_preferences(user_id, session_id)

        merged = merge_preferences(stored, preferences)

        # -------- selection --------
        self._transition(run, WorkflowState.SELECTING, "selection")
        selection = self._select(run, analysis.profile, device, merged)

        # -------- validation --------
        self._transition(run, WorkflowState.VALIDATING, "validation")
        self._send(
            run, COORDINATOR, VALIDATOR, MessageKind.REQUEST,
            {
                "strategy": selection.chosen.name,
                "is_mobile": device.is_mobile,
                "memory_available": device.memory_available,
            },
        )

        final = self.validate_strategy(selection.chosen, analysis.profile, device)

        self._send(
            run, VALIDATOR, COORDINATOR, MessageKind.RESPONSE,
            {"validated": final.key == selection.chosen.key, "strategy": final.name},
        )

        if final.key != selection.chosen.key:
            self._send(
                run, COORDINATOR, COORDINATOR, MessageKind.NOTIFICATION,
                {"event": "strategy_substituted", "from": selection.chosen.name, "to": final.name},
            )

        # -------- delegation --------
        execution = None
        self._transition(run, WorkflowState.DELEGATING, "delegation")

        if question and self._delegate is not None:
            execution = self._execute(run, content, question, final)
        else:
            self._send(
                run, COORDINATOR, COORDINATOR, MessageKind.NOTIFICATION,
                {"event": "delegation_skipped", "has_question": bool(question)},
            )

        # -------- recording --------
        self._transition(run, WorkflowState.RECORDING, "recording")

        elapsed = run.elapsed_ms()
        confidence = compose_confidence(analysis.confidence, selection.confidence)

        self._record_performance(
            final, analysis.profile, device, elapsed,
            success=True,
            accuracy=self._observed_accuracy(final, analysis.profile, device, execution),
        )

        if merged is not None and (user_id or session_id):
            self._memory.store_user_preferences(merged, user_id=user_id, session_id=session_id, source=COORDINATOR)

        self._record_history(run, final, analysis.profile, confidence, elapsed, fallback=False)

        self._send(
            run, COORDINATOR, SHARED_MEMORY, MessageKind.NOTIFICATION,
            {"event": "performance_recorded", "strategy": final.name, "preferences_saved": merged is not None},
        )

        self._transition(run, WorkflowState.COMPLETED, "completed")

        self._send(
            run, COORDINATOR, COORDINATOR, MessageKind.NOTIFICATION,
            {"event": "workflow_completed", "strategy": final.name, "confidence": confidence},
        )

        result = WorkflowResult(
            content_analysis=analysis,
            strategy_selection=selection,
            final_strategy=final,
            confidence=confidence,
            total_processing_time_ms=elapsed,
            workflow_id=run.id,
            messages=list(run.messages),
            state=run.state,
            execution=execution,
        )

        self._metrics.record_workflow(elapsed, final.name, fallback=False, cached=analysis.cached)

        if self._analytics is not None:
            self._analytics.track_workflow_completed(
                distinct_id=user_id or session_id or run.id,
                workflow_id=run.id,
                strategy=final.name,
                content_type=analysis.profile.content_type.value,
                complexity=analysis.profile.complexity.value,
                confidence=confidence,
                latency_ms=elapsed,
                cached=analysis.cached,
            )

        logger.info(
            "Workflow completed",
            extra={
                "workflow_id": run.id,
                "strategy": final.name,
                "confidence": confidence,
                "cached": analysis.cached,
                "latency_ms": round(elapsed, 2),
            },
        )

        return result

    # ============================================================
    # STAGES
    # ============================================================

    def _classify(
        self,
        run: _Workflow,
        content: str,
        url: Optional[str],
        metadata: Dict[str, Any],
    ) -> ContentAnalysis:

        cached = self._memory.get_content_analysis(content)

        if cached is not None:
            analysis = cached.model_copy(update={"cached": True, "processing_time_ms": 0.0})
            self._send(
                run, SHARED_MEMORY, COORDINATOR, MessageKind.NOTIFICATION,
                {
                    "event": "content_analysis_cache_hit",
                    "content_hash": analysis.content_hash,
                    "content_type": analysis.profile.content_type.value,
                },
            )
            return analysis

        self._send(
            run, COORDINATOR, CLASSIFIER, MessageKind.REQUEST,
            {"content_length": len(content), "url": url},
        )

        analysis, retries = self._run_stage(
            run, "classification", CLASSIFIER,
            self._classifier.classify, content, url, metadata,
        )

        self._memory.store_content_analysis(content, analysis, url=url, source=CLASSIFIER)

        self._send(
            run, CLASSIFIER, COORDINATOR, MessageKind.RESPONSE,
            {
                "content_type": analysis.profile.content_type.value,
                "complexity": analysis.profile.complexity.value,
                "confidence": analysis.confidence,
            },
            retry_count=retries,
        )

        return analysis

    def _select(
        self,
        run: _Workflow,
        profile: StructuralProfile,
        device: DeviceConstraints,
        preferences: Optional[UserPreferences],
    ) -> StrategySelection:

        self._send(
            run, COORDINATOR, SELECTOR, MessageKind.REQUEST,
            {
                "content_type": profile.content_type.value,
                "complexity": profile.complexity.value,
                "device_class": device.device_class,
            },
        )

        selection, retries = self._run_stage(
            run, "selection", SELECTOR,
            self._selector.select, profile, device, preferences,
        )

        self._send(
            run, SELECTOR, COORDINATOR, MessageKind.RESPONSE,
            {
                "strategy": selection.chosen.name,
                "confidence": selection.confidence,
                "alternatives": [s.name for s in selection.alternatives],
                "fallback": selection.fallback,
            },
            retry_count=retries,
        )

        return selection

    def _execute(
        self,
        run: _Workflow,
        content: str,
        question: str,
        strategy: StrategyDescriptor,
    ) -> ExecutionResult:

        self._send(
            run, COORDINATOR, DELEGATE, MessageKind.REQUEST,
            {"strategy": strategy.name, "question_length": len(question)},
            priority=MessagePriority.HIGH,
        )

        cancel_event = threading.Event()

        execution, retries = self._run_stage(
            run, "delegation", DELEGATE,
            self._delegate.execute, content, question, strategy, cancel_event,
            cancel_event=cancel_event,
        )

        self._send(
            run, DELEGATE, COORDINATOR, MessageKind.RESPONSE,
            {
                "refused": execution.refused,
                "chunks_created": execution.chunks_created,
                "confidence_score": execution.confidence_score,
            },
            retry_count=retries,
        )

        return execution

    def validate_strategy(
        self,
        strategy: StrategyDescriptor,
        profile: StructuralProfile,
        device: DeviceConstraints,
    ) -> StrategyDescriptor:
        """Final device and memory fit check on the selected strategy."""

        if device.is_mobile and not strategy.device_optimized:
            logger.info(
                "Substituting mobile strategy",
                extra={"selected": strategy.name},
            )
            return catalog.get_strategy(StrategyName.MOBILE_OPTIMIZED)

        if catalog.estimate_memory_mb(strategy, profile) > device.memory_available * VALIDATION_MEMORY_SHARE:
            for candidate in catalog.all_strategies():
                if candidate.vector_store == VectorStoreKind.MEMORY and candidate.device_optimized:
                    logger.info(
                        "Substituting low-memory strategy",
                        extra={"selected": strategy.name, "substitute": candidate.name},
                    )
                    return candidate

        return strategy

    # ============================================================
    # STAGE EXECUTION
    # ============================================================

    def _run_stage(
        self,
        run: _Workflow,
        stage: str,
        recipient: str,
        fn,
        *args,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[Any, int]:
        """Run fn on the stage pool; returns (result, retries used)."""

        config = self._config
        attempts = config.max_retries + 1

        for attempt in range(attempts):

            future = self._executor.submit(fn, *args)

            try:
                return future.result(timeout=config.timeout_seconds), attempt

            except FutureTimeout:
                future.cancel()
                if cancel_event is not None:
                    cancel_event.set()
                raise StageTimeout(stage, config.timeout_seconds)

            except Exception as e:

                if attempt + 1 >= attempts:
                    raise

                logger.warning(
                    "Stage failed, retrying",
                    extra={
                        "workflow_id": run.id,
                        "stage": stage,
                        "attempt": attempt + 1,
                        "error": str(e),
                    },
                )

                self._send(
                    run, recipient, COORDINATOR, MessageKind.ERROR,
                    {"stage": stage, "error": str(e), "error_type": type(e).__name__},
                    priority=MessagePriority.HIGH,
                    retry_count=attempt + 1,
                )

    # ============================================================
    # FAILURE / FALLBACK
    # ============================================================

    def _handle_failure(
        self,
        run: _Workflow,
        content: str,
        device: DeviceConstraints,
        metadata: Dict[str, Any],
        error: Exception,
    ) -> WorkflowResult:

        stage = run.stage
        error_type = type(error).__name__
        user_id, session_id = _identity(metadata)
        distinct_id = user_id or session_id or run.id

        logger.error(
            "Workflow stage failed",
            extra={
                "workflow_id": run.id,
                "stage": stage,
                "error": str(error),
                "error_type": error_type,
            },
            exc_info=True,
        )

        self._send(
            run, COORDINATOR, COORDINATOR, MessageKind.ERROR,
            {"stage": stage, "error": str(error), "error_type": error_type},
            priority=MessagePriority.HIGH,
        )

        self._memory.put(
            MemoryKind.ERROR_PATTERN,
            f"error_pattern_{stage}_{error_type}",
            {"workflow_id": run.id, "stage": stage, "error_type": error_type, "error": str(error)},
            tags=[stage, error_type],
            source=COORDINATOR,
        )

        if not self._config.fallback_on_error:
            run.state = WorkflowState.ERRORED
            self._metrics.record_failure(stage)
            if self._analytics is not None:
                self._analytics.track_error(distinct_id, error_type, str(error), f"workflow.{stage}")
            raise WorkflowFailure(run.id, stage, error) from error

        analysis = fallback_analysis(content, reason=f"Fallback strategy due to {stage} error")
        selection = fallback_selection(device, f"Fallback strategy due to {stage} error: {error}")
        strategy = selection.chosen

        self._send(
            run, COORDINATOR, COORDINATOR, MessageKind.NOTIFICATION,
            {"event": "fallback", "stage": stage, "error": str(error), "strategy": strategy.name},
            priority=MessagePriority.HIGH,
        )

        elapsed = run.elapsed_ms()

        self._record_performance(strategy, analysis.profile, device, elapsed, success=False, accuracy=0.0)
        self._record_history(run, strategy, analysis.profile, FALLBACK_CONFIDENCE, elapsed, fallback=True)

        run.state = WorkflowState.COMPLETED

        self._metrics.record_workflow(elapsed, strategy.name, fallback=True)

        if self._analytics is not None:
            self._analytics.track_fallback(distinct_id, run.id, stage, error_type, strategy.name)

        return WorkflowResult(
            content_analysis=analysis,
            strategy_selection=selection,
            final_strategy=strategy,
            confidence=FALLBACK_CONFIDENCE,
            total_processing_time_ms=elapsed,
            workflow_id=run.id,
            messages=list(run.messages),
            state=run.state,
            fallback_used=True,
            error=f"{error_type}: {error}",
        )

    # ============================================================
    # RECORDING
    # ============================================================

    def _observed_accuracy(
        self,
        strategy: StrategyDescriptor,
        profile: StructuralProfile,
        device: DeviceConstraints,
        execution: Optional[ExecutionResult],
    ) -> float:

        if execution is not None:
            return max(0.0, min(1.0, execution.confidence_score))

        return estimate_performance(strategy, profile, device).accuracy

    def _record_performance(
        self,
        strategy: StrategyDescriptor,
        profile: StructuralProfile,
        device: DeviceConstraints,
        latency_ms: float,
        success: bool,
        accuracy: float,
    ):

        self._memory.store_strategy_performance(
            StrategyPerformanceMemory(
                strategy_name=strategy.name,
                content_type=profile.content_type,
                complexity=profile.complexity,
                device_class=device.device_class,
                latency_ms=latency_ms,
                memory_usage_mb=catalog.estimate_memory_mb(strategy, profile),
                accuracy=accuracy,
                success=success,
            ),
            source=COORDINATOR,
        )

    def _record_history(
        self,
        run: _Workflow,
        strategy: StrategyDescriptor,
        profile: StructuralProfile,
        confidence: float,
        elapsed_ms: float,
        fallback: bool,
    ):

        self._memory.put(
            MemoryKind.WORKFLOW_HISTORY,
            WORKFLOW_HISTORY_KEY,
            {
                "workflow_id": run.id,
                "strategy": strategy.name,
                "content_type": profile.content_type.value,
                "complexity": profile.complexity.value,
                "confidence": confidence,
                "fallback": fallback,
                "processing_time_ms": round(elapsed_ms, 2),
                "message_count": len(run.messages),
                "timestamp": datetime.utcnow().isoformat(),
            },
            tags=[strategy.name, "fallback" if fallback else "completed"],
            source=COORDINATOR,
            confidence=confidence,
        )

    def _lookup_preferences(
        self,
        user_id: Optional[str],
        session_id: Optional[str],
    ) -> Optional[UserPreferences]:

        stored = self._memory.get_user_preferences(user_id=user_id, session_id=session_id)

        return stored.preferences if stored is not None else None

    # ============================================================
    # MESSAGES & STATE
    # ============================================================

    def _send(
        self,
        run: _Workflow,
        sender: str,
        recipient: str,
        kind: MessageKind,
        payload: Dict[str, Any],
        priority: MessagePriority = MessagePriority.MEDIUM,
        retry_count: int = 0,
    ) -> WorkflowMessage:

        message = WorkflowMessage(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            workflow_id=run.id,
            timestamp=datetime.utcnow(),
            sender=sender,
            recipient=recipient,
            kind=kind,
            payload={"stage": run.stage, **payload},
            metadata=MessageMetadata(
                priority=priority,
                timeout_seconds=self._config.timeout_seconds,
                retry_count=retry_count,
            ),
        )

        run.messages.append(message)

        logger.debug(
            "Workflow message",
            extra={
                "workflow_id": run.id,
                "sender": sender,
                "recipient": recipient,
                "kind": kind.value,
            },
        )

        return message

    def _transition(self, run: _Workflow, state: WorkflowState, stage: str):
        run.state = state
        run.stage = stage

    def _begin(self) -> _Workflow:

        run = _Workflow(f"workflow_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}")

        with self._lock:
            self._active[run.id] = run

        return run

    def _finish(self, run: _Workflow):

        with self._lock:
            self._active.pop(run.id, None)
            self._finished[run.id] = list(run.messages)
            while len(self._finished) > WORKFLOW_RETENTION:
                self._finished.popitem(last=False)

    # ============================================================
    # INTROSPECTION
    # ============================================================

    def list_active_workflows(self) -> List[str]:
        with self._lock:
            return list(self._active)

    def list_finished_workflows(self) -> List[str]:
        with self._lock:
            return list(self._finished)

    def is_active(self, workflow_id: str) -> bool:
        with self._lock:
            return workflow_id in self._active

    def get_workflow_messages(self, workflow_id: str) -> Optional[List[WorkflowMessage]]:
        """Messages of an active or recently finished workflow, None if unknown."""

        with self._lock:
            if workflow_id in self._active:
                return list(self._active[workflow_id].messages)
            if workflow_id in self._finished:
                return list(self._finished[workflow_id])

        return None

    def get_workflow_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        history = self._memory.history(WORKFLOW_HISTORY_KEY)
        return history[-limit:] if limit else history

    def memory_stats(self):
        return self._memory.stats()

    def get_metrics(self) -> Dict[str, Any]:
        return self._metrics.get_metrics()

    def get_config(self) -> CoordinatorConfig:
        return self._config

    def update_config(self, **changes) -> CoordinatorConfig:

        unknown = set(changes) - set(CoordinatorConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown coordinator settings: {sorted(unknown)}")

        config = CoordinatorConfig(**{**self._config.model_dump(), **changes})

        if config.log_level != self._config.log_level:
            set_level(config.log_level)

        self._config = config

        logger.info("Coordinator config updated", extra={"changes": sorted(changes)})

        return config

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
