# adaptive_rag/memory/shared_store.py

"""
Shared, time-bounded memory for the strategy engine.

Architecture contract:
classifier → shared memory ← selector
coordinator → shared memory (performance feedback)

Guarantees:
• Expired records are invisible to every read path
• Misses return MISSING, never raise
• History kinds append (bounded ring buffer per key)
• Sweep thread has an explicit start()/close() lifecycle
"""

import hashlib
import json
import logging
import threading
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from adaptive_rag.config import (
    MEMORY_SWEEP_INTERVAL_SECONDS,
    MEMORY_TTL_SECONDS,
    PATTERN_CONFIDENCE_STEP,
    PATTERN_INITIAL_CONFIDENCE,
    PERFORMANCE_HISTORY_LIMIT,
)
from adaptive_rag.models import (
    ContentAnalysis,
    ContentAnalysisMemory,
    ContentPatternMemory,
    MemoryKind,
    MemoryStatsResponse,
    StrategyPerformanceMemory,
    UserPreferences,
    UserPreferencesMemory,
)

logger = logging.getLogger(__name__)


class _Missing:

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


# Kinds that keep one record per key; every other kind appends
DEDUPLICATED_KINDS = frozenset({
    MemoryKind.CONTENT_ANALYSIS,
    MemoryKind.USER_PREFERENCES,
    MemoryKind.CONTENT_PATTERN,
})

SORT_FIELDS = ("created_at", "last_accessed_at", "access_count", "confidence")


class MemoryRecord(BaseModel):
    """Envelope around one stored payload."""

    id: str
    kind: MemoryKind
    key: str
    payload: Any
    created_at: float
    last_accessed_at: float
    access_count: int = 0
    ttl_seconds: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    source: str = "unknown"
    confidence: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return (now - self.created_at) >= self.ttl_seconds


class MemoryQuery(BaseModel):
    kind: Optional[MemoryKind] = None
    tags: Optional[List[str]] = None
    source: Optional[str] = None
    min_confidence: Optional[float] = None
    max_age_seconds: Optional[float] = None
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    limit: Optional[int] = Field(None, gt=0)


def hash_content(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _to_datetime(ts: Optional[float]) -> Optional[datetime]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class SharedMemoryStore:
    """
    In-process TTL store shared by classifier, selector and coordinator.

    Pure TTL expiry: reads update access statistics but never extend a
    record's lifetime.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = MEMORY_SWEEP_INTERVAL_SECONDS,
        ttl_seconds: Optional[Dict[str, float]] = None,
        history_limit: int = PERFORMANCE_HISTORY_LIMIT,
    ):

        if history_limit <= 0:
            raise ValueError(f"Invalid history limit: {history_limit}")

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._ttl = dict(MEMORY_TTL_SECONDS)
        if ttl_seconds:
            self._ttl.update(ttl_seconds)
        self._history_limit = history_limit

        self._records: Dict[str, Deque[MemoryRecord]] = {}
        self._lock = threading.RLock()

        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def start(self):
        """Start the background sweep. Calling twice is a no-op."""

        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._stop_event.clear()

        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name="shared-memory-sweep",
            daemon=True,
        )
        self._sweeper.start()

        logger.info(
            "Shared memory sweep started",
            extra={"interval_seconds": self._sweep_interval},
        )

    def close(self):

        self._stop_event.set()

        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

        logger.info("Shared memory sweep stopped")

    shutdown = close

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self):

        while not self._stop_event.wait(self._sweep_interval):

            try:
                removed = self.sweep_expired()
            except Exception as e:
                logger.error(
                    "Shared memory sweep failed",
                    extra={"error": str(e)},
                    exc_info=True,
                )
                continue

            if removed:
                logger.info(
                    "Expired memory records removed",
                    extra={"removed": removed},
                )

    # ============================================================
    # CORE API
    # ============================================================

    def default_ttl(self, kind: MemoryKind) -> Optional[float]:
        return self._ttl.get(MemoryKind(kind).value)

    def put(
        self,
        kind: MemoryKind,
        key: str,
        payload: Any,
        ttl: Optional[float] = None,
        tags: Iterable[str] = (),
        source: str = "unknown",
        confidence: Optional[float] = None,
    ) -> str:

        kind = MemoryKind(kind)
        now = self._clock()

        record = MemoryRecord(
            id=f"mem_{uuid.uuid4().hex[:16]}",
            kind=kind,
            key=key,
            payload=payload,
            created_at=now,
            last_accessed_at=now,
            access_count=0,
            ttl_seconds=ttl if ttl is not None else self.default_ttl(kind),
            tags=[str(t) for t in tags],
            source=source,
            confidence=confidence,
        )

        with self._lock:

            if kind in DEDUPLICATED_KINDS:
                self._records[key] = deque([record], maxlen=1)
            else:
                history = self._records.get(key)
                if history is None or history.maxlen != self._history_limit:
                    history = deque(history or (), maxlen=self._history_limit)
                    self._records[key] = history
                history.append(record)

        logger.debug(
            "Memory record stored",
            extra={"kind": kind.value, "key": key, "record_id": record.id},
        )

        return record.id

    def get(self, key: str) -> Any:
        record = self.get_record(key)
        if record is None:
            return MISSING
        return record.payload

    def get_record(self, key: str) -> Optional[MemoryRecord]:
        """Newest live record under key, with access statistics refreshed."""

        now = self._clock()

        with self._lock:

            history = self._records.get(key)
            if not history:
                return None

            for record in reversed(history):
                if not record.is_expired(now):
                    record.access_count += 1
                    record.last_accessed_at = now
                    return record

        return None

    def history(self, key: str) -> List[Any]:
        """All live payloads under a key, oldest first."""

        now = self._clock()

        with self._lock:
            history = list(self._records.get(key, ()))

        return [r.payload for r in history if not r.is_expired(now)]

    def query(self, query: Optional[MemoryQuery] = None, **filters) -> List[MemoryRecord]:

        if query is None:
            query = MemoryQuery(**filters)

        if query.sort_by is not None and query.sort_by not in SORT_FIELDS:
            raise ValueError(f"Unsupported sort field: {query.sort_by}")

        now = self._clock()
        results = []

        for record in self._live_records(now):

            if query.kind is not None and record.kind != query.kind:
                continue

            if query.source is not None and record.source != query.source:
                continue

            if query.min_confidence is not None and (record.confidence or 0.0) < query.min_confidence:
                continue

            if query.max_age_seconds is not None and (now - record.created_at) > query.max_age_seconds:
                continue

            if query.tags and not any(tag in record.tags for tag in query.tags):
                continue

            results.append(record)

        if query.sort_by:
            results.sort(
                key=lambda r: getattr(r, query.sort_by) or 0,
                reverse=query.sort_order == "desc",
            )

        if query.limit:
            results = results[:query.limit]

        return results

    def sweep_expired(self) -> int:

        now = self._clock()
        removed = 0

        with self._lock:

            for key in list(self._records):

                history = self._records[key]
                live = [r for r in history if not r.is_expired(now)]
                removed += len(history) - len(live)

                if not live:
                    del self._records[key]
                elif len(live) != len(history):
                    self._records[key] = deque(live, maxlen=history.maxlen)

        return removed

    def clear(self):
        with self._lock:
            self._records.clear()
        logger.info("Shared memory cleared")

    def stats(self) -> MemoryStatsResponse:

        now = self._clock()
        records = self._live_records(now)

        by_kind: Dict[str, int] = {}
        estimated_bytes = 0
        total_confidence = 0.0
        oldest = newest = None
        most_accessed_key = None
        max_access = -1

        for record in records:

            by_kind[record.kind.value] = by_kind.get(record.kind.value, 0) + 1

            # rough estimate: two bytes per serialized character
            estimated_bytes += len(
                json.dumps(record.model_dump(mode="json"), default=str)
            ) * 2

            if oldest is None or record.created_at < oldest:
                oldest = record.created_at
            if newest is None or record.created_at > newest:
                newest = record.created_at

            if record.access_count > max_access:
                max_access = record.access_count
                most_accessed_key = record.key

            total_confidence += record.confidence or 0.0

        return MemoryStatsResponse(
            total_entries=len(records),
            by_kind=by_kind,
            estimated_bytes=estimated_bytes,
            oldest=_to_datetime(oldest),
            newest=_to_datetime(newest),
            most_accessed_key=most_accessed_key,
            avg_confidence=total_confidence / len(records) if records else 0.0,
        )

    def _live_records(self, now: float) -> List[MemoryRecord]:
        with self._lock:
            snapshot = [r for history in self._records.values() for r in history]
        return [r for r in snapshot if not r.is_expired(now)]

    # ============================================================
    # CONTENT ANALYSIS
    # ============================================================

    def store_content_analysis(
        self,
        content: str,
        analysis: ContentAnalysis,
        url: Optional[str] = None,
        source: str = "content_classifier",
    ) -> str:

        content_hash = analysis.content_hash or hash_content(content)
        key = f"content_analysis_{content_hash}"

        payload = ContentAnalysisMemory(
            content_hash=content_hash,
            url=url,
            analysis=analysis.model_copy(update={"content_hash": content_hash}),
            processing_time_ms=analysis.processing_time_ms,
        )

        profile = analysis.profile

        self.put(
            MemoryKind.CONTENT_ANALYSIS,
            key,
            payload,
            tags=[profile.content_type.value, profile.complexity.value, profile.domain],
            source=source,
            confidence=analysis.confidence,
        )

        self.update_content_pattern(analysis, source=source)

        return key

    def get_content_analysis(self, content: str) -> Optional[ContentAnalysis]:

        payload = self.get(f"content_analysis_{hash_content(content)}")

        if payload is MISSING:
            return None

        return payload.analysis

    # ============================================================
    # STRATEGY PERFORMANCE
    # ============================================================

    @staticmethod
    def performance_key(strategy_name, content_type, complexity, device_class) -> str:
        return (
            f"strategy_performance_{strategy_name}_"
            f"{getattr(content_type, 'value', content_type)}_"
            f"{getattr(complexity, 'value', complexity)}_{device_class}"
        )

    def store_strategy_performance(
        self,
        observation: StrategyPerformanceMemory,
        source: str = "workflow_coordinator",
    ) -> str:

        key = self.performance_key(
            observation.strategy_name,
            observation.content_type,
            observation.complexity,
            observation.device_class,
        )

        return self.put(
            MemoryKind.STRATEGY_PERFORMANCE,
            key,
            observation,
            tags=[
                observation.strategy_name,
                observation.content_type.value,
                observation.complexity.value,
                observation.device_class,
            ],
            source=source,
            confidence=0.9 if observation.success else 0.3,
        )

    def get_strategy_performance(
        self,
        strategy_name: Optional[str] = None,
        content_type=None,
        complexity=None,
        device_class: Optional[str] = None,
    ) -> List[StrategyPerformanceMemory]:

        results = []

        for record in self.query(kind=MemoryKind.STRATEGY_PERFORMANCE, sort_by="created_at", sort_order="asc"):

            data: StrategyPerformanceMemory = record.payload

            if strategy_name and data.strategy_name != strategy_name:
                continue
            if content_type and data.content_type != content_type:
                continue
            if complexity and data.complexity != complexity:
                continue
            if device_class and data.device_class != device_class:
                continue

            results.append(data)

        return results

    # ============================================================
    # USER PREFERENCES
    # ============================================================

    @staticmethod
    def preferences_key(user_id: Optional[str], session_id: Optional[str]) -> str:
        if user_id:
            return f"user_preferences_{user_id}"
        return f"session_preferences_{session_id}"

    def store_user_preferences(
        self,
        preferences: UserPreferences,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        source: str = "workflow_coordinator",
    ) -> str:

        if not user_id and not session_id:
            raise ValueError("user_id or session_id is required")

        key = self.preferences_key(user_id, session_id)

        self.put(
            MemoryKind.USER_PREFERENCES,
            key,
            UserPreferencesMemory(
                user_id=user_id,
                session_id=session_id,
                preferences=preferences,
            ),
            tags=["user_preferences", user_id or session_id],
            source=source,
            confidence=0.8,
        )

        return key

    def get_user_preferences(
        self,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Optional[UserPreferencesMemory]:

        if not user_id and not session_id:
            return None

        payload = self.get(self.preferences_key(user_id, session_id))

        return None if payload is MISSING else payload

    # ============================================================
    # CONTENT PATTERNS
    # ============================================================

    def update_content_pattern(self, analysis: ContentAnalysis, source: str = "content_classifier") -> ContentPatternMemory:

        profile = analysis.profile
        pattern_key = f"{profile.content_type.value}_{profile.complexity.value}"
        key = f"content_pattern_{pattern_key}"

        with self._lock:

            existing = self.get(key)
            seen_at = _to_datetime(self._clock())

            if existing is MISSING:
                pattern = ContentPatternMemory(
                    pattern=pattern_key,
                    content_type=profile.content_type,
                    complexity=profile.complexity,
                    optimal_chunking=analysis.recommendation.chunking_method,
                    confidence=PATTERN_INITIAL_CONFIDENCE,
                    last_seen=seen_at,
                )
            else:
                pattern = existing.model_copy(update={
                    "occurrences": existing.occurrences + 1,
                    "confidence": min(1.0, existing.confidence + PATTERN_CONFIDENCE_STEP),
                    "last_seen": seen_at,
                })

            self.put(
                MemoryKind.CONTENT_PATTERN,
                key,
                pattern,
                tags=[profile.content_type.value, profile.complexity.value],
                source=source,
                confidence=pattern.confidence,
            )

        return pattern

    def get_content_patterns(self, content_type=None, complexity=None) -> List[ContentPatternMemory]:

        patterns = []

        for record in self.query(kind=MemoryKind.CONTENT_PATTERN):

            pattern: ContentPatternMemory = record.payload

            if content_type and pattern.content_type != content_type:
                continue
            if complexity and pattern.complexity != complexity:
                continue

            patterns.append(pattern)

        return sorted(patterns, key=lambda p: p.confidence, reverse=True)
