# adaptive_rag/strategy/selector.py

import logging
import time
from typing import Dict, List, Optional, Tuple

from adaptive_rag.config import (
    FALLBACK_CONFIDENCE,
    HISTORY_LATENCY_CEILING_MS,
    LOW_MEMORY_THRESHOLD_MB,
    MAX_ALTERNATIVES,
    SCORE_WEIGHTS,
    SELECTION_MEMORY_SHARE,
)
from adaptive_rag.errors import SelectionFailure
from adaptive_rag.models import (
    POWER_PROFILE_MATCH,
    ChunkingMethod,
    Complexity,
    DeviceConstraints,
    EmbeddingModel,
    PerformanceEstimate,
    PerformanceProfile,
    StrategyDescriptor,
    StrategyPerformanceMemory,
    StrategySelection,
    StructuralProfile,
    UserPreferences,
    VectorStoreKind,
)
from adaptive_rag.strategy import catalog

logger = logging.getLogger(__name__)


NEUTRAL_HISTORY_SCORE = 0.5


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


# ============================================================
# ADMISSIBILITY
# ============================================================

def is_admissible(
    strategy: StrategyDescriptor,
    profile: StructuralProfile,
    device: DeviceConstraints,
) -> bool:

    if profile.content_type not in strategy.content_types:
        return False

    if profile.complexity not in strategy.complexity_levels:
        return False

    if device.is_mobile and not strategy.device_optimized:
        return False

    if not device.has_internet and strategy.embedding_model != EmbeddingModel.SMALL:
        return False

    memory = catalog.estimate_memory_mb(strategy, profile)

    return memory <= device.memory_available * SELECTION_MEMORY_SHARE


# ============================================================
# SUB-SCORES (each normalized to [0, 1])
# ============================================================

def content_score(strategy: StrategyDescriptor, profile: StructuralProfile) -> float:

    score = 0.5

    if profile.content_type in strategy.content_types:
        score += 0.3

    if profile.complexity in strategy.complexity_levels:
        score += 0.2

    if profile.has_tables and strategy.chunking_method == ChunkingMethod.SEMANTIC:
        score += 0.1

    if profile.has_code and strategy.chunking_method == ChunkingMethod.SECTION:
        score += 0.1

    if profile.section_count > 5 and strategy.chunking_method == ChunkingMethod.SECTION:
        score += 0.1

    return _clamp(score)


def device_score(strategy: StrategyDescriptor, device: DeviceConstraints) -> float:

    score = 0.5

    if device.is_mobile and strategy.device_optimized:
        score += 0.3
    elif not device.is_mobile and not strategy.device_optimized:
        score += 0.2

    if POWER_PROFILE_MATCH[device.processing_power] == strategy.performance_profile:
        score += 0.2

    return _clamp(score)


def performance_score(
    strategy: StrategyDescriptor,
    device: DeviceConstraints,
    preferences: Optional[UserPreferences] = None,
) -> float:

    score = 0.5

    if preferences is not None:
        if preferences.prioritize_speed and strategy.performance_profile == PerformanceProfile.FAST:
            score += 0.3
        elif preferences.prioritize_accuracy and strategy.performance_profile == PerformanceProfile.COMPREHENSIVE:
            score += 0.3

        if strategy.key in preferences.preferred_strategies or strategy.name in preferences.preferred_strategies:
            score += 0.1

    if strategy.vector_store == VectorStoreKind.MEMORY and device.memory_available < LOW_MEMORY_THRESHOLD_MB:
        score += 0.2

    if strategy.embedding_model == EmbeddingModel.SMALL and device.has_internet:
        score += 0.1

    return _clamp(score)


def accuracy_score(strategy: StrategyDescriptor, profile: StructuralProfile) -> float:

    score = 0.5

    if strategy.embedding_model == EmbeddingModel.LARGE:
        score += 0.3
    elif strategy.embedding_model == EmbeddingModel.SMALL:
        score += 0.2

    if profile.complexity == Complexity.COMPLEX and strategy.chunking_method == ChunkingMethod.SEMANTIC:
        score += 0.2
    elif profile.complexity == Complexity.SIMPLE and strategy.chunking_method == ChunkingMethod.SENTENCE:
        score += 0.2

    return _clamp(score)


def history_score(observations: List[StrategyPerformanceMemory]) -> float:
    """
    Blend of latency (lower is better, against a 10s ceiling), mean observed
    accuracy and success rate, weighted 0.3 / 0.4 / 0.3. Neutral without data.
    """

    if not observations:
        return NEUTRAL_HISTORY_SCORE

    count = len(observations)

    avg_latency = sum(o.latency_ms for o in observations) / count
    avg_accuracy = sum(o.accuracy for o in observations) / count
    success_rate = sum(1 for o in observations if o.success) / count

    latency_component = max(0.0, 1.0 - avg_latency / HISTORY_LATENCY_CEILING_MS)

    return _clamp(latency_component * 0.3 + avg_accuracy * 0.4 + success_rate * 0.3)


# ============================================================
# FALLBACK
# ============================================================

def fallback_selection(device: DeviceConstraints, reasoning: str) -> StrategySelection:
    """Device-appropriate fixed selection with confidence 0.3."""

    return StrategySelection(
        chosen=catalog.fallback_strategy(device.is_mobile),
        alternatives=[],
        confidence=FALLBACK_CONFIDENCE,
        reasoning=reasoning,
        performance_estimate=PerformanceEstimate(
            expected_latency_ms=5000.0,
            memory_usage_mb=100.0,
            accuracy=0.5,
        ),
        processing_time_ms=0.0,
        fallback=True,
    )


# ============================================================
# SELECTOR
# ============================================================

class StrategySelector:
    """
    Filters the catalog down to admissible strategies and ranks them with a
    weighted five-factor score. Historical performance comes from the shared
    memory store when one is injected.
    """

    def __init__(self, memory_store=None, strategies: Optional[List[StrategyDescriptor]] = None):
        self._memory = memory_store
        self._strategies = list(strategies) if strategies is not None else catalog.all_strategies()

    @property
    def strategies(self) -> List[StrategyDescriptor]:
        return list(self._strategies)

    def select(
        self,
        profile: StructuralProfile,
        device: DeviceConstraints,
        preferences: Optional[UserPreferences] = None,
    ) -> StrategySelection:

        start_time = time.perf_counter()

        try:

            candidates = [s for s in self._strategies if is_admissible(s, profile, device)]

            if not candidates:
                raise SelectionFailure(
                    f"No admissible strategy for {profile.content_type.value}/"
                    f"{profile.complexity.value} on {device.device_class}"
                )

            history = self._load_history(profile, device)

            ranked = self.rank(candidates, profile, device, preferences, history)

            chosen, top_score = ranked[0]

            selection = StrategySelection(
                chosen=chosen,
                alternatives=[s for s, _ in ranked[1:1 + MAX_ALTERNATIVES]],
                confidence=round(_clamp(top_score), 4),
                reasoning=build_reasoning(chosen, profile, device, top_score),
                performance_estimate=estimate_performance(chosen, profile, device),
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                scores={s.name: round(score, 4) for s, score in ranked},
            )

        except SelectionFailure as e:

            logger.warning(
                "No admissible strategy, using fallback",
                extra={"error": str(e), "memory_available": device.memory_available},
            )

            return fallback_selection(device, "Fallback strategy due to no suitable candidates found")

        except Exception as e:

            logger.error(
                "Strategy selection failed, using fallback",
                extra={"error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )

            return fallback_selection(device, "Fallback strategy due to selection error")

        logger.info(
            "Strategy selected",
            extra={
                "strategy": selection.chosen.name,
                "confidence": selection.confidence,
                "candidates": len(candidates),
            },
        )

        return selection

    def rank(
        self,
        candidates: List[StrategyDescriptor],
        profile: StructuralProfile,
        device: DeviceConstraints,
        preferences: Optional[UserPreferences],
        history: Dict[str, List[StrategyPerformanceMemory]],
    ) -> List[Tuple[StrategyDescriptor, float]]:

        scored = []

        for strategy in candidates:

            total = (
                content_score(strategy, profile) * SCORE_WEIGHTS["content"]
                + device_score(strategy, device) * SCORE_WEIGHTS["device"]
                + performance_score(strategy, device, preferences) * SCORE_WEIGHTS["performance"]
                + accuracy_score(strategy, profile) * SCORE_WEIGHTS["accuracy"]
                + history_score(history.get(strategy.name, [])) * SCORE_WEIGHTS["history"]
            )

            scored.append((strategy, total))

        # stable sort keeps catalog order on ties
        return sorted(scored, key=lambda item: item[1], reverse=True)

    def _load_history(
        self,
        profile: StructuralProfile,
        device: DeviceConstraints,
    ) -> Dict[str, List[StrategyPerformanceMemory]]:

        if self._memory is None:
            return {}

        observations = self._memory.get_strategy_performance(
            content_type=profile.content_type,
            complexity=profile.complexity,
            device_class=device.device_class,
        )

        grouped: Dict[str, List[StrategyPerformanceMemory]] = {}

        for observation in observations:
            grouped.setdefault(observation.strategy_name, []).append(observation)

        return grouped


# ============================================================
# ESTIMATES & REASONING
# ============================================================

def estimate_performance(
    strategy: StrategyDescriptor,
    profile: StructuralProfile,
    device: DeviceConstraints,
) -> PerformanceEstimate:

    base_latency = 1000.0
    chunking_latency = (profile.word_count / strategy.chunk_size) * 100
    embedding_latency = 2000.0 if strategy.uses_large_embeddings else 1000.0
    device_multiplier = 1.5 if device.is_mobile else 1.0

    accuracy = 0.7
    if strategy.embedding_model == EmbeddingModel.LARGE:
        accuracy += 0.2
    if strategy.chunking_method == ChunkingMethod.SEMANTIC:
        accuracy += 0.1

    return PerformanceEstimate(
        expected_latency_ms=(base_latency + chunking_latency + embedding_latency) * device_multiplier,
        memory_usage_mb=catalog.estimate_memory_mb(strategy, profile),
        accuracy=min(1.0, round(accuracy, 4)),
    )


def build_reasoning(
    strategy: StrategyDescriptor,
    profile: StructuralProfile,
    device: DeviceConstraints,
    confidence: float,
) -> str:

    reasons = [f"Selected {strategy.name} for {profile.content_type.value} content"]

    if profile.complexity == Complexity.COMPLEX:
        reasons.append("Complex content requires comprehensive processing")
    elif profile.complexity == Complexity.SIMPLE:
        reasons.append("Simple content allows for faster processing")

    if device.is_mobile:
        reasons.append("Mobile device optimization applied")

    if strategy.chunking_method == ChunkingMethod.SEMANTIC:
        reasons.append("Semantic chunking preserves content relationships")
    elif strategy.chunking_method == ChunkingMethod.SECTION:
        reasons.append("Section-based chunking maintains document structure")

    if confidence > 0.8:
        reasons.append("High confidence in strategy selection")
    elif confidence < 0.6:
        reasons.append("Moderate confidence - consider alternatives")

    return ". ".join(reasons) + "."
