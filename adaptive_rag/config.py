# adaptive_rag/config.py
"""
Configuration for the Adaptive RAG Strategy Engine.

This file centralizes all tunable parameters for classification,
strategy selection, the shared memory store and workflow coordination.
Changes here affect system behavior without code modifications.
"""

import os

from pydantic import BaseModel, Field, validator


def _env_bool(name: str, default: bool) -> bool:

    value = os.getenv(name)

    if value is None:
        return default

    return value.strip().lower() in ("1", "true", "yes", "on")


# ========== WORKFLOW COORDINATION ==========

TIMEOUT_SECONDS = float(os.getenv("STRATEGY_TIMEOUT_SECONDS", "30"))
MAX_RETRIES = int(os.getenv("STRATEGY_MAX_RETRIES", "2"))
FALLBACK_ON_ERROR = _env_bool("STRATEGY_FALLBACK_ON_ERROR", True)
ENABLE_PARALLEL_PROCESSING = _env_bool("STRATEGY_PARALLEL_PROCESSING", True)
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

# Threads shared by all stage calls; a timed-out stage keeps its thread
# until the callee returns
STAGE_WORKERS = int(os.getenv("STRATEGY_STAGE_WORKERS", "16"))

# Finished workflows whose message logs stay inspectable
WORKFLOW_RETENTION = 100

# Confidence composition
CLASSIFICATION_CONFIDENCE_WEIGHT = 0.6
SELECTION_CONFIDENCE_WEIGHT = 0.4
COORDINATION_PENALTY = 0.05
MIN_WORKFLOW_CONFIDENCE = 0.1

# Every fallback path reports exactly this confidence
FALLBACK_CONFIDENCE = 0.3

# Validation thresholds (share of memoryAvailable)
SELECTION_MEMORY_SHARE = 0.5
VALIDATION_MEMORY_SHARE = 0.8


# ========== SHARED MEMORY ==========

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS

MEMORY_TTL_SECONDS = {
    "content_analysis": DAY_SECONDS,
    "strategy_performance": 7 * DAY_SECONDS,
    "user_preferences": 30 * DAY_SECONDS,
    "content_pattern": 7 * DAY_SECONDS,
    "workflow_history": DAY_SECONDS,
    "error_pattern": DAY_SECONDS,
}

MEMORY_SWEEP_INTERVAL_SECONDS = float(
    os.getenv("MEMORY_SWEEP_INTERVAL_SECONDS", str(HOUR_SECONDS))
)

# Ring buffer size per history key (strategy_performance etc.)
PERFORMANCE_HISTORY_LIMIT = 200

# Content pattern learning
PATTERN_INITIAL_CONFIDENCE = 0.5
PATTERN_CONFIDENCE_STEP = 0.01


# ========== STRATEGY SCORING ==========

SCORE_WEIGHTS = {
    "content": 0.30,
    "device": 0.25,
    "performance": 0.20,
    "accuracy": 0.10,
    "history": 0.15,
}

# Historical latency is normalized against this ceiling
HISTORY_LATENCY_CEILING_MS = 10000.0

# Devices below this memory (MB) favour in-memory vector stores
LOW_MEMORY_THRESHOLD_MB = 2048

MAX_ALTERNATIVES = 3


# ========== EXECUTION (DEFAULT DELEGATE) ==========

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = 0.2

TOP_K = 5
SIMILARITY_THRESHOLD = 0.65

MAX_DOCUMENT_CHARACTERS = 500_000
MAX_CHUNKS_PER_DOCUMENT = 1000

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


# ========== COORDINATOR CONFIG OBJECT ==========

class CoordinatorConfig(BaseModel):
    """Runtime knobs of the workflow coordinator."""

    enable_parallel_processing: bool = ENABLE_PARALLEL_PROCESSING
    max_retries: int = Field(MAX_RETRIES, ge=0, le=10)
    timeout_seconds: float = Field(TIMEOUT_SECONDS, gt=0)
    fallback_on_error: bool = FALLBACK_ON_ERROR
    log_level: str = LOG_LEVEL

    @validator("log_level")
    def validate_log_level(cls, v):
        """Only debug, info, warn and error are accepted."""
        level = v.strip().lower()
        if level == "warning":
            level = "warn"
        if level not in ("debug", "info", "warn", "error"):
            raise ValueError(f"Unsupported log level: {v}")
        return level


def load_coordinator_config(**overrides) -> CoordinatorConfig:
    return CoordinatorConfig(**overrides)


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. In-process memory with TTL (no database):
   - Trade-off: zero deployment cost, instant reads
   - Limitation: learned history is lost on restart

2. PERFORMANCE_HISTORY_LIMIT = 200:
   - Unbounded history grows forever on busy strategies
   - 200 recent runs keep the average responsive to drift

3. FALLBACK_CONFIDENCE = 0.3:
   - Callers can tell a degraded result apart from a real selection
     without inspecting messages
"""
