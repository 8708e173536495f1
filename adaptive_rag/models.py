# adaptive_rag/models.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, validator


# ============================================================
# ENUMERATIONS
# ============================================================

class ContentType(str, Enum):
    HTML = "html"
    PDF = "pdf"
    TEXT = "text"
    STRUCTURED = "structured"
    MIXED = "mixed"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class ChunkingMethod(str, Enum):
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SECTION = "section"
    SEMANTIC = "semantic"


class EmbeddingModel(str, Enum):
    SMALL = "text-embedding-3-small"
    LARGE = "text-embedding-3-large"
    ADA = "text-embedding-ada-002"


class VectorStoreKind(str, Enum):
    MEMORY = "memory"
    FAISS = "faiss"


class PerformanceProfile(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    COMPREHENSIVE = "comprehensive"


class ProcessingPower(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MemoryKind(str, Enum):
    CONTENT_ANALYSIS = "content_analysis"
    STRATEGY_PERFORMANCE = "strategy_performance"
    USER_PREFERENCES = "user_preferences"
    CONTENT_PATTERN = "content_pattern"
    WORKFLOW_HISTORY = "workflow_history"
    ERROR_PATTERN = "error_pattern"


class MessageKind(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    ERROR = "error"


class MessagePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkflowState(str, Enum):
    STARTED = "started"
    CLASSIFYING = "classifying"
    SELECTING = "selecting"
    VALIDATING = "validating"
    DELEGATING = "delegating"
    RECORDING = "recording"
    COMPLETED = "completed"
    ERRORED = "errored"


# Which processing-power tier matches which performance profile
POWER_PROFILE_MATCH = {
    ProcessingPower.LOW: PerformanceProfile.FAST,
    ProcessingPower.MEDIUM: PerformanceProfile.BALANCED,
    ProcessingPower.HIGH: PerformanceProfile.COMPREHENSIVE,
}


# ============================================================
# CONTENT ANALYSIS
# ============================================================

class StructuralProfile(BaseModel):
    """Structural classification of one content item. Immutable."""

    model_config = ConfigDict(frozen=True)

    content_type: ContentType
    complexity: Complexity
    has_tables: bool = False
    has_lists: bool = False
    has_code: bool = False
    has_images: bool = False
    section_count: int = Field(0, ge=0)
    heading_count: int = Field(0, ge=0)
    headings: Tuple[str, ...] = ()
    link_count: int = Field(0, ge=0)
    word_count: int = Field(0, ge=0)
    language: str = "en"
    domain: str = "unknown"
    readability_score: float = Field(50.0, ge=0.0, le=100.0)


class ChunkingRecommendation(BaseModel):
    """Chunking/embedding configuration suggested by the classifier."""

    model_config = ConfigDict(frozen=True)

    chunking_method: ChunkingMethod
    embedding_model: EmbeddingModel
    chunk_size: int = Field(..., gt=0)
    chunk_overlap: int = Field(..., ge=0)
    reasoning: str


class ContentAnalysis(BaseModel):
    """Classifier output: profile, recommendation and confidence."""

    profile: StructuralProfile
    confidence: float = Field(..., ge=0.3, le=1.0)
    recommendation: ChunkingRecommendation
    processing_time_ms: float = 0.0
    cached: bool = False
    content_hash: Optional[str] = None


# ============================================================
# STRATEGIES
# ============================================================

class StrategyDescriptor(BaseModel):
    """One statically configured processing strategy."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str
    chunking_method: ChunkingMethod
    chunk_size: int = Field(..., gt=0)
    chunk_overlap: int = Field(..., ge=0)
    embedding_model: EmbeddingModel
    vector_store: VectorStoreKind
    device_optimized: bool
    max_tokens: int = Field(..., gt=0)
    content_types: Tuple[ContentType, ...]
    complexity_levels: Tuple[Complexity, ...]
    performance_profile: PerformanceProfile
    reasoning: str

    @property
    def uses_large_embeddings(self) -> bool:
        return "large" in self.embedding_model.value


class DeviceConstraints(BaseModel):
    """Device descriptor supplied by device detection."""

    is_mobile: bool = False
    has_internet: bool = True
    processing_power: ProcessingPower = ProcessingPower.MEDIUM
    memory_available: float = Field(1024.0, gt=0, description="Available memory in MB")

    @property
    def device_class(self) -> str:
        return "mobile" if self.is_mobile else "desktop"


class UserPreferences(BaseModel):
    """Optional user preference hints."""

    prioritize_speed: Optional[bool] = None
    prioritize_accuracy: Optional[bool] = None
    max_processing_time: Optional[float] = None
    preferred_strategies: List[str] = Field(default_factory=list)


class PerformanceEstimate(BaseModel):
    expected_latency_ms: float
    memory_usage_mb: float
    accuracy: float = Field(..., ge=0.0, le=1.0)


class StrategySelection(BaseModel):
    """Selector output."""

    chosen: StrategyDescriptor
    alternatives: List[StrategyDescriptor] = Field(default_factory=list, max_length=3)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str
    performance_estimate: PerformanceEstimate
    processing_time_ms: float = 0.0
    scores: Dict[str, float] = Field(default_factory=dict)
    fallback: bool = False


# ============================================================
# SHARED MEMORY PAYLOADS
# ============================================================

class ContentAnalysisMemory(BaseModel):
    content_hash: str
    url: Optional[str] = None
    analysis: ContentAnalysis
    processing_time_ms: float
    success: bool = True


class StrategyPerformanceMemory(BaseModel):
    strategy_name: str
    content_type: ContentType
    complexity: Complexity
    device_class: str
    latency_ms: float = Field(..., ge=0.0)
    memory_usage_mb: float = Field(..., ge=0.0)
    accuracy: float = Field(..., ge=0.0, le=1.0)
    success: bool
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class UserPreferencesMemory(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    preferences: UserPreferences
    last_updated: datetime = Field(default_factory=datetime.utcnow)


class ContentPatternMemory(BaseModel):
    pattern: str
    content_type: ContentType
    complexity: Complexity
    optimal_chunking: ChunkingMethod
    confidence: float = Field(..., ge=0.0, le=1.0)
    occurrences: int = Field(1, ge=1)
    last_seen: datetime = Field(default_factory=datetime.utcnow)


# ============================================================
# WORKFLOW
# ============================================================

class MessageMetadata(BaseModel):
    priority: MessagePriority = MessagePriority.MEDIUM
    timeout_seconds: Optional[float] = None
    retry_count: int = 0


class WorkflowMessage(BaseModel):
    """Audit record of one inter-stage exchange."""

    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: str
    timestamp: datetime
    sender: str
    recipient: str
    kind: MessageKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)


class ExecutionResult(BaseModel):
    """Output of an execution delegate."""

    answer: str
    sources: List[Dict[str, Any]] = Field(default_factory=list)
    chunks_created: int = 0
    refused: bool = False
    confidence_score: float = 0.0
    reasoning: Optional[str] = None


class WorkflowResult(BaseModel):
    content_analysis: ContentAnalysis
    strategy_selection: StrategySelection
    final_strategy: StrategyDescriptor
    confidence: float = Field(..., ge=0.0, le=1.0)
    total_processing_time_ms: float
    workflow_id: str
    messages: List[WorkflowMessage]
    state: WorkflowState = WorkflowState.COMPLETED
    fallback_used: bool = False
    error: Optional[str] = None
    execution: Optional[ExecutionResult] = None


# ============================================================
# API REQUESTS / RESPONSES
# ============================================================

class ProcessRequest(BaseModel):
    """Request to run a full strategy workflow."""
    content: str = Field(..., min_length=1)
    question: Optional[str] = Field(None, max_length=1000)
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    device: Optional[DeviceConstraints] = None
    preferences: Optional[UserPreferences] = None
    # Used for User-Agent detection when device is omitted
    additional_info: Dict[str, Any] = Field(default_factory=dict)

    @validator("content")
    def validate_content(cls, v):
        """Ensure content is not just whitespace."""
        if not v.strip():
            raise ValueError("Content cannot be empty or only whitespace")
        return v


class AnalyzeRequest(BaseModel):
    content: str = Field(..., min_length=1)
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SelectRequest(BaseModel):
    profile: StructuralProfile
    device: DeviceConstraints
    preferences: Optional[UserPreferences] = None


class WorkflowStatusResponse(BaseModel):
    workflow_id: str
    is_active: bool
    message_count: int
    messages: List[WorkflowMessage]


class MemoryStatsResponse(BaseModel):
    total_entries: int
    by_kind: Dict[str, int]
    estimated_bytes: int
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None
    most_accessed_key: Optional[str] = None
    avg_confidence: float = 0.0


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    memory_entries: int
    active_workflows: int
    strategies: int


class ProcessResponse(BaseModel):
    workflow: WorkflowResult
    device: DeviceConstraints
    device_detected: bool = False
    local_processing: Optional[bool] = None


class ConfigUpdateRequest(BaseModel):
    enable_parallel_processing: Optional[bool] = None
    max_retries: Optional[int] = None
    timeout_seconds: Optional[float] = None
    fallback_on_error: Optional[bool] = None
    log_level: Optional[str] = None
