# adaptive_rag/errors.py
from typing import Optional


class StrategyEngineError(Exception):
    """Base class for errors raised by the strategy engine."""


class ClassificationFailure(StrategyEngineError):
    """Structural analysis of a document failed."""


class SelectionFailure(StrategyEngineError):
    """No strategy could be selected or scoring raised."""


class DelegateFailure(StrategyEngineError):
    """The execution delegate failed or was cancelled."""


class StageTimeout(StrategyEngineError, TimeoutError):
    """A workflow stage exceeded its deadline."""

    def __init__(self, stage: str, timeout_seconds: float):
        self.stage = stage
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{stage} timed out after {timeout_seconds:.1f}s")


class WorkflowFailure(StrategyEngineError):
    """Unrecovered workflow error, raised when fallback is disabled."""

    def __init__(self, workflow_id: str, stage: str, cause: Optional[BaseException] = None):
        self.workflow_id = workflow_id
        self.stage = stage
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(f"Workflow {workflow_id} failed during {stage}: {detail}")


class UnknownStrategyError(StrategyEngineError, KeyError):
    """Raised when a strategy name is not in the catalog."""

    def __str__(self):
        return f"Unknown strategy: {self.args[0]!r}"
