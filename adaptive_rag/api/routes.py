import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from adaptive_rag.device import detect_device, should_use_local_processing
from adaptive_rag.memory.shared_store import MemoryQuery
from adaptive_rag.models import (
    AnalyzeRequest,
    Complexity,
    ConfigUpdateRequest,
    ContentAnalysis,
    ContentType,
    HealthResponse,
    MemoryKind,
    MemoryStatsResponse,
    ProcessRequest,
    ProcessResponse,
    SelectRequest,
    StrategySelection,
    WorkflowStatusResponse,
)
from adaptive_rag.services import Services
from adaptive_rag.strategy import catalog


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(request: Request):

    services = get_services(request)

    return HealthResponse(
        status="healthy",
        memory_entries=services.memory_store.stats().total_entries,
        active_workflows=len(services.coordinator.list_active_workflows()),
        strategies=len(catalog.all_strategies()),
    )


# ============================================================
# AGENT RAG: WORKFLOWS
# ============================================================

@router.post("/agent-rag/process", response_model=ProcessResponse)
def process_content(payload: ProcessRequest, request: Request):

    services = get_services(request)

    device = payload.device
    local_processing = None

    if device is None:
        detected = detect_device(request.headers.get("user-agent", ""), payload.additional_info)
        device = detected.to_constraints()
        local_processing = should_use_local_processing(detected)

    result = services.coordinator.process(
        content=payload.content,
        device=device,
        question=payload.question,
        url=payload.url,
        metadata=payload.metadata,
        preferences=payload.preferences,
    )

    return ProcessResponse(
        workflow=result,
        device=device,
        device_detected=payload.device is None,
        local_processing=local_processing,
    )


@router.post("/agent-rag/analyze", response_model=ContentAnalysis)
def analyze_content(payload: AnalyzeRequest, request: Request):

    return get_services(request).classifier.classify(
        payload.content,
        url=payload.url,
        metadata=payload.metadata,
    )


@router.post("/agent-rag/select", response_model=StrategySelection)
def select_strategy(payload: SelectRequest, request: Request):

    return get_services(request).selector.select(
        payload.profile,
        payload.device,
        payload.preferences,
    )


@router.get("/agent-rag/strategies")
def list_strategies():

    strategies = [s.model_dump(mode="json") for s in catalog.all_strategies()]

    return {"strategies": strategies, "count": len(strategies)}


@router.get("/agent-rag/workflows")
def list_workflows(request: Request, limit: int = Query(20, gt=0, le=200)):

    coordinator = get_services(request).coordinator

    return {
        "active": coordinator.list_active_workflows(),
        "finished": coordinator.list_finished_workflows(),
        "history": coordinator.get_workflow_history(limit=limit),
    }


@router.get("/agent-rag/workflows/{workflow_id}", response_model=WorkflowStatusResponse)
def get_workflow_status(workflow_id: str, request: Request):

    coordinator = get_services(request).coordinator

    messages = coordinator.get_workflow_messages(workflow_id)

    if messages is None:
        raise HTTPException(status_code=404, detail="Workflow not found")

    return WorkflowStatusResponse(
        workflow_id=workflow_id,
        is_active=coordinator.is_active(workflow_id),
        message_count=len(messages),
        messages=messages,
    )


@router.get("/agent-rag/metrics")
def get_agent_metrics(request: Request):

    coordinator = get_services(request).coordinator

    return {
        "active_workflows": len(coordinator.list_active_workflows()),
        "total_workflows": len(coordinator.get_workflow_history()),
        "metrics": coordinator.get_metrics(),
        "configuration": coordinator.get_config().model_dump(),
        "system_health": {
            "coordinator_status": "healthy",
            "last_update": datetime.utcnow().isoformat(),
        },
    }


@router.post("/agent-rag/config")
def update_agent_config(payload: ConfigUpdateRequest, request: Request):

    changes = payload.model_dump(exclude_none=True)

    try:
        config = get_services(request).coordinator.update_config(**changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"configuration": config.model_dump()}


# ============================================================
# SHARED MEMORY
# ============================================================

@router.get("/shared-memory/stats", response_model=MemoryStatsResponse)
def memory_stats(request: Request):
    return get_services(request).memory_store.stats()


@router.get("/shared-memory/query")
def query_memory(
    request: Request,
    kind: Optional[MemoryKind] = None,
    tags: Optional[List[str]] = Query(None),
    source: Optional[str] = None,
    min_confidence: Optional[float] = None,
    max_age_seconds: Optional[float] = None,
    sort_by: Optional[str] = None,
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(None, gt=0),
):

    query = MemoryQuery(
        kind=kind,
        tags=tags,
        source=source,
        min_confidence=min_confidence,
        max_age_seconds=max_age_seconds,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
    )

    try:
        results = get_services(request).memory_store.query(query)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "results": [r.model_dump(mode="json") for r in results],
        "count": len(results),
        "query": query.model_dump(mode="json"),
    }


@router.get("/shared-memory/strategy-performance")
def strategy_performance(
    request: Request,
    strategy_name: Optional[str] = None,
    content_type: Optional[ContentType] = None,
    complexity: Optional[Complexity] = None,
    device_class: Optional[str] = None,
):

    performance = get_services(request).memory_store.get_strategy_performance(
        strategy_name=strategy_name,
        content_type=content_type,
        complexity=complexity,
        device_class=device_class,
    )

    return {
        "performance": [p.model_dump(mode="json") for p in performance],
        "count": len(performance),
    }


@router.get("/shared-memory/content-patterns")
def content_patterns(
    request: Request,
    content_type: Optional[ContentType] = None,
    complexity: Optional[Complexity] = None,
):

    patterns = get_services(request).memory_store.get_content_patterns(content_type, complexity)

    return {
        "patterns": [p.model_dump(mode="json") for p in patterns],
        "count": len(patterns),
    }


@router.get("/shared-memory/entry/{key}")
def memory_entry(key: str, request: Request):

    record = get_services(request).memory_store.get_record(key)

    if record is None:
        raise HTTPException(status_code=404, detail="Memory entry not found")

    return record.model_dump(mode="json")


@router.post("/shared-memory/cleanup")
def cleanup_memory(request: Request):

    cleaned = get_services(request).memory_store.sweep_expired()

    logger.info("Memory cleanup requested", extra={"cleaned": cleaned})

    return {
        "cleaned_count": cleaned,
        "message": f"Cleaned up {cleaned} expired memory entries",
    }


@router.delete("/shared-memory/clear")
def clear_memory(request: Request):

    get_services(request).memory_store.clear()

    return {"message": "All memory cleared successfully"}


@router.get("/shared-memory/analytics")
def memory_analytics(request: Request):

    store = get_services(request).memory_store

    performance = store.get_strategy_performance()
    patterns = store.get_content_patterns()

    usage = Counter(p.strategy_name for p in performance)

    return {
        "stats": store.stats().model_dump(mode="json"),
        "insights": {
            "most_used_strategies": [
                {"strategy": name, "count": count}
                for name, count in usage.most_common(10)
            ],
            "content_type_distribution": dict(Counter(p.content_type.value for p in performance)),
            "success_rate": (
                sum(1 for p in performance if p.success) / len(performance)
                if performance else 0.0
            ),
            "common_patterns": [
                {"pattern": p.pattern, "occurrences": p.occurrences, "confidence": p.confidence}
                for p in patterns[:10]
            ],
        },
    }
