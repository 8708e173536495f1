# adaptive_rag/main.py
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adaptive_rag.api.routes import router
from adaptive_rag.config import LOG_LEVEL
from adaptive_rag.errors import StrategyEngineError, WorkflowFailure
from adaptive_rag.observability.logger import setup_logging
from adaptive_rag.observability.posthog_client import PostHogClient
from adaptive_rag.services import Services, build_services

# Initialize logging FIRST
setup_logging(log_level=LOG_LEVEL, log_dir=os.getenv("LOG_DIR", "logs"))
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _track_error(request: Request, exc: Exception, request_id: str):

    services: Optional[Services] = getattr(request.app.state, "services", None)

    if services is not None and services.analytics is not None:
        services.analytics.track_error(
            distinct_id=request_id,
            error_type=type(exc).__name__,
            error_message=str(exc),
            endpoint=request.url.path,
        )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API. Services are built at startup unless injected.
    """

    app = FastAPI(
        title="Adaptive RAG Strategy Engine",
        description="Content classification and RAG strategy selection with shared memory",
        version=VERSION,
    )

    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Request id + latency logging for every HTTP request."""

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        logger.info(
            "request_started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            },
        )

        start_time = time.time()

        try:

            response = await call_next(request)

        except Exception as e:

            logger.error(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "latency_seconds": round(time.time() - start_time, 3),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

            raise

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_seconds": round(time.time() - start_time, 3),
            },
        )

        return response

    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():

        if app.state.services is None:
            app.state.services = build_services(analytics=PostHogClient())

        app.state.services.start()

        logger.info("application_startup", extra={"version": VERSION})

        if not os.getenv("OPENAI_API_KEY"):
            logger.warning(
                "missing_api_key",
                extra={"warning_detail": "OPENAI_API_KEY not set. Question answering will fall back."},
            )

    @app.on_event("shutdown")
    async def shutdown_event():

        if app.state.services is not None:
            app.state.services.close()

        logger.info("application_shutdown")

    @app.exception_handler(StrategyEngineError)
    async def engine_exception_handler(request: Request, exc: StrategyEngineError):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "workflow_exception",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=True,
        )

        _track_error(request, exc, request_id)

        content = {
            "detail": "Workflow processing failed.",
            "request_id": request_id,
            "error_type": type(exc).__name__,
        }

        if isinstance(exc, WorkflowFailure):
            content["workflow_id"] = exc.workflow_id
            content["stage"] = exc.stage

        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=True,
        )

        _track_error(request, exc, request_id)

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal error occurred. Please try again.",
                "request_id": request_id,
                "error_type": type(exc).__name__,
            },
        )

    @app.get("/")
    async def root():

        return {
            "message": "Adaptive RAG Strategy Engine",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/agent-rag/metrics",
        }

    return app


app = create_app()


if __name__ == "__main__":

    import uvicorn

    uvicorn.run(
        "adaptive_rag.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
