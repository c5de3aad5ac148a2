"""FastAPI application entry point."""
from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from typing import Optional
import time
import uuid

from data_store.client import PostgresAnalyticsStore
from gateway.config import GatewayConfig
from gateway.models import (
    ClassificationInfo,
    ErrorResponse,
    FailureMetadata,
    FailureResponse,
    InvestigateRequest,
    InvestigateResponse,
    ResponseMetadata,
)
from orchestrator.llm_client import ReasoningLLMClient
from orchestrator.orchestrator import InvestigationOrchestrator
from shared.logger import setup_logging, bind_request_context, clear_request_context

config = GatewayConfig()
logger = setup_logging(config.log_level)
app = FastAPI(title=config.api_title, version=config.api_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MISSING_FIELDS_ERROR = "question and customer_id are required"

_store: Optional[PostgresAnalyticsStore] = None
_orchestrator: Optional[InvestigationOrchestrator] = None


def get_orchestrator() -> InvestigationOrchestrator:
    """Shared orchestrator; the store pool is created lazily on first use."""
    global _store, _orchestrator
    if _orchestrator is None:
        _store = PostgresAnalyticsStore()
        _orchestrator = InvestigationOrchestrator(backend=ReasoningLLMClient(), store=_store)
    return _orchestrator


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Logistics Investigator Gateway", api_prefix=config.api_prefix)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Logistics Investigator Gateway")
    if _store is not None:
        await _store.close()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning("Rejected malformed request", errors=str(errors)[:500])
    detail = errors[0].get("msg", "malformed body") if errors else "malformed body"
    return JSONResponse(status_code=400, content=ErrorResponse(error=f"Invalid request: {detail}").model_dump())


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post(
    f"{config.api_prefix}/investigate",
    response_model=InvestigateResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": FailureResponse}}
)
async def investigate(
    request: InvestigateRequest,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator)
):
    """Answer a natural language question about the customer's shipments."""
    start_time = time.perf_counter()
    question = (request.question or "").strip()
    customer_id = (request.customer_id or "").strip()
    if not question or not customer_id:
        return JSONResponse(status_code=400, content=ErrorResponse(error=MISSING_FIELDS_ERROR).model_dump())

    preferences = request.preferences
    force_mode = preferences.force_mode if preferences else None
    show_reasoning = not (preferences and preferences.show_reasoning is False)

    bind_request_context(request_id=uuid.uuid4().hex, customer_id=customer_id, user_id=request.user_id)
    logger.info("Received investigation", question=question[:200], force_mode=force_mode)
    try:
        result = await orchestrator.investigate(
            question=question,
            customer_id=customer_id,
            user_id=request.user_id,
            conversation_history=[m.model_dump() for m in request.conversation_history or []],
            force_mode=force_mode
        )

        metadata = result.metadata
        response = InvestigateResponse(
            answer=result.answer,
            reasoning=result.reasoning if show_reasoning else [],
            follow_up_questions=result.follow_ups,
            visualizations=result.visualizations,
            metadata=ResponseMetadata(
                processing_time_ms=metadata.processing_time_ms,
                tool_call_count=metadata.tool_call_count,
                mode=metadata.mode,
                classification=ClassificationInfo(
                    detected=metadata.classification.mode,
                    confidence=metadata.classification.confidence,
                    reason=metadata.classification.reason
                ),
                iterations=metadata.turns_used,
                termination_reason=metadata.termination_reason,
                backend_error=metadata.backend_error,
                tool_registry_version=metadata.tool_registry_version
            )
        )

        logger.info(
            "Investigation processed successfully",
            processing_time_ms=metadata.processing_time_ms,
            tool_call_count=metadata.tool_call_count,
            visualizations=len(result.visualizations)
        )
        return response

    except Exception as e:
        logger.error("Investigation failed", error=str(e), exc_info=True)
        failure = FailureResponse(
            error=str(e) or "Investigation failed",
            metadata=FailureMetadata(processing_time_ms=int((time.perf_counter() - start_time) * 1000))
        )
        return JSONResponse(status_code=500, content=failure.model_dump(mode="json"))
    finally:
        clear_request_context()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)
