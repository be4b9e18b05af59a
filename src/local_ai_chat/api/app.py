"""
FastAPI Application Module

The request gateway between chat sessions and the remote completion API.
It validates incoming message arrays, fills in and clamps chat settings,
forwards the turn to the completion endpoint and maps failures to HTTP
status codes.

Endpoints:
- POST /chat: run one chat turn
- GET /chat: health check against the completion endpoint
- GET /models: supported model catalogue
- GET /metrics: Prometheus metrics
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import ValidationError
from structlog import get_logger

from ..config import get_settings
from ..domain.models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURE,
    MAX_TOKENS_RANGE,
    SUPPORTED_MODELS,
    TEMPERATURE_RANGE,
    ChatSettings,
    Message,
    ModelInfo,
    generate_id,
    utcnow,
)
from ..services.completion import CompletionClient, CompletionError

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests by endpoint", ["endpoint"], registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total errors by endpoint and status", ["endpoint", "status"], registry=CUSTOM_REGISTRY)
PROCESSING_TIME = Counter("processing_time_seconds", "Total processing time by endpoint", ["endpoint"], registry=CUSTOM_REGISTRY)

logger = get_logger()

NETWORK_ERROR_MESSAGE = "Network error. Please try again."

_config = get_settings()
completion_client = CompletionClient(
    url=_config.completion_url,
    headers=_config.completion_headers,
    timeout=_config.completion_timeout,
)


def get_completion_client() -> CompletionClient:
    """Returns the completion API client"""
    return completion_client


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp(value: float, bounds) -> float:
    low, high = bounds
    return max(low, min(high, value))


def resolve_settings(raw: Any) -> ChatSettings:
    """Apply defaults to missing settings and clamp numeric ones into range."""
    raw = raw if isinstance(raw, dict) else {}
    return ChatSettings(
        system_prompt=raw.get("systemPrompt") or DEFAULT_SYSTEM_PROMPT,
        model=raw.get("model") or DEFAULT_MODEL,
        temperature=_clamp(raw["temperature"], TEMPERATURE_RANGE)
        if _is_number(raw.get("temperature"))
        else DEFAULT_TEMPERATURE,
        max_tokens=int(_clamp(raw["maxTokens"], MAX_TOKENS_RANGE))
        if _is_number(raw.get("maxTokens"))
        else DEFAULT_MAX_TOKENS,
    )


def parse_messages(raw: Any) -> List[Message]:
    """Validate the incoming message array; raises HTTPException(400) on bad input."""
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="Messages array is required")
    if not raw:
        raise HTTPException(status_code=400, detail="At least one message is required")

    messages = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise HTTPException(status_code=400, detail=f"Message at index {index} must be an object")
        content = item.get("content")
        if not content or not isinstance(content, str) or not content.strip():
            raise HTTPException(status_code=400, detail=f"Message at index {index} must have content")
        if item.get("role") not in ("user", "assistant"):
            raise HTTPException(status_code=400, detail=f"Message at index {index} must have a valid role")
        try:
            messages.append(
                Message(
                    id=str(item["id"]) if item.get("id") else generate_id("msg"),
                    role=item["role"],
                    content=content,
                    timestamp=item.get("timestamp") or utcnow(),
                )
            )
        except ValidationError:
            raise HTTPException(status_code=400, detail=f"Message at index {index} is invalid")
    return messages


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown"""
    logger.info("application_startup_complete", completion_url=completion_client.url)
    yield
    logger.info("application_shutdown_complete")


app = FastAPI(
    title="Local AI Chat Gateway",
    description="Validates chat turns and forwards them to a chat-completion API",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Reports errors as {"error": message}"""
    ERRORS.labels(endpoint=request.url.path, status=str(exc.status_code)).inc()
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Tracks requests and their processing time"""
    logger.info("request_started", method=request.method, path=request.url.path)
    REQUESTS.labels(endpoint=request.url.path).inc()
    started = time.perf_counter()
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    finally:
        PROCESSING_TIME.labels(endpoint=request.url.path).inc(time.perf_counter() - started)


@app.post("/chat")
async def chat(
    request: Request,
    client: CompletionClient = Depends(get_completion_client),
) -> Dict[str, Any]:
    """Runs one chat turn against the completion API"""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Messages array is required")

    messages = parse_messages(body.get("messages"))
    try:
        settings = resolve_settings(body.get("settings"))
    except ValidationError:
        raise HTTPException(status_code=400, detail="Settings must have a valid systemPrompt and model")

    try:
        response = await client.complete(messages, settings)
    except CompletionError as e:
        logger.error("chat_completion_error", kind=e.kind, error=e.message, status_code=e.status_code)
        if e.kind == "validation":
            raise HTTPException(status_code=400, detail=e.message)
        if e.kind == "upstream":
            raise HTTPException(status_code=502, detail=e.message)
        if e.kind == "transport":
            raise HTTPException(status_code=503, detail=NETWORK_ERROR_MESSAGE)
        raise HTTPException(status_code=500, detail=e.message)
    except Exception as e:
        logger.error("chat_unclassified_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e) or "Internal server error. Please try again.")

    if not response or not response.strip():
        raise HTTPException(status_code=500, detail="AI service returned empty response")

    logger.info(
        "chat_turn_processed",
        model=settings.model,
        messages=len(messages),
        response_length=len(response),
    )
    return {
        "message": response.strip(),
        "model": settings.model,
        "usage": {
            "prompt_tokens": sum(len(m.content) for m in messages),
            "completion_tokens": len(response),
        },
    }


@app.get("/chat")
async def health(client: CompletionClient = Depends(get_completion_client)) -> JSONResponse:
    """Checks the completion API with a live round trip"""
    timestamp = utcnow().isoformat()
    try:
        healthy = await client.test_connection()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return JSONResponse(
            {"status": "unhealthy", "timestamp": timestamp, "error": str(e) or "Unknown error"},
            status_code=503,
        )
    return JSONResponse(
        {
            "status": "healthy" if healthy else "degraded",
            "timestamp": timestamp,
            "ai_service": "connected" if healthy else "disconnected",
        },
        status_code=200,
    )


@app.get("/models", response_model=List[ModelInfo])
async def list_models() -> List[ModelInfo]:
    """Lists the models the client offers"""
    return SUPPORTED_MODELS


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
