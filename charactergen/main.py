# charactergen/main.py

"""
Main entry point for the character generation FastAPI service.

This file defines:
- Logging setup and the middleware stack (correlation IDs, request logging)
- Structured JSON error responses for the `CharacterGenError` taxonomy
- Prometheus metrics per route, and per provider + request type for generations
- Liveness and readiness probes
- Endpoints for raw chat, template-driven generation and character helpers

🧠 Endpoints are plain `def` functions: provider calls block on HTTP and on
the rate limiter, so FastAPI runs them in its worker thread pool.
"""

import logging
import time
from typing import Any, Callable, Dict

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest, multiprocess
)

from charactergen.config import settings
from charactergen.dependencies import bind_llm_service
from charactergen.exceptions import CharacterGenError, RateLimitError
from charactergen.imaging.base import ImageResult
from charactergen.logging_config import configure_logging
from charactergen.middlewares import LoggingMiddleware, request_labels
from charactergen.schemas import CharacterContext, ChatRequest, ChatResponse, GenerateRequest
from charactergen.service import LLMService

# ───────────────────────────────────────────────────────────────────────────────
# Prometheus Metrics
# ───────────────────────────────────────────────────────────────────────────────
# `endpoint` is the route template (/v1/generate/{request_type}), not the raw path
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "http_status"]
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"]
)

# outcome is "ok" or the CharacterGenError class name
GENERATIONS = Counter(
    "charactergen_generations_total",
    "Generation requests by provider, request type and outcome",
    ["provider", "request_type", "outcome"]
)

GENERATION_LATENCY = Histogram(
    "charactergen_generation_duration_seconds",
    "End-to-end generation latency, provider retries included",
    ["provider", "request_type"]
)

# ───────────────────────────────────────────────────────────────────────────────
# Application Startup
# ───────────────────────────────────────────────────────────────────────────────
configure_logging(settings.log_level)
logger = logging.getLogger("charactergen")

app = FastAPI(
    title="Character Generator LLM Service",
    version="0.1.0",
    description="Template-driven structured generation for D&D characters over Anthropic, OpenAI or a mock provider."
)


@app.on_event("startup")
def log_configuration():
    """
    Log which providers are configured. Connectivity is checked by /readyz,
    not here, so a provider outage does not stop the service from booting.
    """
    logger.info(
        f"starting with llm_provider={settings.llm_provider}, "
        f"image_provider={settings.image_provider or '-'}, env={settings.app_env}"
    )

# ───────────────────────────────────────────────────────────────────────────────
# Global Exception Handling
# ───────────────────────────────────────────────────────────────────────────────
@app.exception_handler(CharacterGenError)
async def handle_charactergen_error(request: Request, exc: CharacterGenError):
    """
    Return structured JSON errors for every failure in the taxonomy and tag
    the request with the error class for the access log and metrics.
    """
    request.state.error = type(exc).__name__

    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers["Retry-After"] = str(int(exc.retry_after))

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )

# ───────────────────────────────────────────────────────────────────────────────
# Middleware Stack
# ───────────────────────────────────────────────────────────────────────────────
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

# ───────────────────────────────────────────────────────────────────────────────
# Prometheus Middleware
# ───────────────────────────────────────────────────────────────────────────────
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(elapsed)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, http_status=str(response.status_code)).inc()

    labels = request_labels(request)
    if labels["provider"] and labels["request_type"]:
        # unknown template names would otherwise become unbounded label values
        request_type = "unknown" if labels["error"] == "TemplateNotFoundError" else labels["request_type"]
        GENERATIONS.labels(
            provider=labels["provider"],
            request_type=request_type,
            outcome=labels["error"] or "ok",
        ).inc()
        GENERATION_LATENCY.labels(provider=labels["provider"], request_type=request_type).observe(elapsed)

    return response


@app.get("/metrics", include_in_schema=False)
def metrics():
    """
    Prometheus scrape endpoint. With `PROMETHEUS_MULTIPROC_DIR` set (gunicorn
    with several workers) the samples of every worker are merged.
    """
    registry = REGISTRY
    if settings.prometheus_multiproc_dir:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry, path=settings.prometheus_multiproc_dir)
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

# ───────────────────────────────────────────────────────────────────────────────
# Health Probes
# ───────────────────────────────────────────────────────────────────────────────
@app.get("/healthz", tags=["health"])
def healthz():
    """
    Liveness probe. No external dependencies.
    """
    return {"status": "ok"}


@app.get("/readyz", tags=["health"])
def readyz(service: LLMService = Depends(bind_llm_service)):
    """
    Readiness probe: runs the provider's connection test.
    """
    if not service.test_connection():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ready": False, "provider": service.provider_name},
        )
    return {"ready": True, "provider": service.provider_name}

# ───────────────────────────────────────────────────────────────────────────────
# /v1/chat
# ───────────────────────────────────────────────────────────────────────────────
@app.post("/v1/chat", response_model=ChatResponse)
def chat(req: ChatRequest, request: Request, service: LLMService = Depends(bind_llm_service)):
    """
    Raw chat against the configured provider, optionally schema-checked.
    """
    request.state.request_type = "chat"
    result = service.chat(req.messages, system_prompt=req.system_prompt, schema=req.response_schema)
    return ChatResponse(provider=service.provider_name, response=result)

# ───────────────────────────────────────────────────────────────────────────────
# /v1/generate/{request_type}
# ───────────────────────────────────────────────────────────────────────────────
@app.post("/v1/generate/{request_type}")
def generate(request_type: str, req: GenerateRequest, request: Request, service: LLMService = Depends(bind_llm_service)):
    """
    Render the named prompt template with `context` and return the validated response.
    """
    request.state.request_type = request_type
    return service.generate(request_type, req.context)

# ───────────────────────────────────────────────────────────────────────────────
# /v1/characters
# ───────────────────────────────────────────────────────────────────────────────
CHARACTER_HELPERS: Dict[str, Callable[[LLMService, Dict[str, Any]], Dict[str, Any]]] = {
    "background": LLMService.generate_background,
    "traits": LLMService.generate_traits,
    "values": LLMService.generate_values,
    "personality-details": LLMService.generate_personality_details,
    "equipment": LLMService.suggest_equipment,
    "spells": LLMService.suggest_spells,
}


@app.post("/v1/characters/portrait", response_model=ImageResult)
def character_portrait(character: CharacterContext, request: Request, service: LLMService = Depends(bind_llm_service)):
    """
    Write a portrait prompt for the character and render it with the image provider.
    """
    request.state.request_type = "character_portrait"
    return service.generate_portrait(character.to_context())


@app.post("/v1/characters/{aspect}")
def character_aspect(aspect: str, character: CharacterContext, request: Request, service: LLMService = Depends(bind_llm_service)):
    """
    Generate one aspect of a character (background, traits, values,
    personality-details, equipment, spells).
    """
    helper = CHARACTER_HELPERS.get(aspect)
    if helper is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"unknown character aspect: {aspect}")
    request.state.request_type = aspect
    return helper(service, character.to_context())
