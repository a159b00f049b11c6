"""
Querypilot - ClickHouse console chat backend
FastAPI app serving the NDJSON chat turn stream
"""

from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routers import chat
from routers.chat_orchestration import TurnMultiplexer, build_default_registry
from errors import QuerypilotError, ValidationError, ErrorCode, error_response, http_status_for
from middleware import SecurityHeadersMiddleware, RequestSizeLimitMiddleware
from logging_config import setup_logging
from services.llm_config import PROVIDERS, list_models
from utils.llm import close_llm_clients
from config import runtime_config

setup_logging(runtime_config.log_level)
logger = logging.getLogger(__name__)

# Instance ID - changes on every startup, used by frontend to detect restarts
INSTANCE_ID = str(uuid.uuid4())


def configured_providers() -> list:
    """Providers with a credential set, in auto-selection order."""
    return [name for name, spec in PROVIDERS.items() if getattr(runtime_config, spec.key_field, "")]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    registry = build_default_registry()
    app.state.agent_registry = registry
    app.state.multiplexer = TurnMultiplexer(registry)

    providers = configured_providers()
    if providers:
        logger.info(f"Model providers configured: {', '.join(providers)}")
    else:
        logger.warning("No provider API key configured; requests must bring their own model")
    logger.info(f"{runtime_config.app_name} ready (instance {INSTANCE_ID[:8]})")

    yield

    # Shutdown
    await close_llm_clients()
    logger.info(f"{runtime_config.app_name} signing off")


app = FastAPI(
    title=runtime_config.app_name,
    description="AI chat for ClickHouse SQL",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(QuerypilotError)
async def querypilot_error_handler(request: Request, exc: QuerypilotError):
    status = http_status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status, content=error_response(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problem = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in problem.get("loc", ())) or "body"
    error = ValidationError(
        f"Invalid request: {location}",
        details=problem.get("msg"),
        code=ErrorCode.VALIDATION_INVALID_FORMAT,
        parameter=location,
    )
    return JSONResponse(status_code=400, content=error_response(error))


app.add_middleware(SecurityHeadersMiddleware)

# Request body size limit
app.add_middleware(RequestSizeLimitMiddleware, max_bytes=runtime_config.max_request_bytes)

# CORS - the console frontend only
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=runtime_config.cors_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Routers (chat router carries its own /api/chat prefix)
app.include_router(chat.router, tags=["chat"])


@app.get("/health")
async def health(request: Request):
    """Liveness plus what this instance can route to."""
    registry = getattr(request.app.state, "agent_registry", None)
    providers = configured_providers()
    return {
        "status": "healthy" if providers else "degraded",
        "service": runtime_config.app_name,
        "instance_id": INSTANCE_ID,
        "intents": registry.ids() if registry is not None else [],
        "providers": providers,
    }


@app.get("/api/models")
async def models():
    """Model catalogue for the settings UI."""
    return {"models": list_models(), "configured": configured_providers()}


@app.get("/api/config")
async def get_runtime_config():
    """Current runtime configuration, secrets redacted."""
    return runtime_config.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
