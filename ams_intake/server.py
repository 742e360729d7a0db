"""FastAPI server for the AMS Intake Assistant.

Run with:
    uvicorn ams_intake.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ams_intake import config
from ams_intake.agent import create_intake_agent
from ams_intake.api.routes import router
from ams_intake.directory.store import DirectoryStore
from ams_intake.prompts import load_instructions
from ams_intake.services.completion import CompletionClient, CompletionError
from ams_intake.services.emr_client import get_emr_client
from ams_intake.services.retrieval import build_search_client

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: load instructions, open the data store, compile the agent.

    Optional collaborators (completion, search, EMR) are only built when
    configured; the agent degrades to the canned reply without a key.
    """
    store = DirectoryStore(
        config.DATA_DIR / config.PROVIDERS_FILE,
        config.DATA_DIR / config.SCHEDULE_FILE,
        reload_each_request=config.RELOAD_DATA_EACH_REQUEST,
    )
    instructions = load_instructions(config.PROMPTS_DIR)
    completion = CompletionClient() if config.llm_configured() else None
    if completion is None:
        logger.warning("ANTHROPIC_API_KEY not set; chat will answer with the canned reply")

    application.state.store = store
    application.state.instructions = instructions
    application.state.emr = get_emr_client()
    logger.info("Compiling LangGraph agent…")
    application.state.agent = create_intake_agent(
        store,
        completion=completion,
        retriever=build_search_client(),
        instructions=instructions,
    )
    logger.info("Agent ready.")
    yield


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="AMS Intake Assistant",
    description=(
        "Behavioral-health intake assistant: matches clients with "
        "providers and shows their upcoming openings."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the browser chat client) ───────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header and prefixes
    the route log lines for this request.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Structured errors ────────────────────────────────────────────────


def error_response(
    status_code: int,
    kind: str,
    message: str,
    *,
    upstream_status: int | None = None,
    detail: Any = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "kind": kind,
                "message": message,
                "status": upstream_status,
                "detail": detail,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    message = errors[0]["msg"] if errors else "Invalid request"
    return error_response(400, "invalid_request", message, detail=errors)


@app.exception_handler(CompletionError)
async def handle_completion_error(request: Request, exc: CompletionError):
    request_id = getattr(request.state, "request_id", "?")
    logger.error("[%s] Completion failed: %s (%s)", request_id, exc, exc.kind)
    status_code = 504 if exc.kind == "upstream_timeout" else 502
    return error_response(
        status_code, exc.kind, str(exc), upstream_status=exc.status_code, detail=exc.detail,
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, "http_error", str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    # Full traceback stays server-side
    request_id = getattr(request.state, "request_id", "?")
    logger.exception("[%s] Unhandled error processing %s", request_id, request.url.path)
    return error_response(500, "internal_error", "An internal error occurred. Please try again.")


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "AMS Intake Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting AMS Intake API server on %s:%d", config.SERVER_HOST, config.SERVER_PORT)
    uvicorn.run(
        "ams_intake.server:app",
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        reload=True,
    )
