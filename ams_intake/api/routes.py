"""FastAPI route definitions for the intake assistant API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from fastapi import APIRouter, HTTPException, Request

from ams_intake import config
from ams_intake.api.schemas import (
    ChatRequest,
    ChatResponse,
    DiagResponse,
    HealthResponse,
    LookupResponse,
)
from ams_intake.conversation import normalize_history
from ams_intake.directory.models import Provider
from ams_intake.directory.store import DirectorySnapshot
from ams_intake.matching.engine import Constraints, filter_providers, language_matches
from ams_intake.matching.hints import detect_role_preference
from ams_intake.services.emr_client import EMRAPIError
from ams_intake.vocabulary import normalize_insurer, normalize_language, normalize_state

logger = logging.getLogger(__name__)

router = APIRouter()

DEBUG_PREVIEW_PROVIDERS = 5


def _get_agent(request: Request):
    """Retrieve the compiled LangGraph agent from app state.

    The agent is built once during the FastAPI lifespan (see
    ``server.py``).
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return agent


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "?")


# ── Debug payload ────────────────────────────────────────────────────


def _preview_line(provider: Provider) -> str:
    return " | ".join([
        provider.id,
        provider.name,
        provider.role,
        ",".join(provider.licensed_states),
        ",".join(provider.insurers),
        ",".join(provider.languages),
        provider.email or "",
    ])


def _debug_payload(request: Request, result: dict[str, Any], history_len: int) -> dict[str, Any]:
    snapshot: DirectorySnapshot = result.get("snapshot") or DirectorySnapshot()
    instructions = getattr(request.app.state, "instructions", None)
    files_present = instructions.files_present() if instructions is not None else {}
    files_present.update({
        "providers_txt": snapshot.providers_present,
        "provider_schedule_txt": snapshot.schedule_present,
    })
    hints = result.get("hints")
    context = result.get("context")
    return {
        "route": result.get("route"),
        "finish_reason": result.get("finish_reason"),
        "usage": result.get("usage"),
        "nudged": bool(result.get("nudged")),
        "nudge_reason": result.get("nudge_reason"),
        "files_present": files_present,
        "provider_counts": {"providers": len(snapshot.providers), "slots": len(snapshot.slots)},
        "directory_preview": [
            _preview_line(p) for p in snapshot.providers[:DEBUG_PREVIEW_PROVIDERS]
        ],
        "history_len": history_len,
        "hints": hints.as_dict() if hints is not None else None,
        "context_provider_ids": list(context.provider_ids) if context is not None else [],
        "context_truncated": bool(context.truncated) if context is not None else False,
    }


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(request: ChatRequest, http_request: Request, debug: str | None = None):
    """Answer one client message given the recent conversation.

    ``agent.invoke()`` blocks on the completion call, so it runs in the
    default thread-pool via ``asyncio.to_thread`` to keep the event loop
    responsive.  Failures are raised to the exception handlers in
    ``server.py``, which render the structured error body.
    """
    agent = _get_agent(http_request)
    request_id = _request_id(http_request)
    history = normalize_history(request.history, config.MAX_HISTORY_TURNS)

    result = await asyncio.to_thread(
        agent.invoke,
        {
            "message": request.message,
            "history": history,
            "max_output_tokens": request.max_output_tokens,
        },
    )
    logger.info(
        "[%s] Chat answered via %s (nudged=%s)",
        request_id, result.get("route"), bool(result.get("nudged")),
    )

    payload = None
    if debug == "1":
        payload = _debug_payload(http_request, result, len(history))
    return ChatResponse(reply=result["reply"], debug=payload)


@router.get("/providers", response_model=LookupResponse)
async def list_providers(
    http_request: Request,
    insurance: str = "",
    specialty: str = "",
    state: str = "",
    location: str = "",
    language: str = "",
):
    """Providers from the EMR when it answers, otherwise the local directory."""
    emr = getattr(http_request.app.state, "emr", None)
    if emr is not None:
        params = {"insurance": insurance, "specialty": specialty, "location": location or state}
        try:
            items = await asyncio.to_thread(emr.list_providers, params)
        except (EMRAPIError, httpx.HTTPError) as exc:
            logger.warning("[%s] EMR providers lookup failed: %s", _request_id(http_request), exc)
            items = None
        if items is not None:
            return LookupResponse(source="emr", count=len(items), items=items)

    snapshot: DirectorySnapshot = http_request.app.state.store.snapshot()
    insurance, specialty = insurance.strip(), specialty.strip()
    wanted_state = (state or location).strip()
    # Unrecognised values stay as filters so they narrow instead of vanishing
    constraints = Constraints(
        state=(normalize_state(wanted_state) or wanted_state.upper()) if wanted_state else None,
        insurer=(normalize_insurer(insurance) or insurance.lower()) if insurance else None,
        role=(detect_role_preference(specialty) or specialty.lower()) if specialty else None,
    )
    providers, relaxed = filter_providers(snapshot.providers, constraints)
    wanted_language = (normalize_language(language) or language.strip()) if language else None
    if wanted_language:
        providers = [p for p in providers if language_matches(p, wanted_language)]
    if relaxed:
        logger.info("[%s] Provider lookup relaxed the insurance filter", _request_id(http_request))

    items = [p.model_dump(mode="json") for p in providers]
    return LookupResponse(source="directory", count=len(items), items=items)


@router.get("/schedule", response_model=LookupResponse)
async def list_schedule(http_request: Request, prov: str = ""):
    """Open slots from the EMR when it answers, otherwise the schedule file."""
    prov = prov.strip()
    emr = getattr(http_request.app.state, "emr", None)
    if emr is not None:
        try:
            items = await asyncio.to_thread(emr.get_schedule, prov)
        except (EMRAPIError, httpx.HTTPError) as exc:
            logger.warning("[%s] EMR schedule lookup failed: %s", _request_id(http_request), exc)
            items = None
        if items is not None:
            return LookupResponse(source="emr", count=len(items), items=items)

    snapshot: DirectorySnapshot = http_request.app.state.store.snapshot()
    slots = snapshot.slots_for(prov) if prov else list(snapshot.slots)
    items = [s.model_dump(mode="json") for s in slots]
    return LookupResponse(source="directory", count=len(items), items=items)


@router.get("/diag", response_model=DiagResponse)
async def diagnostics(http_request: Request):
    """Report which collaborators are configured, without any secret values."""
    store = http_request.app.state.store
    instructions = getattr(http_request.app.state, "instructions", None)
    files_present = instructions.files_present() if instructions is not None else {}
    files_present.update(store.files_present())
    return DiagResponse(
        completion={"configured": config.llm_configured(), "model": config.MODEL_NAME},
        search={
            "configured": config.search_configured(),
            "endpoint": config.AZURE_SEARCH_ENDPOINT,
            "index": config.AZURE_SEARCH_INDEX,
            "semantic_config": config.AZURE_SEARCH_SEMANTIC_CONFIG,
            "masked": True,
        },
        emr={"configured": config.emr_configured(), "api_key": bool(config.EMR_API_KEY)},
        files_present=files_present,
        reference_timezone=config.REFERENCE_TIMEZONE,
    )
