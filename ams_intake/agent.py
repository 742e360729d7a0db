"""LangGraph conversation pipeline for the AMS Intake Assistant.

Architecture:
  One request is one run of a LangGraph ``StateGraph``.  The client
  sends the whole (windowed) history each time, so no checkpointer is
  needed.

    1. **analyze**        - snapshot the directory, extract hints, resolve
                            any provider the client is asking about
    2. **not_configured** - canned reply when no completion key is set
    3. **slots**          - deterministic reply for explicit "what times
                            does <provider> have" requests
    4. **compose**        - match providers, render the context block,
                            fetch optional snippets, build the messages
    5. **chatbot**        - one completion call
    6. **nudge**          - one sequential retry when the first reply is
                            degenerate; its answer replaces the first
    7. **finalize**       - continuation marker on truncation, fallback
                            text when the reply is still empty

  Routing:
    analyze → (no key?)        → not_configured → END
    analyze → (slot request?)  → slots → END
    analyze → (otherwise)      → compose → chatbot → (degenerate?) → nudge → finalize → END
                                                   → (fine?)       → finalize → END

  Completion failures (:class:`CompletionError`) propagate out of the
  graph; the nudge never retries a hard upstream failure.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable

import httpx
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from ams_intake import config
from ams_intake.context.builder import ContextOptions, RenderedContext, build_context
from ams_intake.context.slots import (
    format_slot,
    pagination_anchor,
    reference_now,
    soonest_slots_for,
    upcoming_provider_ids,
)
from ams_intake.conversation import Turn, last_assistant_text
from ams_intake.directory.models import Provider
from ams_intake.directory.store import DirectorySnapshot, DirectoryStore
from ams_intake.matching.engine import Constraints, MatchResult, select_providers
from ams_intake.matching.hints import Hints, extract_hints
from ams_intake.matching.resolver import Resolution, refers_back, resolve_provider
from ams_intake.prompts import Instructions, compose_system_prompt
from ams_intake.services.completion import Completion, CompletionClient
from ams_intake.services.retrieval import RetrievalError, SearchClient, Snippet

logger = logging.getLogger(__name__)

NOT_CONFIGURED_REPLY = "Hello! (Model not configured yet.)"
EMPTY_REPLY_FALLBACK = (
    "I'm sorry, I couldn't put together an answer just now. "
    "Could you tell me a little more about what you're looking for?"
)
TRUNCATED_EMPTY_REPLY = "(I hit a token limit. Continue?)"
TRUNCATION_MARKER = " …"

ROUTE_MODEL = "model"
ROUTE_SLOTS = "slots"
ROUTE_NOT_CONFIGURED = "not_configured"


# ── State schema ─────────────────────────────────────────────────────


class IntakeState(TypedDict, total=False):
    """The state that flows through the graph.

    ``message``, ``history`` and ``max_output_tokens`` are the inputs;
    everything else is written by the nodes.  ``route`` and the debug
    fields are internal plumbing surfaced only by ``?debug=1``.
    """

    message: str
    history: list[Turn]
    max_output_tokens: int | None

    now: datetime
    anchor: datetime
    snapshot: DirectorySnapshot
    hints: Hints
    resolution: Resolution
    match: MatchResult
    context: RenderedContext
    snippets: list[Snippet]
    messages: list[dict[str, str]]

    reply: str
    finish_reason: str | None
    usage: dict[str, Any] | None
    route: str
    nudged: bool
    nudge_reason: str | None


# ── Token budget ─────────────────────────────────────────────────────


def effective_max_tokens(
    requested: int | float | None,
    *,
    floor: int = config.DEFAULT_MAX_COMPLETION_TOKENS,
    ceiling: int = config.MAX_COMPLETION_TOKENS_CEILING,
) -> int:
    """Client-requested output tokens, never below *floor* nor above *ceiling*."""
    try:
        value = int(requested) if requested is not None else 0
    except (TypeError, ValueError, OverflowError):
        value = 0
    return min(max(value, floor), max(ceiling, floor))


# ── Nudge policy ─────────────────────────────────────────────────────

_OPENER_RE = re.compile(
    r"^\s*(?:hi|hello|hey|welcome|thanks|thank you|great|sure|of course|absolutely|"
    r"i'?d be (?:happy|glad) to|i can help|happy to help|i understand)\b",
    re.IGNORECASE,
)
_CHECKLIST_RE = re.compile(r"^\s*- \[ \]", re.MULTILINE)


def count_assistant_questions(history: list[Turn]) -> int:
    """Assistant turns that asked the client something."""
    return sum(1 for t in history if t["role"] == "assistant" and "?" in t["content"])


def looks_like_opener(reply: str) -> bool:
    """A reply that only greets or asks, without presenting anything."""
    text = reply.strip()
    if not text or _CHECKLIST_RE.search(text):
        return False
    if not text.rstrip().endswith("?"):
        return False
    return bool(_OPENER_RE.match(text)) or text.count("\n") == 0


def nudge_reason(
    reply: str,
    finish_reason: str | None,
    history: list[Turn],
    *,
    min_questions: int = config.NUDGE_MIN_QUESTIONS,
) -> str | None:
    """Why the first reply deserves one retry, or ``None`` if it does not."""
    if not reply.strip():
        return "empty"
    if finish_reason == "content_filter":
        return "content_filter"
    if count_assistant_questions(history) >= min_questions and looks_like_opener(reply):
        return "non_progressing"
    return None


# ── Deterministic slot replies ───────────────────────────────────────


def _provider_title(provider: Provider) -> str:
    if provider.credentials:
        return f"{provider.name} ({provider.credentials})"
    return provider.name


def render_slot_reply(
    provider: Provider,
    snapshot: DirectorySnapshot,
    *,
    anchor: datetime,
    limit: int,
    paging: bool = False,
) -> str:
    slots = soonest_slots_for(snapshot.slots, provider.id, after=anchor, limit=limit)
    title = _provider_title(provider)
    if not slots:
        later = " after the times I already shared" if paging else ""
        return (
            f"I don't see any upcoming openings for {title}{later} in the current schedule. "
            "Would you like me to suggest other providers who match what you're looking for?"
        )
    intro = "Here are the next openings" if not paging else "Here are later openings"
    lines = [f"{intro} for {title}:"]
    lines.extend(f"- [ ] {format_slot(s.date, s.time)}" for s in slots)
    lines.append("")
    lines.append("Would one of these work for you, or should I look further out?")
    return "\n".join(lines)


def render_candidates_reply(candidates: list[Provider]) -> str:
    lines = ["I found more than one provider with that name:"]
    for p in candidates:
        states = ", ".join(p.licensed_states) or "states not listed"
        lines.append(f"- {_provider_title(p)}, {p.role}, {states}")
    lines.append("")
    lines.append("Which one did you mean?")
    return "\n".join(lines)


def wants_slot_branch(hints: Hints, resolution: Resolution, message: str) -> bool:
    """True when the hard branch should answer instead of the model."""
    if not (hints.wants_slots or hints.wants_more_slots):
        return False
    if resolution.ambiguous:
        return resolution.source == "message"
    if not resolution.found:
        return False
    if resolution.source == "message":
        return True
    return refers_back(message) or hints.wants_more_slots


# ── Nodes ────────────────────────────────────────────────────────────


def _make_analyze_node(store: DirectoryStore, clock: Callable[[], datetime]):
    """Create the node that reads the snapshot and the conversation."""

    def analyze_node(state: IntakeState) -> dict:
        snapshot = store.snapshot()
        history = state.get("history") or []
        message = state["message"]
        now = clock()

        hints = extract_hints(history, message)
        anchor = pagination_anchor(
            now, wants_more=hints.wants_more_slots, previous_reply=last_assistant_text(history),
        )
        resolution = Resolution()
        if hints.wants_slots or hints.wants_more_slots:
            resolution = resolve_provider(
                message,
                snapshot.providers,
                history=history,
                constraints=Constraints.from_hints(hints),
                slots=snapshot.slots,
                now=now,
            )
        logger.debug("Hints: %s; resolution: %s", hints.as_dict(), resolution)
        return {
            "snapshot": snapshot,
            "now": now,
            "anchor": anchor,
            "hints": hints,
            "resolution": resolution,
            "nudged": False,
        }

    return analyze_node


def _make_slots_node(slots_per_provider: int):
    """Create the node that answers explicit slot requests from the schedule."""

    def slots_node(state: IntakeState) -> dict:
        snapshot = state["snapshot"]
        resolution = state["resolution"]
        if resolution.ambiguous:
            candidates = [
                p for pid in resolution.candidates if (p := snapshot.provider(pid)) is not None
            ]
            reply = render_candidates_reply(candidates)
        else:
            provider = snapshot.provider(resolution.provider_id)
            reply = render_slot_reply(
                provider,
                snapshot,
                anchor=state["anchor"],
                limit=slots_per_provider,
                paging=state["hints"].wants_more_slots,
            )
        logger.debug("Slot branch answered (candidates=%s)", resolution.candidates)
        return {"reply": reply, "finish_reason": "stop", "route": ROUTE_SLOTS}

    return slots_node


def _not_configured_node(state: IntakeState) -> dict:
    return {"reply": NOT_CONFIGURED_REPLY, "finish_reason": None, "route": ROUTE_NOT_CONFIGURED}


def _make_compose_node(
    instructions: Instructions,
    retriever: SearchClient | None,
    options: ContextOptions,
    per_role_cap: int,
    timezone: str,
):
    """Create the node that builds the outbound completion messages."""

    def compose_node(state: IntakeState) -> dict:
        snapshot = state["snapshot"]
        hints = state["hints"]
        now = state["now"]

        match = select_providers(
            snapshot.providers,
            hints,
            upcoming_ids=upcoming_provider_ids(snapshot.slots, after=now),
            per_role_cap=per_role_cap,
        )
        context = build_context(match, snapshot, now=now, anchor=state["anchor"], options=options)

        snippets: list[Snippet] = []
        if retriever is not None:
            try:
                snippets = retriever.retrieve(state["message"])
            except (RetrievalError, httpx.HTTPError) as exc:
                logger.warning("Retrieval failed, continuing without snippets: %s", exc)

        system = compose_system_prompt(
            instructions, context.text, now=now, timezone=timezone, snippets=snippets,
        )
        messages = [{"role": "system", "content": system}]
        messages.extend(state.get("history") or [])
        messages.append({"role": "user", "content": state["message"]})
        return {"match": match, "context": context, "snippets": snippets, "messages": messages}

    return compose_node


def _completion_update(completion: Completion) -> dict:
    return {
        "reply": completion.text,
        "finish_reason": completion.finish_reason,
        "usage": completion.usage,
        "route": ROUTE_MODEL,
    }


def _make_chatbot_node(completion: CompletionClient, temperature: float, min_questions: int):
    """Create the node that makes the completion call and judges the reply."""

    def chatbot_node(state: IntakeState) -> dict:
        result = completion.complete(
            state["messages"],
            temperature=temperature,
            max_tokens=effective_max_tokens(state.get("max_output_tokens")),
        )
        reason = nudge_reason(
            result.text,
            result.finish_reason,
            state.get("history") or [],
            min_questions=min_questions,
        )
        return {**_completion_update(result), "nudge_reason": reason}

    return chatbot_node


def _make_nudge_node(
    completion: CompletionClient,
    instructions: Instructions,
    temperature: float,
    timezone: str,
):
    """Create the node that retries once with the nudge instruction."""

    def nudge_node(state: IntakeState) -> dict:
        system = compose_system_prompt(
            instructions,
            state["context"].text,
            now=state["now"],
            timezone=timezone,
            snippets=state.get("snippets") or [],
            nudge=True,
        )
        messages = [{"role": "system", "content": system}, *state["messages"][1:]]
        logger.info("Nudging completion (%s)", state.get("nudge_reason"))
        result = completion.complete(
            messages,
            temperature=temperature,
            max_tokens=effective_max_tokens(state.get("max_output_tokens")),
        )
        return {**_completion_update(result), "nudged": True}

    return nudge_node


def _finalize_node(state: IntakeState) -> dict:
    reply = (state.get("reply") or "").strip()
    if state.get("finish_reason") == "length":
        reply = f"{reply}{TRUNCATION_MARKER}" if reply else TRUNCATED_EMPTY_REPLY
    if not reply:
        reply = EMPTY_REPLY_FALLBACK
    return {"reply": reply}


# ── Conditional edges ────────────────────────────────────────────────


def _make_entry_router(configured: bool):
    def route_request(state: IntakeState) -> str:
        if not configured:
            return "not_configured"
        if wants_slot_branch(state["hints"], state["resolution"], state["message"]):
            return "slots"
        return "compose"

    return route_request


def should_nudge(state: IntakeState) -> str:
    """Retry once when the chatbot flagged its reply as degenerate."""
    if state.get("nudge_reason") and not state.get("nudged"):
        return "nudge"
    return "finalize"


# ── Graph assembly ───────────────────────────────────────────────────


def create_intake_agent(
    store: DirectoryStore,
    *,
    completion: CompletionClient | None = None,
    retriever: SearchClient | None = None,
    instructions: Instructions | None = None,
    clock: Callable[[], datetime] | None = None,
    options: ContextOptions | None = None,
    per_role_cap: int = config.PROVIDERS_PER_ROLE,
    temperature: float = config.LLM_TEMPERATURE,
    nudge_min_questions: int = config.NUDGE_MIN_QUESTIONS,
    timezone: str = config.REFERENCE_TIMEZONE,
):
    """Build and compile the intake LangGraph pipeline.

    ``completion=None`` is the "not configured" state: every request is
    answered with :data:`NOT_CONFIGURED_REPLY`.

    Returns a compiled graph that can be invoked with:
        graph.invoke({"message": "...", "history": [...], "max_output_tokens": None})
    """
    instructions = instructions or Instructions()
    clock = clock or (lambda: reference_now(timezone))
    options = options or ContextOptions(
        char_budget=config.CONTEXT_CHAR_BUDGET,
        max_providers=config.CONTEXT_MAX_PROVIDERS,
        slots_per_provider=config.SLOTS_PER_PROVIDER,
        index_char_budget=config.AVAILABILITY_INDEX_CHAR_BUDGET,
    )

    graph = StateGraph(IntakeState)

    graph.add_node("analyze", _make_analyze_node(store, clock))
    graph.add_node("not_configured", _not_configured_node)
    graph.add_node("slots", _make_slots_node(options.slots_per_provider))
    graph.add_node(
        "compose", _make_compose_node(instructions, retriever, options, per_role_cap, timezone),
    )
    graph.add_node("finalize", _finalize_node)

    graph.set_entry_point("analyze")
    graph.add_conditional_edges(
        "analyze",
        _make_entry_router(completion is not None),
        {"not_configured": "not_configured", "slots": "slots", "compose": "compose"},
    )
    graph.add_edge("not_configured", END)
    graph.add_edge("slots", END)

    if completion is not None:
        graph.add_node("chatbot", _make_chatbot_node(completion, temperature, nudge_min_questions))
        graph.add_node(
            "nudge", _make_nudge_node(completion, instructions, temperature, timezone),
        )
        graph.add_edge("compose", "chatbot")
        graph.add_conditional_edges(
            "chatbot",
            should_nudge,
            {"nudge": "nudge", "finalize": "finalize"},
        )
        graph.add_edge("nudge", "finalize")
    else:
        graph.add_edge("compose", "finalize")

    graph.add_edge("finalize", END)

    compiled = graph.compile()
    logger.debug(
        "Intake agent compiled (completion=%s, retrieval=%s)",
        completion is not None, retriever is not None,
    )
    return compiled
