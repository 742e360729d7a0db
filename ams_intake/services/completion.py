"""Completion capability: one chat call to the hosted model.

Wraps ``ChatAnthropic`` behind a ``complete(messages, temperature,
max_tokens)`` call that returns plain text plus a normalized finish
reason, and turns SDK failures into :class:`CompletionError` with a
machine-readable kind, the upstream status and the raw error body.

Transport retries are disabled: a non-success answer is reported to the
caller, not retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from ams_intake.config import ANTHROPIC_API_KEY, LLM_TIMEOUT_SECONDS, MODEL_NAME
from ams_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

FinishReason = Literal["stop", "length", "content_filter", "other"]

_FINISH_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "refusal": "content_filter",
}


class CompletionError(Exception):
    """Raised when the completion call does not produce a usable answer."""

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        status_code: int | None = None,
        detail: Any = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


@dataclass(frozen=True)
class Completion:
    text: str
    finish_reason: FinishReason = "stop"
    usage: dict[str, Any] | None = field(default=None)


def to_langchain_messages(messages: list[dict[str, str]]) -> list[BaseMessage]:
    """Convert ``{role, content}`` dicts for the Anthropic chat model.

    System entries are merged into one leading system message, and
    assistant turns before the first user turn are dropped (the API
    requires the conversation to open with the user).
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system" and m["content"]]
    converted: list[BaseMessage] = []
    if system_parts:
        converted.append(SystemMessage(content="\n\n".join(system_parts)))

    seen_user = False
    for m in messages:
        if m["role"] == "system":
            continue
        if m["role"] == "assistant":
            if seen_user:
                converted.append(AIMessage(content=m["content"]))
            continue
        seen_user = True
        converted.append(HumanMessage(content=m["content"]))
    return converted


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    raise CompletionError(
        f"Unexpected completion content type: {type(content).__name__}",
        kind="malformed_response",
    )


class CompletionClient:
    """Calls the hosted model through LangChain's Anthropic integration."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        *,
        timeout: float | None = None,
        llm_factory: Callable[..., Any] | None = None,
    ):
        self._api_key = api_key or ANTHROPIC_API_KEY
        self.model = model or MODEL_NAME
        self._timeout = timeout or LLM_TIMEOUT_SECONDS
        # Injectable for tests
        self._llm_factory = llm_factory or ChatAnthropic

    def _build_llm(self, temperature: float, max_tokens: int):
        return self._llm_factory(
            model=self.model,
            api_key=self._api_key,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self._timeout,
            max_retries=0,
        )

    def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        llm = self._build_llm(temperature, max_tokens)
        try:
            with metrics.track("anthropic", "complete"):
                response = llm.invoke(to_langchain_messages(messages))
        except anthropic.APITimeoutError as exc:
            logger.warning("Completion timed out after %.0fs", self._timeout)
            raise CompletionError("The model did not answer in time.", kind="upstream_timeout") from exc
        except anthropic.APIConnectionError as exc:
            logger.warning("Completion endpoint unreachable: %s", exc)
            raise CompletionError("The model endpoint is unreachable.", kind="upstream_unreachable") from exc
        except anthropic.APIStatusError as exc:
            logger.error("Completion failed with status %s", exc.status_code)
            raise CompletionError(
                f"LLM error {exc.status_code}",
                kind="upstream_error",
                status_code=exc.status_code,
                detail=exc.body,
            ) from exc

        metadata = getattr(response, "response_metadata", None) or {}
        stop_reason = metadata.get("stop_reason")
        finish_reason = _FINISH_REASONS.get(stop_reason or "", "other")
        usage = getattr(response, "usage_metadata", None)

        text = _message_text(response).strip()
        logger.debug(
            "Completion finished (%s, %d chars, model=%s)", stop_reason, len(text), self.model,
        )
        return Completion(
            text=text,
            finish_reason=finish_reason,
            usage=dict(usage) if usage else None,
        )
