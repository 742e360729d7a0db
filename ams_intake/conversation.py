"""Conversation turns supplied by the client on every request."""

from __future__ import annotations

from typing import Any, Iterable, Literal

from typing_extensions import TypedDict


class Turn(TypedDict):
    role: Literal["user", "assistant"]
    content: str


def normalize_history(raw: Iterable[Any] | None, max_turns: int) -> list[Turn]:
    """Window and coerce client-supplied history.

    Only the last ``max_turns`` entries are considered.  Unrecognised
    roles become ``"user"`` and entries whose content is blank are dropped.
    """
    if not raw:
        return []
    entries = list(raw)[-max_turns:] if max_turns > 0 else []

    turns: list[Turn] = []
    for entry in entries:
        if isinstance(entry, dict):
            role, content = entry.get("role"), entry.get("content")
        else:
            role, content = getattr(entry, "role", None), getattr(entry, "content", None)
        text = str(content if content is not None else "").strip()
        if not text:
            continue
        turns.append({"role": "assistant" if role == "assistant" else "user", "content": text})
    return turns


def user_texts_recent_first(history: list[Turn], message: str) -> list[str]:
    """The latest message followed by earlier user turns, newest first."""
    texts = [message] if message else []
    texts.extend(t["content"] for t in reversed(history) if t["role"] == "user")
    return texts


def last_assistant_text(history: list[Turn]) -> str | None:
    for turn in reversed(history):
        if turn["role"] == "assistant":
            return turn["content"]
    return None
