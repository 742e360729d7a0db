"""Immutable directory snapshots and the store that loads them.

A :class:`DirectorySnapshot` bundles everything parsed from the two data
artifacts.  Request handling receives one snapshot and never touches
the files again, so a request sees a consistent view even if the files
change mid-flight.

:class:`DirectoryStore` memoises the latest snapshot together with the
files' ``(mtime_ns, size)`` fingerprint: unchanged files are
parsed once, and an edit on disk is picked up by the next request
without a restart.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from ams_intake.directory.models import Provider, Slot
from ams_intake.directory.parser import parse_providers
from ams_intake.directory.schedule import build_slot_index, parse_schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectorySnapshot:
    providers: tuple[Provider, ...] = ()
    slots: tuple[Slot, ...] = ()
    slot_index: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    providers_present: bool = False
    schedule_present: bool = False

    def slots_for(self, provider_id: str) -> list[Slot]:
        key = provider_id.lower()
        return [s for s in self.slots if s.provider_id == key]

    def provider(self, provider_id: str) -> Provider | None:
        """First provider with *provider_id* (ids are not deduplicated)."""
        for provider in self.providers:
            if provider.id.lower() == provider_id.lower():
                return provider
        return None


def build_snapshot(providers_text: str | None, schedule_text: str | None) -> DirectorySnapshot:
    """Parse both artifacts into a snapshot (pure function of its inputs)."""
    providers = parse_providers(providers_text)
    slots = parse_schedule(schedule_text)
    index = {pid: tuple(stamps) for pid, stamps in build_slot_index(slots).items()}
    return DirectorySnapshot(
        providers=tuple(providers),
        slots=tuple(slots),
        slot_index=MappingProxyType(index),
        providers_present=bool((providers_text or "").strip()),
        schedule_present=bool((schedule_text or "").strip()),
    )


def _read_if_exists(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("Data file not found at %s", path)
        return ""


class DirectoryStore:
    """Loads :class:`DirectorySnapshot` objects from the data files."""

    def __init__(
        self,
        providers_path: Path,
        schedule_path: Path,
        *,
        reload_each_request: bool = False,
    ) -> None:
        self.providers_path = Path(providers_path)
        self.schedule_path = Path(schedule_path)
        self._reload_each_request = reload_each_request
        # (fingerprint, snapshot) of the last load
        self._memo: tuple[str, DirectorySnapshot] | None = None
        self._lock = threading.Lock()

    def _fingerprint(self) -> str:
        parts = []
        for path in (self.providers_path, self.schedule_path):
            try:
                stat = path.stat()
                parts.append(f"{path.name}@{stat.st_mtime_ns}:{stat.st_size}")
            except FileNotFoundError:
                parts.append(f"{path.name}@missing")
        return "|".join(parts)

    def _load(self) -> DirectorySnapshot:
        snapshot = build_snapshot(
            _read_if_exists(self.providers_path),
            _read_if_exists(self.schedule_path),
        )
        logger.info(
            "Directory loaded: %d providers, %d slots",
            len(snapshot.providers), len(snapshot.slots),
        )
        return snapshot

    def snapshot(self) -> DirectorySnapshot:
        """Return the snapshot for the files as they are on disk now."""
        if self._reload_each_request:
            return self._load()

        fingerprint = self._fingerprint()
        with self._lock:
            if self._memo is not None and self._memo[0] == fingerprint:
                return self._memo[1]
            snapshot = self._load()
            self._memo = (fingerprint, snapshot)
            return snapshot

    def invalidate(self) -> bool:
        """Forget the memoised snapshot so the next call re-parses."""
        with self._lock:
            dropped = self._memo is not None
            self._memo = None
            return dropped

    def files_present(self) -> dict[str, bool]:
        return {
            "providers_txt": self.providers_path.exists(),
            "provider_schedule_txt": self.schedule_path.exists(),
        }
