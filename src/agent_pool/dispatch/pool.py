"""
agent-pool — agent pool container

File: src/agent_pool/dispatch/pool.py
Last updated: 2026-10-19

Purpose
- Authoritative, lock-guarded sequence of agent entries and their failure counters.

What should be included in this file
- AgentEntry (mutable bookkeeping) and AgentInfo (immutable snapshot).
- Selection of a uniformly random valid entry.
- Counter updates that report the valid -> invalid transition.
- Lookup, statistics snapshots and bulk reset.

Functional requirements
- Entries are never removed or reordered, so an index stays stable for the pool lifetime.
- An entry is valid iff failure_count < max_failures.
- A success resets the counter; a failure increments it up to max_failures.

Non-functional requirements
- The lock is held only for in-memory work; nothing in this module awaits I/O under it.
"""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

from agent_pool.providers.base import AgentHandle, JSONValue, _validate_non_empty_str

DEFAULT_MAX_FAILURES = 3

InvalidationCallback = Callable[[int], None]


@dataclass(frozen=True, slots=True)
class AgentInfo:
    """Point-in-time view of one pool entry."""

    id: int
    provider: str
    model: str
    failure_count: int
    max_failures: int

    @property
    def is_valid(self) -> bool:
        return self.failure_count < self.max_failures

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "failure_count": self.failure_count,
            "max_failures": self.max_failures,
            "is_valid": self.is_valid,
        }


@dataclass(slots=True)
class AgentEntry:
    """Pool-side record of one agent. Mutated only under the pool lock."""

    id: int
    handle: AgentHandle
    provider: str
    model: str
    max_failures: int = DEFAULT_MAX_FAILURES
    failure_count: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise TypeError("AgentEntry.id must be an int")
        if not isinstance(self.handle, AgentHandle):
            raise TypeError("AgentEntry.handle must implement AgentHandle")
        self.provider = _validate_non_empty_str(self.provider, "AgentEntry.provider")
        self.model = _validate_non_empty_str(self.model, "AgentEntry.model")
        if self.max_failures < 1:
            raise ValueError("AgentEntry.max_failures must be >= 1")
        if not (0 <= self.failure_count <= self.max_failures):
            raise ValueError("AgentEntry.failure_count must be within [0, max_failures]")

    @property
    def is_valid(self) -> bool:
        return self.failure_count < self.max_failures

    def info(self) -> AgentInfo:
        return AgentInfo(
            id=self.id,
            provider=self.provider,
            model=self.model,
            failure_count=self.failure_count,
            max_failures=self.max_failures,
        )


class FailureStat(NamedTuple):
    index: int
    failure_count: int
    max_failures: int


@dataclass(frozen=True, slots=True)
class UpdateOutcome:
    """Result of applying one call outcome to an entry."""

    is_valid: bool
    invalidated: bool
    failure_count: int


@dataclass(frozen=True, slots=True)
class Selection:
    """Entry picked for one call: its stable index, identity snapshot and handle."""

    index: int
    info: AgentInfo
    handle: AgentHandle


class AgentPool:
    """Insertion-ordered agent entries behind one asyncio lock."""

    def __init__(self, entries: list[AgentEntry] | None = None) -> None:
        self._entries: list[AgentEntry] = list(entries) if entries is not None else []
        self._lock = asyncio.Lock()

    async def push(self, entry: AgentEntry) -> int:
        """Append an entry and return its index."""

        if not isinstance(entry, AgentEntry):
            raise TypeError("entry must be AgentEntry")
        async with self._lock:
            self._entries.append(entry)
            return len(self._entries) - 1

    async def len_valid(self) -> int:
        async with self._lock:
            return sum(1 for entry in self._entries if entry.is_valid)

    async def len_total(self) -> int:
        async with self._lock:
            return len(self._entries)

    async def is_empty(self) -> bool:
        """True when no entry is currently selectable."""

        return await self.len_valid() == 0

    async def select_valid_index(self, rng: random_module.Random | None = None) -> int | None:
        async with self._lock:
            return self._pick_valid_index(rng)

    async def checkout(self, rng: random_module.Random | None = None) -> Selection | None:
        """Pick a valid entry and return everything a caller needs after the lock is gone."""

        async with self._lock:
            index = self._pick_valid_index(rng)
            if index is None:
                return None
            entry = self._entries[index]
            return Selection(index=index, info=entry.info(), handle=entry.handle)

    async def update(
        self,
        index: int,
        success: bool,
        *,
        on_invalid: InvalidationCallback | None = None,
    ) -> UpdateOutcome:
        """Apply a call outcome to the entry at ``index``.

        ``on_invalid`` is called with the entry id while the lock is still held, and
        only for the failure that moves the entry from valid to invalid. It must not
        call back into the pool.
        """

        async with self._lock:
            entry = self._entry_at(index)
            if success:
                entry.failure_count = 0
                return UpdateOutcome(is_valid=True, invalidated=False, failure_count=0)

            was_valid = entry.is_valid
            entry.failure_count = min(entry.failure_count + 1, entry.max_failures)
            invalidated = was_valid and not entry.is_valid
            if invalidated and on_invalid is not None:
                on_invalid(entry.id)
            return UpdateOutcome(
                is_valid=entry.is_valid,
                invalidated=invalidated,
                failure_count=entry.failure_count,
            )

    async def info_at(self, index: int) -> AgentInfo:
        async with self._lock:
            return self._entry_at(index).info()

    async def find_by_id(self, agent_id: int) -> AgentInfo | None:
        async with self._lock:
            for entry in self._entries:
                if entry.id == agent_id:
                    return entry.info()
            return None

    async def find_by(self, provider: str, model: str) -> AgentInfo | None:
        async with self._lock:
            for entry in self._entries:
                if entry.provider == provider and entry.model == model:
                    return entry.info()
            return None

    async def snapshot_stats(self) -> tuple[list[FailureStat], list[AgentInfo]]:
        async with self._lock:
            stats = [
                FailureStat(index, entry.failure_count, entry.max_failures)
                for index, entry in enumerate(self._entries)
            ]
            infos = [entry.info() for entry in self._entries]
            return stats, infos

    async def handles(self) -> list[AgentHandle]:
        """Distinct handles in insertion order."""

        async with self._lock:
            seen: dict[int, AgentHandle] = {}
            for entry in self._entries:
                seen.setdefault(id(entry.handle), entry.handle)
            return list(seen.values())

    async def reset_all(self) -> None:
        async with self._lock:
            for entry in self._entries:
                entry.failure_count = 0

    def _pick_valid_index(self, rng: random_module.Random | None) -> int | None:
        valid = [index for index, entry in enumerate(self._entries) if entry.is_valid]
        if not valid:
            return None
        chooser = rng if rng is not None else random_module
        return valid[chooser.randrange(len(valid))]

    def _entry_at(self, index: int) -> AgentEntry:
        if not (0 <= index < len(self._entries)):
            raise IndexError(f"no pool entry at index {index}")
        return self._entries[index]


__all__ = [
    "DEFAULT_MAX_FAILURES",
    "AgentEntry",
    "AgentInfo",
    "AgentPool",
    "FailureStat",
    "InvalidationCallback",
    "Selection",
    "UpdateOutcome",
]
