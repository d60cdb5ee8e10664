"""
Per-request memoization of rule outcomes.

A rule guarding several fields of one request runs once: the first caller
starts the evaluation as a task, later callers for the same key await that
same task, whether it is still running or already done.
"""

import asyncio
import dataclasses
import hashlib
import json
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict

from pydantic import BaseModel

from shared.logging import get_logger


@dataclass(frozen=True)
class CacheKey:
    """(rule identity, parent fingerprint, argument fingerprint)."""
    rule: str
    parent: str
    args: str


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return repr(value)


def fingerprint(value: Any) -> str:
    """Stable digest of a parent value or argument mapping."""
    if value is None:
        return ""
    payload = json.dumps(value, sort_keys=True, default=_json_default)
    return hashlib.md5(payload.encode()).hexdigest()


class RequestCache:
    """Request-scoped outcome cache with in-flight de-duplication.

    Lookup and insert in :meth:`get_or_compute` happen with no await in
    between, so on a single event loop the entry map needs no lock.
    """

    def __init__(self):
        self.logger = get_logger("graphql.shield.cache")
        self._entries: Dict[CacheKey, asyncio.Future] = {}
        self._closed = False
        self.hits = 0
        self.misses = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    async def get_or_compute(self, key: CacheKey, compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the outcome for ``key``, computing it at most once."""
        if self._closed:
            # Request already finished; nothing may be recorded for it.
            return await compute()

        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            entry = asyncio.ensure_future(compute())
            self._entries[key] = entry
            entry.add_done_callback(partial(self._on_done, key))
        else:
            self.hits += 1

        # One caller being cancelled must not cancel the shared evaluation.
        return await asyncio.shield(entry)

    def _on_done(self, key: CacheKey, entry: asyncio.Future) -> None:
        if entry.cancelled() or entry.exception() is not None:
            if self._entries.get(key) is entry:
                del self._entries[key]

    def close(self) -> None:
        """Cancel in-flight evaluations and forget every outcome."""
        if self._closed:
            return
        self._closed = True
        pending = 0
        for entry in self._entries.values():
            if not entry.done():
                entry.cancel()
                pending += 1
        self.logger.debug("Request cache closed", **self.stats(), cancelled=pending)
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "entries": len(self._entries)}
