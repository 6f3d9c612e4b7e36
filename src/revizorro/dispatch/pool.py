"""Bounded set of live worker slots with semaphore-based admission."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from revizorro.dispatch.models import WorkItem

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PoolSlot:
    """One live invocation: the thread running it and its work item."""

    handle: threading.Thread
    item: WorkItem


class SlotPool:
    """Counting semaphore plus the set of slots currently holding a permit.

    A permit is taken before a slot is spawned and given back only after the
    slot has left the live set, so ``live_count`` never exceeds ``limit``.
    """

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self._live: dict[str, PoolSlot] = {}
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._live)

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak

    def live_items(self) -> list[WorkItem]:
        with self._lock:
            return [slot.item for slot in self._live.values()]

    def acquire(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for a free permit."""

        return self._semaphore.acquire(timeout=timeout)

    def release_unused(self) -> None:
        """Return a permit that was acquired but never used for a slot."""

        self._semaphore.release()

    def spawn(self, item: WorkItem, target: Callable[[], None]) -> PoolSlot:
        """Run ``target`` in a new slot. The caller must already hold a permit."""

        thread = threading.Thread(
            target=self._run_slot,
            args=(item.identity, target),
            name=f"slot-{item.index}",
            daemon=True,
        )
        slot = PoolSlot(handle=thread, item=item)
        with self._lock:
            if item.identity in self._live:
                self._semaphore.release()
                raise ValueError(f"Item already has a live slot: {item.identity}")
            self._live[item.identity] = slot
            self._peak = max(self._peak, len(self._live))
        try:
            thread.start()
        except RuntimeError:
            self._release(item.identity)
            raise
        return slot

    def join(self) -> None:
        """Wait for every live slot to finish."""

        with self._lock:
            slots = list(self._live.values())
        for slot in slots:
            slot.handle.join()

    def _run_slot(self, identity: str, target: Callable[[], None]) -> None:
        try:
            target()
        finally:
            self._release(identity)

    def _release(self, identity: str) -> None:
        with self._lock:
            self._live.pop(identity, None)
        self._semaphore.release()
