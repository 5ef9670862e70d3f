"""
DebouncedWriter -- per-row pending-write slots with a quiet-window timer.

Responsibility:
    Collapses bursts of field edits into one persistence write per row.
    Each row id owns one pending slot; a new edit merges its fields into the
    slot and cancels-and-restarts the row's timer.  When the quiet window
    elapses the merged fields are written once.

Architecture position:
    Services -- used by StagingRowStore.  Talks to the StagingPersistence
    collaborator only through ``update_fields``.

Invariants enforced:
    - At most one pending slot and one live timer per row id.
    - Only the callback of the most recent window may flush a slot; a timer
      that fired while its window was being restarted finds a newer
      generation and does nothing.
    - Edits to different fields of the same row inside one window are all
      written; the latest value of a field wins.
    - ``close()`` flushes every slot, so the last edit is never lost on
      teardown.

Failure modes:
    - A failed write is logged as PersistenceError and dropped.  It is never
      raised into the editing path.
    - ``schedule`` after ``close`` raises RuntimeError.
"""

import threading
from itertools import count
from typing import Any, Callable, Mapping, Protocol

from voucher_staging.exceptions import PersistenceError
from voucher_staging.logging_config import get_logger
from voucher_staging.services.collaborators import StagingPersistence

logger = get_logger("services.debounce")


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default timer: a daemon ``threading.Timer``."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class DebouncedWriter:
    """
    Contract:
        ``schedule(row_id, fields)`` queues fields for a write after
        ``delay`` seconds without further edits to that row.
    """

    def __init__(
        self,
        persistence: StagingPersistence,
        delay: float = 0.5,
        timer_factory: TimerFactory | None = None,
    ):
        self._persistence = persistence
        self._delay = delay
        self._timer_factory = timer_factory or thread_timer
        self._pending: dict[str, dict[str, Any]] = {}
        self._timers: dict[str, TimerHandle] = {}
        self._generations: dict[str, int] = {}
        self._generation_counter = count(1)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending_row_ids(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def pending_fields(self, row_id: str) -> dict[str, Any]:
        with self._lock:
            return dict(self._pending.get(row_id, {}))

    def schedule(self, row_id: str, fields: Mapping[str, Any]) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("DebouncedWriter is closed")
            self._pending.setdefault(row_id, {}).update(fields)
            previous = self._timers.pop(row_id, None)
            if previous is not None:
                previous.cancel()
            generation = next(self._generation_counter)
            self._generations[row_id] = generation
            timer = self._timer_factory(
                self._delay, lambda: self._on_timer(row_id, generation)
            )
            self._timers[row_id] = timer
        timer.start()

    def _on_timer(self, row_id: str, generation: int) -> None:
        # A callback from a window that was restarted or flushed is stale
        with self._lock:
            if self._generations.get(row_id) != generation:
                return
            batch = self._take([row_id])
        for target, fields in batch:
            self._write(target, fields)

    def _take(self, row_ids: list[str]) -> list[tuple[str, dict[str, Any]]]:
        taken = []
        for row_id in row_ids:
            timer = self._timers.pop(row_id, None)
            if timer is not None:
                timer.cancel()
            self._generations.pop(row_id, None)
            fields = self._pending.pop(row_id, None)
            if fields:
                taken.append((row_id, fields))
        return taken

    def flush(self, row_id: str | None = None) -> int:
        """
        Write pending slots now (one row, or all).

        Returns:
            Number of rows written successfully.
        """
        with self._lock:
            targets = [row_id] if row_id is not None else list(self._pending)
            batch = self._take(targets)

        written = 0
        for target, fields in batch:
            if self._write(target, fields):
                written += 1
        return written

    def _write(self, row_id: str, fields: dict[str, Any]) -> bool:
        try:
            self._persistence.update_fields(row_id, fields)
        except Exception as exc:
            error = PersistenceError("update", str(exc), row_id=row_id)
            logger.error(
                "staging_write_failed",
                extra={
                    "row_id": row_id,
                    "fields": sorted(fields),
                    "error_code": error.code,
                    "reason": error.reason,
                },
            )
            return False

        logger.debug(
            "staging_write_flushed",
            extra={"row_id": row_id, "fields": sorted(fields)},
        )
        return True

    def discard(self, row_id: str) -> None:
        """Drop the row's pending slot without writing it."""
        with self._lock:
            timer = self._timers.pop(row_id, None)
            if timer is not None:
                timer.cancel()
            self._generations.pop(row_id, None)
            self._pending.pop(row_id, None)

    def discard_all(self) -> None:
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()
            self._generations.clear()

    def close(self) -> int:
        """Flush every pending slot and refuse further scheduling."""
        with self._lock:
            self._closed = True
        return self.flush()
