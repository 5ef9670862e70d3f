"""
StagingRowStore -- in-memory mirror of the draft rows.

Responsibility:
    Holds the operator-visible list of staged rows, applies edits to it
    synchronously and persists them through the staging collaborator:
    field edits via the DebouncedWriter, status write-back immediately.

Architecture position:
    Services -- imperative shell between the operator surface (CLI, command
    bus) and StagingPersistence.

Invariants enforced:
    - The mirror is authoritative until the next ``load()``.  A failed field
      or status write never rolls the mirror back.
    - A created row is only addressable after the collaborator returned its
      id.
    - A status write for a row flushes that row's pending edits first, so
      the status lands last.
    - Destructive operations (clear, reset) need an explicit confirmation.

Failure modes:
    - UnknownFieldError / StagingRowNotFoundError on bad edits.
    - PersistenceError from create, delete, clear and reset.
"""

import threading
from typing import Any, Callable, Iterable

from voucher_staging.domain.balance import (
    BalanceCheckResult,
    balance_lines_from_rows,
    calculate_balance_check,
)
from voucher_staging.domain.clock import Clock, SystemClock
from voucher_staging.domain.staging import (
    EDITABLE_FIELDS,
    RowStatus,
    StagedRow,
    sanitize_amount,
)
from voucher_staging.exceptions import (
    PersistenceError,
    StagingRowNotFoundError,
    UnknownFieldError,
)
from voucher_staging.logging_config import get_logger
from voucher_staging.services.collaborators import StagingPersistence
from voucher_staging.services.debounce import DebouncedWriter, TimerFactory

logger = get_logger("services.row_store")

Confirm = Callable[[], bool]

STATUS_FIELDS = frozenset({"status", "is_valid", "status_note"})


class StagingRowStore:
    """
    Contract:
        Every public mutation updates the mirror before returning.  Reads
        return immutable StagedRow snapshots.
    """

    def __init__(
        self,
        persistence: StagingPersistence,
        clock: Clock | None = None,
        debounce_seconds: float = 0.5,
        timer_factory: TimerFactory | None = None,
    ):
        self._persistence = persistence
        self._clock = clock or SystemClock()
        self._writer = DebouncedWriter(persistence, debounce_seconds, timer_factory)
        self._rows: list[StagedRow] = []
        self._lock = threading.RLock()

    @property
    def rows(self) -> list[StagedRow]:
        with self._lock:
            return list(self._rows)

    @property
    def writer(self) -> DebouncedWriter:
        return self._writer

    def load(self) -> list[StagedRow]:
        """Replace the mirror with the collaborator's rows."""
        try:
            rows = self._persistence.list_rows()
        except Exception as exc:
            raise PersistenceError("list", str(exc)) from exc
        with self._lock:
            self._rows = list(rows)
        logger.info("staging_rows_loaded", extra={"row_count": len(rows)})
        return self.rows

    def get(self, row_id: str) -> StagedRow:
        with self._lock:
            return self._rows[self._index_of(row_id)]

    def _index_of(self, row_id: str) -> int:
        for index, row in enumerate(self._rows):
            if row.id == row_id:
                return index
        raise StagingRowNotFoundError(row_id)

    def _replace(self, row_id: str, **changes: Any) -> StagedRow:
        with self._lock:
            index = self._index_of(row_id)
            updated = self._rows[index].with_fields(**changes)
            self._rows[index] = updated
            return updated

    def create_row(self, **fields: Any) -> StagedRow:
        """
        Create a row through the collaborator and append it to the mirror.

        ``trx_date`` defaults to today's ISO date.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise UnknownFieldError(sorted(unknown)[0])
        if "amount" in fields:
            fields["amount"] = sanitize_amount(fields["amount"])
        fields.setdefault("trx_date", self._clock.today().isoformat())

        try:
            row = self._persistence.create_row(fields)
        except Exception as exc:
            raise PersistenceError("create", str(exc)) from exc

        with self._lock:
            self._rows.append(row)
        logger.info("staging_row_added", extra={"row_id": row.id, "row_index": row.row_index})
        return row

    def edit_field(self, row_id: str, field_name: str, value: Any) -> StagedRow:
        """
        Apply one operator edit to the mirror and schedule its persistence.

        Posted rows may be edited; they stay posted and are not reprocessed.
        """
        if field_name not in EDITABLE_FIELDS:
            raise UnknownFieldError(field_name)
        if field_name == "amount":
            value = sanitize_amount(value)
        else:
            value = "" if value is None else str(value)

        current = self.get(row_id)
        changes: dict[str, Any] = {field_name: value}
        if current.status is RowStatus.NEW:
            changes["status"] = RowStatus.PENDING
        updated = self._replace(row_id, **changes)

        persisted = dict(changes)
        if "status" in persisted:
            persisted["status"] = persisted["status"].value
        self._writer.schedule(row_id, persisted)
        return updated

    def apply_status(self, row_id: str, **updates: Any) -> StagedRow:
        """
        Write status fields to the mirror and the collaborator immediately.

        Persistence failures are logged; the mirror keeps the new status.
        """
        unknown = set(updates) - STATUS_FIELDS
        if unknown:
            raise UnknownFieldError(sorted(unknown)[0])
        if "status" in updates:
            updates["status"] = RowStatus(updates["status"])

        updated = self._replace(row_id, **updates)
        self._writer.flush(row_id)

        persisted = dict(updates)
        if "status" in persisted:
            persisted["status"] = persisted["status"].value
        try:
            self._persistence.update_fields(row_id, persisted)
        except Exception as exc:
            error = PersistenceError("status update", str(exc), row_id=row_id)
            logger.error(
                "staging_status_write_failed",
                extra={"row_id": row_id, "error_code": error.code, "reason": error.reason},
            )
        return updated

    def delete_row(self, row_id: str) -> None:
        self.get(row_id)
        self._writer.discard(row_id)
        try:
            self._persistence.delete_row(row_id)
        except Exception as exc:
            raise PersistenceError("delete", str(exc), row_id=row_id) from exc
        with self._lock:
            self._rows.pop(self._index_of(row_id))
        logger.info("staging_row_removed", extra={"row_id": row_id})

    def _destructive(self, operation: str, action: Callable[[], None], confirm: Confirm) -> bool:
        if not confirm():
            logger.info("staging_operation_cancelled", extra={"operation": operation})
            return False
        self._writer.discard_all()
        try:
            action()
        except Exception as exc:
            raise PersistenceError(operation, str(exc)) from exc
        self.load()
        return True

    def clear_all(self, confirm: Confirm) -> bool:
        """Delete every row once ``confirm()`` returns True."""
        return self._destructive("clear", self._persistence.delete_all, confirm)

    def reset_to_samples(self, confirm: Confirm) -> bool:
        """Replace every row with the sample set once ``confirm()`` returns True."""
        return self._destructive("reset", self._persistence.reset_to_samples, confirm)

    def balance_check(self, rows: Iterable[StagedRow] | None = None) -> BalanceCheckResult:
        snapshot = self.rows if rows is None else list(rows)
        return calculate_balance_check(balance_lines_from_rows(snapshot))

    def flush(self) -> int:
        return self._writer.flush()

    def close(self) -> int:
        """Flush pending edits; the store accepts no further edits."""
        return self._writer.close()
