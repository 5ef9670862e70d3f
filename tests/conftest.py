"""
Pytest fixtures for the voucher_staging test suite.

Database tests run against in-memory SQLite (one shared connection via
StaticPool).  Collaborator fakes and a manual timer keep the row store and
the posting pipeline deterministic.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from itertools import count
from typing import Any, Mapping

import pytest
from sqlalchemy.orm import sessionmaker

from voucher_staging.db.engine import build_engine, create_tables
from voucher_staging.domain.clock import DeterministicClock
from voucher_staging.domain.staging import (
    NEW_ROW_NOTE,
    RowStatus,
    StagedRow,
    row_from_mapping,
    sanitize_amount,
)
from voucher_staging.exceptions import StagingRowNotFoundError, VoucherRejectedError
from voucher_staging.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from voucher_staging.services.collaborators import LedgerPostingGateway, StagingPersistence

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture voucher_staging logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, pipeline):
            pipeline.post(rows)
            logs = captured_logs()
            assert any(r["message"] == "posting_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("voucher_staging")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


# =============================================================================
# Clock and timer fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


class ManualTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def live(self) -> bool:
        return self.started and not self.cancelled


class ManualTimerFactory:
    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.live]

    def fire_all(self) -> int:
        """Fire every live timer once, as if the quiet window elapsed."""
        fired = 0
        for timer in self.live:
            timer.cancelled = True
            timer.callback()
            fired += 1
        return fired


@pytest.fixture
def timers():
    return ManualTimerFactory()


# =============================================================================
# Collaborator fakes
# =============================================================================


class InMemoryStagingPersistence(StagingPersistence):
    """
    Dict-backed StagingPersistence.

    ``fail_on`` holds operation names (list, create, update, delete,
    delete_all, reset) that raise RuntimeError.  ``updates`` records every
    update_fields call in order.
    """

    def __init__(self, rows: list[StagedRow] | None = None):
        self._rows: dict[str, StagedRow] = {row.id: row for row in rows or []}
        self._ids = count(1)
        self.fail_on: set[str] = set()
        self.updates: list[tuple[str, dict[str, Any]]] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    def list_rows(self) -> list[StagedRow]:
        self._maybe_fail("list")
        return sorted(self._rows.values(), key=lambda r: r.row_index)

    def create_row(self, fields: Mapping[str, Any]) -> StagedRow:
        self._maybe_fail("create")
        row_id = f"row-{next(self._ids)}"
        row_index = max((r.row_index for r in self._rows.values()), default=0) + 1
        row = row_from_mapping(
            {"id": row_id, "row_index": row_index, "status_note": NEW_ROW_NOTE, **fields}
        )
        self._rows[row_id] = row
        return row

    def update_fields(self, row_id: str, fields: Mapping[str, Any]) -> None:
        self._maybe_fail("update")
        if row_id not in self._rows:
            raise StagingRowNotFoundError(row_id)
        changes = dict(fields)
        if "status" in changes:
            changes["status"] = RowStatus(changes["status"])
        if "amount" in changes:
            changes["amount"] = sanitize_amount(changes["amount"])
        self._rows[row_id] = self._rows[row_id].with_fields(**changes)
        self.updates.append((row_id, dict(fields)))

    def delete_row(self, row_id: str) -> None:
        self._maybe_fail("delete")
        if row_id not in self._rows:
            raise StagingRowNotFoundError(row_id)
        del self._rows[row_id]

    def delete_all(self) -> None:
        self._maybe_fail("delete_all")
        self._rows.clear()

    def reset_to_samples(self) -> None:
        self._maybe_fail("reset")
        self._rows = {
            "sample-1": StagedRow(
                id="sample-1", row_index=1, trx_date="2024-03-20", doc_no="PKT001",
                debit_account="3331", credit_account="1331", amount=Decimal(15_000_000),
            ),
            "sample-2": StagedRow(
                id="sample-2", row_index=2, trx_date="2024-03-21", doc_no="PKT002",
                debit_account="642", credit_account="214", amount=Decimal(5_000_000),
            ),
        }

    def stored(self, row_id: str) -> StagedRow:
        return self._rows[row_id]


class FakeLedgerGateway(LedgerPostingGateway):
    """Records payloads; doc numbers in ``reject`` raise VoucherRejectedError."""

    def __init__(self, reject: set[str] | None = None):
        self.reject = set(reject or ())
        self.payloads: list[dict[str, Any]] = []
        self._ids = count(1)

    def create_voucher(self, payload: Mapping[str, Any]) -> str:
        self.payloads.append(dict(payload))
        if payload["doc_no"] in self.reject:
            raise VoucherRejectedError(payload["doc_no"], "period is locked")
        return f"V-{next(self._ids)}"

    @property
    def submitted_doc_numbers(self) -> list[str]:
        return [p["doc_no"] for p in self.payloads]


class RecordingStatusWriter:
    """Status writer that keeps the latest status per row."""

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def apply_status(self, row_id: str, **updates: Any) -> None:
        self.calls.append((row_id, updates))

    def latest(self, row_id: str) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for target, updates in self.calls:
            if target == row_id:
                merged.update(updates)
        return merged


@pytest.fixture
def persistence():
    return InMemoryStagingPersistence()


@pytest.fixture
def ledger():
    return FakeLedgerGateway()


@pytest.fixture
def status_writer():
    return RecordingStatusWriter()


@pytest.fixture
def make_row():
    """
    Factory for StagedRow with complete defaults.

    Usage::

        row = make_row(doc_no="A1", amount=1000)
    """
    ids = count(1)

    def _make(**overrides: Any) -> StagedRow:
        number = next(ids)
        values: dict[str, Any] = {
            "id": f"r{number}",
            "row_index": number,
            "trx_date": "2024-03-20",
            "doc_no": "A1",
            "description": "",
            "debit_account": "111",
            "credit_account": "511",
            "amount": Decimal(1000),
            "status": RowStatus.PENDING,
        }
        values.update(overrides)
        if not isinstance(values["amount"], Decimal):
            values["amount"] = Decimal(values["amount"])
        return StagedRow(**values)

    return _make
