"""
PostingPipeline -- filter, validate, group and post staged rows.

Responsibility:
    Turns a snapshot of staged rows into ledger vouchers, one per document
    number, and writes each row's outcome back through the status writer.

Architecture position:
    Services -- orchestrator.  Pure steps come from domain.grouping and
    domain.balance; I/O goes through the LedgerPostingGateway and the
    status writer (normally the StagingRowStore).

Algorithm:
    1. Skip rows already posted.  Nothing left -> NOTHING_PENDING.
    2. Structural validation; invalid rows get status INVALID and a
       "Missing: ..." note and take no further part.  Valid rows sharing a
       doc_no with an invalid row are held back with a "Held" note.
    3. Group valid rows by doc_no (first-appearance order).
    4. Materialize each group: earliest date, ordered lines, total.
    5. Submit groups one after another, never concurrently.
    6. Success marks every member POSTED; any failure marks every member
       FAILED and records the doc_no.  Groups never affect each other.
    7. Return a PostingSummary.

Invariants enforced:
    - A posted row is never submitted again.
    - One run at a time; an overlapping call raises PostingInProgressError.
    - Balance is advisory: an unbalanced group is logged, not blocked.
    - Status write-back is per row and best-effort: a row that can no longer
      be written is logged and the run continues.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from voucher_staging.config import PostingDefaults
from voucher_staging.domain.balance import (
    BalanceStatus,
    balance_lines_from_rows,
    calculate_balance_check,
)
from voucher_staging.domain.clock import Clock, SystemClock
from voucher_staging.domain.grouping import (
    VoucherGroup,
    build_voucher_groups,
    hold_incomplete_documents,
    partition_rows,
)
from voucher_staging.domain.staging import HELD_NOTE_TEMPLATE, RowStatus, StagedRow
from voucher_staging.exceptions import PostingInProgressError, VoucherStagingError
from voucher_staging.logging_config import LogContext, get_logger
from voucher_staging.services.collaborators import LedgerPostingGateway

logger = get_logger("services.posting_pipeline")


class StatusWriter(Protocol):
    def apply_status(self, row_id: str, **updates: Any) -> Any: ...


class PostingOutcome(str, Enum):
    NOTHING_PENDING = "nothing_pending"
    NO_VALID_ROWS = "no_valid_rows"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"


@dataclass(frozen=True)
class PostingSummary:
    """Result of one posting run."""

    outcome: PostingOutcome
    posted_doc_count: int = 0
    failed_doc_numbers: tuple[str, ...] = ()
    invalid_row_ids: tuple[str, ...] = ()
    held_doc_numbers: tuple[str, ...] = ()
    skipped_posted_rows: int = 0
    voucher_ids: dict[str, str] = field(default_factory=dict)
    message: str = ""

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_doc_numbers)


def build_payload(group: VoucherGroup, defaults: PostingDefaults) -> dict[str, Any]:
    """Voucher payload for the ledger gateway; post_date equals doc_date."""
    return {
        "doc_no": group.doc_no,
        "doc_date": group.doc_date.isoformat(),
        "post_date": group.doc_date.isoformat(),
        "description": group.description,
        "type": defaults.voucher_type,
        "total_amount": group.total_amount,
        "currency": defaults.currency,
        "fx_rate": defaults.fx_rate,
        "status": defaults.voucher_status,
        "lines": [
            {
                "description": line.description,
                "debit_account": line.debit_account,
                "credit_account": line.credit_account,
                "amount": line.amount,
                "partner_code": line.partner_code,
                "item_code": line.item_code,
                "sub_item_code": line.sub_item_code,
            }
            for line in group.lines
        ],
    }


def _summary_message(posted: int, failed: Sequence[str], invalid: int, held: Sequence[str]) -> str:
    parts = [f"Posted {posted} voucher(s)"]
    if failed:
        parts.append(f"failed: {', '.join(failed)}")
    if held:
        parts.append(f"held: {', '.join(held)}")
    if invalid:
        parts.append(f"{invalid} row(s) need correction")
    return "; ".join(parts)


class PostingPipeline:
    """
    Contract:
        ``post(rows)`` processes a snapshot of rows and returns a summary.
        It never raises for per-row or per-group problems.

    Non-goals:
        - Does NOT retry failed groups.  They return on the next run.
        - Does NOT enforce debit = credit.
    """

    def __init__(
        self,
        gateway: LedgerPostingGateway,
        status_writer: StatusWriter,
        clock: Clock | None = None,
        defaults: PostingDefaults | None = None,
    ):
        self._gateway = gateway
        self._status_writer = status_writer
        self._clock = clock or SystemClock()
        self._defaults = defaults or PostingDefaults()
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def post(self, rows: Sequence[StagedRow]) -> PostingSummary:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("posting_rejected_in_progress")
            raise PostingInProgressError()
        try:
            with LogContext.bind(run_id=str(uuid.uuid4())):
                return self._run(rows)
        finally:
            self._run_lock.release()

    def _run(self, rows: Sequence[StagedRow]) -> PostingSummary:
        marker = self._defaults.posted_marker
        pending = [row for row in rows if not row.is_posted(marker)]
        skipped = len(rows) - len(pending)
        logger.info(
            "posting_started",
            extra={"row_count": len(rows), "pending_count": len(pending), "skipped_posted": skipped},
        )

        if not pending:
            logger.info("posting_nothing_pending")
            return PostingSummary(
                outcome=PostingOutcome.NOTHING_PENDING,
                skipped_posted_rows=skipped,
                message="No pending rows to post",
            )

        valid, rejected = partition_rows(pending)
        for rejection in rejected:
            logger.info(
                "staging_row_invalid",
                extra={"row_id": rejection.row.id, "missing": rejection.error.missing_fields},
            )
            self._write_status(
                rejection.row.id,
                status=RowStatus.INVALID,
                is_valid=False,
                status_note=rejection.reason,
            )
        invalid_ids = tuple(rejection.row.id for rejection in rejected)

        postable, held = hold_incomplete_documents(valid, rejected)
        held_docs = tuple(dict.fromkeys(row.doc_no.strip() for row in held))
        for row in held:
            self._write_status(
                row.id,
                status=RowStatus.PENDING,
                is_valid=False,
                status_note=HELD_NOTE_TEMPLATE.format(doc_no=row.doc_no.strip()),
            )
        if held_docs:
            logger.info("documents_held", extra={"held_doc_numbers": list(held_docs)})

        groups = build_voucher_groups(postable, self._clock)
        if not groups:
            logger.info("posting_no_valid_rows", extra={"invalid_count": len(invalid_ids)})
            return PostingSummary(
                outcome=PostingOutcome.NO_VALID_ROWS,
                invalid_row_ids=invalid_ids,
                held_doc_numbers=held_docs,
                skipped_posted_rows=skipped,
                message=f"No valid rows to post; {len(invalid_ids)} row(s) need correction",
            )

        voucher_ids: dict[str, str] = {}
        failed: list[str] = []
        for group in groups:
            with LogContext.bind(doc_no=group.doc_no):
                voucher_id = self._submit(group)
            if voucher_id is None:
                failed.append(group.doc_no)
            else:
                voucher_ids[group.doc_no] = voucher_id

        outcome = PostingOutcome.COMPLETED_WITH_FAILURES if failed else PostingOutcome.COMPLETED
        summary = PostingSummary(
            outcome=outcome,
            posted_doc_count=len(voucher_ids),
            failed_doc_numbers=tuple(failed),
            invalid_row_ids=invalid_ids,
            held_doc_numbers=held_docs,
            skipped_posted_rows=skipped,
            voucher_ids=voucher_ids,
            message=_summary_message(len(voucher_ids), failed, len(invalid_ids), held_docs),
        )
        logger.info(
            "posting_completed",
            extra={
                "outcome": outcome.value,
                "posted_doc_count": summary.posted_doc_count,
                "failed_doc_numbers": list(failed),
                "invalid_count": len(invalid_ids),
            },
        )
        return summary

    def _write_status(self, row_id: str, **updates: Any) -> None:
        """Status write-back for one row; a failure is logged and the run goes on."""
        try:
            self._status_writer.apply_status(row_id, **updates)
        except VoucherStagingError as exc:
            logger.error(
                "staging_status_write_failed",
                extra={
                    "row_id": row_id,
                    "status": updates["status"].value,
                    "error_code": exc.code,
                    "reason": str(exc),
                },
            )

    def _submit(self, group: VoucherGroup) -> str | None:
        """Post one group and write its members' outcome; None on failure."""
        check = calculate_balance_check(balance_lines_from_rows(group.rows))
        level = logging.DEBUG if check.status is BalanceStatus.BALANCED else logging.WARNING
        logger.log(
            level,
            "voucher_balance_checked",
            extra={
                "balance_status": check.status.value,
                "total_debit": check.total_debit,
                "total_credit": check.total_credit,
                "off_balance_sheet_lines": check.off_balance_sheet_lines,
            },
        )

        payload = build_payload(group, self._defaults)
        try:
            voucher_id = self._gateway.create_voucher(payload)
        except Exception as exc:
            logger.error(
                "voucher_posting_failed",
                extra={
                    "error_code": getattr(exc, "code", type(exc).__name__),
                    "reason": str(exc),
                    "row_ids": group.row_ids,
                },
            )
            for row_id in group.row_ids:
                self._write_status(
                    row_id,
                    status=RowStatus.FAILED,
                    is_valid=False,
                    status_note=self._defaults.failure_marker,
                )
            return None

        logger.info(
            "voucher_posted",
            extra={
                "voucher_id": voucher_id,
                "line_count": len(group.lines),
                "total_amount": group.total_amount,
            },
        )
        for row_id in group.row_ids:
            self._write_status(
                row_id,
                status=RowStatus.POSTED,
                is_valid=True,
                status_note=self._defaults.posted_marker,
            )
        return str(voucher_id)
