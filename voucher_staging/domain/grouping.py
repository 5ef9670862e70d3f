"""
Grouping -- structural validation of staged rows and their partition into
voucher groups.

Responsibility:
    Decides which rows are complete enough to post, partitions the complete
    ones by document number and materializes each partition into a
    ``VoucherGroup`` ready for submission.

Invariants enforced:
    - A row is postable iff doc_no, trx_date, debit_account, credit_account
      are non-empty and amount > 0.  Anything else is rejected before
      grouping and never reaches a group.
    - A document with any rejected row is held back entirely; none of its
      rows is grouped in that run.
    - A row belongs to exactly one group per run, chosen by its trimmed
      doc_no at the moment grouping runs.
    - Group membership, doc_date and total_amount do not depend on input
      order.  Member order and line order follow input order.

Architecture position:
    Domain -- pure functional core.  The only time source is the injected
    Clock used for the doc_date fallback.
"""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from voucher_staging.domain.clock import Clock
from voucher_staging.domain.staging import StagedRow
from voucher_staging.exceptions import StructuralValidationError

FIELD_LABELS: dict[str, str] = {
    "doc_no": "document number",
    "trx_date": "date",
    "debit_account": "debit account",
    "credit_account": "credit account",
    "amount": "amount",
}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")


def parse_staging_date(value: str | None) -> date | None:
    """
    Parse an operator-entered date.

    Accepts ``YYYY-MM-DD`` (optionally followed by a time part) and the
    day-first ``D/M/YYYY``, ``D-M-YYYY``, ``D.M.YYYY`` forms.  Returns None
    when nothing parses or the calendar date does not exist.
    """
    if not value:
        return None
    text = value.strip()

    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _DMY_DATE.match(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        return None


def check_row_structure(row: StagedRow) -> None:
    """
    Raise StructuralValidationError listing every missing or invalid field.

    Labels appear in a fixed order: document number, date, debit account,
    credit account, amount.
    """
    missing: list[str] = []
    for field_name in ("doc_no", "trx_date", "debit_account", "credit_account"):
        if not getattr(row, field_name).strip():
            missing.append(FIELD_LABELS[field_name])
    if row.amount is None or row.amount <= 0:
        missing.append(FIELD_LABELS["amount"])

    if missing:
        raise StructuralValidationError(row.id, missing)


@dataclass(frozen=True)
class RowRejection:
    """A row that failed structural validation and why."""

    row: StagedRow
    error: StructuralValidationError

    @property
    def reason(self) -> str:
        return str(self.error)


def partition_rows(
    rows: Iterable[StagedRow],
) -> tuple[list[StagedRow], list[RowRejection]]:
    """Split rows into structurally valid ones and rejections."""
    valid: list[StagedRow] = []
    rejected: list[RowRejection] = []
    for row in rows:
        try:
            check_row_structure(row)
        except StructuralValidationError as exc:
            rejected.append(RowRejection(row=row, error=exc))
        else:
            valid.append(row)
    return valid, rejected


def hold_incomplete_documents(
    valid: Iterable[StagedRow],
    rejected: Iterable[RowRejection],
) -> tuple[list[StagedRow], list[StagedRow]]:
    """
    Split valid rows into postable ones and ones held back because another
    row with the same doc_no failed validation.

    A document is posted whole or not at all; its valid rows wait until the
    incomplete ones are corrected.
    """
    blocked = {r.row.doc_no.strip() for r in rejected if r.row.doc_no.strip()}
    postable: list[StagedRow] = []
    held: list[StagedRow] = []
    for row in valid:
        (held if row.doc_no.strip() in blocked else postable).append(row)
    return postable, held


def group_rows(rows: Iterable[StagedRow]) -> dict[str, list[StagedRow]]:
    """
    Partition rows by trimmed doc_no, in first-appearance order.

    Rows with a blank doc_no are dropped; structural validation has already
    rejected them in the posting path.
    """
    groups: dict[str, list[StagedRow]] = {}
    for row in rows:
        key = row.doc_no.strip()
        if not key:
            continue
        groups.setdefault(key, []).append(row)
    return groups


@dataclass(frozen=True)
class VoucherLine:
    """One ledger line of a voucher, carrying the staged row's detail."""

    description: str
    debit_account: str
    credit_account: str
    amount: Decimal
    partner_code: str = ""
    item_code: str = ""
    sub_item_code: str = ""

    @classmethod
    def from_row(cls, row: StagedRow) -> "VoucherLine":
        return cls(
            description=row.description.strip(),
            debit_account=row.debit_account.strip(),
            credit_account=row.credit_account.strip(),
            amount=row.amount,
            partner_code=row.partner_code.strip(),
            item_code=row.item_code.strip(),
            sub_item_code=row.sub_item_code.strip(),
        )


@dataclass(frozen=True)
class VoucherGroup:
    """The rows sharing one document number, ready for submission."""

    doc_no: str
    rows: tuple[StagedRow, ...]
    doc_date: date
    total_amount: Decimal
    lines: tuple[VoucherLine, ...]
    description: str = ""

    @property
    def row_ids(self) -> list[str]:
        return [row.id for row in self.rows]


def materialize_group(doc_no: str, rows: Sequence[StagedRow], clock: Clock) -> VoucherGroup:
    """
    Build a VoucherGroup from its member rows.

    doc_date is the earliest parseable member date, or the clock's current
    date when no member date parses.
    """
    dates = [d for d in (parse_staging_date(row.trx_date) for row in rows) if d is not None]
    doc_date = min(dates) if dates else clock.today()
    lines = tuple(VoucherLine.from_row(row) for row in rows)
    total = sum((line.amount for line in lines), Decimal(0))
    description = next((line.description for line in lines if line.description), "")

    return VoucherGroup(
        doc_no=doc_no,
        rows=tuple(rows),
        doc_date=doc_date,
        total_amount=total,
        lines=lines,
        description=description,
    )


def build_voucher_groups(rows: Iterable[StagedRow], clock: Clock) -> list[VoucherGroup]:
    """Group valid rows and materialize each group, in first-appearance order."""
    return [
        materialize_group(doc_no, members, clock)
        for doc_no, members in group_rows(rows).items()
    ]
