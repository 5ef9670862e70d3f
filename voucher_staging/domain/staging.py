"""
Staged rows -- the draft transaction lines awaiting grouping and posting.

Responsibility:
    Defines the immutable ``StagedRow`` snapshot, its lifecycle status, the
    set of operator-editable fields and the amount sanitizer applied to
    operator input.

Architecture position:
    Domain -- pure, zero I/O.  Consumed by the row store, the balance
    validator and the posting pipeline.

Lifecycle:
    NEW (created empty) -> PENDING (edited) -> POSTED
                                            -> INVALID (missing fields)
                                            -> FAILED (ledger refused)
    INVALID and FAILED rows return to the pipeline on the next run; POSTED
    rows never do.
"""

import math
import re
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

POSTED_MARKER = "Đã ghi sổ"
POSTING_FAILED_MARKER = "Lỗi ghi sổ"
NEW_ROW_NOTE = "New record"
HELD_NOTE_TEMPLATE = "Held: document {doc_no} has incomplete rows"

_NON_DIGITS = re.compile(r"[^0-9]")


class RowStatus(str, Enum):
    """Posting status of a staged row.

    Contract: POSTED is terminal; every other status is re-examined by the
    next posting run.
    """

    NEW = "new"
    PENDING = "pending"
    INVALID = "invalid"
    POSTED = "posted"
    FAILED = "failed"


EDITABLE_FIELDS: frozenset[str] = frozenset({
    "trx_date",
    "doc_no",
    "description",
    "debit_account",
    "credit_account",
    "amount",
    "partner_code",
    "item_code",
    "sub_item_code",
})


def sanitize_amount(value: Any) -> Decimal:
    """
    Convert operator input to a non-negative whole amount.

    Every non-digit character is stripped before parsing, so thousands
    separators, currency symbols and signs disappear.  An empty result maps
    to zero.  Integral numbers (int, float or Decimal) keep their magnitude;
    infinities and NaN map to zero.
    """
    if value is None:
        return Decimal(0)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        if isinstance(value, float) and not math.isfinite(value):
            return Decimal(0)
        if isinstance(value, Decimal) and not value.is_finite():
            return Decimal(0)
        if value == int(value):
            return Decimal(abs(int(value)))
    digits = _NON_DIGITS.sub("", str(value))
    return Decimal(digits) if digits else Decimal(0)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class StagedRow:
    """One candidate ledger line awaiting posting.

    ``id`` is assigned by the staging persistence collaborator; rows are
    replaced, never mutated, when the operator edits them.
    """

    id: str
    row_index: int = 0
    trx_date: str = ""
    doc_no: str = ""
    description: str = ""
    debit_account: str = ""
    credit_account: str = ""
    amount: Decimal = Decimal(0)
    partner_code: str = ""
    item_code: str = ""
    sub_item_code: str = ""
    is_valid: bool = False
    status: RowStatus = RowStatus.NEW
    status_note: str = ""

    @classmethod
    def empty(cls, row_id: str, row_index: int, trx_date: str = "") -> "StagedRow":
        """A freshly created row: optional fields unset, not yet valid."""
        return cls(id=row_id, row_index=row_index, trx_date=trx_date)

    def with_fields(self, **changes: Any) -> "StagedRow":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def is_posted(self, posted_marker: str = POSTED_MARKER) -> bool:
        """True once the row has been committed to the ledger.

        Rows persisted before the status column existed only carry the
        marker in their note; both signals count.
        """
        if self.status is RowStatus.POSTED:
            return True
        return bool(posted_marker) and self.status_note.startswith(posted_marker)

    def to_mapping(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


_ROW_FIELDS = {f.name for f in fields(StagedRow)}


def row_from_mapping(data: Mapping[str, Any]) -> StagedRow:
    """Build a StagedRow from a persistence record, tolerating nulls."""
    unknown = set(data) - _ROW_FIELDS
    if unknown:
        raise ValueError(f"Unexpected staging fields: {sorted(unknown)}")

    raw_status = data.get("status") or RowStatus.NEW
    return StagedRow(
        id=str(data["id"]),
        row_index=int(data.get("row_index") or 0),
        trx_date=_text(data.get("trx_date")),
        doc_no=_text(data.get("doc_no")),
        description=_text(data.get("description")),
        debit_account=_text(data.get("debit_account")),
        credit_account=_text(data.get("credit_account")),
        amount=sanitize_amount(data.get("amount")),
        partner_code=_text(data.get("partner_code")),
        item_code=_text(data.get("item_code")),
        sub_item_code=_text(data.get("sub_item_code")),
        is_valid=bool(data.get("is_valid")),
        status=RowStatus(raw_status),
        status_note=_text(data.get("status_note")),
    )
