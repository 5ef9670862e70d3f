"""
Module: voucher_staging.models.staging
Responsibility: ORM persistence for draft staging rows (``staging_transactions``).
Architecture position: Models.  May import from db/ and domain/staging.py only.

Invariants enforced:
    - status is stored as the RowStatus value; status_note keeps the
      operator-facing text (including the posted marker).
    - amount is non-negative Numeric; the row store sanitizes before writing.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from voucher_staging.db.base import TrackedBase
from voucher_staging.db.types import LongText, Money, ShortCode
from voucher_staging.domain.staging import RowStatus, StagedRow, row_from_mapping


class StagingTransaction(TrackedBase):
    """One persisted staging row."""

    __tablename__ = "staging_transactions"

    __table_args__ = (
        Index("idx_staging_row_index", "row_index"),
        Index("idx_staging_doc_no", "doc_no"),
    )

    batch_id: Mapped[str] = mapped_column(String(50), nullable=False, default="default-batch")
    row_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trx_date: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    doc_no: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    description: Mapped[LongText] = mapped_column(nullable=False, default="")
    debit_account: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    credit_account: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal(0))
    partner_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    sub_item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RowStatus.NEW.value)
    status_note: Mapped[LongText] = mapped_column(nullable=False, default="")

    def to_row(self) -> StagedRow:
        return row_from_mapping(
            {
                "id": str(self.id),
                "row_index": self.row_index,
                "trx_date": self.trx_date,
                "doc_no": self.doc_no,
                "description": self.description,
                "debit_account": self.debit_account,
                "credit_account": self.credit_account,
                "amount": self.amount,
                "partner_code": self.partner_code,
                "item_code": self.item_code,
                "sub_item_code": self.sub_item_code,
                "is_valid": self.is_valid,
                "status": self.status,
                "status_note": self.status_note,
            }
        )

    def __repr__(self) -> str:
        return f"<StagingTransaction {self.row_index} doc={self.doc_no!r} status={self.status}>"
