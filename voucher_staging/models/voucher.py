"""
Module: voucher_staging.models.voucher
Responsibility: ORM persistence for the reference ledger store -- voucher
    headers, voucher items and the general ledger rows derived from them.
Architecture position: Models.  May import from db/ only.

Invariants enforced:
    - Every voucher item produces exactly two general ledger rows: one on the
      debit account, one on the credit account, each naming the other as its
      reciprocal account.  Off-balance items follow the same shape.
    - seq is unique and allocated by SequenceService, never max()+1.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voucher_staging.db.base import TrackedBase, UUIDString
from voucher_staging.db.types import Currency, LongText, Money, Rate, ShortCode


class Voucher(TrackedBase):
    """Voucher header -- one posted staging group."""

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_voucher_seq"),
        Index("idx_voucher_doc_no", "doc_no"),
        Index("idx_voucher_doc_date", "doc_date"),
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    doc_no: Mapped[ShortCode] = mapped_column(nullable=False)
    doc_date: Mapped[date] = mapped_column(Date, nullable=False)
    post_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False, default="")
    voucher_type: Mapped[str] = mapped_column(String(30), nullable=False)
    total_amount: Mapped[Money] = mapped_column(nullable=False)
    currency: Mapped[Currency] = mapped_column(nullable=False)
    fx_rate: Mapped[Rate] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    items: Mapped[list["VoucherItem"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="VoucherItem.line_number",
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.seq} {self.doc_no} {self.total_amount}>"


class VoucherItem(TrackedBase):
    """One voucher line, as entered on the staging row."""

    __tablename__ = "voucher_items"

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False, default="")
    debit_account: Mapped[ShortCode] = mapped_column(nullable=False)
    credit_account: Mapped[ShortCode] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    partner_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    sub_item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")

    voucher: Mapped[Voucher] = relationship(back_populates="items")


class GeneralLedgerEntry(TrackedBase):
    """Single-sided ledger row; each voucher item yields a debit and a credit row."""

    __tablename__ = "general_ledger"

    __table_args__ = (
        Index("idx_gl_account", "account_code"),
        Index("idx_gl_doc_no", "doc_no"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )
    trx_date: Mapped[date] = mapped_column(Date, nullable=False)
    posted_at: Mapped[datetime] = mapped_column(nullable=False)
    doc_no: Mapped[ShortCode] = mapped_column(nullable=False)
    description: Mapped[LongText] = mapped_column(nullable=False, default="")
    account_code: Mapped[ShortCode] = mapped_column(nullable=False)
    reciprocal_account: Mapped[ShortCode] = mapped_column(nullable=False)
    debit_amount: Mapped[Money] = mapped_column(nullable=False)
    credit_amount: Mapped[Money] = mapped_column(nullable=False)
    partner_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
    sub_item_code: Mapped[ShortCode] = mapped_column(nullable=False, default="")
