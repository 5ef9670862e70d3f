"""SQLAlchemy models for the reference staging and ledger stores."""

from voucher_staging.models.sequence import SequenceCounter
from voucher_staging.models.staging import StagingTransaction
from voucher_staging.models.voucher import GeneralLedgerEntry, Voucher, VoucherItem

__all__ = [
    "SequenceCounter",
    "StagingTransaction",
    "Voucher",
    "VoucherItem",
    "GeneralLedgerEntry",
]
