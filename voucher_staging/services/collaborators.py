"""
External collaborators of the staging row store and the posting pipeline.

StagingPersistence
    Durable home of draft rows.  Every call is synchronous and its own
    unit of work; failures surface as exceptions (the row store wraps them
    in PersistenceError).

LedgerPostingGateway
    Accepts one voucher payload per call and returns the ledger's
    identifier for it.  The gateway enforces its own timeout; the pipeline
    never retries.

Voucher payload shape (plain mapping, JSON-compatible)::

    {
        "doc_no": "PKT001",
        "doc_date": "2024-03-20",
        "post_date": "2024-03-31",
        "description": "...",
        "type": "GENERAL",
        "total_amount": Decimal("15000000"),
        "currency": "VND",
        "fx_rate": Decimal("1"),
        "status": "POSTED",
        "lines": [
            {"description", "debit_account", "credit_account", "amount",
             "partner_code", "item_code", "sub_item_code"},
        ],
    }
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from voucher_staging.domain.staging import StagedRow


class StagingPersistence(ABC):
    """Staging row storage."""

    @abstractmethod
    def list_rows(self) -> list[StagedRow]:
        """All rows, ordered by row_index."""

    @abstractmethod
    def create_row(self, fields: Mapping[str, Any]) -> StagedRow:
        """Insert a row and return it with its assigned id."""

    @abstractmethod
    def update_fields(self, row_id: str, fields: Mapping[str, Any]) -> None:
        """Overwrite the named fields of one row."""

    @abstractmethod
    def delete_row(self, row_id: str) -> None: ...

    @abstractmethod
    def delete_all(self) -> None: ...

    @abstractmethod
    def reset_to_samples(self) -> None:
        """Replace every row with the sample data set."""


class LedgerPostingGateway(ABC):
    """Ledger posting endpoint."""

    @abstractmethod
    def create_voucher(self, payload: Mapping[str, Any]) -> str:
        """
        Record one voucher and return its identifier.

        Raises:
            VoucherRejectedError: the ledger refused the voucher.
        """
