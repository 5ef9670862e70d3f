"""Services -- row store, debounced writes, posting pipeline and the SQL reference stores."""

from voucher_staging.services.collaborators import LedgerPostingGateway, StagingPersistence
from voucher_staging.services.debounce import DebouncedWriter
from voucher_staging.services.ledger_gateway import SqlLedgerGateway, validate_payload
from voucher_staging.services.posting_pipeline import (
    PostingOutcome,
    PostingPipeline,
    PostingSummary,
    build_payload,
)
from voucher_staging.services.row_store import StagingRowStore
from voucher_staging.services.sequence_service import SequenceService
from voucher_staging.services.staging_repository import SqlStagingRepository
from voucher_staging.services.staging_session import StagingSession, open_session

__all__ = [
    "LedgerPostingGateway",
    "StagingPersistence",
    "DebouncedWriter",
    "SqlLedgerGateway",
    "validate_payload",
    "PostingOutcome",
    "PostingPipeline",
    "PostingSummary",
    "build_payload",
    "StagingRowStore",
    "SequenceService",
    "SqlStagingRepository",
    "StagingSession",
    "open_session",
]
