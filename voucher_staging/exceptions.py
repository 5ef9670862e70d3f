"""
Typed exception hierarchy for the staging and posting pipeline.

Every exception carries a class-level ``code`` (machine-readable, stable
across message wording changes) and stores its context as attributes so it
survives logging and serialization.

    VoucherStagingError (base)
    |
    +-- StagingError
    |   +-- StagingRowNotFoundError
    |   +-- UnknownFieldError
    |   +-- PersistenceError
    |
    +-- PostingError
    |   +-- StructuralValidationError
    |   +-- VoucherRejectedError
    |   +-- PostingInProgressError
    |
    +-- ConfigurationError

Category   | Code                    | When Raised
-----------|-------------------------|------------------------------------------
Staging    | STAGING_ROW_NOT_FOUND   | Edit/status write for an unknown row id
           | UNKNOWN_FIELD           | Edit of a field that is not editable
           | PERSISTENCE_ERROR       | Staging collaborator call failed
-----------|-------------------------|------------------------------------------
Posting    | STRUCTURAL_VALIDATION   | Row misses a required field (caught
           |                         | locally, surfaced as a status note)
           | VOUCHER_REJECTED        | Ledger collaborator refused a voucher
           | POSTING_IN_PROGRESS     | post() called while a run is active
-----------|-------------------------|------------------------------------------
Config     | CONFIGURATION_ERROR     | Config file malformed or wrong types

Handling rules:
    - StructuralValidationError never leaves the grouping step.
    - VoucherRejectedError (and any other collaborator failure) is caught per
      voucher group and recorded in the run summary.
    - PersistenceError on debounced field writes is logged, not raised; the
      in-memory mirror stays authoritative until the next reload.
"""


class VoucherStagingError(Exception):
    """Base exception for all voucher staging errors."""

    code: str = "VOUCHER_STAGING_ERROR"


# Staging-related exceptions


class StagingError(VoucherStagingError):
    """Base exception for staging row store errors."""

    code: str = "STAGING_ERROR"


class StagingRowNotFoundError(StagingError):
    """No staged row with the given id is present."""

    code: str = "STAGING_ROW_NOT_FOUND"

    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__(f"Staging row not found: {row_id}")


class UnknownFieldError(StagingError):
    """Field name is not an operator-editable staging field."""

    code: str = "UNKNOWN_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Unknown staging field: {field_name}")


class PersistenceError(StagingError):
    """The staging persistence collaborator failed."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str, row_id: str | None = None):
        self.operation = operation
        self.reason = reason
        self.row_id = row_id
        target = f" for row {row_id}" if row_id else ""
        super().__init__(f"Staging {operation} failed{target}: {reason}")


# Posting-related exceptions


class PostingError(VoucherStagingError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class StructuralValidationError(PostingError):
    """Staged row is missing one or more fields required for posting."""

    code: str = "STRUCTURAL_VALIDATION"

    def __init__(self, row_id: str, missing_fields: list[str]):
        self.row_id = row_id
        self.missing_fields = missing_fields
        super().__init__(f"Missing: {', '.join(missing_fields)}")


class VoucherRejectedError(PostingError):
    """The ledger collaborator refused or failed to record a voucher."""

    code: str = "VOUCHER_REJECTED"

    def __init__(self, doc_no: str, reason: str):
        self.doc_no = doc_no
        self.reason = reason
        super().__init__(f"Voucher {doc_no} rejected: {reason}")


class PostingInProgressError(PostingError):
    """A posting run is already active; overlapping runs are refused."""

    code: str = "POSTING_IN_PROGRESS"

    def __init__(self) -> None:
        super().__init__("A posting run is already in progress")


# Configuration exceptions


class ConfigurationError(VoucherStagingError):
    """Configuration could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
