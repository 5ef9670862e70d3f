"""
Domain layer -- pure functional core.

Staged rows, structural validation and grouping, balance checks, the
command bus and the clock abstraction.  Nothing here performs I/O.
"""

from voucher_staging.domain.balance import (
    BalanceCheckResult,
    BalanceLine,
    BalanceStatus,
    balance_lines_from_rows,
    calculate_balance_check,
    is_off_balance_sheet_account,
)
from voucher_staging.domain.clock import Clock, DeterministicClock, SystemClock
from voucher_staging.domain.commands import CommandBus, StagingCommand
from voucher_staging.domain.grouping import (
    RowRejection,
    VoucherGroup,
    VoucherLine,
    build_voucher_groups,
    check_row_structure,
    group_rows,
    hold_incomplete_documents,
    materialize_group,
    parse_staging_date,
    partition_rows,
)
from voucher_staging.domain.staging import (
    EDITABLE_FIELDS,
    HELD_NOTE_TEMPLATE,
    NEW_ROW_NOTE,
    POSTED_MARKER,
    POSTING_FAILED_MARKER,
    RowStatus,
    StagedRow,
    row_from_mapping,
    sanitize_amount,
)

__all__ = [
    "BalanceCheckResult",
    "BalanceLine",
    "BalanceStatus",
    "balance_lines_from_rows",
    "calculate_balance_check",
    "is_off_balance_sheet_account",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CommandBus",
    "StagingCommand",
    "RowRejection",
    "VoucherGroup",
    "VoucherLine",
    "build_voucher_groups",
    "check_row_structure",
    "group_rows",
    "hold_incomplete_documents",
    "materialize_group",
    "parse_staging_date",
    "partition_rows",
    "EDITABLE_FIELDS",
    "HELD_NOTE_TEMPLATE",
    "NEW_ROW_NOTE",
    "POSTED_MARKER",
    "POSTING_FAILED_MARKER",
    "RowStatus",
    "StagedRow",
    "row_from_mapping",
    "sanitize_amount",
]
