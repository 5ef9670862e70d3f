"""
Balance validation -- debit/credit totals and a balance status for a set of
transaction lines.

Responsibility:
    ``calculate_balance_check`` is a pure function over an immutable snapshot
    of lines.  It is advisory: the posting pipeline does not require a
    balanced result, it is surfaced to the operator before posting.

Rules:
    - Blank lines (no accounts, no amounts, no description) are ignored.
    - Off-balance-sheet lines (any account code starting with ``0``) are
      single-entry memorandum postings.  They are counted and never enter
      the debit = credit equation.
    - A line naming no account, or carrying an amount on a side without an
      account, is incomplete and excluded from the totals.
    - Status precedence: empty, incomplete, unbalanced, balanced.  Amounts
      are whole currency units compared exactly.

Architecture position:
    Domain -- pure functional core, no I/O, safe to call from any thread.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from voucher_staging.domain.staging import StagedRow

OFF_BALANCE_PREFIX = "0"

_ZERO = Decimal(0)


def is_off_balance_sheet_account(account_code: str | None) -> bool:
    """Account codes starting with ``0`` are tracked outside the balance sheet."""
    if not account_code:
        return False
    return account_code.strip().startswith(OFF_BALANCE_PREFIX)


class BalanceStatus(str, Enum):
    """Outcome of a balance check; each value renders distinctly."""

    BALANCED = "balanced"
    INCOMPLETE = "incomplete"
    UNBALANCED = "unbalanced"
    EMPTY = "empty"


@dataclass(frozen=True)
class BalanceLine:
    """
    One line presented to the balance validator.

    Staging rows carry both accounts and one amount (``paired``); ledger
    lines carry one account and the amount on its side (``debit`` /
    ``credit``).
    """

    debit_account: str = ""
    credit_account: str = ""
    debit_amount: Decimal = _ZERO
    credit_amount: Decimal = _ZERO
    description: str = ""

    @classmethod
    def paired(
        cls,
        debit_account: str,
        credit_account: str,
        amount: Decimal,
        description: str = "",
    ) -> "BalanceLine":
        return cls(debit_account, credit_account, amount, amount, description)

    @classmethod
    def debit(cls, account: str, amount: Decimal, description: str = "") -> "BalanceLine":
        return cls(debit_account=account, debit_amount=amount, description=description)

    @classmethod
    def credit(cls, account: str, amount: Decimal, description: str = "") -> "BalanceLine":
        return cls(credit_account=account, credit_amount=amount, description=description)

    @property
    def is_blank(self) -> bool:
        return (
            not self.debit_account
            and not self.credit_account
            and not self.debit_amount
            and not self.credit_amount
            and not self.description
        )

    @property
    def is_off_balance_sheet(self) -> bool:
        return is_off_balance_sheet_account(self.debit_account) or is_off_balance_sheet_account(
            self.credit_account
        )

    @property
    def is_incomplete(self) -> bool:
        if not self.debit_account and not self.credit_account:
            return True
        if self.debit_amount and not self.debit_account:
            return True
        if self.credit_amount and not self.credit_account:
            return True
        return False


@dataclass(frozen=True)
class BalanceCheckResult:
    """Read-only summary over a set of lines."""

    total_debit: Decimal
    total_credit: Decimal
    status: BalanceStatus
    incomplete_lines: tuple[int, ...] = ()
    off_balance_sheet_lines: int = 0
    on_balance_sheet_lines: int = 0

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    @property
    def is_balanced(self) -> bool:
        return self.difference == 0

    @property
    def can_post(self) -> bool:
        return self.status is BalanceStatus.BALANCED

    def display_incomplete_lines(self) -> list[int]:
        """Incomplete line numbers as shown to the operator (1-based)."""
        return [index + 1 for index in self.incomplete_lines]


EMPTY_RESULT = BalanceCheckResult(
    total_debit=_ZERO,
    total_credit=_ZERO,
    status=BalanceStatus.EMPTY,
)


def calculate_balance_check(lines: Sequence[BalanceLine]) -> BalanceCheckResult:
    """
    Compute totals and status over ``lines``.

    Indices in ``incomplete_lines`` refer to positions in ``lines`` (0-based).
    """
    total_debit = _ZERO
    total_credit = _ZERO
    on_balance = 0
    off_balance = 0
    incomplete: list[int] = []

    for index, line in enumerate(lines):
        if line.is_blank:
            continue
        if line.is_off_balance_sheet:
            off_balance += 1
            continue
        if line.is_incomplete:
            incomplete.append(index)
            continue
        total_debit += line.debit_amount
        total_credit += line.credit_amount
        on_balance += 1

    if not (on_balance or off_balance or incomplete):
        return EMPTY_RESULT

    if incomplete:
        status = BalanceStatus.INCOMPLETE
    elif total_debit != total_credit:
        status = BalanceStatus.UNBALANCED
    else:
        status = BalanceStatus.BALANCED

    return BalanceCheckResult(
        total_debit=total_debit,
        total_credit=total_credit,
        status=status,
        incomplete_lines=tuple(incomplete),
        off_balance_sheet_lines=off_balance,
        on_balance_sheet_lines=on_balance,
    )


def balance_lines_from_rows(rows: Iterable[StagedRow]) -> list[BalanceLine]:
    """Adapt staging rows (both accounts, one amount) for the validator."""
    return [
        BalanceLine.paired(
            row.debit_account.strip(),
            row.credit_account.strip(),
            row.amount,
            row.description.strip(),
        )
        for row in rows
    ]
