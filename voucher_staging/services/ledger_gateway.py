"""
SqlLedgerGateway -- reference ledger store behind LedgerPostingGateway.

Responsibility:
    Validates a voucher payload and records it as a ``vouchers`` header,
    its ``voucher_items`` and the derived ``general_ledger`` rows, all in
    one transaction.

Architecture position:
    Services -- imperative shell.  ``VoucherWriter`` does the flush-only
    writes inside a caller-owned session; ``SqlLedgerGateway`` owns the
    transaction and translates every failure into VoucherRejectedError.

Invariants enforced:
    - Each item yields exactly two ledger rows: the debit side on the debit
      account and the credit side on the credit account, each naming the
      other account as reciprocal.
    - The voucher sequence number comes from SequenceService.
    - Nothing is written unless the whole voucher is written.

Failure modes:
    - VoucherRejectedError: malformed payload (no doc_no, no lines,
      non-positive amounts, unsupported currency, bad dates or fx rate), or
      a database error while writing.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from voucher_staging.db.engine import transactional_scope
from voucher_staging.db.types import InvalidCurrencyError, validate_currency
from voucher_staging.domain.clock import Clock, SystemClock
from voucher_staging.exceptions import VoucherRejectedError
from voucher_staging.logging_config import get_logger
from voucher_staging.models.voucher import GeneralLedgerEntry, Voucher, VoucherItem
from voucher_staging.services.base import BaseService
from voucher_staging.services.collaborators import LedgerPostingGateway
from voucher_staging.services.sequence_service import SequenceService

logger = get_logger("services.ledger_gateway")

_LINE_TEXT_FIELDS = ("description", "partner_code", "item_code", "sub_item_code")


@dataclass(frozen=True)
class ValidatedLine:
    description: str
    debit_account: str
    credit_account: str
    amount: Decimal
    partner_code: str
    item_code: str
    sub_item_code: str


@dataclass(frozen=True)
class ValidatedVoucher:
    """A payload that passed every check, with typed values."""

    doc_no: str
    doc_date: date
    post_date: date
    description: str
    voucher_type: str
    total_amount: Decimal
    currency: str
    fx_rate: Decimal
    status: str
    lines: tuple[ValidatedLine, ...]


def _decimal(value: Any, name: str, doc_no: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise VoucherRejectedError(doc_no, f"{name} is not a number") from None
    if not result.is_finite():
        raise VoucherRejectedError(doc_no, f"{name} is not a number")
    return result


def _iso_date(value: Any, name: str, doc_no: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise VoucherRejectedError(doc_no, f"{name} is not an ISO date: {value!r}") from None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def validate_payload(payload: Mapping[str, Any]) -> ValidatedVoucher:
    """
    Check a voucher payload and convert it to typed values.

    Raises:
        VoucherRejectedError: with a message naming the first problem found.
    """
    doc_no = _text(payload.get("doc_no"))
    if not doc_no:
        raise VoucherRejectedError("", "document number is required")

    raw_lines = payload.get("lines") or []
    if not raw_lines:
        raise VoucherRejectedError(doc_no, "voucher has no lines")

    try:
        currency = validate_currency(payload.get("currency"))
    except InvalidCurrencyError as exc:
        raise VoucherRejectedError(doc_no, str(exc)) from exc

    fx_rate = _decimal(payload.get("fx_rate", 1), "fx_rate", doc_no)
    if fx_rate <= 0:
        raise VoucherRejectedError(doc_no, "fx_rate must be positive")

    lines: list[ValidatedLine] = []
    for number, raw in enumerate(raw_lines, start=1):
        debit_account = _text(raw.get("debit_account"))
        credit_account = _text(raw.get("credit_account"))
        if not debit_account or not credit_account:
            raise VoucherRejectedError(doc_no, f"line {number} needs both accounts")
        amount = _decimal(raw.get("amount"), f"line {number} amount", doc_no)
        if amount <= 0:
            raise VoucherRejectedError(doc_no, f"line {number} amount must be positive")
        lines.append(
            ValidatedLine(
                debit_account=debit_account,
                credit_account=credit_account,
                amount=amount,
                **{name: _text(raw.get(name)) for name in _LINE_TEXT_FIELDS},
            )
        )

    total = sum((line.amount for line in lines), Decimal(0))
    declared = payload.get("total_amount")
    if declared is not None and _decimal(declared, "total_amount", doc_no) != total:
        raise VoucherRejectedError(
            doc_no, f"total_amount {declared} does not match line sum {total}"
        )

    return ValidatedVoucher(
        doc_no=doc_no,
        doc_date=_iso_date(payload.get("doc_date"), "doc_date", doc_no),
        post_date=_iso_date(payload.get("post_date"), "post_date", doc_no),
        description=_text(payload.get("description")),
        voucher_type=_text(payload.get("type")) or "GENERAL",
        total_amount=total,
        currency=currency,
        fx_rate=fx_rate,
        status=_text(payload.get("status")) or "POSTED",
        lines=tuple(lines),
    )


class VoucherWriter(BaseService[Voucher]):
    """
    Flush-only writer for one validated voucher.

    Contract:
        ``write`` adds the header, items and ledger rows to the session and
        flushes.  The caller commits.
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock
        self._sequences = SequenceService(session)

    def write(self, voucher: ValidatedVoucher) -> Voucher:
        posted_at = self._clock.now()
        header = Voucher(
            seq=self._sequences.next_value(SequenceService.VOUCHER),
            doc_no=voucher.doc_no,
            doc_date=voucher.doc_date,
            post_date=voucher.post_date,
            description=voucher.description,
            voucher_type=voucher.voucher_type,
            total_amount=voucher.total_amount,
            currency=voucher.currency,
            fx_rate=voucher.fx_rate,
            status=voucher.status,
        )
        self.session.add(header)
        self.session.flush()

        for number, line in enumerate(voucher.lines, start=1):
            header.items.append(
                VoucherItem(
                    line_number=number,
                    description=line.description,
                    debit_account=line.debit_account,
                    credit_account=line.credit_account,
                    amount=line.amount,
                    partner_code=line.partner_code,
                    item_code=line.item_code,
                    sub_item_code=line.sub_item_code,
                )
            )
            for account, reciprocal, debit, credit in (
                (line.debit_account, line.credit_account, line.amount, Decimal(0)),
                (line.credit_account, line.debit_account, Decimal(0), line.amount),
            ):
                self.session.add(
                    GeneralLedgerEntry(
                        voucher_id=header.id,
                        trx_date=voucher.doc_date,
                        posted_at=posted_at,
                        doc_no=voucher.doc_no,
                        description=line.description or voucher.description,
                        account_code=account,
                        reciprocal_account=reciprocal,
                        debit_amount=debit,
                        credit_amount=credit,
                        partner_code=line.partner_code,
                        item_code=line.item_code,
                        sub_item_code=line.sub_item_code,
                    )
                )

        self.session.flush()
        return header


class SqlLedgerGateway(LedgerPostingGateway):
    """
    Contract:
        ``create_voucher(payload)`` returns the new voucher's id as a string,
        or raises VoucherRejectedError and leaves the store unchanged.
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def create_voucher(self, payload: Mapping[str, Any]) -> str:
        voucher = validate_payload(payload)
        try:
            with transactional_scope(self._session_factory) as session:
                header = VoucherWriter(session, self._clock).write(voucher)
                voucher_id = str(header.id)
                seq = header.seq
        except SQLAlchemyError as exc:
            raise VoucherRejectedError(voucher.doc_no, f"ledger write failed: {exc}") from exc

        logger.info(
            "voucher_recorded",
            extra={
                "voucher_id": voucher_id,
                "seq": seq,
                "line_count": len(voucher.lines),
                "total_amount": voucher.total_amount,
            },
        )
        return voucher_id
