"""
SqlStagingRepository -- SQLAlchemy implementation of StagingPersistence.

Responsibility:
    Stores draft rows in ``staging_transactions``.  Each public call opens
    its own transaction through ``transactional_scope``: committed on
    success, rolled back and re-raised on failure.

Architecture position:
    Services -- imperative shell.  Used by StagingRowStore; tests use it
    over in-memory SQLite.

Invariants enforced:
    - Created rows get a uuid4 id, status NEW, is_valid False and the note
      "New record".
    - ``reset_to_samples`` leaves exactly the sample set behind.
"""

from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from voucher_staging.db.engine import transactional_scope
from voucher_staging.domain.staging import (
    EDITABLE_FIELDS,
    NEW_ROW_NOTE,
    RowStatus,
    StagedRow,
    sanitize_amount,
)
from voucher_staging.exceptions import StagingRowNotFoundError, UnknownFieldError
from voucher_staging.logging_config import get_logger
from voucher_staging.models.staging import StagingTransaction
from voucher_staging.services.collaborators import StagingPersistence

logger = get_logger("services.staging_repository")

WRITABLE_FIELDS = EDITABLE_FIELDS | {"is_valid", "status", "status_note", "row_index"}

SAMPLE_BATCH_ID = "batch_init"

# (trx_date, doc_no, description, debit, credit, amount, partner_code)
SAMPLE_ROWS: tuple[tuple[str, str, str, str, str, int, str], ...] = (
    ("2024-03-20", "PKT001", "Kết chuyển thuế GTGT đầu kỳ", "3331", "1331", 15_000_000, ""),
    ("2024-03-21", "PKT002", "Trích khấu hao TSCD tháng 3", "642", "214", 5_000_000, ""),
    ("2024-03-22", "PKT003", "Phân bổ chi phí trả trước", "642", "242", 2_000_000, ""),
    ("2024-03-23", "PKT004", "Bút toán điều chỉnh sai sót năm trước", "421", "331", 10_000_000, "NCC_A"),
    ("2024-03-25", "PKT005", "Tiền thưởng lễ cho nhân viên", "642", "334", 3_500_000, ""),
)


def _column_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, value in fields.items():
        if name not in WRITABLE_FIELDS:
            raise UnknownFieldError(name)
        if name == "amount":
            value = sanitize_amount(value)
        elif name == "status":
            value = RowStatus(value).value
        elif name == "is_valid":
            value = bool(value)
        elif name == "row_index":
            value = int(value)
        else:
            value = "" if value is None else str(value)
        values[name] = value
    return values


class SqlStagingRepository(StagingPersistence):
    """
    Contract:
        Implements every StagingPersistence operation over a session
        factory.  Row ids are the string form of the UUID primary key.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _load(self, session: Session, row_id: str) -> StagingTransaction:
        try:
            key = UUID(str(row_id))
        except ValueError:
            raise StagingRowNotFoundError(row_id) from None
        record = session.get(StagingTransaction, key)
        if record is None:
            raise StagingRowNotFoundError(row_id)
        return record

    def list_rows(self) -> list[StagedRow]:
        with transactional_scope(self._session_factory) as session:
            records = session.execute(
                select(StagingTransaction).order_by(
                    StagingTransaction.row_index, StagingTransaction.created_at
                )
            ).scalars()
            return [record.to_row() for record in records]

    def create_row(self, fields: Mapping[str, Any]) -> StagedRow:
        values = _column_values(fields)
        with transactional_scope(self._session_factory) as session:
            if "row_index" not in values:
                current = session.execute(
                    select(func.max(StagingTransaction.row_index))
                ).scalar_one_or_none()
                values["row_index"] = (current or 0) + 1
            values.setdefault("status", RowStatus.NEW.value)
            values.setdefault("is_valid", False)
            values.setdefault("status_note", NEW_ROW_NOTE)

            record = StagingTransaction(**values)
            session.add(record)
            session.flush()
            row = record.to_row()

        logger.info(
            "staging_row_created",
            extra={"row_id": row.id, "row_index": row.row_index},
        )
        return row

    def update_fields(self, row_id: str, fields: Mapping[str, Any]) -> None:
        values = _column_values(fields)
        if not values:
            return
        with transactional_scope(self._session_factory) as session:
            record = self._load(session, row_id)
            for name, value in values.items():
                setattr(record, name, value)
        logger.debug(
            "staging_row_updated",
            extra={"row_id": row_id, "fields": sorted(values)},
        )

    def delete_row(self, row_id: str) -> None:
        with transactional_scope(self._session_factory) as session:
            session.delete(self._load(session, row_id))
        logger.info("staging_row_deleted", extra={"row_id": row_id})

    def delete_all(self) -> None:
        with transactional_scope(self._session_factory) as session:
            result = session.execute(delete(StagingTransaction))
        logger.info("staging_rows_cleared", extra={"deleted": result.rowcount})

    def reset_to_samples(self) -> None:
        with transactional_scope(self._session_factory) as session:
            session.execute(delete(StagingTransaction))
            for index, (trx_date, doc_no, description, debit, credit, amount, partner) in enumerate(
                SAMPLE_ROWS, start=1
            ):
                session.add(
                    StagingTransaction(
                        batch_id=SAMPLE_BATCH_ID,
                        row_index=index,
                        trx_date=trx_date,
                        doc_no=doc_no,
                        description=description,
                        debit_account=debit,
                        credit_account=credit,
                        amount=Decimal(amount),
                        partner_code=partner,
                        is_valid=True,
                        status=RowStatus.PENDING.value,
                        status_note="",
                    )
                )
        logger.info("staging_rows_reset", extra={"rows": len(SAMPLE_ROWS)})
