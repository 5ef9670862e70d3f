"""
Command-line front end: ``python -m voucher_staging``.

Usage:
    python -m voucher_staging init-db
    python -m voucher_staging add --doc-no PKT010 --debit 642 --credit 111 --amount 250000
    python -m voucher_staging edit <row-id> amount "1.500.000"
    python -m voucher_staging list
    python -m voucher_staging balance
    python -m voucher_staging post
    python -m voucher_staging reset --yes

Global options: ``--config PATH`` (YAML), ``--log-level LEVEL``.  The
database URL may also come from ``VOUCHER_STAGING_DATABASE_URL``.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from voucher_staging.config import StagingConfig, load_config
from voucher_staging.db.engine import build_engine, create_tables
from voucher_staging.domain.balance import BalanceCheckResult, BalanceStatus
from voucher_staging.domain.commands import CommandBus, StagingCommand
from voucher_staging.domain.staging import StagedRow
from voucher_staging.exceptions import VoucherStagingError
from voucher_staging.logging_config import configure_logging
from voucher_staging.services.posting_pipeline import PostingSummary
from voucher_staging.services.staging_session import open_session

_ADD_OPTIONS = (
    ("--date", "trx_date"),
    ("--doc-no", "doc_no"),
    ("--description", "description"),
    ("--debit", "debit_account"),
    ("--credit", "credit_account"),
    ("--amount", "amount"),
    ("--partner", "partner_code"),
    ("--item", "item_code"),
    ("--sub-item", "sub_item_code"),
)

_BALANCE_LABELS = {
    BalanceStatus.BALANCED: "Balanced",
    BalanceStatus.UNBALANCED: "UNBALANCED",
    BalanceStatus.INCOMPLETE: "Incomplete lines",
    BalanceStatus.EMPTY: "No lines",
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="voucher_staging",
        description="Stage transaction rows and post them to the ledger as vouchers",
    )
    p.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    p.add_argument("--log-level", default="WARNING", help="Log level (default WARNING)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the staging and ledger tables")
    sub.add_parser("list", help="Show staged rows")
    sub.add_parser("balance", help="Debit/credit check over all staged rows")
    sub.add_parser("post", help="Post pending rows as vouchers")

    add = sub.add_parser("add", help="Add a staging row")
    for flag, dest in _ADD_OPTIONS:
        add.add_argument(flag, dest=dest, default=None)

    edit = sub.add_parser("edit", help="Change one field of a row")
    edit.add_argument("row_id")
    edit.add_argument("field")
    edit.add_argument("value")

    delete = sub.add_parser("delete", help="Delete a row")
    delete.add_argument("row_id")

    for name, text in (("clear", "Delete every row"), ("reset", "Replace rows with sample data")):
        destructive = sub.add_parser(name, help=text)
        destructive.add_argument("--yes", action="store_true", help="Confirm the operation")

    return p


def format_row(row: StagedRow) -> str:
    return (
        f"{row.row_index:>4}  {row.id}  {row.trx_date:<10}  {row.doc_no:<10}  "
        f"{row.debit_account:>6} / {row.credit_account:<6}  {row.amount:>15,}  "
        f"{row.status.value:<8}  {row.status_note}"
    )


def format_balance(result: BalanceCheckResult) -> list[str]:
    lines = [
        f"Status:       {_BALANCE_LABELS[result.status]}",
        f"Total debit:  {result.total_debit:,}",
        f"Total credit: {result.total_credit:,}",
        f"Difference:   {result.difference:,}",
    ]
    if result.incomplete_lines:
        numbers = ", ".join(str(n) for n in result.display_incomplete_lines())
        lines.append(f"Incomplete lines: {numbers}")
    if result.off_balance_sheet_lines:
        lines.append(f"Off-balance-sheet lines: {result.off_balance_sheet_lines}")
    return lines


def format_summary(summary: PostingSummary) -> list[str]:
    lines = [summary.message]
    for doc_no, voucher_id in summary.voucher_ids.items():
        lines.append(f"  {doc_no} -> {voucher_id}")
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    try:
        config = load_config(args.config)
    except VoucherStagingError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    engine = build_engine(config.database.url, echo=config.database.echo)
    try:
        if args.command == "init-db":
            create_tables(engine)
            print(f"  Tables created ({engine.dialect.name}).")
            return 0
        return _run_command(args, config, sessionmaker(bind=engine, expire_on_commit=False))
    except (VoucherStagingError, SQLAlchemyError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


def _run_command(
    args: argparse.Namespace,
    config: StagingConfig,
    session_factory: sessionmaker[Session],
) -> int:
    def confirm() -> bool:
        return bool(getattr(args, "yes", False))

    bus = CommandBus()

    with open_session(config, session_factory, confirm=confirm) as session:
        session.attach(bus)

        if args.command == "list":
            for row in session.store.rows:
                print(format_row(row))
            return 0

        if args.command == "add":
            fields = {dest: getattr(args, dest) for _, dest in _ADD_OPTIONS}
            row = session.store.create_row(**{k: v for k, v in fields.items() if v is not None})
            print(f"  Added row {row.id}")
            return 0

        if args.command == "edit":
            session.store.edit_field(args.row_id, args.field, args.value)
            print(f"  Updated {args.field} on {args.row_id}")
            return 0

        if args.command == "delete":
            session.store.delete_row(args.row_id)
            print(f"  Deleted row {args.row_id}")
            return 0

        if args.command == "balance":
            for line in format_balance(bus.dispatch(StagingCommand.CHECK_BALANCE)):
                print(line)
            return 0

        if args.command == "post":
            summary = bus.dispatch(StagingCommand.POST)
            for line in format_summary(summary):
                print(line)
            return 1 if summary.has_failures else 0

        command = StagingCommand.CLEAR_ALL if args.command == "clear" else StagingCommand.RESET_SAMPLES
        if not bus.dispatch(command):
            print("  Cancelled: pass --yes to confirm.", file=sys.stderr)
            return 1
        print(f"  Done: {len(session.store.rows)} row(s) staged.")
        return 0
