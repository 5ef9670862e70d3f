"""
StagingSession -- the staging screen's command handler.

Responsibility:
    Wires a StagingRowStore, a PostingPipeline and the CommandBus together
    and maps each StagingCommand onto them.  ``open_session`` builds the
    standard SQL-backed session from a StagingConfig.

Architecture position:
    Services -- outermost orchestration below the CLI.
"""

import uuid
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from voucher_staging.config import StagingConfig
from voucher_staging.domain.clock import Clock, SystemClock
from voucher_staging.domain.commands import CommandBus, StagingCommand
from voucher_staging.logging_config import LogContext, get_logger
from voucher_staging.services.debounce import TimerFactory
from voucher_staging.services.ledger_gateway import SqlLedgerGateway
from voucher_staging.services.posting_pipeline import PostingPipeline, PostingSummary
from voucher_staging.services.row_store import Confirm, StagingRowStore
from voucher_staging.services.staging_repository import SqlStagingRepository

logger = get_logger("services.staging_session")


def _decline() -> bool:
    return False


class StagingSession:
    """
    Contract:
        ``handle_command`` returns the command's natural result: the new
        row, a PostingSummary, a bool for destructive commands, a
        BalanceCheckResult, or the reloaded rows.

    Destructive commands ask ``confirm``; without one they are declined.
    """

    def __init__(
        self,
        store: StagingRowStore,
        pipeline: PostingPipeline,
        confirm: Confirm | None = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.session_id = str(uuid.uuid4())
        self._confirm = confirm or _decline
        self._bus: CommandBus | None = None
        self._handlers: dict[StagingCommand, Callable[[], Any]] = {
            StagingCommand.ADD_ROW: self.store.create_row,
            StagingCommand.POST: self.post,
            StagingCommand.CLEAR_ALL: lambda: self.store.clear_all(self._confirm),
            StagingCommand.RESET_SAMPLES: lambda: self.store.reset_to_samples(self._confirm),
            StagingCommand.CHECK_BALANCE: self.store.balance_check,
            StagingCommand.RELOAD: self.store.load,
        }

    def handle_command(self, command: StagingCommand) -> Any:
        with LogContext.bind(session_id=self.session_id):
            logger.debug("command_handled", extra={"command": command.value})
            return self._handlers[command]()

    def post(self) -> PostingSummary:
        """Flush pending edits, then post the current mirror."""
        self.store.flush()
        return self.pipeline.post(self.store.rows)

    def attach(self, bus: CommandBus) -> None:
        bus.register(self)
        self._bus = bus

    def close(self) -> None:
        """Unregister from the bus and flush pending edits."""
        if self._bus is not None:
            self._bus.unregister(self)
            self._bus = None
        self.store.close()

    def __enter__(self) -> "StagingSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def open_session(
    config: StagingConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
    confirm: Confirm | None = None,
    timer_factory: TimerFactory | None = None,
) -> StagingSession:
    """Build a SQL-backed session and load the current rows."""
    clock = clock or SystemClock()
    store = StagingRowStore(
        SqlStagingRepository(session_factory),
        clock=clock,
        debounce_seconds=config.debounce_seconds,
        timer_factory=timer_factory,
    )
    pipeline = PostingPipeline(
        SqlLedgerGateway(session_factory, clock=clock),
        store,
        clock=clock,
        defaults=config.posting,
    )
    store.load()
    return StagingSession(store, pipeline, confirm=confirm)
