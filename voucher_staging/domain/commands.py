"""
Command bus -- toolbar commands routed to the active staging handler.

Responsibility:
    A typed ``StagingCommand`` is dispatched to at most one registered
    handler.  Whichever view is active registers itself; when nothing is
    registered, dispatch is a logged no-op that returns None.

Architecture position:
    Domain -- no I/O.  Handlers live in services (``StagingSession``).
"""

import threading
from enum import Enum
from typing import Any, Protocol

from voucher_staging.logging_config import get_logger

logger = get_logger("domain.commands")


class StagingCommand(str, Enum):
    """Commands the staging toolbar can issue."""

    ADD_ROW = "add_row"
    POST = "post"
    CLEAR_ALL = "clear_all"
    RESET_SAMPLES = "reset_samples"
    CHECK_BALANCE = "check_balance"
    RELOAD = "reload"


class CommandHandler(Protocol):
    def handle_command(self, command: StagingCommand) -> Any: ...


class CommandBus:
    """
    Holds a reference to the single active handler.

    Guarantees:
        - ``register`` replaces any previous handler.
        - ``unregister`` only clears the slot if ``handler`` is the active one,
          so a view tearing down late cannot evict its successor.
    """

    def __init__(self) -> None:
        self._handler: CommandHandler | None = None
        self._lock = threading.Lock()

    @property
    def active_handler(self) -> CommandHandler | None:
        return self._handler

    def register(self, handler: CommandHandler) -> None:
        with self._lock:
            self._handler = handler
        logger.debug("command_handler_registered", extra={"handler": type(handler).__name__})

    def unregister(self, handler: CommandHandler) -> None:
        with self._lock:
            if self._handler is handler:
                self._handler = None

    def dispatch(self, command: StagingCommand) -> Any:
        handler = self._handler
        if handler is None:
            logger.info("command_ignored_no_handler", extra={"command": command.value})
            return None
        logger.debug("command_dispatched", extra={"command": command.value})
        return handler.handle_command(command)
