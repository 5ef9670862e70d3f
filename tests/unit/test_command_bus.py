"""Tests for the staging command bus."""

from voucher_staging.domain.commands import CommandBus, StagingCommand


class RecordingHandler:
    def __init__(self, result="handled"):
        self.commands = []
        self.result = result

    def handle_command(self, command):
        self.commands.append(command)
        return self.result


class TestCommandBus:
    def test_dispatch_reaches_active_handler(self):
        bus = CommandBus()
        handler = RecordingHandler()
        bus.register(handler)

        assert bus.dispatch(StagingCommand.POST) == "handled"
        assert handler.commands == [StagingCommand.POST]

    def test_no_handler_is_logged_noop(self, captured_logs):
        bus = CommandBus()

        assert bus.dispatch(StagingCommand.CLEAR_ALL) is None

        logs = captured_logs()
        ignored = [r for r in logs if r["message"] == "command_ignored_no_handler"]
        assert ignored and ignored[0]["command"] == "clear_all"

    def test_register_replaces_previous_handler(self):
        bus = CommandBus()
        first, second = RecordingHandler("first"), RecordingHandler("second")
        bus.register(first)
        bus.register(second)

        assert bus.dispatch(StagingCommand.RELOAD) == "second"
        assert first.commands == []

    def test_stale_unregister_keeps_successor(self):
        """A handler tearing down late must not evict the one that replaced it."""
        bus = CommandBus()
        old, new = RecordingHandler(), RecordingHandler()
        bus.register(old)
        bus.register(new)

        bus.unregister(old)

        assert bus.active_handler is new

    def test_unregister_active_handler(self):
        bus = CommandBus()
        handler = RecordingHandler()
        bus.register(handler)

        bus.unregister(handler)

        assert bus.active_handler is None
        assert bus.dispatch(StagingCommand.ADD_ROW) is None
