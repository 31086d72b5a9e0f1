import logging
from unittest.mock import MagicMock

import pytest

from doclink.connection.actor import UserConnection
from doclink.connection.registry import ConnectionRegistry
from doclink.connection.state_machine import ConnectRequested, DisconnectRequested


def _connection(machine: MagicMock | None = None) -> UserConnection:
    machine = machine or MagicMock(user_id="user-1")
    connection = UserConnection(machine)
    connection.start()
    return connection


class TestUserConnection:
    def test_commands_are_applied_in_order(self) -> None:
        machine = MagicMock(user_id="user-1")
        connection = _connection(machine)
        first, second = ConnectRequested(), DisconnectRequested()
        connection.submit(first)
        connection.submit(second)
        connection.wait_idle()
        assert [c.args[0] for c in machine.dispatch.call_args_list] == [first, second]
        connection.stop()

    def test_failed_transition_is_logged_and_loop_continues(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        machine = MagicMock(user_id="user-1")
        machine.dispatch.side_effect = [RuntimeError("boom"), None]
        connection = _connection(machine)
        with caplog.at_level(logging.ERROR, logger="doclink"):
            connection.submit(ConnectRequested())
            connection.submit(ConnectRequested())
            connection.wait_idle()
        assert machine.dispatch.call_count == 2
        assert "Connection transition failed" in caplog.text
        connection.stop()

    def test_submit_after_stop_is_dropped(self) -> None:
        machine = MagicMock(user_id="user-1")
        connection = _connection(machine)
        connection.stop()
        connection.stop()
        connection.submit(ConnectRequested())
        machine.dispatch.assert_not_called()

    def test_direct_calls_go_to_machine(self) -> None:
        machine = MagicMock(user_id="user-1")
        machine.download.return_value = b"data"
        connection = _connection(machine)
        connection.send_text("peer", "hi")
        machine.send_text.assert_called_once_with("peer", "hi")
        assert connection.download(MagicMock()) == b"data"
        connection.stop()


class TestConnectionRegistry:
    def test_get_or_create_builds_once(self) -> None:
        registry = ConnectionRegistry()
        factory = MagicMock(side_effect=lambda user_id: MagicMock(user_id=user_id))
        first = registry.get_or_create("a", factory)
        second = registry.get_or_create("a", factory)
        assert first is second
        factory.assert_called_once_with("a")
        first.start.assert_called_once()

    def test_remove_and_drain(self) -> None:
        registry = ConnectionRegistry()
        registry.get_or_create("a", lambda user_id: MagicMock())
        registry.get_or_create("b", lambda user_id: MagicMock())
        assert registry.remove("a") is not None
        assert registry.remove("a") is None
        assert registry.user_ids() == ["b"]
        assert len(registry.drain()) == 1
        assert len(registry) == 0
