"""Tests for per-event log stamping."""

import logging

import pytest

from repairdesk.logging_context import (
    EventContext,
    EventContextFilter,
    bound_event,
    current_event,
    install_event_filter,
)
from repairdesk.schemas.request_schema import EventKind

from tests.conftest import CLIENT_ID, OPERATOR_ID, command, make_event


def _record() -> logging.LogRecord:
    return logging.LogRecord("repairdesk.test", logging.INFO, __file__, 1, "msg", None, None)


class TestBoundEvent:
    def test_default_outside_event(self):
        assert current_event() == EventContext("-", "-")

    def test_binds_and_restores(self):
        with bound_event(-500, CLIENT_ID) as context:
            assert current_event() is context
            assert context == EventContext("-500", str(CLIENT_ID))
        assert current_event() == EventContext()

    def test_nested_binding_restores_outer(self):
        with bound_event(1, 1):
            with bound_event(2, 2):
                assert current_event().user_id == "2"
            assert current_event().user_id == "1"


class TestEventContextFilter:
    def test_stamps_chat_and_user(self):
        record = _record()
        with bound_event(-500, OPERATOR_ID):
            assert EventContextFilter().filter(record)
        assert record.conversation_id == "-500"
        assert record.user_id == str(OPERATOR_ID)

    def test_stamps_placeholder_outside_event(self):
        record = _record()
        EventContextFilter().filter(record)
        assert (record.conversation_id, record.user_id) == ("-", "-")

    def test_install_is_idempotent(self):
        handler = logging.NullHandler()
        install_event_filter([handler])
        install_event_filter([handler])
        assert len(handler.filters) == 1


class TestDispatcherLogging:
    @pytest.mark.asyncio
    async def test_records_carry_chat_and_user(self, desk, caplog):
        caplog.set_level(logging.INFO, logger="repairdesk.bot.dispatcher")
        await desk.dispatcher.handle(
            make_event(EventKind.COMMAND, "start", user_id=CLIENT_ID, conversation_id=-500)
        )
        records = [r for r in caplog.records if r.name == "repairdesk.bot.dispatcher"]
        assert records
        assert all(r.conversation_id == "-500" for r in records)
        assert all(r.user_id == str(CLIENT_ID) for r in records)

    @pytest.mark.asyncio
    async def test_context_cleared_after_event(self, desk):
        await desk.dispatcher.handle(command("start"))
        assert current_event() == EventContext()
