"""Tests for sync-type tagging of log lines."""

import logging

import pytest

from scripts.lib.logger import SyncContextFilter, current_sync, setup_logger, sync_context
from scripts.lib.merge import MergeResult
from scripts.lib.sync_log import SyncOutcome, run_recorded


class CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.addFilter(SyncContextFilter())
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def capture():
    handlers = []

    def attach(name):
        handler = CaptureHandler()
        logging.getLogger(name).addHandler(handler)
        handlers.append((name, handler))
        return handler

    yield attach
    for name, handler in handlers:
        logging.getLogger(name).removeHandler(handler)


class TestSyncContext:
    def test_lines_inside_context_carry_sync_type(self, capture):
        logger = setup_logger("margindesk_test_ctx")
        handler = capture("margindesk_test_ctx")

        logger.info("before")
        with sync_context("zoho_bills"):
            logger.info("during")
        logger.info("after")

        assert [r.sync_type for r in handler.records] == ["-", "zoho_bills", "-"]

    def test_nested_context_restores_outer(self):
        with sync_context("zoho_people_employees"):
            with sync_context("bill_details#7"):
                assert current_sync() == "bill_details#7"
            assert current_sync() == "zoho_people_employees"
        assert current_sync() == "-"

    def test_format_includes_sync_type(self):
        logger = setup_logger("margindesk_test_fmt")
        formatter = logger.handlers[0].formatter
        record = logging.LogRecord("margindesk_test_fmt", logging.INFO, __file__, 1, "hello", None, None)
        SyncContextFilter().filter(record)
        assert "| - | hello" in formatter.format(record)


class TestRunRecordedTagging:
    @pytest.mark.asyncio
    async def test_sync_lines_tagged_with_sync_type(self, store, capture):
        handler = capture("sync_log")
        seen = []

        async def body():
            seen.append(current_sync())
            return SyncOutcome(result=MergeResult())

        await run_recorded(store, "zoho_contacts", body)

        assert seen == ["zoho_contacts"]
        assert handler.records
        assert all(r.sync_type == "zoho_contacts" for r in handler.records)
        assert current_sync() == "-"

    @pytest.mark.asyncio
    async def test_failure_line_tagged(self, store, capture):
        handler = capture("sync_log")

        async def body():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_recorded(store, "zoho_bills", body)

        failed = [r for r in handler.records if r.levelno == logging.ERROR]
        assert failed and failed[0].sync_type == "zoho_bills"
