"""
Tests for logging_utils.py - colored console logging and form event logger.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from logging_utils import (
    EVENT_TAGS,
    Event,
    FormEventLogger,
    TimingTracker,
    create_form_logger,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


class TestSetupLogging:

    def test_sets_level_and_adds_handler(self, restore_root_logger):
        root = setup_logging("debug")
        assert root.level == logging.DEBUG
        ours = [h for h in root.handlers if getattr(h, "_servicedesk_handler", False)]
        assert len(ours) == 1

    def test_repeated_setup_keeps_single_handler(self, restore_root_logger):
        setup_logging("INFO")
        root = setup_logging("WARNING")
        ours = [h for h in root.handlers if getattr(h, "_servicedesk_handler", False)]
        assert len(ours) == 1
        assert root.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        assert setup_logging("chatty").level == logging.INFO

    def test_noisy_loggers_quieted(self, restore_root_logger):
        setup_logging("DEBUG", noisy_loggers=("urllib3",))
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_formatter_restores_levelname(self, restore_root_logger):
        root = setup_logging("INFO")
        handler = [h for h in root.handlers if getattr(h, "_servicedesk_handler", False)][0]
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)
        output = handler.formatter.format(record)
        assert "boom" in output
        assert record.levelname == "ERROR"


class TestTimingTracker:

    def test_end_without_start_returns_zero(self):
        assert TimingTracker().end("missing") == 0.0

    def test_start_end_records_elapsed(self):
        tracker = TimingTracker()
        with patch("logging_utils.time.monotonic", side_effect=[10.0, 12.5]):
            tracker.start("submit")
            elapsed = tracker.end("submit")
        assert elapsed == 2.5
        assert tracker.get("submit") == 2.5
        assert tracker.get_all() == {"submit": 2.5}


class TestFormEventLogger:

    def test_event_includes_tag_and_prefix(self):
        """
        Given: A form logger for job session abc
        When: An ADD event is logged
        Then: The line carries the [ADD] tag and the [job:abc] prefix
        """
        mock_logger = MagicMock()
        events = FormEventLogger("job", "abc", logger=mock_logger)

        events.event(Event.ADD, "2 file(s) added")

        message = mock_logger.info.call_args.args[0]
        assert EVENT_TAGS[Event.ADD] in message
        assert "[job:abc]" in message
        assert "2 file(s) added" in message

    def test_warning_and_error_levels(self):
        mock_logger = MagicMock()
        events = FormEventLogger("system_issue", "s1", logger=mock_logger)
        events.warning("File too large")
        events.error("Failed to update")
        assert "File too large" in mock_logger.warning.call_args.args[0]
        assert "[ERROR]" in mock_logger.error.call_args.args[0]

    def test_timed_logs_start_and_finish(self):
        mock_logger = MagicMock()
        events = FormEventLogger("job", "abc", logger=mock_logger)

        with events.timed(Event.SUBMIT):
            pass

        messages = [call.args[0] for call in mock_logger.info.call_args_list]
        assert len(messages) == 2
        assert "started" in messages[0]
        assert "finished (Elapsed:" in messages[1]

    def test_timed_logs_finish_on_exception(self):
        mock_logger = MagicMock()
        events = FormEventLogger("job", "abc", logger=mock_logger)
        with pytest.raises(RuntimeError):
            with events.timed(Event.SUBMIT):
                raise RuntimeError("boom")
        assert "finished" in mock_logger.info.call_args.args[0]

    def test_create_form_logger(self):
        events = create_form_logger("parts_request", "p1")
        assert events.form_name == "parts_request"
        assert events.session_id == "p1"
