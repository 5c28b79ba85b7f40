"""Tests for racelab.logging."""

from __future__ import annotations

import io
import logging
import tempfile
import unittest
from pathlib import Path

from racelab.logging import get_logger, setup_logging


class TestSetupLogging(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("racelab")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_reconfiguring_does_not_stack_handlers(self) -> None:
        setup_logging(stream=io.StringIO())
        logger = setup_logging(stream=io.StringIO())
        self.assertEqual(len(logger.handlers), 1)

    def test_console_levels(self) -> None:
        stream = io.StringIO()
        setup_logging(quiet=True, stream=stream)
        log = get_logger("test")
        log.info("hidden")
        log.warning("shown")
        self.assertNotIn("hidden", stream.getvalue())
        self.assertIn("WARNING  shown", stream.getvalue())

    def test_verbose_wins_over_quiet(self) -> None:
        stream = io.StringIO()
        setup_logging(verbose=True, quiet=True, stream=stream)
        get_logger("test").debug("detail")
        self.assertIn("detail", stream.getvalue())

    def test_log_file_records_thread_name(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "racelab.log"
            setup_logging(quiet=True, log_file=path, stream=io.StringIO())
            get_logger("test").debug("to file")
            for handler in logging.getLogger("racelab").handlers:
                handler.flush()
            text = path.read_text(encoding="utf-8")
            self.tearDown()
        self.assertIn("MainThread racelab.test: to file", text)

    def test_get_logger_namespace(self) -> None:
        self.assertEqual(get_logger("verifier").name, "racelab.verifier")
