"""Unit tests for the structlog setup in src.utils.logging."""

from __future__ import annotations

import io
import json
import logging

from src.utils.logging import configure_logging, get_logger


class TestConfigureLogging:
    def test_reconfigure_redirects_already_cached_loggers(self) -> None:
        first, second = io.StringIO(), io.StringIO()
        logger = get_logger("tests.cached")

        configure_logging(stream=first)
        logger.info("before_redirect")
        configure_logging(stream=second)
        logger.info("after_redirect")

        assert "before_redirect" in first.getvalue()
        assert "after_redirect" not in first.getvalue()
        assert "after_redirect" in second.getvalue()

    def test_json_output_one_object_per_line(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        get_logger("tests.json").info("slice_extracted", slice_index=2)

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "slice_extracted"
        assert record["slice_index"] == 2
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filters_structlog_and_stdlib(self) -> None:
        stream = io.StringIO()
        configure_logging(log_level="WARNING", json_output=True, stream=stream)

        get_logger("tests.level").info("hidden_event")
        get_logger("tests.level").warning("shown_event")
        logging.getLogger("tests.foreign").info("hidden foreign")
        logging.getLogger("tests.foreign").warning("shown foreign")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "shown_event" in output
        assert "shown foreign" in output
