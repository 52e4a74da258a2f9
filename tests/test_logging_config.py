"""Tests for logging_config.py and observability.py."""

import os
import sys
import logging
from unittest.mock import patch

from bucket_mirror.core.logging_config import (
    ROOT_LOGGER_NAME,
    configure_logging,
    get_logger,
    quiet_third_party_loggers,
    setup_logger,
)
from bucket_mirror.core.observability import LogContext, StructuredLogger, create_logger


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_default_parameters(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("LOG_LEVEL", None)
            test_logger = setup_logger()
        assert test_logger.name == "bucket-mirror"
        assert test_logger.level == logging.INFO
        assert len(test_logger.handlers) == 1
        assert not test_logger.propagate

    def test_setup_logger_custom_level_by_parameter(self):
        test_logger = setup_logger(name="test-level-param", level="DEBUG")
        assert test_logger.level == logging.DEBUG

    def test_setup_logger_custom_level_by_env_var(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            test_logger = setup_logger(name="test-env-level")
            assert test_logger.level == logging.WARNING

    def test_setup_logger_invalid_level_defaults_to_info(self):
        test_logger = setup_logger(name="test-invalid-level", level="INVALID_LEVEL")
        assert test_logger.level == logging.INFO

    def test_setup_logger_structured_format_names_thread(self):
        """Worker thread names appear in every structured line."""
        with patch.dict(os.environ, {"LOG_FORMAT": "structured"}):
            test_logger = setup_logger(name="test-structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(asctime)s" in format_string
        assert "%(levelname)" in format_string
        assert "%(threadName)s" in format_string

    def test_setup_logger_env_format_override(self):
        with patch.dict(os.environ, {"LOG_FORMAT": "simple"}):
            test_logger = setup_logger(name="test-env-format", format_type="structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(threadName)s" not in format_string
        assert "%(message)s" in format_string

    def test_setup_logger_no_duplicate_handlers(self):
        test_logger1 = setup_logger(name="test-no-duplicates")
        test_logger2 = setup_logger(name="test-no-duplicates")
        assert test_logger1 is test_logger2
        assert len(test_logger1.handlers) == 1

    def test_setup_logger_handler_uses_stdout(self):
        test_logger = setup_logger(name="test-stdout")
        assert test_logger.handlers[0].stream is sys.stdout


class TestGetLogger:
    def test_component_loggers_live_under_root(self):
        component = get_logger("engine")

        assert component.name == "bucket-mirror.engine"
        assert component is get_logger("bucket-mirror.engine")
        assert not component.handlers
        assert component.propagate

    def test_root_is_configured_on_first_use(self):
        root = get_logger()
        assert root.name == ROOT_LOGGER_NAME
        assert len(root.handlers) == 1


class TestConfigureLogging:
    def test_verbose_sets_debug(self):
        assert configure_logging(verbose=True).level == logging.DEBUG
        assert configure_logging(level="WARNING").level == logging.WARNING

    def test_quiet_third_party_loggers(self):
        quiet_third_party_loggers()
        for name in ("boto3", "botocore", "s3transfer", "urllib3"):
            assert logging.getLogger(name).level == logging.WARNING


class TestLogContext:
    def test_correlation_id_generated(self):
        assert len(LogContext().correlation_id) == 12
        assert LogContext().correlation_id != LogContext().correlation_id

    def test_for_key(self):
        context = LogContext.for_key("transfer_job", "a/b.txt")
        assert context.correlation_id == "transfer_job:a/b.txt"
        assert context.component == "transfer_job"

    def test_with_operation_keeps_correlation(self):
        context = LogContext(correlation_id="abc", component="job")
        derived = context.with_operation("copy")
        assert derived.correlation_id == "abc"
        assert derived.operation == "copy"
        assert context.operation == ""

    def test_with_metadata_does_not_mutate(self):
        context = LogContext(metadata={"a": 1})
        derived = context.with_metadata(b=2)
        assert derived.metadata == {"a": 1, "b": 2}
        assert context.metadata == {"a": 1}


class TestStructuredLogger:
    def test_format_message_without_context(self):
        logger = StructuredLogger("test-structured-plain")
        assert logger.format_message("hello") == "hello"
        assert logger.format_message("hello", key="k") == "hello (key=k)"

    def test_format_message_with_context(self):
        logger = StructuredLogger("test-structured-context")
        context = LogContext(correlation_id="cid", operation="copy", metadata={"key": "a"})
        assert logger.format_message("done", context) == "[copy] [cid] done (key=a)"

    def test_messages_reach_underlying_logger(self):
        logger = StructuredLogger("test-structured-emit")
        with patch.object(logger.logger, "log") as log:
            logger.warning("careful", LogContext(correlation_id="cid"))
        log.assert_called_once_with(logging.WARNING, "[cid] careful")

    def test_disabled_level_is_not_formatted(self):
        logger = StructuredLogger("test-structured-disabled", logging.WARNING)
        with patch.object(logger, "format_message") as format_message:
            logger.debug("noise")
        format_message.assert_not_called()

    def test_create_logger_verbose_sets_debug(self):
        logger = create_logger("test-create-verbose", verbose=True)
        assert logger.logger.level == logging.DEBUG
