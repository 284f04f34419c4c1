"""
Tests for utility modules.
"""

import io
import logging
from unittest.mock import patch
from src.stomplite.protocol import Commands, ProtocolFrame
from src.utils.logging import (
    PACKAGE_LOGGERS, configure_debug_logging, describe_frame, set_global_log_level,
    setup_logger, silence_external_loggers
)


class TestLogging:
    """Test logging utilities."""

    def setup_method(self):
        self.root_level = logging.getLogger().level
        self.touched = []

    def teardown_method(self):
        # Leave global logging as the other tests expect it
        logging.getLogger().setLevel(self.root_level)
        for name in self.touched + PACKAGE_LOGGERS:
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)

    def make_logger(self, name, **kwargs):
        self.touched.append(name)
        return setup_logger(name, **kwargs)

    def test_setup_logger_default(self):
        logger = self.make_logger("test_logger")
        assert logger.name == "test_logger"
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert "%(asctime)s" in logger.handlers[0].formatter._fmt

    def test_setup_logger_custom_format(self):
        custom_format = "%(name)s - %(message)s"
        logger = self.make_logger("test_custom", format_string=custom_format)
        assert logger.handlers[0].formatter._fmt == custom_format

    def test_setup_logger_no_timestamp(self):
        logger = self.make_logger("test_no_timestamp", include_timestamp=False)
        assert "%(asctime)s" not in logger.handlers[0].formatter._fmt

    def test_setup_logger_no_duplicate_handlers(self):
        logger1 = self.make_logger("test_no_duplicate")
        logger2 = self.make_logger("test_no_duplicate", level=logging.DEBUG)

        assert logger1 is logger2
        assert len(logger1.handlers) == 1
        assert logger1.level == logging.DEBUG

    @patch('sys.stdout')
    def test_logger_output_stream(self, mock_stdout):
        logger = self.make_logger("test_stream")
        assert logger.handlers[0].stream == mock_stdout

    def test_set_global_log_level(self):
        package_logger = self.make_logger("src.stomplite")

        set_global_log_level(logging.WARNING)

        assert logging.getLogger().level == logging.WARNING
        assert package_logger.level == logging.WARNING
        assert package_logger.handlers[0].level == logging.WARNING

    def test_configure_debug_logging(self):
        package_logger = self.make_logger("src.stomplite")

        configure_debug_logging()

        assert logging.getLogger().level == logging.DEBUG
        assert package_logger.level == logging.DEBUG
        assert "%(lineno)d" in package_logger.handlers[0].formatter._fmt

    def test_module_loggers_inherit_package_level(self):
        self.make_logger("src.stomplite", level=logging.DEBUG)
        assert logging.getLogger("src.stomplite.connection").getEffectiveLevel() == logging.DEBUG

    def test_silence_external_loggers(self):
        self.touched += ['rich', 'asyncio']
        silence_external_loggers()

        assert logging.getLogger('rich').level == logging.WARNING
        assert logging.getLogger('asyncio').level == logging.WARNING

    def test_setup_logger_custom_stream(self):
        stream = io.StringIO()
        logger = self.make_logger("test_custom_stream", stream=stream, include_timestamp=False)

        logger.info("hello")

        assert stream.getvalue() == "test_custom_stream - INFO - hello\n"

    def test_configure_debug_logging_custom_loggers(self):
        other = self.make_logger("test_other_package")

        configure_debug_logging(["test_other_package"])

        assert other.level == logging.DEBUG
        assert "%(lineno)d" in other.handlers[0].formatter._fmt


class TestDescribeFrame:
    """Test the one-line frame summaries used in debug logs."""

    def test_frame_without_body(self):
        frame = ProtocolFrame(Commands.CONNECTED, {"version": "1.2"})
        assert describe_frame(frame) == "CONNECTED version=1.2"

    def test_frame_with_body(self):
        frame = ProtocolFrame(Commands.SEND, {"destination": "/queue/x"}, b"hello")
        assert describe_frame(frame) == "SEND destination=/queue/x body=b'hello' (5 bytes)"

    def test_long_body_is_cut(self):
        frame = ProtocolFrame(Commands.MESSAGE, {}, b"A" * 100)
        assert describe_frame(frame, preview=4) == "MESSAGE body=b'AAAA'... (100 bytes)"
