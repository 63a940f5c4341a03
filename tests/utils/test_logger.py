"""Tests for logging setup."""

import logging
from pathlib import Path
from unittest.mock import patch

from clipid.core.config import LoggingConfig
from clipid.utils.logger import setup_logging


class TestSetupLogging:
    def test_stream_only(self) -> None:
        with patch("clipid.utils.logger.logging.basicConfig") as basic_config:
            setup_logging(LoggingConfig(level="debug"))

        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.DEBUG
        assert [type(h) for h in kwargs["handlers"]] == [logging.StreamHandler]

    def test_with_file(self, tmp_path: Path) -> None:
        with patch("clipid.utils.logger.logging.basicConfig") as basic_config:
            setup_logging(LoggingConfig(level="INFO", file=str(tmp_path / "clipid.log")))

        handlers = basic_config.call_args.kwargs["handlers"]
        assert isinstance(handlers[0], logging.FileHandler)
        handlers[0].close()
