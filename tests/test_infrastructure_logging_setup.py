"""
Tests for logging setup.
"""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

from cobalt_tunnel.infrastructure.config.models import LoggingConfig
from cobalt_tunnel.infrastructure.logging.setup import setup_logging


class TestSetupLogging:
    """Test cases for setup_logging."""

    @patch('cobalt_tunnel.infrastructure.logging.setup.asyncssh')
    @patch('cobalt_tunnel.infrastructure.logging.setup.logger')
    def test_console_only(self, mock_logger: Mock, mock_asyncssh: Mock) -> None:
        config = LoggingConfig(level="DEBUG", console_enabled=True, file_enabled=False)

        setup_logging(config)

        mock_logger.remove.assert_called_once_with()
        assert mock_logger.add.call_count == 1
        args, kwargs = mock_logger.add.call_args
        assert args[0] is sys.stderr
        assert kwargs['level'] == "DEBUG"
        mock_asyncssh.set_log_level.assert_called_once_with("WARNING")

    @patch('cobalt_tunnel.infrastructure.logging.setup.asyncssh')
    @patch('cobalt_tunnel.infrastructure.logging.setup.logger')
    def test_file_sink(self, mock_logger: Mock, mock_asyncssh: Mock, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        config = LoggingConfig(
            console_enabled=False,
            file_enabled=True,
            log_directory=str(log_dir),
            max_file_size="1 MB",
            backup_count=2
        )

        setup_logging(config)

        assert log_dir.is_dir()
        assert mock_logger.add.call_count == 1
        args, kwargs = mock_logger.add.call_args
        assert args[0] == log_dir / "tunnel.log"
        assert kwargs['rotation'] == "1 MB"
        assert kwargs['retention'] == 2
        assert kwargs['compression'] == "zip"

    @patch('cobalt_tunnel.infrastructure.logging.setup.asyncssh')
    @patch('cobalt_tunnel.infrastructure.logging.setup.logger')
    def test_no_sinks(self, mock_logger: Mock, mock_asyncssh: Mock) -> None:
        config = LoggingConfig(console_enabled=False, file_enabled=False, asyncssh_level="error")

        setup_logging(config)

        mock_logger.remove.assert_called_once_with()
        mock_logger.add.assert_not_called()
        mock_asyncssh.set_log_level.assert_called_once_with("ERROR")
