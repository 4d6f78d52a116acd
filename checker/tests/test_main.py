"""main モジュールのテスト."""

import logging
from unittest.mock import patch

from src.main import setup_logging


class TestSetupLogging:
    """setup_logging のテスト."""

    @patch("src.main.logging.basicConfig")
    def test_lowercase_level(self, mock_basic_config, tmp_path):
        """LOG_LEVEL が小文字でも起動できること."""
        with patch("src.main.LOG_LEVEL", "info"), patch("src.main.LOG_DIR", tmp_path):
            setup_logging()

        kwargs = mock_basic_config.call_args.kwargs
        assert kwargs["level"] == "INFO"
        assert logging.getLevelName(kwargs["level"]) == logging.INFO
        for handler in kwargs["handlers"]:
            handler.close()
