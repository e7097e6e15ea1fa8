"""Unit tests for the log_slow_query decorator."""

from unittest.mock import MagicMock

import pytest

from repositories import utils
from repositories.utils import log_slow_query

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


@pytest.fixture
def mock_logger(monkeypatch):
    logger = MagicMock()
    monkeypatch.setattr(utils, "logger", logger)
    return logger


class TestLogSlowQuery:
    async def test_fast_query_is_silent(self, mock_logger):
        @log_slow_query("fast_op")
        async def fast() -> int:
            return 7

        assert await fast() == 7
        mock_logger.warning.assert_not_called()
        mock_logger.error.assert_not_called()

    async def test_slow_query_warns(self, mock_logger):
        @log_slow_query("slow_op", threshold_ms=-1)
        async def slow() -> str:
            return "done"

        assert await slow() == "done"

        mock_logger.warning.assert_called_once()
        args, kwargs = mock_logger.warning.call_args
        assert args == ("db.query.slow",)
        assert kwargs["db_operation"] == "slow_op"

    async def test_failure_is_logged_and_reraised(self, mock_logger):
        @log_slow_query("broken_op")
        async def broken() -> None:
            raise ValueError("bad column")

        with pytest.raises(ValueError, match="bad column"):
            await broken()

        args, kwargs = mock_logger.error.call_args
        assert args == ("db.query.failed",)
        assert kwargs["db_error_type"] == "ValueError"
        assert kwargs["db_error"] == "bad column"
        mock_logger.warning.assert_not_called()

    async def test_preserves_function_name(self):
        @log_slow_query("named_op")
        async def get_mentor_badge_keys() -> None:
            return None

        assert get_mentor_badge_keys.__name__ == "get_mentor_badge_keys"
