"""Tests for the startup sequence in parley.main."""

import logging
from unittest.mock import MagicMock

import pytest

from parley import main as parley_main
from parley.config import ParleySettings


@pytest.fixture
def settings():
    return ParleySettings(_env_file=None, bot_token="123:abc", group_id=-100123)


class TestStartup:

    @pytest.mark.asyncio
    async def test_schema_failure_is_fatal(self, monkeypatch, settings, fake_pool, caplog):
        """No tables, no relay: run() stops before the bot starts and closes the pool."""
        async def fake_init_db(dsn):
            return fake_pool

        async def failing_schema(pool):
            raise ConnectionRefusedError("connection refused")

        channel_cls = MagicMock()
        monkeypatch.setattr(parley_main, "init_db", fake_init_db)
        monkeypatch.setattr(parley_main, "ensure_schema", failing_schema)
        monkeypatch.setattr(parley_main, "TelegramChannel", channel_cls)

        with caplog.at_level(logging.CRITICAL, logger="parley"):
            with pytest.raises(ConnectionRefusedError):
                await parley_main.run(settings)

        channel_cls.assert_not_called()
        assert fake_pool.closed is True
        assert "Fatal error" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_settings_fail_before_connecting(self, monkeypatch):
        init_db = MagicMock()
        monkeypatch.setattr(parley_main, "init_db", init_db)

        with pytest.raises(ValueError):
            await parley_main.run(ParleySettings(_env_file=None, bot_token=None, group_id=None))

        init_db.assert_not_called()
