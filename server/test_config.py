"""Tests for environment-driven configuration."""

import config as config_module
from config import ServerConfig, get_env_bool, get_env_int, reload_config


class TestEnvHelpers:

    def test_bool_values(self, monkeypatch):
        monkeypatch.setenv("FLAG", "yes")
        assert get_env_bool("FLAG") is True
        monkeypatch.setenv("FLAG", "off")
        assert get_env_bool("FLAG", True) is False
        monkeypatch.setenv("FLAG", "maybe")
        assert get_env_bool("FLAG", True) is True

    def test_bad_int_uses_default(self, monkeypatch):
        monkeypatch.setenv("NUMBER", "lots")
        assert get_env_int("NUMBER", 7) == 7
        monkeypatch.setenv("NUMBER", "12")
        assert get_env_int("NUMBER", 7) == 12


class TestServerConfig:

    def test_defaults(self, monkeypatch):
        for key in ("MIN_PLAYERS", "MAX_PLAYERS", "ALLOW_TEST_ACTIONS", "KABOO_PENALTY"):
            monkeypatch.delenv(key, raising=False)
        cfg = ServerConfig.from_env()
        assert cfg.MIN_PLAYERS == 2
        assert cfg.MAX_PLAYERS == 8
        assert cfg.ALLOW_TEST_ACTIONS is False
        assert cfg.card_values.KABOO_PENALTY == 20

    def test_card_values_from_env(self, monkeypatch):
        monkeypatch.setenv("CARD_BLACK_KING", "25")
        monkeypatch.setenv("DEFAULT_TARGET_SCORE", "50")
        cfg = ServerConfig.from_env()
        assert cfg.card_values.BLACK_KING == 25
        assert cfg.game_defaults.target_score == "50"

    def test_reload_config(self, monkeypatch):
        original = config_module.config
        monkeypatch.setenv("SERVER_ID", "server-7")
        try:
            reloaded = reload_config()
            assert reloaded.SERVER_ID == "server-7"
            assert config_module.config is reloaded
        finally:
            config_module.config = original
