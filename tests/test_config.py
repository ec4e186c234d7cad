"""Tests for configuration handling."""

import stat

import pytest

from projsync.config import ACCESS_TOKEN_ENV, API_URL_ENV, Config


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv(API_URL_ENV, raising=False)
    monkeypatch.delenv(ACCESS_TOKEN_ENV, raising=False)


class TestConfig:
    """Tests for Config."""

    def test_unconfigured(self, tmp_path, clean_env):
        config = Config(tmp_path)
        assert config.api_url is None
        assert config.access_token is None
        assert not config.is_configured()

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(API_URL_ENV, "http://env.test/")
        monkeypatch.setenv(ACCESS_TOKEN_ENV, "env-token")
        config = Config(tmp_path)
        assert config.api_url == "http://env.test"
        assert config.access_token == "env-token"
        assert config.is_configured()

    def test_save_and_read(self, tmp_path, clean_env):
        config = Config(tmp_path / "projsync")

        config.save("http://server.test/", "secret")

        assert config.api_url == "http://server.test"
        assert config.access_token == "secret"
        mode = stat.S_IMODE(config.get_config_path().stat().st_mode)
        assert mode == 0o600

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv(ACCESS_TOKEN_ENV, raising=False)
        config = Config(tmp_path)
        config.save("http://file.test")
        monkeypatch.setenv(API_URL_ENV, "http://env.test")

        assert config.api_url == "http://env.test"
        assert config.access_token is None

    def test_comments_and_quotes(self, tmp_path, clean_env):
        (tmp_path / "config").write_text(
            '# projsync settings\n\nPROJSYNC_API_URL="http://quoted.test"\nnoise\n'
        )
        assert Config(tmp_path).api_url == "http://quoted.test"

    def test_state_dir(self, tmp_path):
        assert Config(tmp_path).state_dir == tmp_path / "sync_state"
