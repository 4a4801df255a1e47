"""
Tests for configuration loading and process startup.
"""

import pytest

from perplexity_mcp import main
from perplexity_mcp.config import DEFAULT_API_KEY, Settings, get_settings
from perplexity_mcp.protocol.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PERPLEXITY_API_KEY", "MCP_PERPLEXITY_API_KEY", "MCP_API_KEY", "MCP_PORT", "PORT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)

        assert settings.port == 3002
        assert settings.api_key == DEFAULT_API_KEY
        assert settings.rate_limit_requests == 100
        assert settings.rate_limit_window_seconds == 900
        assert settings.require_auth_for_messages is True
        assert settings.perplexity_api_key is None

    def test_environment_aliases(self, clean_env):
        """PORT and PERPLEXITY_API_KEY should be read without the MCP_ prefix."""
        clean_env.setenv("PORT", "4000")
        clean_env.setenv("PERPLEXITY_API_KEY", "pplx-env")
        clean_env.setenv("MCP_API_KEY", "from-env")

        settings = Settings(_env_file=None)

        assert settings.port == 4000
        assert settings.perplexity_api_key == "pplx-env"
        assert settings.api_key == "from-env"


class TestStartup:
    """Tests for the process entry point."""

    def test_parse_args(self):
        assert main.parse_args([]).sse is False
        assert main.parse_args(["--sse"]).sse is True
        assert main.parse_args(["-s"]).sse is True

    def test_create_app_requires_upstream_key(self, clean_env):
        with pytest.raises(ConfigurationError):
            main.create_app(Settings(_env_file=None))

    @pytest.mark.parametrize("argv", [[], ["--sse"]])
    def test_missing_upstream_key_exits_nonzero(self, clean_env, argv):
        """Startup without PERPLEXITY_API_KEY should exit with status 1."""
        clean_env.setattr(main, "get_settings", lambda: Settings(_env_file=None))
        clean_env.setattr(main, "configure_logging", lambda *args, **kwargs: None)

        with pytest.raises(SystemExit) as exc_info:
            main.run(argv)

        assert exc_info.value.code == 1
