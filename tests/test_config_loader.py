"""Tests for the config loader module."""

import pytest
import yaml

from dify2openai.config_loader import (
    DEFAULT_PORT,
    _substitute_env_vars,
    load_config,
    load_settings,
)
from dify2openai.core.exceptions import ConfigurationError


def _write_config(tmp_path, data, env_text=None):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    if env_text is not None:
        (tmp_path / ".env").write_text(env_text, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clear_bind_env(monkeypatch):
    for name in ("DIFY2OPENAI_HOST", "DIFY2OPENAI_PORT", "PORT", "DIFY2OPENAI_CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_loads_simple_config(self, tmp_path):
        path = _write_config(tmp_path, {"dify_settings": {"api_base": "http://dify.local/v1"}})
        assert load_config(str(path))["dify_settings"]["api_base"] == "http://dify.local/v1"

    def test_raises_error_for_missing_config(self):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_env_path_from_environment_variable(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, {"proxy_settings": {"model_name": "from-env-path"}})
        monkeypatch.setenv("DIFY2OPENAI_CONFIG", str(path))
        assert load_config()["proxy_settings"]["model_name"] == "from-env-path"

    def test_substitutes_from_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DIFY_TEST_KEY", raising=False)
        path = _write_config(
            tmp_path,
            {"dify_settings": {"api_key": "${DIFY_TEST_KEY}"}},
            env_text="DIFY_TEST_KEY=from-dotenv\n",
        )
        assert load_config(str(path))["dify_settings"]["api_key"] == "from-dotenv"

    def test_substitutes_from_process_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DIFY_TEST_BASE", "http://env.local/v1")
        path = _write_config(tmp_path, {"dify_settings": {"api_base": "$DIFY_TEST_BASE"}})
        assert load_config(str(path))["dify_settings"]["api_base"] == "http://env.local/v1"

    def test_substitution_can_be_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DIFY_TEST_BASE", "http://env.local/v1")
        path = _write_config(tmp_path, {"dify_settings": {"api_base": "${DIFY_TEST_BASE}"}})
        data = load_config(str(path), substitute_env=False)
        assert data["dify_settings"]["api_base"] == "${DIFY_TEST_BASE}"

    def test_non_mapping_config_is_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(str(path))


class TestSubstituteEnvVars:
    def test_unset_variable_keeps_placeholder(self, monkeypatch):
        monkeypatch.delenv("DIFY_MISSING_VAR", raising=False)
        assert _substitute_env_vars("${DIFY_MISSING_VAR}") == "${DIFY_MISSING_VAR}"

    def test_recurses_into_lists_and_dicts(self, monkeypatch):
        monkeypatch.setenv("DIFY_X", "x")
        assert _substitute_env_vars({"a": ["$DIFY_X", {"b": "${DIFY_X}-y"}]}) == {"a": ["x", {"b": "x-y"}]}

    def test_dotenv_values_win(self, monkeypatch):
        monkeypatch.setenv("DIFY_X", "from-env")
        assert _substitute_env_vars("$DIFY_X", {"DIFY_X": "from-file"}) == "from-file"


class TestLoadSettings:
    def test_builds_settings_with_defaults(self):
        settings = load_settings({"dify_settings": {"api_base": "http://d/v1", "api_key": "k"}})
        assert settings.dify.api_base == "http://d/v1"
        assert settings.dify.request_timeout == 30.0
        assert settings.dify.default_user == "default-user"
        assert settings.port == DEFAULT_PORT
        assert settings.model_name == "gpt-3.5-turbo"
        assert settings.conversations.max_entries == 10000
        assert settings.conversations.ttl_seconds is None
        assert settings.conversations.session_header == "X-Session-Id"
        assert settings.cors_origins == ("*",)

    @pytest.mark.parametrize(
        "dify_cfg",
        [
            {},
            {"api_base": "http://d/v1"},
            {"api_key": "k"},
            {"api_base": "http://d/v1", "api_key": "${DIFY_API_KEY}"},
        ],
    )
    def test_missing_credentials_are_fatal(self, dify_cfg):
        with pytest.raises(ConfigurationError):
            load_settings({"dify_settings": dify_cfg})

    def test_reads_all_sections(self):
        settings = load_settings({
            "dify_settings": {
                "api_base": "http://d/v1",
                "api_key": "k",
                "request_timeout": 10,
                "default_user": "svc",
            },
            "proxy_settings": {
                "server": {"host": "0.0.0.0", "port": 8080},
                "model_name": "dify-app",
                "log_level": "DEBUG",
            },
            "conversation_settings": {
                "max_entries": 5,
                "ttl_seconds": 600,
                "session_header": "X-Thread",
            },
        })
        assert settings.dify.request_timeout == 10.0
        assert settings.dify.default_user == "svc"
        assert (settings.host, settings.port) == ("0.0.0.0", 8080)
        assert settings.model_name == "dify-app"
        assert settings.log_level == "DEBUG"
        assert settings.conversations.max_entries == 5
        assert settings.conversations.ttl_seconds == 600.0
        assert settings.conversations.session_header == "X-Thread"

    def test_environment_overrides_bind_address(self, monkeypatch):
        monkeypatch.setenv("DIFY2OPENAI_HOST", "10.0.0.1")
        monkeypatch.setenv("PORT", "4000")
        settings = load_settings({
            "dify_settings": {"api_base": "http://d/v1", "api_key": "k"},
            "proxy_settings": {"server": {"host": "127.0.0.1", "port": 8080}},
        })
        assert settings.host == "10.0.0.1"
        assert settings.port == 4000

    def test_invalid_timeout_falls_back_to_default(self):
        settings = load_settings({
            "dify_settings": {"api_base": "http://d/v1", "api_key": "k", "request_timeout": "soon"}
        })
        assert settings.dify.request_timeout == 30.0

    def test_non_positive_ttl_disables_expiry(self):
        settings = load_settings({
            "dify_settings": {"api_base": "http://d/v1", "api_key": "k"},
            "conversation_settings": {"ttl_seconds": 0},
        })
        assert settings.conversations.ttl_seconds is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (["http://localhost:5173", " https://app.example "], ("http://localhost:5173", "https://app.example")),
            ("http://a.test, http://b.test", ("http://a.test", "http://b.test")),
            ([], ()),
            (42, ("*",)),
        ],
    )
    def test_cors_origins(self, value, expected):
        settings = load_settings({
            "dify_settings": {"api_base": "http://d/v1", "api_key": "k"},
            "proxy_settings": {"cors_origins": value},
        })
        assert settings.cors_origins == expected

    def test_environment_overrides_cors_origins(self, monkeypatch):
        monkeypatch.setenv("DIFY2OPENAI_CORS_ORIGINS", "http://ui.test")
        settings = load_settings({
            "dify_settings": {"api_base": "http://d/v1", "api_key": "k"},
            "proxy_settings": {"cors_origins": ["*"]},
        })
        assert settings.cors_origins == ("http://ui.test",)
