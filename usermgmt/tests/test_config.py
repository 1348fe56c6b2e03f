"""
Tests for the configuration module.
"""

import json

import pytest

from usermgmt import config


@pytest.fixture
def clean_config(monkeypatch):
    """No config.env values; only what the test puts in the environment."""
    monkeypatch.setattr(config, "_config", {})
    for key in (
        "PORT", "USERS_FILE_PATH", "USERS_TOML", "SESSION_TTL_SECONDS", "RESET_TOKEN_TTL_SECONDS",
        "SIGNUP_REQUIRE_APPROVAL", "CORS_ORIGINS", "PASSWORD_TARGETS",
        "SMS_ENABLED", "SMS_WEBHOOK_URL", "SMS_WEBHOOK_BODY", "SMS_WEBHOOK_METHOD",
        "SMS_WEBHOOK_HEADERS", "SMS_WEBHOOK_ENV", "SMS_WEBHOOK_SKIP_TLS_VERIFY",
        "SECURE_COOKIE", "TOTP_ISSUER",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestConfigLoading:
    """Test configuration file loading and parsing."""

    def test_load_config_file_nonexistent(self, temp_dir):
        """Test loading a non-existent config file returns empty dict."""
        assert config._load_config_file(temp_dir / "nonexistent.env") == {}

    def test_load_config_file_basic(self, temp_dir):
        config_file = temp_dir / "config.env"
        config_file.write_text("PORT=9090\nTOTP_ISSUER=\"My Company\"\n# comment\n\nSMTP_FROM='a@b.c'\n")

        result = config._load_config_file(config_file)
        assert result == {"PORT": "9090", "TOTP_ISSUER": "My Company", "SMTP_FROM": "a@b.c"}

    def test_load_config_file_substitution(self, temp_dir):
        config_file = temp_dir / "config.env"
        config_file.write_text("BASE=/srv/auth\nUSERS_TOML=${BASE}/users.toml\n")

        result = config._load_config_file(config_file)
        assert result["USERS_TOML"] == "/srv/auth/users.toml"


class TestGetConfig:
    """Test environment override and typed getters."""

    def test_env_overrides_file(self, clean_config):
        clean_config.setattr(config, "_config", {"PORT": "1111"})
        clean_config.setenv("PORT", "2222")
        assert config.get_config("PORT") == "2222"

    def test_file_value_used(self, clean_config):
        clean_config.setattr(config, "_config", {"PORT": "1111"})
        assert config.get_config("PORT") == "1111"

    def test_default(self, clean_config):
        assert config.get_config("NONEXISTENT_KEY_12345", "my_default") == "my_default"

    def test_get_config_int(self, clean_config):
        clean_config.setenv("PORT", "abc")
        assert config.get_config_int("PORT", 8080) == 8080
        clean_config.setenv("PORT", "9000")
        assert config.get_config_int("PORT", 8080) == 9000

    @pytest.mark.parametrize("value,expected", [("1", True), ("true", True), ("YES", True), ("0", False), ("no", False)])
    def test_get_config_bool(self, clean_config, value, expected):
        clean_config.setenv("SECURE_COOKIE", value)
        assert config.get_config_bool("SECURE_COOKIE") is expected

    def test_parse_csv(self):
        assert config.parse_csv("a, b,,c ") == ["a", "b", "c"]
        assert config.parse_csv("") == ["*"]
        assert config.parse_csv(" , ") == ["*"]


class TestLoadSettings:
    """Test Settings assembly."""

    def test_defaults(self, clean_config):
        settings = config.load_settings()
        assert settings.port == 8080
        assert settings.users_file_path == "/data/users.txt"
        assert settings.users_toml_path == "/users/users.toml"
        assert settings.session_ttl_seconds == 86400
        assert settings.reset_token_ttl_seconds == 3600
        assert settings.signup_require_approval is False
        assert settings.totp_issuer == "tinyauth"
        assert settings.cors_origins == ["http://localhost:5173", "http://localhost:8080"]
        assert settings.password_targets == []
        assert settings.sms_target is None

    def test_overrides(self, clean_config):
        clean_config.setenv("PORT", "9999")
        clean_config.setenv("SIGNUP_REQUIRE_APPROVAL", "true")
        clean_config.setenv("CORS_ORIGINS", "https://a.example,https://b.example")
        clean_config.setenv("PASSWORD_TARGETS", json.dumps([{"name": "x", "url": "http://x/"}]))

        settings = config.load_settings()

        assert settings.port == 9999
        assert settings.signup_require_approval is True
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert [t.name for t in settings.password_targets] == ["x"]

    def test_print_config(self, clean_config, capsys):
        config.print_config(config.load_settings())
        out = capsys.readouterr().out
        assert "USERS_TOML" in out
        assert "SMS:" in out


class TestSMSTarget:
    """Test SMS webhook settings."""

    def test_disabled_by_default(self, clean_config):
        assert config.load_sms_target() is None

    def test_enabled_without_url(self, clean_config):
        clean_config.setenv("SMS_ENABLED", "true")
        clean_config.setenv("SMS_WEBHOOK_BODY", "{}")
        assert config.load_sms_target() is None

    def test_enabled_without_body(self, clean_config):
        clean_config.setenv("SMS_ENABLED", "true")
        clean_config.setenv("SMS_WEBHOOK_URL", "https://sms.example/send")
        assert config.load_sms_target() is None

    def test_full(self, clean_config):
        clean_config.setenv("SMS_ENABLED", "1")
        clean_config.setenv("SMS_WEBHOOK_URL", "https://sms.example/send")
        clean_config.setenv("SMS_WEBHOOK_METHOD", "put")
        clean_config.setenv("SMS_WEBHOOK_BODY", '{"to":"{{ To }}"}')
        clean_config.setenv("SMS_WEBHOOK_HEADERS", '{"X-Api-Key": "{{ ApiKey }}"}')
        clean_config.setenv("SMS_WEBHOOK_ENV", '{"ApiKey": "k"}')

        target = config.load_sms_target()

        assert target.name == "sms"
        assert target.method == "PUT"
        assert target.headers == {"X-Api-Key": "{{ ApiKey }}"}
        assert target.env == {"ApiKey": "k"}
        assert target.skip_tls_verify is False

    def test_bad_headers_json_ignored(self, clean_config):
        clean_config.setenv("SMS_ENABLED", "1")
        clean_config.setenv("SMS_WEBHOOK_URL", "https://sms.example/send")
        clean_config.setenv("SMS_WEBHOOK_BODY", "x")
        clean_config.setenv("SMS_WEBHOOK_HEADERS", "not json")
        assert config.load_sms_target().headers == {}
