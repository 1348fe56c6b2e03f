#!/usr/bin/env python3
"""
tinyauth User Management Configuration Module
Provides centralized configuration for the sidecar.

Configuration priority:
1. Environment variables (highest priority)
2. config.env file in the project root (or any parent directory)
3. Default values (lowest priority)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .providers.password_targets import parse_password_targets
from .providers.webhook import WebhookTarget

logger = logging.getLogger(__name__)

TRUE_VALUES = ("1", "true", "yes")


def _load_config_file(path: Path) -> Dict[str, str]:
    """Parse a KEY=value config file. Missing files yield an empty dict."""
    config: Dict[str, str] = {}
    if not path.exists():
        return config
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                # Handle variable substitution
                if '${' in value:
                    for var, val in config.items():
                        value = value.replace('${' + var + '}', val)
                config[key] = value
    return config


def _load_config_env() -> Dict[str, str]:
    """Load configuration from the nearest config.env above this package."""
    current = Path(__file__).parent
    while current != current.parent:
        config_file = current / "config.env"
        if config_file.exists():
            return _load_config_file(config_file)
        current = current.parent
    return {}


# Load config.env
_config = _load_config_env()


def get_config(key: str, default: str = None) -> str:
    """Get configuration value with environment override"""
    value = os.environ.get(key)
    if value:
        return value
    return _config.get(key, default)


def get_config_int(key: str, default: int) -> int:
    value = get_config(key)
    if value:
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", key, value)
    return default


def get_config_bool(key: str, default: bool = False) -> bool:
    value = get_config(key)
    if value:
        return value.strip().lower() in TRUE_VALUES
    return default


def parse_csv(value: str) -> List[str]:
    """Split a comma list; an empty result means every origin."""
    items = [p.strip() for p in value.split(",") if p.strip()]
    return items or ["*"]


def _parse_json_map(key: str) -> Dict[str, str]:
    raw = get_config(key)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse %s: %s", key, e)
        return {}
    if not isinstance(value, dict):
        logger.error("%s must be a JSON object", key)
        return {}
    return {str(k): str(v) for k, v in value.items()}


def load_sms_target() -> Optional[WebhookTarget]:
    """
    Assemble the SMS webhook from SMS_* settings.

    Returns None (SMS disabled) unless SMS_ENABLED is set and both the URL
    and the body template are present.
    """
    if not get_config_bool("SMS_ENABLED"):
        return None

    url = get_config("SMS_WEBHOOK_URL", "")
    if not url:
        logger.warning("SMS_ENABLED but SMS_WEBHOOK_URL not set")
        return None

    body = get_config("SMS_WEBHOOK_BODY", "")
    if not body:
        logger.warning("SMS_WEBHOOK_BODY not set")
        return None

    return WebhookTarget(
        name="sms",
        url=url,
        method=get_config("SMS_WEBHOOK_METHOD", "POST").upper(),
        content_type=get_config("SMS_WEBHOOK_CONTENT_TYPE", "application/json"),
        body=body,
        headers=_parse_json_map("SMS_WEBHOOK_HEADERS"),
        skip_tls_verify=get_config_bool("SMS_WEBHOOK_SKIP_TLS_VERIFY"),
        env=_parse_json_map("SMS_WEBHOOK_ENV"),
    )


# =============================================================================
# Settings
# =============================================================================

@dataclass
class Settings:
    """Everything the sidecar needs, resolved once at startup."""
    port: int = 8080
    users_file_path: str = "/data/users.txt"
    users_toml_path: str = "/users/users.toml"
    session_cookie_name: str = "tinyauth_um_session"
    session_ttl_seconds: int = 86400
    reset_token_ttl_seconds: int = 3600
    signup_require_approval: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@example.local"
    mail_base_url: str = "http://localhost:8080"
    totp_issuer: str = "tinyauth"
    tinyauth_container_name: str = "tinyauth"
    secure_cookie: bool = False
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:8080"]
    )
    password_targets: List[WebhookTarget] = field(default_factory=list)
    sms_target: Optional[WebhookTarget] = None


def load_settings() -> Settings:
    """Build Settings from the environment and config.env."""
    return Settings(
        port=get_config_int("PORT", 8080),
        users_file_path=get_config("USERS_FILE_PATH", "/data/users.txt"),
        users_toml_path=get_config("USERS_TOML", "/users/users.toml"),
        session_cookie_name=get_config("SESSION_COOKIE_NAME", "tinyauth_um_session"),
        session_ttl_seconds=get_config_int("SESSION_TTL_SECONDS", 86400),
        reset_token_ttl_seconds=get_config_int("RESET_TOKEN_TTL_SECONDS", 3600),
        signup_require_approval=get_config_bool("SIGNUP_REQUIRE_APPROVAL", False),
        smtp_host=get_config("SMTP_HOST", ""),
        smtp_port=get_config_int("SMTP_PORT", 587),
        smtp_username=get_config("SMTP_USERNAME", ""),
        smtp_password=get_config("SMTP_PASSWORD", ""),
        smtp_from=get_config("SMTP_FROM", "noreply@example.local"),
        mail_base_url=get_config("MAIL_BASE_URL", "http://localhost:8080"),
        totp_issuer=get_config("TOTP_ISSUER", "tinyauth"),
        tinyauth_container_name=get_config("TINYAUTH_CONTAINER_NAME", "tinyauth"),
        secure_cookie=get_config_bool("SECURE_COOKIE", False),
        cors_origins=parse_csv(get_config("CORS_ORIGINS", "http://localhost:5173,http://localhost:8080")),
        password_targets=parse_password_targets(get_config("PASSWORD_TARGETS")),
        sms_target=load_sms_target(),
    )


def print_config(settings: Settings):
    """Print current configuration for debugging"""
    print("tinyauth User Management Configuration")
    print("=" * 40)
    print(f"PORT:                    {settings.port}")
    print(f"USERS_FILE_PATH:         {settings.users_file_path}")
    print(f"USERS_TOML:              {settings.users_toml_path}")
    print(f"SESSION_TTL_SECONDS:     {settings.session_ttl_seconds}")
    print(f"RESET_TOKEN_TTL_SECONDS: {settings.reset_token_ttl_seconds}")
    print(f"SIGNUP_REQUIRE_APPROVAL: {settings.signup_require_approval}")
    print(f"TOTP_ISSUER:             {settings.totp_issuer}")
    print(f"PASSWORD_TARGETS:        {len(settings.password_targets)}")
    print(f"SMS:                     {'enabled' if settings.sms_target else 'disabled'}")
    print("=" * 40)


if __name__ == "__main__":
    print_config(load_settings())
