"""Configuration for the relay service.

Secrets live in keys.yaml, behavior lives in relay.yaml.

Priority order (highest wins):
1. Environment variables (GITHUB_TOKEN, REPO_RELAY_TOKEN, etc.)
2. keys.yaml for secrets, the relay: section of relay.yaml for config
3. Dataclass defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from repo_relay import conventions

logger = logging.getLogger(__name__)


def relay_home() -> Path:
    return Path(conventions.RELAY_HOME).expanduser()


def default_thread_links_path() -> Path:
    """Return the default thread link persistence file."""
    return relay_home() / conventions.SERVER_DIR / conventions.THREAD_LINKS_FILENAME


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s", path, exc_info=True)
        return {}


def _load_keys() -> dict[str, Any]:
    """Load ~/.repo-relay/keys.yaml if it exists."""
    return _load_yaml(relay_home() / conventions.KEYS_FILENAME)


def _load_relay_section() -> dict[str, Any]:
    """Load the relay: section from ~/.repo-relay/relay.yaml."""
    data = _load_yaml(relay_home() / conventions.RELAY_CONFIG_FILENAME)
    section = data.get("relay")
    return section if isinstance(section, dict) else {}


def _str(
    env_key: str,
    keys: dict[str, Any],
    config: dict[str, Any],
    config_key: str,
    default: str = "",
) -> str:
    """Get string: env > keys.yaml > relay.yaml > default."""
    env = os.environ.get(env_key, "")
    if env:
        return env
    k = keys.get(env_key, "")
    if k:
        return str(k)
    c = config.get(config_key, "")
    if c:
        return str(c)
    return default


def _int(env_key: str, config: dict[str, Any], config_key: str, default: int) -> int:
    """Get int: env > relay.yaml > default. Unparsable values fall back."""
    raw = os.environ.get(env_key, "") or config.get(config_key)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer %s=%r", env_key, raw)
        return default


def _float(
    env_key: str, config: dict[str, Any], config_key: str, default: float
) -> float:
    raw = os.environ.get(env_key, "") or config.get(config_key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s=%r", env_key, raw)
        return default


def _bool(
    env_key: str, config: dict[str, Any], config_key: str, default: bool = False
) -> bool:
    """Get bool: env > relay.yaml > default."""
    env = os.environ.get(env_key, "")
    if env:
        return env.lower() in ("1", "true", "yes")
    val = config.get(config_key)
    if val is not None:
        return bool(val)
    return default


@dataclass
class RelayConfig:
    """Relay service configuration."""

    # --- Identity and authorization ---
    authorized_user: str = conventions.DEFAULT_AUTHORIZED_USER
    relay_token: str = ""  # shared secret for bot senders; empty disables bots
    bot_login: str = conventions.DEFAULT_BOT_LOGIN

    # --- GitHub credentials (from keys.yaml) ---
    github_token: str = ""
    webhook_secret: str = ""
    github_api_url: str = "https://api.github.com"

    # --- Storage and limits ---
    max_relay_history: int = conventions.DEFAULT_MAX_RELAY_HISTORY
    thread_links_file: str = ""  # empty = default path under RELAY_HOME
    repo_config_path: str = conventions.REPO_CONFIG_PATH

    # --- Cleanup ---
    link_max_age_days: int = conventions.DEFAULT_LINK_MAX_AGE_DAYS
    history_max_age_days: int = conventions.DEFAULT_HISTORY_MAX_AGE_DAYS
    cleanup_interval_hours: int = conventions.DEFAULT_CLEANUP_INTERVAL_HOURS

    # --- Network ---
    visibility_timeout: float = conventions.DEFAULT_VISIBILITY_TIMEOUT

    # --- Notifications ---
    slack_webhook: str = ""
    post_error_comments: bool = True

    @classmethod
    def from_env(cls) -> RelayConfig:
        """Load config from keys.yaml + relay.yaml + env overrides."""
        keys = _load_keys()
        cfg = _load_relay_section()
        config = cls(
            authorized_user=_str(
                "REPO_RELAY_AUTHORIZED_USER",
                {},
                cfg,
                "authorized_user",
                conventions.DEFAULT_AUTHORIZED_USER,
            ),
            relay_token=_str("REPO_RELAY_TOKEN", keys, cfg, "relay_token"),
            bot_login=_str(
                "REPO_RELAY_BOT_LOGIN",
                {},
                cfg,
                "bot_login",
                conventions.DEFAULT_BOT_LOGIN,
            ),
            github_token=_str("GITHUB_TOKEN", keys, cfg, "github_token"),
            webhook_secret=_str("GITHUB_WEBHOOK_SECRET", keys, cfg, "webhook_secret"),
            github_api_url=_str(
                "GITHUB_API_URL", {}, cfg, "github_api_url", "https://api.github.com"
            ),
            max_relay_history=_int(
                "MAX_RELAY_HISTORY",
                cfg,
                "max_relay_history",
                conventions.DEFAULT_MAX_RELAY_HISTORY,
            ),
            thread_links_file=_str("THREAD_LINKS_FILE", {}, cfg, "thread_links_file"),
            repo_config_path=_str(
                "REPO_RELAY_REPO_CONFIG_PATH",
                {},
                cfg,
                "repo_config_path",
                conventions.REPO_CONFIG_PATH,
            ),
            link_max_age_days=_int(
                "REPO_RELAY_LINK_MAX_AGE_DAYS",
                cfg,
                "link_max_age_days",
                conventions.DEFAULT_LINK_MAX_AGE_DAYS,
            ),
            history_max_age_days=_int(
                "REPO_RELAY_HISTORY_MAX_AGE_DAYS",
                cfg,
                "history_max_age_days",
                conventions.DEFAULT_HISTORY_MAX_AGE_DAYS,
            ),
            cleanup_interval_hours=_int(
                "REPO_RELAY_CLEANUP_INTERVAL_HOURS",
                cfg,
                "cleanup_interval_hours",
                conventions.DEFAULT_CLEANUP_INTERVAL_HOURS,
            ),
            visibility_timeout=_float(
                "REPO_RELAY_VISIBILITY_TIMEOUT",
                cfg,
                "visibility_timeout",
                conventions.DEFAULT_VISIBILITY_TIMEOUT,
            ),
            slack_webhook=_str("SLACK_WEBHOOK", keys, cfg, "slack_webhook"),
            post_error_comments=_bool(
                "REPO_RELAY_POST_ERROR_COMMENTS", cfg, "post_error_comments", True
            ),
        )
        logger.debug(
            "RelayConfig.from_env: authorized_user=%s mode=%s",
            config.authorized_user,
            config.mode,
        )
        return config

    @property
    def links_path(self) -> Path:
        """Resolved thread link storage file."""
        if self.thread_links_file:
            return Path(self.thread_links_file).expanduser()
        return default_thread_links_path()

    @property
    def is_configured(self) -> bool:
        """Whether GitHub credentials are configured."""
        return bool(self.github_token)

    @property
    def mode(self) -> str:
        """Current operating mode."""
        return "live" if self.is_configured else "memory"
