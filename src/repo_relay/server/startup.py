"""Server startup utilities: structured logging and the startup banner.

JSON records go to a rotating file, human-readable lines to the console.
Relay code attaches context with ``extra={"repo": ..., "signature": ...}``;
those fields become top-level keys in the JSON record.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from repo_relay import __version__, conventions
from repo_relay.config import RelayConfig, relay_home

logger = logging.getLogger(__name__)

# Record attributes copied into the JSON entry when present
CONTEXT_FIELDS = ("repo", "issue", "target", "signature", "operation", "event")

# Third-party loggers that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")

_CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def log_file_path() -> Path:
    """Return the server log file path, constructed from conventions."""
    return relay_home() / conventions.SERVER_DIR / conventions.SERVER_LOG_FILE


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with relay context fields lifted out."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value if isinstance(value, int | str) else str(value)
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _is_relay_handler(handler: logging.Handler) -> bool:
    return getattr(handler, "_repo_relay", False)


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> Path:
    """Install the console and rotating JSON file handlers on the root logger.

    Calling it again replaces the handlers it installed before. Returns
    the log file in use.
    """
    log_file = log_file or log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for handler in [h for h in root.handlers if _is_relay_handler(h)]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, "%H:%M:%S"))
    rotating = RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    rotating.setFormatter(JSONFormatter())
    for handler in (console, rotating):
        handler._repo_relay = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return log_file


def log_startup_info(config: RelayConfig, host: str, port: int) -> None:
    """One summary line of what this process is about to serve."""
    logger.info(
        "repo-relay %s on %s:%d (mode=%s, owner=%s, links=%s, history<=%d, "
        "webhook secret %s)",
        __version__,
        host,
        port,
        config.mode,
        config.authorized_user,
        config.links_path,
        config.max_relay_history,
        "set" if config.webhook_secret else "NOT set",
    )
    if not config.relay_token:
        logger.warning("REPO_RELAY_TOKEN is not set: bot senders will be denied")
