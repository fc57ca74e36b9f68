"""Observability and the shared error handler.

- EventLog: bounded, newest-first log of relay events for dashboards.
- SlackWebhookNotifier: optional incoming-webhook notifications.
- ErrorReporter: the one place capability failures are reported. It
  logs, notifies, comments on the origin issue and records an error
  event, so every handler fails the same visible way.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import httpx

from repo_relay import conventions
from repo_relay.formatter import RelayFormatter
from repo_relay.github import GitHubClient
from repo_relay.models import EventContext, RelayEvent

logger = logging.getLogger(__name__)

EVENT_TYPES = ("info", "success", "warning", "error")

_EMOJI = {
    "info": "📣",
    "error": "🚨",
    "warning": "⚠️",
    "success": "✅",
}


@runtime_checkable
class NotificationSink(Protocol):
    async def send(self, message: str, kind: str = "info") -> None: ...


class NullNotifier:
    """Notification sink that drops everything."""

    async def send(self, message: str, kind: str = "info") -> None:
        return None


class SlackWebhookNotifier:
    """Posts notifications to a Slack incoming webhook.

    Delivery is best-effort: failures are logged, never raised.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def build_payload(message: str, kind: str) -> dict[str, Any]:
        emoji = _EMOJI.get(kind, _EMOJI["info"])
        return {
            "text": f"{emoji} RepoRelay Notification:\n{message}",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"{emoji} *RepoRelay {kind.upper()}*\n{message}",
                    },
                }
            ],
        }

    async def send(self, message: str, kind: str = "info") -> None:
        if not self._webhook_url:
            return
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._webhook_url, json=self.build_payload(message, kind)
                )
                response.raise_for_status()
            logger.debug("Slack notification sent: %s", kind)
        except httpx.HTTPError:
            logger.warning("Failed to send Slack notification", exc_info=True)


class EventLog:
    """Append-only, size-bounded event log (newest first)."""

    def __init__(
        self,
        max_size: int = conventions.DEFAULT_MAX_RELAY_HISTORY,
        notifier: NotificationSink | None = None,
    ) -> None:
        self._events: deque[RelayEvent] = deque(maxlen=max_size)
        self._notifier = notifier or NullNotifier()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    async def log_event(
        self, type: str, message: str, details: dict[str, Any] | None = None
    ) -> RelayEvent:
        """Record an event. Success events are also sent to the notifier."""
        if type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {type}")
        event = RelayEvent(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(UTC).isoformat(),
            type=type,
            message=message,
            details=dict(details or {}),
        )
        with self._lock:
            self._events.appendleft(event)
        logger.info("%s: %s", type.upper(), message)
        if type == "success":
            await self._notifier.send(message, "success")
        return event

    def get_events(
        self,
        type: str | None = None,
        repo: str | None = None,
        limit: int | None = None,
    ) -> list[RelayEvent]:
        with self._lock:
            events = list(self._events)
        if type:
            events = [e for e in events if e.type == type]
        if repo:
            events = [e for e in events if _mentions_repo(e, repo)]
        if limit is not None:
            events = events[: max(limit, 0)]
        return events


def _mentions_repo(event: RelayEvent, repo: str) -> bool:
    for key in ("repo", "origin", "target"):
        value = event.details.get(key)
        if isinstance(value, str) and repo in value:
            return True
    return repo in event.message


class ErrorReporter:
    """Shared handler for capability and network failures.

    Reporting is best-effort at every step; the caller re-raises the
    original error after ``handle_error`` returns.
    """

    def __init__(
        self,
        client: GitHubClient,
        events: EventLog,
        notifier: NotificationSink | None = None,
        post_comments: bool = True,
    ) -> None:
        self._client = client
        self._events = events
        self._notifier = notifier or NullNotifier()
        self._post_comments = post_comments

    async def handle_error(
        self,
        ctx: EventContext | None,
        error: BaseException,
        operation: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        timestamp = datetime.now(UTC).isoformat()
        repo = ctx.repo_full_name if ctx else "unknown"
        issue = ctx.issue_number if ctx and ctx.issue_number else "unknown"
        details = dict(details or {})

        logger.error(
            "RepoRelay error in %s (%s#%s): %s",
            operation,
            repo,
            issue,
            error,
            exc_info=(type(error), error, error.__traceback__),
            extra={"repo": repo, "issue": issue, "operation": operation},
        )

        summary = (
            f"**Repository:** {repo}\n"
            f"**Issue:** #{issue}\n"
            f"**Operation:** {operation}\n"
            f"**Error:** {error}\n"
            f"**Timestamp:** {timestamp}"
        )
        await self._notifier.send(summary, "error")

        if self._post_comments and ctx is not None and ctx.issue_number:
            await self._post_error_comment(ctx, error, operation, timestamp)

        await self._events.log_event(
            "error",
            f"Error in {operation}",
            {
                "timestamp": timestamp,
                "repo": repo,
                "issue": issue,
                "operation": operation,
                "error": str(error),
                "details": _jsonable(details),
            },
        )

    async def _post_error_comment(
        self, ctx: EventContext, error: BaseException, operation: str, timestamp: str
    ) -> None:
        body = RelayFormatter.format_error_comment(operation, str(error), timestamp)
        try:
            await self._client.create_comment(
                ctx.repo_owner, ctx.repo_name, ctx.issue_number, body
            )
            logger.info("Error notification posted to issue #%s", ctx.issue_number)
        except Exception:
            logger.warning("Failed to post error to issue", exc_info=True)


def _jsonable(value: Any) -> Any:
    """Best-effort conversion of handler details into JSON-safe values."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, str | int | float | bool) or value is None:
        return value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(value)
